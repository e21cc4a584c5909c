"""Открытие страниц форм и проверка доступности досок."""

import logging
import time

from playwright.async_api import Error as PlaywrightError, Page

from src.constants import (
    BROWSER_DEFAULT_TIMEOUT,
    BROWSER_NAVIGATION_TIMEOUT,
    BROWSER_WAIT_CF_CHALLENGE,
    CLOUDFLARE_STATUSES,
    HTTP_CLIENT_ERROR_MIN,
)
from .cookie_handler import handle_cookie_consent
from .exceptions import DomainUnreachableError, NavigationError
from .patterns import CLOUDFLARE_CHALLENGE_MARKERS, NETWORK_ERROR_PATTERNS

logger = logging.getLogger(__name__)

# Max time to wait for a Cloudflare challenge to pass in headless mode
CF_MAX_WAIT_SECONDS = 20


def is_challenge_page(html: str) -> bool:
    return any(marker in html for marker in CLOUDFLARE_CHALLENGE_MARKERS)


async def _goto(page: Page, url: str, timeout_ms: float):
    """page.goto with network errors mapped to navigation exceptions."""
    try:
        return await page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
    except PlaywrightError as e:
        error_str = str(e)
        # Detect domain/network unreachable errors - fail fast
        if any(err in error_str for err in NETWORK_ERROR_PATTERNS):
            raise DomainUnreachableError(f"Домен недоступен: {url}") from e
        raise NavigationError(f"Navigation to {url} failed: {error_str.splitlines()[0]}") from e


async def _wait_for_cloudflare(page: Page) -> bool:
    """Wait for a JS challenge to reload the page. Returns True if passed."""
    max_attempts = max(CF_MAX_WAIT_SECONDS * 1000 // BROWSER_WAIT_CF_CHALLENGE, 1)
    for attempt in range(max_attempts):
        await page.wait_for_timeout(BROWSER_WAIT_CF_CHALLENGE)
        html = await page.content()
        if not is_challenge_page(html) and len(html) > 2000:
            logger.debug(f"Cloudflare challenge passed after {(attempt + 1) * BROWSER_WAIT_CF_CHALLENGE // 1000}s")
            return True
        logger.debug(f"Still waiting for Cloudflare... ({attempt + 1}/{max_attempts})")
    return False


async def open_form_page(page: Page, url: str, timeout_ms: float = BROWSER_DEFAULT_TIMEOUT) -> str:
    """
    Открыть страницу формы и вернуть её HTML после рендеринга.

    Args:
        page: Playwright Page (свежий контекст)
        url: URL формы публикации
        timeout_ms: Таймаут загрузки в мс

    Returns:
        HTML страницы

    Raises:
        DomainUnreachableError: DNS / сеть
        NavigationError: HTTP 4xx/5xx, таймаут, не пройден Cloudflare
    """
    response = await _goto(page, url, timeout_ms)

    if response is not None:
        status = response.status
        if status in CLOUDFLARE_STATUSES:
            logger.debug(f"Got status {status} for {url}, waiting for Cloudflare challenge...")
            if not await _wait_for_cloudflare(page):
                raise NavigationError(f"HTTP {status}: blocked by anti-bot challenge at {url}")
        elif status >= HTTP_CLIENT_ERROR_MIN:
            raise NavigationError(f"HTTP {status} for {url}")

    # Wait for network to settle (JS-rendered forms)
    try:
        await page.wait_for_load_state("networkidle", timeout=BROWSER_NAVIGATION_TIMEOUT)
    except PlaywrightError:
        logger.debug(f"Network did not settle for {url}, continuing")

    if await handle_cookie_consent(page):
        logger.debug(f"Dismissed cookie banner on {url}")

    return await page.content()


async def probe_url(page: Page, url: str, timeout_ms: float = BROWSER_DEFAULT_TIMEOUT) -> dict:
    """
    Проверить доступность страницы (для check-boards).

    Returns:
        {"url", "reachable", "status", "elapsed", "error"}
    """
    start_time = time.perf_counter()
    try:
        response = await _goto(page, url, timeout_ms)
    except NavigationError as e:
        return {
            "url": url,
            "reachable": False,
            "status": None,
            "elapsed": time.perf_counter() - start_time,
            "error": str(e),
        }

    status = response.status if response is not None else None
    return {
        "url": url,
        "reachable": status is not None and status < HTTP_CLIENT_ERROR_MIN,
        "status": status,
        "elapsed": time.perf_counter() - start_time,
        "error": None,
    }
