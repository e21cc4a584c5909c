"""Post-submit confirmation signal.

A submission counts as confirmed only when one of these is observed:
1. URL signal: the board's success_url_pattern matches the current URL, or
   (boards without a pattern) the URL left the form and is not an error page
2. a visible element from the board's success_selectors
3. a success marker in the page text, with no error marker present

Selectors and markers already on the form page before the click
(PageBaseline) do not count.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError, Page

from src.browser.patterns import DEFAULT_SUCCESS_MARKERS, ERROR_MARKERS, ERROR_URL_PATTERNS
from src.constants import CONFIRMATION_POLL_INTERVAL
from src.models import Board

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageBaseline:
    """Success signals present on the form page before submit."""

    markers: frozenset[str] = frozenset()
    selectors: frozenset[str] = frozenset()


def _normalize_url(url: str) -> str:
    return url.split("#", 1)[0].rstrip("/")


def is_error_url(url: str) -> bool:
    return any(re.search(pattern, url, re.IGNORECASE) for pattern in ERROR_URL_PATTERNS)


def url_signal(current_url: str, form_url: str, board: Board) -> bool:
    """URL part of the confirmation signal."""
    if board.success_url_pattern:
        return re.search(board.success_url_pattern, current_url) is not None
    if not current_url or _normalize_url(current_url) == _normalize_url(form_url):
        return False
    return not is_error_url(current_url)


def _markers_in(body_text: str, board: Board) -> frozenset[str]:
    text = body_text.lower()
    markers = board.success_markers or DEFAULT_SUCCESS_MARKERS
    return frozenset(marker.lower() for marker in markers if marker.lower() in text)


def text_signal(body_text: str, board: Board, seen_before: frozenset[str] = frozenset()) -> bool:
    """A new success marker is present and no error marker."""
    if any(marker in body_text.lower() for marker in ERROR_MARKERS):
        return False
    return bool(_markers_in(body_text, board) - seen_before)


async def _visible_selectors(page: Page, board: Board) -> frozenset[str]:
    visible = []
    for selector in board.success_selectors:
        try:
            if await page.locator(selector).first.is_visible():
                visible.append(selector)
        except PlaywrightError:
            continue
    return frozenset(visible)


async def _body_text(page: Page) -> str:
    try:
        return await page.inner_text("body")
    except PlaywrightError:
        return ""


async def capture_baseline(page: Page, board: Board) -> PageBaseline:
    """Snapshot the success signals the form page shows before the submit click."""
    baseline = PageBaseline(
        markers=_markers_in(await _body_text(page), board),
        selectors=await _visible_selectors(page, board),
    )
    if baseline.markers or baseline.selectors:
        logger.debug(f"[{board.id}] ignoring signals already on the form: {sorted(baseline.markers | baseline.selectors)}")
    return baseline


async def _external_url(page: Page, board: Board) -> str:
    """Confirmed page URL, or the posted job's link when the board shows one."""
    if board.job_link_selector:
        try:
            href = await page.locator(board.job_link_selector).first.get_attribute("href")
            if href:
                return urljoin(page.url, href)
        except PlaywrightError as e:
            logger.debug(f"[{board.id}] job link not readable: {e}")
    return page.url


async def check_confirmation(
    page: Page,
    form_url: str,
    board: Board,
    baseline: PageBaseline = PageBaseline(),
) -> bool:
    """Single check of all three signals."""
    if url_signal(page.url, form_url, board):
        logger.debug(f"[{board.id}] confirmed by URL {page.url}")
        return True
    if await _visible_selectors(page, board) - baseline.selectors:
        logger.debug(f"[{board.id}] confirmed by success selector")
        return True
    if text_signal(await _body_text(page), board, baseline.markers):
        logger.debug(f"[{board.id}] confirmed by success text")
        return True
    return False


async def wait_for_confirmation(
    page: Page,
    form_url: str,
    board: Board,
    timeout: float,
    poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    baseline: Optional[PageBaseline] = None,
) -> Optional[str]:
    """
    Poll the page until a confirmation signal appears.

    Args:
        page: Page after the submit click
        form_url: URL of the form page before submit
        board: Board definition (signal configuration)
        timeout: Seconds to wait
        poll_interval: Seconds between checks
        baseline: Signals captured before the click. Without it the page
            state at the first poll is taken as the baseline.

    Returns:
        External URL of the posting, or None if nothing confirmed the submit
    """
    if baseline is None:
        baseline = await capture_baseline(page, board)

    deadline = time.monotonic() + timeout
    while True:
        if await check_confirmation(page, form_url, board, baseline):
            return await _external_url(page, board)
        if time.monotonic() >= deadline:
            logger.info(f"[{board.id}] no confirmation within {timeout:.0f}s (url={page.url})")
            return None
        await asyncio.sleep(poll_interval)
