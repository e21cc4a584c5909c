"""Обработка cookie consent диалогов."""

import logging
import re

from playwright.async_api import Error as PlaywrightError, Page

from src.constants import BROWSER_WAIT_SHORT
from .patterns import COOKIE_ACCEPT_PATTERNS, COOKIE_DIALOG_SELECTORS

logger = logging.getLogger(__name__)

# Consentmanager (cmpbox) uses <a> instead of <button>
CMPBOX_ACCEPT_SELECTORS = [
    '#cmpbox a.cmpboxbtnyes',
    '#cmpbox .cmpboxbtn.cmpboxbtnyes',
    '#cmpbox a[aria-label*="Accept"]',
]


def _is_accept_text(text: str) -> bool:
    text_lower = text.lower().strip()
    return any(re.search(pattern, text_lower, re.IGNORECASE) for pattern in COOKIE_ACCEPT_PATTERNS)


async def handle_cookie_consent(page: Page) -> bool:
    """
    Try to dismiss cookie consent dialogs.

    A banner left open can cover the submit button, so this runs right after
    the form page loads.

    Args:
        page: Playwright page object

    Returns:
        True if a cookie dialog was handled, False otherwise
    """
    for selector in CMPBOX_ACCEPT_SELECTORS:
        try:
            btn = await page.query_selector(selector)
            if btn and await btn.is_visible():
                logger.debug(f"Clicking cmpbox accept: {selector}")
                await btn.click()
                await page.wait_for_timeout(BROWSER_WAIT_SHORT)
                return True
        except PlaywrightError as e:
            logger.debug(f"cmpbox handling error: {e}")

    for selector in COOKIE_DIALOG_SELECTORS:
        try:
            elements = await page.query_selector_all(selector)
        except PlaywrightError:
            continue

        for element in elements:
            try:
                text = await element.inner_text()
                if not text or not _is_accept_text(text):
                    continue
                if await element.is_visible():
                    logger.debug(f"Clicking cookie consent: '{text.strip()[:40]}'")
                    await element.click()
                    await page.wait_for_timeout(BROWSER_WAIT_SHORT)
                    return True
            except PlaywrightError as e:
                logger.debug(f"Failed to click cookie button: {e}")
                continue

    return False
