"""Заполнение полей формы и вход на доски, требующие авторизации."""

import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError, Page

from src.constants import BROWSER_ELEMENT_TIMEOUT, BROWSER_WAIT_LONG
from src.models import Board, Credentials
from .exceptions import NavigationError
from .navigation import open_form_page
from .patterns import LOGIN_EMAIL_SELECTORS, LOGIN_PASSWORD_SELECTORS, LOGIN_SUBMIT_SELECTORS

logger = logging.getLogger(__name__)


async def fill_field(page: Page, selector: str, value: str, timeout_ms: float = BROWSER_ELEMENT_TIMEOUT) -> bool:
    """
    Заполнить элемент формы.

    <select> выбирается по тексту опции (затем по value), остальные
    элементы заполняются через fill().

    Returns:
        True если значение установлено, False если элемент не найден или недоступен
    """
    locator = page.locator(selector).first
    try:
        await locator.wait_for(state="visible", timeout=timeout_ms)
        tag = await locator.evaluate("el => el.tagName.toLowerCase()")
        if tag == "select":
            try:
                await locator.select_option(label=value, timeout=timeout_ms)
            except PlaywrightError:
                await locator.select_option(value=value, timeout=timeout_ms)
        else:
            await locator.fill(value, timeout=timeout_ms)
        return True
    except PlaywrightError as e:
        logger.debug(f"Cannot fill {selector}: {str(e).splitlines()[0]}")
        return False


async def click_element(page: Page, selector: str, timeout_ms: float = BROWSER_ELEMENT_TIMEOUT) -> bool:
    """Кликнуть по элементу (с fallback на force при overlay)."""
    locator = page.locator(selector).first
    try:
        await locator.wait_for(state="visible", timeout=timeout_ms)
        try:
            await locator.click(timeout=timeout_ms)
        except PlaywrightError:
            await locator.click(force=True, timeout=timeout_ms)
        return True
    except PlaywrightError as e:
        logger.debug(f"Cannot click {selector}: {str(e).splitlines()[0]}")
        return False


async def _first_fillable(page: Page, selectors: list[str], value: str) -> Optional[str]:
    for selector in selectors:
        if await fill_field(page, selector, value, timeout_ms=BROWSER_ELEMENT_TIMEOUT // 5):
            return selector
    return None


async def login(page: Page, board: Board, credentials: Credentials) -> None:
    """
    Войти на доску с переданными учётными данными.

    Пароль не логируется.

    Raises:
        NavigationError: страница входа недоступна или форма входа не найдена
    """
    login_url = board.login_url or board.base_url
    await open_form_page(page, login_url)

    if not await _first_fillable(page, LOGIN_EMAIL_SELECTORS, credentials.email):
        raise NavigationError(f"Login form not found on {login_url}")
    if not await _first_fillable(page, LOGIN_PASSWORD_SELECTORS, credentials.password.get_secret_value()):
        raise NavigationError(f"Password field not found on {login_url}")

    for selector in LOGIN_SUBMIT_SELECTORS:
        if await click_element(page, selector, timeout_ms=BROWSER_ELEMENT_TIMEOUT // 5):
            break
    else:
        raise NavigationError(f"Login button not found on {login_url}")

    try:
        await page.wait_for_load_state("networkidle", timeout=BROWSER_WAIT_LONG * 5)
    except PlaywrightError:
        logger.debug(f"[{board.id}] network did not settle after login")
    logger.info(f"[{board.id}] logged in")
