"""Headless браузер с изолированным контекстом на каждую публикацию."""

import asyncio
import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)
from playwright_stealth import Stealth

from src.constants import BROWSER_DEFAULT_TIMEOUT, BROWSER_VIEWPORT
from .exceptions import PlaywrightBrowsersNotInstalledError
from .navigation import probe_url
from .patterns import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

# Anti-detection browser args
BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-infobars",
    "--disable-extensions",
    "--disable-popup-blocking",
]


class BrowserSession:
    """
    Один процесс браузера на запуск, новый BrowserContext на каждую доску.

    Usage:
        async with BrowserSession(headless=True) as session:
            async with session.new_page() as page:
                await page.goto(url)
    """

    def __init__(self, headless: bool = True, timeout: float = BROWSER_DEFAULT_TIMEOUT):
        """
        Инициализация.

        Args:
            headless: Запускать браузер без GUI
            timeout: Таймаут действий страницы в мс
        """
        self.headless = headless
        self.timeout = timeout
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._stealth = Stealth()
        self._start_lock = asyncio.Lock()

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def _launch(self) -> Browser:
        # Try Chrome first (better anti-bot bypass), fallback to Chromium
        try:
            browser = await self._playwright.chromium.launch(
                headless=self.headless,
                channel="chrome",
                args=BROWSER_ARGS,
            )
            logger.debug("Using Chrome browser")
            return browser
        except PlaywrightError as chrome_err:
            logger.debug(f"Chrome not available ({chrome_err}), falling back to Chromium")
        return await self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)

    def _install_browsers(self) -> None:
        logger.info("Браузеры Playwright не установлены. Устанавливаю автоматически...")
        result = subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            capture_output=True,
            text=True,
            timeout=300,
        )
        if result.returncode != 0:
            raise PlaywrightBrowsersNotInstalledError(
                "Браузеры Playwright не установлены. "
                "Установите их вручную командой: python -m playwright install chromium\n"
                f"Ошибка установки: {result.stderr}"
            )
        logger.info("Браузеры установлены. Повторяю запуск...")

    async def start(self):
        """Запустить браузер."""
        async with self._start_lock:
            if self._browser is not None:
                return
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            try:
                self._browser = await self._launch()
            except PlaywrightError as e:
                if "executable doesn't exist" not in str(e).lower():
                    raise
                self._install_browsers()
                self._browser = await self._launch()

    async def stop(self):
        """Остановить браузер."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @asynccontextmanager
    async def new_page(self) -> AsyncIterator[Page]:
        """
        Новая страница в свежем контексте (без cookies и storage других досок).

        Контекст закрывается при любом выходе: успех, исключение или отмена.
        """
        if self._browser is None:
            await self.start()

        context = await self._browser.new_context(
            ignore_https_errors=True,
            user_agent=DEFAULT_USER_AGENT,
            viewport=BROWSER_VIEWPORT,
        )
        try:
            # Apply stealth to bypass bot detection
            await self._stealth.apply_stealth_async(context)
            page = await context.new_page()
            page.set_default_timeout(self.timeout)
            yield page
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"Context close failed: {e}")

    async def check_url(self, url: str) -> dict:
        """Проверить доступность URL в отдельном контексте."""
        async with self.new_page() as page:
            return await probe_url(page, url, self.timeout)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


@asynccontextmanager
async def get_browser_session(headless: bool = True):
    """Контекстный менеджер для BrowserSession."""
    session = BrowserSession(headless=headless)
    try:
        await session.start()
        yield session
    finally:
        await session.stop()
