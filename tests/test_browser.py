"""Tests for src/browser - session lifecycle, navigation and form helpers.

These tests verify that:
- BrowserSession closes the per-posting context on every exit path
- Navigation errors are mapped to NavigationError / DomainUnreachableError
- Form helpers report failures as False instead of raising
- Login never logs the password

Run after changes to: src/browser/*.py
"""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import Error as PlaywrightError
from pydantic import SecretStr

from src.browser import (
    BrowserSession,
    DomainUnreachableError,
    NavigationError,
    click_element,
    fill_field,
    login,
    open_form_page,
    probe_url,
)
from src.browser.session import get_browser_session
from src.models import Board, Credentials
from tests.fakes import FORM_HTML


def mock_page(status=200, goto_error=None, tag="input"):
    page = MagicMock()
    if goto_error is not None:
        page.goto = AsyncMock(side_effect=goto_error)
    else:
        page.goto = AsyncMock(return_value=MagicMock(status=status))
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.content = AsyncMock(return_value=FORM_HTML)

    locator = MagicMock()
    locator.wait_for = AsyncMock()
    locator.evaluate = AsyncMock(return_value=tag)
    locator.fill = AsyncMock()
    locator.click = AsyncMock()
    locator.select_option = AsyncMock()
    page.locator.return_value.first = locator
    return page, locator


class TestBrowserSession:
    def test_default_initialization(self):
        session = BrowserSession()

        assert session.headless is True
        assert session.timeout == 30000
        assert session.is_started is False

    @pytest.mark.asyncio
    async def test_context_closed_on_error(self):
        session = BrowserSession()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=MagicMock())
        context.close = AsyncMock()
        session._browser = MagicMock()
        session._browser.new_context = AsyncMock(return_value=context)
        session._stealth = MagicMock(apply_stealth_async=AsyncMock())

        with pytest.raises(RuntimeError):
            async with session.new_page():
                raise RuntimeError("worker failed")

        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_context_per_page(self):
        session = BrowserSession()
        session._browser = MagicMock()
        session._browser.new_context = AsyncMock(
            side_effect=lambda **kwargs: MagicMock(new_page=AsyncMock(), close=AsyncMock())
        )
        session._stealth = MagicMock(apply_stealth_async=AsyncMock())

        async with session.new_page():
            pass
        async with session.new_page():
            pass

        assert session._browser.new_context.await_count == 2

    @pytest.mark.asyncio
    async def test_get_browser_session_helper(self):
        with patch("src.browser.session.BrowserSession") as MockSession:
            instance = MockSession.return_value
            instance.start = AsyncMock()
            instance.stop = AsyncMock()

            async with get_browser_session(headless=True) as session:
                assert session is instance
                instance.start.assert_awaited_once()

            instance.stop.assert_awaited_once()


class TestNavigation:
    @pytest.mark.asyncio
    async def test_open_form_page_returns_html(self):
        page, _ = mock_page()

        with patch("src.browser.navigation.handle_cookie_consent", AsyncMock(return_value=False)):
            html = await open_form_page(page, "https://alpha.example/jobs/post")

        assert html == FORM_HTML
        page.goto.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_http_error(self):
        page, _ = mock_page(status=404)

        with pytest.raises(NavigationError, match="404"):
            await open_form_page(page, "https://alpha.example/jobs/post")

    @pytest.mark.asyncio
    async def test_unreachable_domain(self):
        page, _ = mock_page(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.example"))

        with pytest.raises(DomainUnreachableError):
            await open_form_page(page, "https://nope.example")

    @pytest.mark.asyncio
    async def test_probe_url(self):
        page, _ = mock_page(goto_error=PlaywrightError("Timeout 30000ms exceeded"))

        report = await probe_url(page, "https://slow.example")

        assert report["reachable"] is False
        assert "Timeout" in report["error"]


class TestForms:
    @pytest.mark.asyncio
    async def test_fill_input(self):
        page, locator = mock_page()

        assert await fill_field(page, "#job_title", "Senior Python Developer") is True
        locator.fill.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fill_select_falls_back_to_value(self):
        page, locator = mock_page(tag="select")
        locator.select_option = AsyncMock(side_effect=[PlaywrightError("no option with label"), None])

        assert await fill_field(page, "#employment_type", "full-time") is True
        assert locator.select_option.await_count == 2

    @pytest.mark.asyncio
    async def test_fill_missing_element(self):
        page, locator = mock_page()
        locator.wait_for = AsyncMock(side_effect=PlaywrightError("Timeout 5000ms exceeded"))

        assert await fill_field(page, "#missing", "x") is False

    @pytest.mark.asyncio
    async def test_click_forces_through_overlay(self):
        page, locator = mock_page()
        locator.click = AsyncMock(side_effect=[PlaywrightError("element intercepts pointer events"), None])

        assert await click_element(page, "button[type=submit]") is True
        assert locator.click.await_args.kwargs["force"] is True


class TestLogin:
    @pytest.fixture
    def auth_board(self):
        return Board(
            id="secure",
            name="Secure Jobs",
            base_url="https://secure.example",
            post_url="https://secure.example/jobs/new",
            login_url="https://secure.example/login",
            requires_auth=True,
        )

    @pytest.mark.asyncio
    async def test_login_fills_and_submits(self, auth_board, caplog):
        page, _ = mock_page()
        credentials = Credentials(email="hr@example.com", password=SecretStr("hunter2"))

        with patch("src.browser.forms.open_form_page", AsyncMock(return_value=FORM_HTML)) as opened, \
                patch("src.browser.forms.fill_field", AsyncMock(return_value=True)) as filled, \
                patch("src.browser.forms.click_element", AsyncMock(return_value=True)):
            with caplog.at_level(logging.DEBUG):
                await login(page, auth_board, credentials)

        assert opened.await_args.args[1] == "https://secure.example/login"
        assert [c.args[2] for c in filled.await_args_list] == ["hr@example.com", "hunter2"]
        assert "hunter2" not in caplog.text

    @pytest.mark.asyncio
    async def test_login_form_missing(self, auth_board):
        page, _ = mock_page()
        credentials = Credentials(email="hr@example.com", password=SecretStr("hunter2"))

        with patch("src.browser.forms.open_form_page", AsyncMock(return_value="<html></html>")), \
                patch("src.browser.forms.fill_field", AsyncMock(return_value=False)):
            with pytest.raises(NavigationError, match="Login form not found"):
                await login(page, auth_board, credentials)
