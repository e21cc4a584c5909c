"""Модуль для работы с браузером через Playwright."""

from .exceptions import DomainUnreachableError, NavigationError, PlaywrightBrowsersNotInstalledError
from .forms import click_element, fill_field, login
from .navigation import open_form_page, probe_url
from .session import BrowserSession, get_browser_session

__all__ = [
    "BrowserSession",
    "DomainUnreachableError",
    "NavigationError",
    "PlaywrightBrowsersNotInstalledError",
    "click_element",
    "fill_field",
    "get_browser_session",
    "login",
    "open_form_page",
    "probe_url",
]
