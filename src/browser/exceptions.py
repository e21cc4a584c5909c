"""Исключения для модуля браузера."""


class NavigationError(Exception):
    """Raised when a page cannot be opened (HTTP error, timeout, blocked)."""
    pass


class DomainUnreachableError(NavigationError):
    """Raised when domain cannot be reached (DNS or network issues)."""
    pass


class PlaywrightBrowsersNotInstalledError(Exception):
    """Raised when Playwright browsers are not installed."""
    pass
