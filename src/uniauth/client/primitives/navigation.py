"""Navigation targets for redirect-based flows.

SSO login ends with a full-document redirect and the callback handler reads
and rewrites the current URL. A navigator makes both observable, so flows can
run outside a browser and be tested without one.
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Navigator(Protocol):
    """Current location plus the two ways a flow can change it."""

    @property
    def current_url(self) -> str: ...

    def redirect(self, url: str) -> None:
        """Navigate the whole document to ``url``."""
        ...

    def replace_url(self, url: str) -> None:
        """Rewrite the visible URL without reloading."""
        ...


class LocationNavigator:
    """Navigator that records location changes in memory.

    Applications that receive the callback themselves (a local HTTP server, a
    web framework route) set ``current_url`` before handling the callback.
    """

    def __init__(self, current_url: str = ""):
        self.current_url = current_url
        self.redirects: list[str] = []

    @property
    def last_redirect(self) -> str | None:
        return self.redirects[-1] if self.redirects else None

    def redirect(self, url: str) -> None:
        logger.debug(f"Redirecting to {url.split('?', 1)[0]}")
        self.redirects.append(url)
        self.current_url = url

    def replace_url(self, url: str) -> None:
        self.current_url = url


class SystemBrowserNavigator(LocationNavigator):
    """Navigator that opens redirects in the system web browser.

    Suitable for CLI tools; the callback URL must still be fed back through
    ``current_url``.
    """

    def __init__(
        self,
        current_url: str = "",
        open_url: Callable[[str], bool] = webbrowser.open,
    ):
        super().__init__(current_url)
        self._open_url = open_url

    def redirect(self, url: str) -> None:
        self.redirects.append(url)
        if not self._open_url(url):
            logger.warning(f"Could not open a browser, visit this URL to continue: {url}")
