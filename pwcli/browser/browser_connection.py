"""Browser-level handle kept by the connection pool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from .browser_session import BrowserSession
from .http_client import HttpClientError
from .launcher import BrowserLauncher
from .session_cdp import CdpConnection
from .timeouts import call_with_timeout

logger = logging.getLogger("pwcli.browser.connection")

INTERNAL_URL_PREFIXES = ("chrome://", "devtools://", "chrome-extension://", "about:")


@dataclass(frozen=True)
class PageInfo:
    tab_id: str
    url: str = ""
    title: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"tabId": self.tab_id, "url": self.url, "title": self.title}


def _is_user_page(target: dict[str, Any]) -> bool:
    if target.get("type") != "page":
        return False
    return not str(target.get("url") or "").startswith("devtools://")


class BrowserConnection:
    """One browser-level CDP WebSocket plus discovery helpers for a debugging endpoint."""

    def __init__(self, launcher: BrowserLauncher, conn: CdpConnection, *, timeout_ms: int = 5000) -> None:
        self.launcher = launcher
        self.conn = conn
        self.timeout_ms = int(timeout_ms)
        self.closed = False

    @classmethod
    def open(cls, launcher: BrowserLauncher, *, timeout_ms: int = 5000) -> BrowserConnection:
        ws_url = launcher.browser_ws_url()
        conn = CdpConnection(ws_url, timeout=max(0.001, timeout_ms / 1000.0))
        return cls(launcher, conn, timeout_ms=timeout_ms)

    @property
    def port(self) -> int:
        return self.launcher.config.cdp_port

    def _send(self, operation: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return call_with_timeout(self.conn, operation, self.timeout_ms, self.conn.send, method, params)

    def ping(self, timeout: float = 0.5) -> dict[str, Any]:
        """Lightweight round-trip used as the pool health check."""
        if self.closed:
            raise HttpClientError("Connection already closed")
        timeout_ms = max(1, int(float(timeout) * 1000))
        return call_with_timeout(self.conn, "health check", timeout_ms, self.conn.send, "Browser.getVersion")

    def list_pages(self) -> list[PageInfo]:
        """Open pages in the browser's stable enumeration order."""
        result = self._send("listPages", "Target.getTargets")
        infos = result.get("targetInfos") if isinstance(result, dict) else None
        pages: list[PageInfo] = []
        for info in infos or []:
            if not isinstance(info, dict) or not _is_user_page(info):
                continue
            tab_id = info.get("targetId")
            if isinstance(tab_id, str) and tab_id:
                pages.append(PageInfo(tab_id, str(info.get("url") or ""), str(info.get("title") or "")))
        return pages

    def active_page_id(self) -> str | None:
        """Most recently focused/navigated non-internal page, if any.

        The DevTools `/json/list` endpoint orders targets by last activation.
        """
        for target in self.launcher.list_targets(timeout=max(0.5, self.timeout_ms / 1000.0)):
            if not _is_user_page(target):
                continue
            if str(target.get("url") or "").startswith(INTERNAL_URL_PREFIXES):
                continue
            tab_id = target.get("id")
            if isinstance(tab_id, str) and tab_id:
                return tab_id
        return None

    def new_page(self, url: str = "about:blank") -> str:
        result = self._send("newPage", "Target.createTarget", {"url": url})
        tab_id = result.get("targetId")
        if not tab_id:
            raise HttpClientError("Failed to create browser tab")
        logger.info("Created tab %s (%s)", tab_id, url)
        return str(tab_id)

    def close_page(self, tab_id: str) -> bool:
        result = self._send("closePage", "Target.closeTarget", {"targetId": tab_id})
        return bool(result.get("success", True))

    def activate_page(self, tab_id: str) -> None:
        self._send("activatePage", "Target.activateTarget", {"targetId": tab_id})

    def page_ws_url(self, tab_id: str) -> str:
        parts = urlsplit(self.conn.ws_url)
        return f"{parts.scheme}://{parts.netloc}/devtools/page/{tab_id}"

    def attach(self, tab_id: str) -> BrowserSession:
        """Open a page-level session on `tab_id`."""
        conn = CdpConnection(self.page_ws_url(tab_id), timeout=max(0.001, self.timeout_ms / 1000.0))
        return BrowserSession(conn, tab_id, timeout_ms=self.timeout_ms)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.conn.close()

    def __repr__(self) -> str:
        return f"BrowserConnection(port={self.port}, closed={self.closed})"
