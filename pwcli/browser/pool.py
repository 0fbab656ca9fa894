"""
Connection pool for browser debugging endpoints.

Each CLI invocation is its own process, so the pool's real job is centralizing the
attach-or-launch decision (the browser itself is what outlives the process) and keeping
at most one live handle per endpoint inside the process. Handles are health-checked on
every acquire and replaced transparently when the round-trip fails.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from .browser_connection import BrowserConnection
from .config import BrowserConfig
from .errors import BrowserConnectionError, CommandTimeoutError
from .http_client import HttpClientError
from .launcher import BrowserLauncher
from .retry import with_retry

logger = logging.getLogger("pwcli.browser.pool")

HOST = "127.0.0.1"


def endpoint_key(port: int) -> str:
    return f"{HOST}:{int(port)}"


def port_of(key: str) -> int:
    host, _, port = key.rpartition(":")
    if not host or not port.isdigit():
        raise BrowserConnectionError(
            f"Malformed endpoint key {key!r}",
            operation="connect",
            suggestion="Use host:port, e.g. 127.0.0.1:9222",
            details={"endpoint": key},
        )
    return int(port)


@dataclass
class PoolEntry:
    endpoint_key: str
    handle: Any
    last_used_at: float
    ref_count: int = 0


class ConnectionPool:
    """Reusable browser handles keyed by endpoint."""

    def __init__(
        self,
        config: BrowserConfig,
        *,
        launcher_factory: Callable[[BrowserConfig], BrowserLauncher] = BrowserLauncher,
        connect: Callable[..., Any] = BrowserConnection.open,
        clock: Callable[[], float] = time.monotonic,
        retry_delay: float = 0.05,
    ) -> None:
        self.config = config
        self._launcher_factory = launcher_factory
        self._connect = connect
        self._clock = clock
        self._retry_delay = retry_delay
        self._entries: dict[str, PoolEntry] = {}

    @property
    def entries(self) -> dict[str, PoolEntry]:
        return dict(self._entries)

    def _retrying(self, fn: Callable) -> Callable:
        return with_retry(
            max_attempts=max(1, self.config.health_retries),
            delay=self._retry_delay,
            backoff=2.0,
        )(fn)

    def _healthy(self, handle: Any) -> bool:
        try:
            self._retrying(handle.ping)(self.config.health_timeout_s)
        except (HttpClientError, CommandTimeoutError) as exc:
            logger.info("Health check failed for %r: %s", handle, exc)
            return False
        return True

    def _discard(self, entry: PoolEntry, reason: str) -> None:
        logger.info("Discarding %s handle for %s", reason, entry.endpoint_key)
        self._entries.pop(entry.endpoint_key, None)
        try:
            entry.handle.close()
        except (HttpClientError, OSError) as exc:
            logger.debug("Close of discarded handle failed: %s", exc)

    def evict_idle(self) -> int:
        """Close unreferenced handles idle for longer than the pool idle window."""
        now = self._clock()
        stale = [
            e
            for e in self._entries.values()
            if e.ref_count <= 0 and now - e.last_used_at > self.config.pool_idle_s
        ]
        for entry in stale:
            self._discard(entry, "idle")
        return len(stale)

    def _open(self, key: str) -> Any:
        port = port_of(key)
        cfg = self.config if port == self.config.cdp_port else dataclasses.replace(self.config, cdp_port=port)
        launcher = self._launcher_factory(cfg)

        result = launcher.ensure_running()
        if not result.ok:
            raise BrowserConnectionError(
                result.message,
                operation="connect",
                suggestion=(
                    f"Start a browser with --remote-debugging-port={port}"
                    if cfg.mode == "attach"
                    else "Check PWCLI_BROWSER_BINARY or use --port to pick a free port"
                ),
                details={"endpoint": key, "mode": cfg.mode},
            )
        logger.info("%s browser on %s", "Launched" if result.started else "Attached to", key)

        try:
            handle = self._retrying(self._connect)(launcher, timeout_ms=cfg.timeout_ms)
        except (HttpClientError, CommandTimeoutError) as exc:
            raise BrowserConnectionError(
                f"Cannot connect to debugging endpoint: {exc}",
                operation="connect",
                details={"endpoint": key},
            ) from exc

        if not self._healthy(handle):
            handle.close()
            raise BrowserConnectionError(
                "Browser endpoint did not answer the health check",
                operation="connect",
                suggestion="The browser may be hung; close it and retry",
                details={"endpoint": key, "retries": self.config.health_retries},
            )
        return handle

    def acquire(self, key: str | None = None) -> Any:
        """Return a healthy handle for `key`, reusing the pooled one when it still answers."""
        key = key or endpoint_key(self.config.cdp_port)
        self.evict_idle()

        entry = self._entries.get(key)
        if entry is not None:
            if self._healthy(entry.handle):
                entry.ref_count += 1
                entry.last_used_at = self._clock()
                return entry.handle
            self._discard(entry, "unhealthy")

        handle = self._open(key)
        self._entries[key] = PoolEntry(endpoint_key=key, handle=handle, last_used_at=self._clock(), ref_count=1)
        return handle

    def release(self, handle: Any) -> None:
        for entry in self._entries.values():
            if entry.handle is handle:
                entry.ref_count = max(0, entry.ref_count - 1)
                entry.last_used_at = self._clock()
                return
        logger.debug("Release of unknown handle %r ignored", handle)

    @contextmanager
    def connection(self, key: str | None = None) -> Iterator[Any]:
        handle = self.acquire(key)
        try:
            yield handle
        finally:
            self.release(handle)

    def shutdown(self, timeout_ms: int | None = None) -> bool:
        """Close every pooled handle, giving up after `timeout_ms`.

        Returns False when the close was abandoned; the caller is then expected to exit
        the process regardless.
        """
        timeout_ms = self.config.shutdown_ceiling_ms if timeout_ms is None else timeout_ms
        handles = [e.handle for e in self._entries.values()]
        self._entries.clear()
        if not handles:
            return True

        def _close_all() -> None:
            for handle in handles:
                try:
                    handle.close()
                except (HttpClientError, OSError) as exc:
                    logger.debug("Close failed during shutdown: %s", exc)

        worker = threading.Thread(target=_close_all, name="pwcli-pool-shutdown", daemon=True)
        worker.start()
        worker.join(max(0.0, timeout_ms / 1000.0))
        if worker.is_alive():
            logger.warning("Connection shutdown abandoned after %dms", timeout_ms)
            return False
        return True
