"""Bounded engine round-trips.

Every call into the browser is wrapped with an explicit deadline. On expiry the call is
abandoned from the caller's point of view and `CommandTimeoutError` is raised with the
operation name and the configured timeout.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from contextlib import suppress
from typing import Any, TypeVar

from .errors import CommandTimeoutError
from .http_client import HttpClientError, is_timeout_error

T = TypeVar("T")

# Slack between the transport deadline and the socket-abort breaker.
WATCHDOG_SLACK_S = 0.5


class Watchdog:
    """Thread-based breaker: aborts the connection's socket once `timeout_s` elapses.

    A plain websocket close() can hang when the browser stops answering, so the
    breaker shuts the raw socket down instead.
    """

    def __init__(self, conn: Any, timeout_s: float) -> None:
        self.conn = conn
        self.timeout_s = float(timeout_s)
        self.fired = threading.Event()
        self._timer: threading.Timer | None = None

    def _fire(self) -> None:
        self.fired.set()
        abort = getattr(self.conn, "abort", None)
        if callable(abort):
            abort()

    def start(self) -> Watchdog:
        if self.timeout_s > 0:
            t = threading.Timer(self.timeout_s, self._fire)
            t.daemon = True
            t.start()
            self._timer = t
        return self

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def __enter__(self) -> Watchdog:
        return self.start()

    def __exit__(self, *exc: object) -> None:
        self.stop()


def call_with_timeout(
    conn: Any,
    operation: str,
    timeout_ms: int,
    fn: Callable[..., T],
    *args: Any,
    target: str | None = None,
    **kwargs: Any,
) -> T:
    """Run `fn` with the connection bounded to `timeout_ms`.

    The connection's own response deadline is set to the timeout; a watchdog breaks the
    socket shortly after in case a read is stuck below that layer. `target` names the
    element or endpoint being waited on in the resulting `CommandTimeoutError`.
    """
    timeout_s = max(0.001, int(timeout_ms) / 1000.0)
    previous = getattr(conn, "timeout", None)
    with suppress(AttributeError):
        conn.timeout = timeout_s

    watchdog = Watchdog(conn, timeout_s + WATCHDOG_SLACK_S)
    try:
        with watchdog:
            return fn(*args, **kwargs)
    except HttpClientError as exc:
        if watchdog.fired.is_set() or is_timeout_error(exc):
            raise CommandTimeoutError(operation, timeout_ms, target=target, details={"cause": str(exc)}) from exc
        raise
    finally:
        if previous is not None:
            with suppress(AttributeError):
                conn.timeout = previous
