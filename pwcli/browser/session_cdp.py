"""Raw CDP WebSocket transport used by browser- and page-level handles."""

from __future__ import annotations

import json
import socket
import time
from collections import deque
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError

# Upper bound on buffered events nobody has asked for yet.
EVENT_BACKLOG = 2000
# Per-recv socket timeout; the caller's deadline is checked between reads.
RECV_SLICE_S = 0.5


class CdpConnection:
    """One CDP WebSocket: numbered commands in, responses and events out."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout, suppress_origin=True)
        except (OSError, websocket.WebSocketException) as exc:
            raise HttpClientError(f"Cannot open CDP WebSocket {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Events read while waiting for a response are kept for later `wait_for_event` calls.
        self._events: deque[dict[str, Any]] = deque(maxlen=EVENT_BACKLOG)

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Remove and return the params of the oldest buffered `event_name` event."""
        if not event_name:
            return None
        for event in self._events:
            if event.get("method") == event_name:
                self._events.remove(event)
                params = event.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def abort(self) -> None:
        """Shut the raw socket down.

        websocket-client's close() runs a closing handshake that blocks when the browser
        stops answering; a socket shutdown does not.
        """
        sock = getattr(self.ws, "sock", None)
        if sock is None:
            return
        with suppress(OSError):
            sock.shutdown(socket.SHUT_RDWR)
        with suppress(OSError):
            sock.close()

    def close(self) -> None:
        self.abort()

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one command and block until its response arrives or `timeout` elapses."""
        msg_id = self._next_id
        self._next_id += 1
        message: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            message["params"] = params

        try:
            self.ws.settimeout(min(2.0, max(RECV_SLICE_S, float(self.timeout))))
            self.ws.send(json.dumps(message))
        except (OSError, websocket.WebSocketException) as exc:
            raise HttpClientError(f"{method}: {exc}") from exc

        deadline = time.monotonic() + self.timeout
        while True:
            data = self._read(deadline)
            if data is None:
                raise HttpClientError(f"CDP response timed out ({method})")
            if _is_event(data):
                self._events.append(data)
            elif data.get("id") == msg_id:
                if "error" in data:
                    raise HttpClientError(f"{method}: {data['error']}")
                return data.get("result", {})

    def send_many(self, commands: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Send commands in order; a command's optional `delayMs` pauses before the next one."""
        results = []
        for command in commands:
            results.append(self.send(command["method"], command.get("params")))
            pause_ms = int(command.get("delayMs") or 0)
            if pause_ms > 0:
                time.sleep(min(5.0, pause_ms / 1000.0))
        return results

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict | None:
        """Params of the next `event_name` event, or None once `timeout` seconds pass."""
        buffered = self.pop_event(event_name)
        if buffered is not None:
            return buffered

        deadline = time.monotonic() + timeout
        while True:
            data = self._read(deadline)
            if data is None:
                return None
            if not _is_event(data):
                continue
            if data.get("method") == event_name:
                params = data.get("params")
                return params if isinstance(params, dict) else {}
            self._events.append(data)

    def _read(self, deadline: float) -> dict[str, Any] | None:
        """Next decoded message, or None when `deadline` passes first."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                # recv() blocks indefinitely without a socket timeout.
                self.ws.settimeout(min(RECV_SLICE_S, remaining))
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                continue
            except (OSError, websocket.WebSocketException) as exc:
                if isinstance(exc, TimeoutError) or "timed out" in str(exc).lower():
                    continue
                raise HttpClientError(str(exc)) from exc
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                continue
            if isinstance(data, dict):
                return data


def _is_event(data: dict[str, Any]) -> bool:
    return "id" not in data and isinstance(data.get("method"), str)


__all__ = ["CdpConnection"]
