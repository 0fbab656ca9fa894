"""Page handle: the automation operations a command performs on one tab."""

from __future__ import annotations

import base64
import json
import time
from typing import Any

from . import page_query
from .ax_tree import AXNode, build_tree
from .errors import SelectorNotFound
from .http_client import HttpClientError
from .session_cdp import CdpConnection
from .timeouts import call_with_timeout

# Key codes for special keys
KEY_CODES = {
    "Enter": 13,
    "Tab": 9,
    "Escape": 27,
    "Backspace": 8,
    "Delete": 46,
    "ArrowUp": 38,
    "ArrowDown": 40,
    "ArrowLeft": 37,
    "ArrowRight": 39,
    "Home": 36,
    "End": 35,
    "PageUp": 33,
    "PageDown": 34,
    "Space": 32,
}

POLL_INTERVAL_S = 0.1


class EvaluationError(HttpClientError):
    """The page threw while evaluating an expression."""


class BrowserSession:
    """
    High-level browser session for a specific tab.

    Wraps CdpConnection with the engine operations commands need. Every public
    operation is bounded by `timeout_ms` and raises `CommandTimeoutError` on expiry.
    Selector arguments use the grammar documented in `page_query`.
    """

    def __init__(self, connection: CdpConnection, tab_id: str, *, timeout_ms: int = 5000):
        self.conn = connection
        self.tab_id = tab_id
        self.timeout_ms = int(timeout_ms)
        self._page_enabled = False

    def __enter__(self) -> BrowserSession:
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        """Close the session connection."""
        self.conn.close()

    def _bounded(self, operation: str, fn, *args: Any, target: str | None = None) -> Any:
        return call_with_timeout(self.conn, operation, self.timeout_ms, fn, *args, target=target)

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout_ms / 1000.0

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def _eval(self, expression: str) -> Any:
        result = self.conn.send(
            "Runtime.evaluate",
            {
                "expression": expression,
                "returnByValue": True,
                "awaitPromise": True,
            },
        )
        exc = result.get("exceptionDetails")
        if isinstance(exc, dict):
            detail = exc.get("exception") if isinstance(exc.get("exception"), dict) else {}
            message = detail.get("description") or exc.get("text") or "JavaScript exception"
            raise EvaluationError(f"Evaluation failed: {message}")

        if "result" not in result:
            return None
        value = result["result"]
        # CDP returns undefined as {"type":"undefined"} (no "value" field); normalize
        # undefined and null to None.
        if isinstance(value, dict) and value.get("type") == "undefined":
            return None
        if isinstance(value, dict) and value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value", value)

    def _query(self, operation: str, selector: str, expression: str) -> Any:
        """Evaluate a selector-driven expression; a page-side error means the selector is unusable."""
        try:
            return self._eval(expression)
        except EvaluationError as exc:
            raise SelectorNotFound(
                f"Selector {selector!r} could not be evaluated",
                operation=operation,
                suggestion="Check the selector syntax, or pass the element's visible text instead",
                details={"selector": selector, "cause": str(exc)},
            ) from exc

    def evaluate(self, expression: str) -> Any:
        """Evaluate JavaScript in the page and return the JSON-serializable result."""
        return self._bounded("evaluate", self._eval, expression)

    def url(self) -> str:
        return self._bounded("url", self._eval, "window.location.href") or ""

    def title(self) -> str:
        return self._bounded("title", self._eval, "document.title") or ""

    def ready_state(self) -> str:
        return self._bounded("readyState", self._eval, "document.readyState") or ""

    # ─────────────────────────────────────────────────────────────────────────
    # Selectors
    # ─────────────────────────────────────────────────────────────────────────

    def count(self, selector: str) -> int:
        """Number of elements currently matching `selector`."""
        expression = page_query.count_js(selector)
        return int(self._bounded("count", self._query, "count", selector, expression, target=selector) or 0)

    def _poll_selector(self, selector: str, deadline: float) -> bool:
        while True:
            if int(self._query("waitForSelector", selector, page_query.count_js(selector)) or 0) > 0:
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL_S)

    def wait_for_selector(self, selector: str, timeout: float | None = None) -> bool:
        """Poll until `selector` matches at least one element or `timeout` seconds elapse."""
        timeout_s = self.timeout_ms / 1000.0 if timeout is None else float(timeout)
        deadline = time.monotonic() + timeout_s
        return self._bounded("waitForSelector", self._poll_selector, selector, deadline, target=selector)

    def _locate(self, operation: str, selector: str) -> dict[str, float]:
        """Wait for the first match of `selector` and return its on-screen centre."""
        deadline = self._deadline()
        while True:
            box = self._query(operation, selector, page_query.center_js(selector))
            if isinstance(box, dict) and box.get("width", 0) > 0 and box.get("height", 0) > 0:
                return {"x": float(box["x"]), "y": float(box["y"])}
            if time.monotonic() >= deadline:
                break
            time.sleep(POLL_INTERVAL_S)
        if box is None:
            raise SelectorNotFound(
                f"No element matches selector {selector!r}",
                operation=operation,
                suggestion="Run `snapshot` to list the page's interactive elements",
                details={"selector": selector},
            )
        raise SelectorNotFound(
            f"Element matching {selector!r} has no visible box",
            operation=operation,
            suggestion="Make sure the element is visible before interacting with it",
            details={"selector": selector},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def _navigate(self, url: str) -> str:
        if not self._page_enabled:
            self.conn.send("Page.enable")
            self._page_enabled = True
        result = self.conn.send("Page.navigate", {"url": url})
        if result.get("errorText"):
            raise HttpClientError(f"Navigation to {url} failed: {result['errorText']}")
        remaining = max(0.1, self.conn.timeout - 0.1)
        self.conn.wait_for_event("Page.loadEventFired", timeout=remaining)
        return url

    def navigate(self, url: str) -> str:
        """Navigate to URL and wait for the load event (bounded by the timeout)."""
        return self._bounded("navigate", self._navigate, url, target=url)

    # ─────────────────────────────────────────────────────────────────────────
    # Mouse Input
    # ─────────────────────────────────────────────────────────────────────────

    def _mouse_click(self, x: float, y: float, click_count: int) -> None:
        cmds: list[dict[str, Any]] = [
            {"method": "Input.dispatchMouseEvent", "params": {"type": "mouseMoved", "x": x, "y": y}},
        ]
        for n in range(1, click_count + 1):
            for kind in ("mousePressed", "mouseReleased"):
                cmds.append(
                    {
                        "method": "Input.dispatchMouseEvent",
                        "params": {"type": kind, "x": x, "y": y, "button": "left", "clickCount": n},
                    }
                )
        self.conn.send_many(cmds)

    def _click(self, selector: str, click_count: int) -> None:
        point = self._locate("click", selector)
        self._mouse_click(point["x"], point["y"], click_count)

    def click(self, selector: str) -> None:
        self._bounded("click", self._click, selector, 1, target=selector)

    def dblclick(self, selector: str) -> None:
        self._bounded("dblclick", self._click, selector, 2, target=selector)

    def _hover(self, selector: str) -> None:
        point = self._locate("hover", selector)
        self.conn.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": point["x"], "y": point["y"]})

    def hover(self, selector: str) -> None:
        self._bounded("hover", self._hover, selector, target=selector)

    def _drag(self, source: str, target: str, steps: int) -> None:
        start = self._locate("drag", source)
        end = self._locate("drag", target)
        cmds: list[dict[str, Any]] = [
            {
                "method": "Input.dispatchMouseEvent",
                "params": {"type": "mouseMoved", "x": start["x"], "y": start["y"]},
            },
            {
                "method": "Input.dispatchMouseEvent",
                "params": {"type": "mousePressed", "x": start["x"], "y": start["y"], "button": "left", "clickCount": 1},
            },
        ]
        for i in range(1, steps + 1):
            progress = i / steps
            cmds.append(
                {
                    "method": "Input.dispatchMouseEvent",
                    "params": {
                        "type": "mouseMoved",
                        "x": start["x"] + (end["x"] - start["x"]) * progress,
                        "y": start["y"] + (end["y"] - start["y"]) * progress,
                        "button": "left",
                    },
                    # Spacing for apps that detect drag thresholds/timing.
                    "delayMs": 10,
                }
            )
        cmds.append(
            {
                "method": "Input.dispatchMouseEvent",
                "params": {"type": "mouseReleased", "x": end["x"], "y": end["y"], "button": "left", "clickCount": 1},
            }
        )
        self.conn.send_many(cmds)

    def drag(self, source: str, target: str, steps: int = 10) -> None:
        self._bounded("drag", self._drag, source, target, max(1, int(steps)), target=f"{source} -> {target}")

    # ─────────────────────────────────────────────────────────────────────────
    # Keyboard Input
    # ─────────────────────────────────────────────────────────────────────────

    def _focus(self, operation: str, selector: str, clear: bool) -> None:
        deadline = self._deadline()
        while not self._query(operation, selector, page_query.focus_js(selector, clear=clear)):
            if time.monotonic() >= deadline:
                raise SelectorNotFound(
                    f"No element matches selector {selector!r}",
                    operation=operation,
                    details={"selector": selector},
                )
            time.sleep(POLL_INTERVAL_S)

    def _insert(self, operation: str, selector: str, text: str, clear: bool) -> None:
        self._focus(operation, selector, clear)
        if text:
            self.conn.send("Input.insertText", {"text": str(text)})

    def type(self, selector: str, text: str) -> None:
        """Focus the element and insert `text` at the caret."""
        self._bounded("type", self._insert, "type", selector, text, False, target=selector)

    def fill(self, selector: str, value: str) -> None:
        """Clear the element's current value, then insert `value`."""
        self._bounded("fill", self._insert, "fill", selector, value, True, target=selector)

    def _select_option(self, selector: str, value: str) -> str:
        deadline = self._deadline()
        while True:
            result = self._query("select", selector, page_query.select_option_js(selector, value))
            if isinstance(result, dict) and result.get("found"):
                return str(result.get("value") or "")
            if time.monotonic() >= deadline:
                raise SelectorNotFound(
                    f"No <select> matches selector {selector!r}",
                    operation="select",
                    details={"selector": selector},
                )
            time.sleep(POLL_INTERVAL_S)

    def select_option(self, selector: str, value: str) -> str:
        """Select an option by value (or visible label) and return the resulting value."""
        return self._bounded("select", self._select_option, selector, value, target=selector)

    def _press(self, key: str, modifiers: int) -> None:
        key_code = KEY_CODES.get(key, ord(key[0].upper()) if len(key) == 1 else 0)
        code = f"Key{key.upper()}" if len(key) == 1 and key.isalpha() else key
        text = key if len(key) == 1 else ("\r" if key == "Enter" else "")
        down: dict[str, Any] = {
            "type": "keyDown",
            "key": key,
            "code": code,
            "windowsVirtualKeyCode": key_code,
            "modifiers": modifiers,
        }
        if text:
            down["text"] = text
        up = {"type": "keyUp", "key": key, "code": code, "windowsVirtualKeyCode": key_code, "modifiers": modifiers}
        self.conn.send_many(
            [
                {"method": "Input.dispatchKeyEvent", "params": down},
                {"method": "Input.dispatchKeyEvent", "params": up},
            ]
        )

    def press(self, key: str, modifiers: int = 0) -> None:
        """Press a keyboard key on the focused element."""
        if not key:
            raise HttpClientError("Key must not be empty")
        self._bounded("press", self._press, key, modifiers)

    # ─────────────────────────────────────────────────────────────────────────
    # Snapshots & capture
    # ─────────────────────────────────────────────────────────────────────────

    def _snapshot(self) -> AXNode | None:
        result = self.conn.send("Accessibility.getFullAXTree")
        nodes = result.get("nodes") if isinstance(result, dict) else None
        if not isinstance(nodes, list):
            raise HttpClientError("Accessibility.getFullAXTree returned unexpected payload")
        return build_tree(nodes)

    def accessibility_snapshot(self) -> AXNode | None:
        return self._bounded("snapshot", self._snapshot)

    def screenshot(self, format: str = "png", full_page: bool = False) -> bytes:
        """Capture a screenshot and return the decoded image bytes."""
        params: dict[str, Any] = {"format": format, "fromSurface": True}
        if full_page:
            params["captureBeyondViewport"] = True
        result = self._bounded("screenshot", self.conn.send, "Page.captureScreenshot", params)
        return base64.b64decode(result.get("data", ""))

    def pdf(self, *, print_background: bool = True) -> bytes:
        """Render the page as PDF (headless browsers only)."""
        result = self._bounded("pdf", self.conn.send, "Page.printToPDF", {"printBackground": print_background})
        return base64.b64decode(result.get("data", ""))

    def describe(self) -> dict[str, Any]:
        return {"tabId": self.tab_id, "url": self.url(), "title": self.title()}

    def __repr__(self) -> str:
        return f"BrowserSession(tab_id={json.dumps(self.tab_id)})"


__all__ = ["BrowserSession", "EvaluationError"]
