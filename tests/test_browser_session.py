from __future__ import annotations

import base64

import pytest


class FakeConn:
    """Scripted CDP connection: `Runtime.evaluate` is answered by `evaluator(expression)`."""

    def __init__(self, evaluator=None, responses: dict | None = None) -> None:
        self.evaluator = evaluator or (lambda expression: None)
        self.responses = responses or {}
        self.timeout = 5.0
        self.sent: list[tuple[str, dict | None]] = []
        self.batches: list[list[dict]] = []
        self.events: list[str] = []
        self.closed = False

    def send(self, method: str, params: dict | None = None) -> dict:
        self.sent.append((method, params))
        if method == "Runtime.evaluate":
            value = self.evaluator(params["expression"])
            if isinstance(value, Exception):
                return {"exceptionDetails": {"text": "Uncaught", "exception": {"description": str(value)}}}
            if value is None:
                return {"result": {"type": "undefined"}}
            return {"result": {"type": "object", "value": value}}
        response = self.responses.get(method, {})
        return response(params) if callable(response) else response

    def send_many(self, commands: list[dict]) -> list[dict]:
        self.batches.append(commands)
        return [self.send(c["method"], c.get("params")) for c in commands]

    def wait_for_event(self, event_name: str, timeout: float = 10.0):
        self.events.append(event_name)
        return {}

    def abort(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def _session(conn: FakeConn, timeout_ms: int = 2000):
    from pwcli.browser.browser_session import BrowserSession

    return BrowserSession(conn, "TAB-1", timeout_ms=timeout_ms)


def _boxes(**by_selector):
    """Evaluator answering center/count queries for the given selectors."""
    from pwcli.browser import page_query

    def evaluator(expression: str):
        for selector, box in by_selector.items():
            if expression == page_query.center_js(selector):
                return box
            if expression == page_query.count_js(selector):
                return 1 if box else 0
        return None

    return evaluator


def test_evaluate_normalizes_undefined_and_raises_on_exception() -> None:
    from pwcli.browser.http_client import HttpClientError

    answers = {"ok()": {"answer": 42}, "bad()": RuntimeError("boom")}
    session = _session(FakeConn(answers.get))

    assert session.evaluate("ok()") == {"answer": 42}
    assert session.evaluate("nothing()") is None
    with pytest.raises(HttpClientError, match="boom"):
        session.evaluate("bad()")


def test_count_uses_selector_engine() -> None:
    from pwcli.browser import page_query

    conn = FakeConn(lambda e: 3 if e == page_query.count_js("li.item") else 0)
    assert _session(conn).count("li.item") == 3
    assert _session(conn).count("li.other") == 0


def test_click_dispatches_mouse_sequence_at_element_centre() -> None:
    conn = FakeConn(_boxes(**{"#go": {"x": 10, "y": 20, "width": 50, "height": 10}}))
    _session(conn).click("#go")

    (batch,) = conn.batches
    assert [c["params"]["type"] for c in batch] == ["mouseMoved", "mousePressed", "mouseReleased"]
    assert all((c["params"]["x"], c["params"]["y"]) == (10.0, 20.0) for c in batch)
    assert batch[1]["params"]["clickCount"] == 1


def test_dblclick_sends_two_clicks() -> None:
    conn = FakeConn(_boxes(**{"#go": {"x": 1, "y": 2, "width": 3, "height": 4}}))
    _session(conn).dblclick("#go")

    counts = [c["params"].get("clickCount") for c in conn.batches[0] if c["params"]["type"] != "mouseMoved"]
    assert counts == [1, 1, 2, 2]


def test_click_missing_element_raises_selector_not_found() -> None:
    from pwcli.browser.errors import SelectorNotFound

    with pytest.raises(SelectorNotFound) as excinfo:
        _session(FakeConn(), timeout_ms=50).click("#missing")
    assert excinfo.value.details == {"selector": "#missing"}


def test_click_invisible_element_is_reported() -> None:
    from pwcli.browser.errors import SelectorNotFound

    conn = FakeConn(_boxes(**{"#hidden": {"x": 0, "y": 0, "width": 0, "height": 0}}))
    with pytest.raises(SelectorNotFound, match="no visible box"):
        _session(conn, timeout_ms=50).click("#hidden")


def test_drag_moves_between_centres() -> None:
    conn = FakeConn(
        _boxes(
            **{
                "#card": {"x": 0, "y": 0, "width": 10, "height": 10},
                "#done": {"x": 100, "y": 50, "width": 10, "height": 10},
            }
        )
    )
    _session(conn).drag("#card", "#done", steps=2)

    batch = conn.batches[0]
    assert [c["params"]["type"] for c in batch] == [
        "mouseMoved",
        "mousePressed",
        "mouseMoved",
        "mouseMoved",
        "mouseReleased",
    ]
    assert (batch[2]["params"]["x"], batch[2]["params"]["y"]) == (50.0, 25.0)
    assert (batch[-1]["params"]["x"], batch[-1]["params"]["y"]) == (100.0, 50.0)


def test_fill_clears_then_inserts() -> None:
    from pwcli.browser import page_query

    focused = []

    def evaluator(expression: str):
        if expression == page_query.focus_js("#email", clear=True):
            focused.append("clear")
            return True
        return None

    conn = FakeConn(evaluator)
    _session(conn).fill("#email", "a@b.c")

    assert focused == ["clear"]
    assert conn.sent[-1] == ("Input.insertText", {"text": "a@b.c"})


def test_type_does_not_clear() -> None:
    from pwcli.browser import page_query

    conn = FakeConn(lambda e: True if e == page_query.focus_js("#q") else None)
    _session(conn).type("#q", "hello")

    assert conn.sent[-1] == ("Input.insertText", {"text": "hello"})


def test_navigate_enables_page_once_and_waits_for_load() -> None:
    conn = FakeConn(responses={"Page.navigate": {"frameId": "F1"}})
    session = _session(conn)

    session.navigate("https://example.com/")
    session.navigate("https://example.com/next")

    methods = [m for m, _ in conn.sent]
    assert methods == ["Page.enable", "Page.navigate", "Page.navigate"]
    assert conn.events == ["Page.loadEventFired", "Page.loadEventFired"]


def test_navigate_error_text_raises() -> None:
    from pwcli.browser.http_client import HttpClientError

    conn = FakeConn(responses={"Page.navigate": {"errorText": "net::ERR_NAME_NOT_RESOLVED"}})
    with pytest.raises(HttpClientError, match="ERR_NAME_NOT_RESOLVED"):
        _session(conn).navigate("https://nope.invalid/")


def test_press_enter_sends_key_events() -> None:
    conn = FakeConn()
    _session(conn).press("Enter")

    down, up = (c["params"] for c in conn.batches[0])
    assert down["type"] == "keyDown" and down["windowsVirtualKeyCode"] == 13 and down["text"] == "\r"
    assert up["type"] == "keyUp" and "text" not in up


def test_accessibility_snapshot_builds_tree() -> None:
    nodes = [
        {"nodeId": "1", "role": {"value": "RootWebArea"}, "name": {"value": "Doc"}, "childIds": ["2"]},
        {"nodeId": "2", "parentId": "1", "role": {"value": "button"}, "name": {"value": "OK"}},
    ]
    conn = FakeConn(responses={"Accessibility.getFullAXTree": {"nodes": nodes}})

    tree = _session(conn).accessibility_snapshot()

    assert tree.role == "RootWebArea"
    assert [(c.role, c.name) for c in tree.children] == [("button", "OK")]


def test_screenshot_returns_decoded_bytes() -> None:
    payload = b"\x89PNG fake"
    conn = FakeConn(responses={"Page.captureScreenshot": {"data": base64.b64encode(payload).decode()}})

    assert _session(conn).screenshot(full_page=True) == payload
    assert conn.sent[-1][1]["captureBeyondViewport"] is True


def test_context_manager_closes_connection() -> None:
    conn = FakeConn()
    with _session(conn):
        pass
    assert conn.closed is True


def test_click_timeout_names_the_selector() -> None:
    from pwcli.browser.errors import CommandTimeoutError
    from pwcli.browser.http_client import HttpClientError

    class StalledConn(FakeConn):
        def send(self, method: str, params: dict | None = None) -> dict:
            raise HttpClientError(f"CDP response timed out ({method})")

    with pytest.raises(CommandTimeoutError) as excinfo:
        _session(StalledConn(), timeout_ms=200).click("#submit-btn")

    assert "#submit-btn" in str(excinfo.value)
    assert excinfo.value.details["target"] == "#submit-btn"
    assert excinfo.value.operation == "click"


def test_invalid_selector_is_reported_as_selector_not_found() -> None:
    from pwcli.browser import page_query
    from pwcli.browser.errors import SelectorNotFound

    def evaluator(expression: str):
        if expression == page_query.center_js("Next >"):
            return SyntaxError("'Next >' is not a valid selector")
        return None

    with pytest.raises(SelectorNotFound) as excinfo:
        _session(FakeConn(evaluator)).click("Next >")

    assert excinfo.value.details["selector"] == "Next >"
    assert "not a valid selector" in excinfo.value.details["cause"]


def test_count_of_invalid_selector_raises_selector_not_found() -> None:
    from pwcli.browser.errors import SelectorNotFound

    conn = FakeConn(lambda e: SyntaxError("bad selector"))
    with pytest.raises(SelectorNotFound, match="could not be evaluated"):
        _session(conn).count("div[")
