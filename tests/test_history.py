from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _history(path: Path, clock: Clock, **kw):
    from pwcli.browser.history import ActionHistory
    from pwcli.browser.state_store import JsonFileStore

    return ActionHistory(JsonFileStore(path, empty=list), clock=clock, **kw)


def test_append_persists_across_instances(tmp_path: Path) -> None:
    clock = Clock()
    path = tmp_path / "actions.json"

    _history(path, clock).append("navigate", "https://example.com/", tab_id="TAB-1")
    clock.now += 5
    _history(path, clock).append("fill", "Email", "a@b.c", tab_id="TAB-1")

    actions = _history(path, clock).actions
    assert [(a.type, a.target, a.value) for a in actions] == [
        ("navigate", "https://example.com/", None),
        ("fill", "Email", "a@b.c"),
    ]
    raw = json.loads(path.read_text(encoding="utf-8"))["items"]
    assert raw[0]["timestamp"] == 1_700_000_000_000
    assert raw[1]["tabId"] == "TAB-1"


def test_length_bound_keeps_most_recent(tmp_path: Path) -> None:
    clock = Clock()
    history = _history(tmp_path / "actions.json", clock, limit=3)
    for i in range(5):
        clock.now += 1
        history.append("click", f"button-{i}")

    assert [a.target for a in history.actions] == ["button-2", "button-3", "button-4"]
    assert len(json.loads((tmp_path / "actions.json").read_text(encoding="utf-8"))["items"]) == 3


def test_retention_prunes_on_load(tmp_path: Path) -> None:
    clock = Clock()
    path = tmp_path / "actions.json"
    history = _history(path, clock, retention_s=60)
    history.append("click", "old")
    clock.now += 30
    history.append("click", "fresh")

    clock.now += 45
    assert [a.target for a in _history(path, clock, retention_s=60).actions] == ["fresh"]


def test_recent_filters_by_tab_before_counting(tmp_path: Path) -> None:
    clock = Clock()
    history = _history(tmp_path / "actions.json", clock)
    for target, tab in [("a", "T1"), ("b", "T2"), ("c", "T1"), ("d", "T2"), ("e", "T2")]:
        clock.now += 1
        history.append("click", target, tab_id=tab)

    assert [a.target for a in history.recent(2)] == ["d", "e"]
    assert [a.target for a in history.recent(2, tab_id="T1")] == ["a", "c"]
    assert history.recent(0) == []
    assert history.last("T1").target == "c"
    assert history.last("T9") is None


def test_unknown_action_type_rejected(tmp_path: Path) -> None:
    from pwcli.browser.errors import InvalidArgument

    history = _history(tmp_path / "actions.json", Clock())
    with pytest.raises(InvalidArgument):
        history.append("scroll", "page")
    assert history.actions == []


def test_concurrent_writers_merge(tmp_path: Path) -> None:
    clock = Clock()
    path = tmp_path / "actions.json"
    first = _history(path, clock)
    second = _history(path, clock)
    # Both load an empty history before either writes.
    assert first.actions == [] and second.actions == []

    first.append("click", "one")
    clock.now += 1
    second.append("click", "two")

    assert [a.target for a in _history(path, clock).actions] == ["one", "two"]


def test_write_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    from pwcli.browser.history import ActionHistory

    class ReadOnlyStore:
        path = Path("/nonexistent/actions.json")

        def load(self):
            return []

        def update(self, fn):
            raise PermissionError("read-only file system")

        def save(self, items):
            raise PermissionError("read-only file system")

    history = ActionHistory(ReadOnlyStore(), clock=Clock())
    with caplog.at_level(logging.WARNING, logger="pwcli.browser.history"):
        action = history.append("click", "Submit")
        history.clear()

    assert action.type == "click"
    assert history.actions == []
    assert sum("Cannot" in r.getMessage() for r in caplog.records) == 2


def test_clear_empties_file(tmp_path: Path) -> None:
    clock = Clock()
    path = tmp_path / "actions.json"
    history = _history(path, clock)
    history.append("hover", "Menu")
    history.clear()

    assert history.actions == []
    assert _history(path, clock).actions == []


def test_malformed_entries_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "actions.json"
    items = [
        {"type": "click", "target": "ok", "timestamp": 1_700_000_000_000},
        {"type": "teleport", "target": "x", "timestamp": 1_700_000_000_000},
        {"type": "click", "target": "no-ts"},
        "garbage",
    ]
    path.write_text(json.dumps({"version": 1, "items": items}), encoding="utf-8")

    assert [a.target for a in _history(path, Clock(1_700_000_010.0)).actions] == ["ok"]


@pytest.mark.parametrize(
    ("delta", "expected"),
    [(0, "0s ago"), (59, "59s ago"), (60, "1m ago"), (3599, "59m ago"), (7200, "2h ago"), (3 * 86400, "3d ago")],
)
def test_time_ago(delta: int, expected: str) -> None:
    from pwcli.browser.history import time_ago

    assert time_ago(1000.0, now=1000.0 + delta) == expected


def test_format_action() -> None:
    from pwcli.browser.history import Action, format_action

    now = 2000.0
    assert format_action(Action("navigate", "https://x.test/", timestamp=1990.0), now) == (
        "Navigated to https://x.test/ (10s ago)"
    )
    assert format_action(Action("click", "[ref=abc123]", timestamp=1880.0), now) == "Clicked [ref=abc123] (2m ago)"
    assert format_action(Action("fill", "Email", "a@b.c", timestamp=now), now) == 'Filled Email with "a@b.c" (0s ago)'
    assert format_action(Action("select", "Country", "NO", timestamp=now), now) == "Selected NO in Country (0s ago)"
    assert format_action(Action("drag", "Card to Done", timestamp=now), now) == "Dragged Card to Done (0s ago)"
