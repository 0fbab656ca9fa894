"""Action history shared across CLI invocations.

Bounded to the most recent `limit` actions and to actions newer than `retention_s`.
Old entries are pruned when the file is loaded; the length bound is applied on both load
and append. History is a convenience for the reporting commands: write failures are
logged and swallowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .errors import InvalidArgument
from .state_store import JsonFileStore

logger = logging.getLogger("pwcli.browser.history")

ACTION_TYPES = ("navigate", "click", "type", "fill", "select", "hover", "drag")


@dataclass(frozen=True)
class Action:
    type: str
    target: str = ""
    value: str | None = None
    timestamp: float = 0.0
    tab_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "target": self.target, "timestamp": int(self.timestamp * 1000)}
        if self.value is not None:
            out["value"] = self.value
        if self.tab_id is not None:
            out["tabId"] = self.tab_id
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Action | None:
        if not isinstance(data, dict) or data.get("type") not in ACTION_TYPES:
            return None
        ts = data.get("timestamp")
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            return None
        value = data.get("value")
        tab_id = data.get("tabId")
        return cls(
            type=data["type"],
            target=str(data.get("target") or ""),
            value=None if value is None else str(value),
            timestamp=float(ts) / 1000.0,
            tab_id=tab_id if isinstance(tab_id, str) and tab_id else None,
        )


def time_ago(timestamp: float, now: float | None = None) -> str:
    seconds = max(0, int((time.time() if now is None else now) - timestamp))
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_action(action: Action, now: float | None = None) -> str:
    ago = time_ago(action.timestamp, now)
    target = action.target
    if action.type == "navigate":
        return f"Navigated to {target} ({ago})"
    if action.type == "click":
        return f"Clicked {target} ({ago})"
    if action.type == "type":
        return f"Typed into {target} ({ago})"
    if action.type == "fill":
        suffix = f' with "{action.value}"' if action.value else ""
        return f"Filled {target}{suffix} ({ago})"
    if action.type == "select":
        return f"Selected {action.value} in {target} ({ago})"
    if action.type == "hover":
        return f"Hovered over {target} ({ago})"
    if action.type == "drag":
        return f"Dragged {target} ({ago})"
    return f"{action.type} {target} ({ago})"


class ActionHistory:
    def __init__(
        self,
        store: JsonFileStore,
        *,
        limit: int = 10,
        retention_s: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.limit = max(1, int(limit))
        self.retention_s = float(retention_s)
        self._clock = clock
        self._actions: list[Action] | None = None

    def _prune(self, raw: Any) -> list[Action]:
        cutoff = self._clock() - self.retention_s
        actions = [a for a in (Action.from_dict(item) for item in raw or []) if a is not None]
        return [a for a in actions if a.timestamp > cutoff][-self.limit :]

    @property
    def actions(self) -> list[Action]:
        if self._actions is None:
            self._actions = self._prune(self.store.load())
        return self._actions

    def append(self, type: str, target: str = "", value: str | None = None, tab_id: str | None = None) -> Action:
        if type not in ACTION_TYPES:
            raise InvalidArgument(
                f"Unknown action type {type!r}",
                operation="record action",
                details={"type": type, "allowed": list(ACTION_TYPES)},
            )
        action = Action(type=type, target=target, value=value, timestamp=self._clock(), tab_id=tab_id)

        def _merge(items: Any) -> list[dict[str, Any]]:
            merged = self._prune(items if isinstance(items, list) else [])
            merged.append(action)
            return [a.to_dict() for a in merged[-self.limit :]]

        try:
            saved = self.store.update(_merge)
        except OSError as exc:
            logger.warning("Cannot write action history to %s: %s", self.store.path, exc)
            self._actions = (self.actions + [action])[-self.limit :]
        else:
            self._actions = self._prune(saved)
        return action

    def recent(self, n: int = 5, tab_id: str | None = None) -> list[Action]:
        """Last `n` actions, oldest first; with `tab_id`, other tabs are skipped before counting."""
        actions = self.actions
        if tab_id:
            actions = [a for a in actions if a.tab_id == tab_id]
        if n <= 0:
            return []
        return actions[-n:]

    def last(self, tab_id: str | None = None) -> Action | None:
        recent = self.recent(1, tab_id)
        return recent[0] if recent else None

    def clear(self) -> None:
        self._actions = []
        try:
            self.store.save([])
        except OSError as exc:
            logger.warning("Cannot clear action history at %s: %s", self.store.path, exc)
