"""
Type definitions for command results and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import CommandContext

# What a command needs before its handler runs.
NO_BROWSER = "none"
BROWSER = "browser"
PAGE = "page"


@dataclass(slots=True)
class CommandResult:
    """Result of a command execution."""

    output: str = ""
    is_error: bool = False
    # Raw payload for callers that want structured data (tests, --json).
    data: Any | None = None

    @classmethod
    def text(cls, text: str, data: Any | None = None) -> CommandResult:
        return cls(output=text or "", data=data)

    @classmethod
    def json(cls, data: Any) -> CommandResult:
        return cls(output=json.dumps(data, indent=2, ensure_ascii=False, default=str), data=data)

    @classmethod
    def error(cls, message: str, *, details: dict[str, Any] | None = None) -> CommandResult:
        payload: dict[str, Any] = {"ok": False, "error": message}
        if details:
            payload["details"] = details
        return cls(output=message, is_error=True, data=payload)


HandlerFunc = Callable[["CommandContext", dict[str, Any]], CommandResult]
