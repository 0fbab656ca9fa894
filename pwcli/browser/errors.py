"""
Error taxonomy for the browser CLI.

Every user-facing failure carries the identifiers that were attempted (tab id/index,
ref code, query string) so a failed command can be diagnosed from its message alone.
"""

from __future__ import annotations

from typing import Any


class BrowserCliError(Exception):
    """Structured error with context for CLI users."""

    def __init__(
        self,
        reason: str,
        *,
        operation: str = "",
        suggestion: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.operation = operation
        self.suggestion = suggestion
        self.details = dict(details or {})

    def __str__(self) -> str:
        msg = f"{self.operation}: {self.reason}" if self.operation else self.reason
        if self.suggestion:
            msg += f". Suggestion: {self.suggestion}"
        return msg

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "kind": type(self).__name__,
            "operation": self.operation,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class BrowserConnectionError(BrowserCliError, ConnectionError):
    """Cannot attach to or launch a browser on the requested endpoint."""


class TabNotFound(BrowserCliError, LookupError):
    pass


class RefNotFound(BrowserCliError, LookupError):
    pass


class SelectorNotFound(BrowserCliError, LookupError):
    pass


class InvalidArgument(BrowserCliError, ValueError):
    pass


class CommandTimeoutError(BrowserCliError, TimeoutError):
    """An engine round-trip exceeded its configured timeout."""

    def __init__(
        self,
        operation: str,
        timeout_ms: int,
        *,
        target: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        reason = f"timed out after {int(timeout_ms)}ms"
        extra: dict[str, Any] = {"timeoutMs": int(timeout_ms)}
        if target:
            reason += f" waiting for {target!r}"
            extra["target"] = target
        super().__init__(
            reason,
            operation=operation,
            suggestion="Increase --timeout or check that the page is responsive",
            details={**extra, **(details or {})},
        )
        self.timeout_ms = int(timeout_ms)
        self.target = target


__all__ = [
    "BrowserCliError",
    "BrowserConnectionError",
    "CommandTimeoutError",
    "InvalidArgument",
    "RefNotFound",
    "SelectorNotFound",
    "TabNotFound",
]
