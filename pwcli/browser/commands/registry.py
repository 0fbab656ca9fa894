"""
Command registry with dispatch table for the CLI.

Handlers declare what they need (nothing, a browser, or a resolved page); the registry
validates tab arguments before any I/O, acquires the pooled browser handle, resolves the
target tab and attaches a page session around the handler call.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

from .. import tabs
from ..http_client import HttpClientError
from .context import CommandContext
from .types import BROWSER, NO_BROWSER, PAGE, CommandResult, HandlerFunc

logger = logging.getLogger("pwcli.browser.registry")

REQUIREMENTS = (NO_BROWSER, BROWSER, PAGE)


class CommandRegistry:
    """Registry for command handlers with browser/page lifecycle management."""

    def __init__(self) -> None:
        # name -> (handler, requirement)
        self._handlers: dict[str, tuple[HandlerFunc, str]] = {}

    def register(self, name: str, handler: HandlerFunc, requires: str = PAGE) -> None:
        """Register a command handler."""
        if requires not in REQUIREMENTS:
            raise ValueError(f"Unknown requirement {requires!r} for {name}")
        self._handlers[name] = (handler, requires)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, str]]) -> None:
        """Register multiple handlers at once."""
        for name, (handler, requires) in handlers.items():
            self.register(name, handler, requires)

    def dispatch(self, name: str, ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
        """
        Dispatch a command to its handler.

        Raises:
            KeyError: If the command is not registered
            BrowserCliError: Any operational failure (not found, timeout, bad arguments)
        """
        handler_info = self._handlers.get(name)
        if handler_info is None:
            raise KeyError(f"Unknown command: {name}")
        handler, requires = handler_info

        tab_index = args.get("tab_index")
        tab_id = args.get("tab_id")
        # Contradictory tab selectors are rejected before touching the browser.
        tabs.validate_tab_args(tab_index, tab_id)
        ctx.explicit_tab_id = tab_id

        if requires == NO_BROWSER:
            return handler(ctx, args)

        with ctx.pool.connection() as handle:
            ctx.handle = handle
            try:
                if requires == BROWSER:
                    return handler(ctx, args)

                ctx.target = tabs.resolve(handle, tab_index=tab_index, tab_id=tab_id)
                logger.info("Target tab %s (index %d)", ctx.target.tab_id, ctx.target.tab_index)
                ctx.page = handle.attach(ctx.target.tab_id)
                try:
                    return handler(ctx, args)
                finally:
                    with suppress(HttpClientError, OSError):
                        ctx.page.close()
                    ctx.page = None
            finally:
                ctx.handle = None


def create_default_registry() -> CommandRegistry:
    from .handlers import ALL_HANDLERS

    registry = CommandRegistry()
    registry.register_many(ALL_HANDLERS)
    return registry
