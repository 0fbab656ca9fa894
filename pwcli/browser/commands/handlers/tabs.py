"""
Tab management handlers: list, new, close, select.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import tabs
from ...errors import InvalidArgument
from ..types import BROWSER, CommandResult
from .navigation import normalize_url

if TYPE_CHECKING:
    from ..context import CommandContext

TAB_ACTIONS = ("list", "new", "close", "select")


def _list(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    pages = ctx.handle.list_pages()
    if not pages:
        return CommandResult.text("No open tabs", data={"tabs": []})
    active = ctx.handle.active_page_id()
    lines = []
    for i, page in enumerate(pages):
        marker = "*" if page.tab_id == active else " "
        lines.append(f"{marker} [{i}] {page.tab_id}  {page.title or '(untitled)'} - {page.url}")
    data = [{**p.to_dict(), "tabIndex": i, "active": p.tab_id == active} for i, p in enumerate(pages)]
    return CommandResult.text("\n".join(lines), data={"tabs": data})


def _new(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    url = normalize_url(args["url"]) if args.get("url") else "about:blank"
    tab_id = ctx.handle.new_page(url)
    ctx.handle.activate_page(tab_id)
    index = next((i for i, p in enumerate(ctx.handle.list_pages()) if p.tab_id == tab_id), -1)
    if url != "about:blank":
        ctx.history.append("navigate", url, tab_id=tab_id)
    return CommandResult.text(f"Opened tab [{index}] {tab_id}", data={"tabId": tab_id, "tabIndex": index, "url": url})


def _close(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    target = tabs.resolve(ctx.handle, tab_index=args.get("tab_index"), tab_id=args.get("tab_id"))
    ctx.handle.close_page(target.tab_id)
    return CommandResult.text(f"Closed tab [{target.tab_index}] {target.tab_id}", data=target.to_dict())


def _select(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    if args.get("tab_index") is None and args.get("tab_id") is None:
        raise InvalidArgument(
            "tabs select needs --tab-index or --tab-id",
            operation="tabs select",
            suggestion="Run `tabs list` to see open tabs",
        )
    target = tabs.resolve(ctx.handle, tab_index=args.get("tab_index"), tab_id=args.get("tab_id"))
    ctx.handle.activate_page(target.tab_id)
    return CommandResult.text(f"Selected tab [{target.tab_index}] {target.tab_id}", data=target.to_dict())


def handle_tabs(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    action = args.get("action") or "list"
    handlers = {"list": _list, "new": _new, "close": _close, "select": _select}
    handler = handlers.get(action)
    if handler is None:
        raise InvalidArgument(
            f"Unknown tabs action {action!r}",
            operation="tabs",
            details={"action": action, "allowed": list(TAB_ACTIONS)},
        )
    return handler(ctx, args)


TAB_HANDLERS: dict[str, tuple] = {
    "tabs": (handle_tabs, BROWSER),
}
