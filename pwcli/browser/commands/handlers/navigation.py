"""
Navigation command handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...errors import InvalidArgument
from ..types import PAGE, CommandResult

if TYPE_CHECKING:
    from ..context import CommandContext


def normalize_url(raw: str) -> str:
    url = (raw or "").strip()
    if not url:
        raise InvalidArgument("URL must not be empty", operation="navigate")
    if "://" not in url and not url.startswith(("about:", "data:", "file:", "chrome:")):
        url = f"https://{url}"
    return url


def handle_open(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    target = ctx.target
    url = args.get("url")
    if url:
        url = normalize_url(url)
        ctx.page.navigate(url)
        ctx.record("navigate", url)
    state = "Opened new tab" if target.created else "Using tab"
    info = ctx.page.describe()
    return CommandResult.text(
        f"{state} [{target.tab_index}] {target.tab_id}\n{info['title'] or '(untitled)'} - {info['url']}",
        data={**info, "tabIndex": target.tab_index, "created": target.created},
    )


def handle_navigate(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    url = normalize_url(args.get("url") or "")
    ctx.page.navigate(url)
    ctx.record("navigate", url)
    title = ctx.page.title()
    return CommandResult.text(f"Navigated to {url}" + (f" ({title})" if title else ""), data={"url": url})


NAVIGATION_HANDLERS: dict[str, tuple] = {
    "open": (handle_open, PAGE),
    "navigate": (handle_navigate, PAGE),
}
