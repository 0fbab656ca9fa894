"""
Page inspection and reporting handlers.
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...ax_tree import render, walk
from ...errors import InvalidArgument
from ...history import format_action
from ...refs import extract_interactive, generate, is_interactive, node_to_selector
from ..types import NO_BROWSER, PAGE, CommandResult

if TYPE_CHECKING:
    from ..context import CommandContext


def handle_snapshot(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    """Capture the accessibility tree and publish a ref code for every interactive element."""
    tree = ctx.page.accessibility_snapshot()
    if tree is None:
        return CommandResult.text("No accessibility tree available", data={"elements": []})

    codes: dict[str, str] = {}
    selectors: dict[str, str] = {}
    for node, path in walk(tree):
        if is_interactive(node):
            code = generate(node, path)
            codes[path] = code
            selectors[code] = node_to_selector(node)
    ctx.refs.store_many(selectors, ctx.tab_scope)

    elements = extract_interactive(tree)
    if args.get("json"):
        payload: dict[str, Any] = {"tabId": ctx.tab_id, "elements": [e.to_dict() for e in elements]}
        if args.get("full"):
            payload["tree"] = tree.to_dict()
        return CommandResult.json(payload)

    if args.get("full"):
        return CommandResult.text("\n".join(render(tree, refs=codes)), data={"elements": elements})

    if not elements:
        return CommandResult.text("No interactive elements found", data={"elements": []})
    lines = [f"Interactive elements ({len(elements)}):"]
    for e in elements:
        line = f'[ref={e.code}] {e.role} "{e.name}"'
        if e.value is not None:
            line += f": {e.value}"
        lines.append(line)
    return CommandResult.text("\n".join(lines), data={"elements": elements})


def handle_context(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    info = ctx.page.describe()
    ready = ctx.page.ready_state()
    tree = ctx.page.accessibility_snapshot()
    counts = Counter(e.role for e in extract_interactive(tree))
    recent = ctx.history.recent(int(args.get("limit") or 5), ctx.tab_id)

    lines = [
        f"Tab: [{ctx.target.tab_index}] {ctx.target.tab_id}",
        f"URL: {info['url']}",
        f"Title: {info['title'] or '(untitled)'}",
        f"Ready state: {ready}",
    ]
    if counts:
        lines.append("Interactive: " + ", ".join(f"{n} {role}" for role, n in sorted(counts.items())))
    if recent:
        lines.append("Recent actions:")
        lines.extend(f"  {format_action(a)}" for a in recent)
    data = {
        **info,
        "tabIndex": ctx.target.tab_index,
        "readyState": ready,
        "interactive": dict(counts),
        "recentActions": [a.to_dict() for a in recent],
    }
    return CommandResult.text("\n".join(lines), data=data)


def handle_eval(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    expression = args.get("expression") or ""
    if not expression.strip():
        raise InvalidArgument("Expected a JavaScript expression", operation="eval")
    value = ctx.page.evaluate(expression)
    text = value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return CommandResult.text(text, data={"value": value})


def _write_capture(path: str, payload: bytes, kind: str) -> CommandResult:
    out = Path(path).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(payload)
    return CommandResult.text(f"Saved {kind} to {out} ({len(payload)} bytes)", data={"path": str(out)})


def handle_screenshot(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    path = args.get("path") or "screenshot.png"
    fmt = "jpeg" if path.lower().endswith((".jpg", ".jpeg")) else "png"
    return _write_capture(path, ctx.page.screenshot(fmt, full_page=bool(args.get("full_page"))), "screenshot")


def handle_pdf(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    return _write_capture(args.get("path") or "page.pdf", ctx.page.pdf(), "PDF")


def handle_history(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    if args.get("clear"):
        ctx.history.clear()
        return CommandResult.text("Action history cleared")
    actions = ctx.history.recent(int(args.get("limit") or ctx.config.history_limit), args.get("tab_id"))
    if not actions:
        return CommandResult.text("No recent actions", data={"actions": []})
    return CommandResult.text(
        "\n".join(format_action(a) for a in actions),
        data={"actions": [a.to_dict() for a in actions]},
    )


INSPECTION_HANDLERS: dict[str, tuple] = {
    "snapshot": (handle_snapshot, PAGE),
    "context": (handle_context, PAGE),
    "eval": (handle_eval, PAGE),
    "screenshot": (handle_screenshot, PAGE),
    "pdf": (handle_pdf, PAGE),
    "history": (handle_history, NO_BROWSER),
}
