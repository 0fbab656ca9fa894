"""
Element interaction handlers.

Each handler locates its element through `--ref` or a selector/text query, performs the
action and records it in the action history. A failed action is never recorded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...errors import InvalidArgument
from ..types import PAGE, CommandResult

if TYPE_CHECKING:
    from ..context import CommandContext


def handle_click(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    selector, label = ctx.locate(args)
    with ctx.acting_on(label):
        if args.get("double"):
            ctx.page.dblclick(selector)
            verb = "Double-clicked"
        else:
            ctx.page.click(selector)
            verb = "Clicked"
    ctx.record("click", label)
    return CommandResult.text(f"{verb} {label}", data={"selector": selector})


def handle_type(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    selector, label = ctx.locate(args)
    text = args.get("text") or ""
    with ctx.acting_on(label):
        ctx.page.type(selector, text)
    ctx.record("type", label, text)
    return CommandResult.text(f"Typed into {label}", data={"selector": selector})


def handle_fill(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    selector, label = ctx.locate(args)
    value = args.get("value") or ""
    with ctx.acting_on(label):
        ctx.page.fill(selector, value)
    ctx.record("fill", label, value)
    return CommandResult.text(f'Filled {label} with "{value}"', data={"selector": selector})


def handle_hover(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    selector, label = ctx.locate(args)
    with ctx.acting_on(label):
        ctx.page.hover(selector)
    ctx.record("hover", label)
    return CommandResult.text(f"Hovered over {label}", data={"selector": selector})


def handle_select(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    selector, label = ctx.locate(args)
    value = args.get("value")
    if value is None:
        raise InvalidArgument("Expected an option value", operation="select", details={"target": label})
    with ctx.acting_on(label):
        selected = ctx.page.select_option(selector, value)
    ctx.record("select", label, selected)
    return CommandResult.text(f"Selected {selected} in {label}", data={"selector": selector, "value": selected})


def handle_drag(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    source, source_label = ctx.locate(args, key="source")
    target, target_label = ctx.locate(args, key="target", ref_key="to_ref")
    label = f"{source_label} to {target_label}"
    with ctx.acting_on(label):
        ctx.page.drag(source, target)
    ctx.record("drag", label)
    return CommandResult.text(f"Dragged {source_label} to {target_label}", data={"source": source, "target": target})


def handle_press(ctx: CommandContext, args: dict[str, Any]) -> CommandResult:
    key = args.get("key") or ""
    if not key:
        raise InvalidArgument("Expected a key name, e.g. Enter", operation="press")
    ctx.page.press(key)
    return CommandResult.text(f"Pressed {key}", data={"key": key})


INTERACTION_HANDLERS: dict[str, tuple] = {
    "click": (handle_click, PAGE),
    "type": (handle_type, PAGE),
    "fill": (handle_fill, PAGE),
    "hover": (handle_hover, PAGE),
    "select": (handle_select, PAGE),
    "drag": (handle_drag, PAGE),
    "press": (handle_press, PAGE),
}
