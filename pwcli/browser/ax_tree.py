"""Accessibility tree snapshot as a typed recursive node.

CDP returns the full AX tree as a flat node list linked by `childIds`. It is folded into
`AXNode` values here, dropping the noise a human-facing snapshot does not need:
ignored nodes and unnamed generic containers are replaced by their children, inline
text boxes are dropped, and static text that merely repeats its parent's name is skipped.

`children is None` means a leaf; `children == ()` means a container whose children were
all filtered out. The distinction is preserved when rendering.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

TRANSPARENT_ROLES = frozenset({"generic", "none", "presentation", "GenericContainer", "Ignored"})
DROPPED_ROLES = frozenset({"InlineTextBox", "LineBreak"})
TEXT_ROLES = frozenset({"StaticText", "text"})


@dataclass(frozen=True)
class AXNode:
    role: str
    name: str = ""
    value: str | None = None
    children: tuple[AXNode, ...] | None = None
    focusable: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "name": self.name}
        if self.value is not None:
            out["value"] = self.value
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AXNode:
        raw_children = data.get("children")
        children = None
        if isinstance(raw_children, list):
            children = tuple(cls.from_dict(c) for c in raw_children if isinstance(c, dict))
        value = data.get("value")
        return cls(
            role=str(data.get("role") or ""),
            name=str(data.get("name") or ""),
            value=None if value is None else str(value),
            children=children,
            focusable=bool(data.get("focusable", False)),
        )


def walk(node: AXNode, path: str = "") -> Iterator[tuple[AXNode, str]]:
    """Depth-first pre-order walk yielding `(node, path)`; the root path is ''."""
    yield node, path
    for i, child in enumerate(node.children or ()):
        yield from walk(child, f"{path}-{i}")


def _ax_value(value: Any) -> Any:
    """CDP AXValue is usually a dict with {type,value}. Return the underlying value."""
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


def _ax_bool_prop(node: dict[str, Any], prop_name: str) -> bool | None:
    props = node.get("properties")
    if not isinstance(props, list):
        return None
    for p in props:
        if not isinstance(p, dict) or p.get("name") != prop_name:
            continue
        v = _ax_value(p.get("value"))
        if isinstance(v, bool):
            return v
        if isinstance(v, str) and v.lower() in {"true", "false"}:
            return v.lower() == "true"
    return None


def _text(value: Any) -> str:
    v = _ax_value(value)
    if v is None:
        return ""
    return " ".join(str(v).split())


def build_tree(nodes: list[dict[str, Any]]) -> AXNode | None:
    """Fold a CDP `Accessibility.getFullAXTree` node list into an `AXNode` tree."""
    by_id: dict[str, dict[str, Any]] = {}
    for n in nodes:
        if isinstance(n, dict) and n.get("nodeId") is not None:
            by_id[str(n["nodeId"])] = n
    if not by_id:
        return None

    root_raw = next((n for n in by_id.values() if not n.get("parentId")), None)
    if root_raw is None:
        root_raw = next(iter(by_id.values()))

    def fold(raw: dict[str, Any], parent_name: str, seen: set[str]) -> list[AXNode]:
        node_id = str(raw.get("nodeId"))
        if node_id in seen:
            return []
        seen.add(node_id)

        role = _text(raw.get("role"))
        name = _text(raw.get("name"))
        if role in DROPPED_ROLES:
            return []

        child_ids = raw.get("childIds") if isinstance(raw.get("childIds"), list) else []
        folded: list[AXNode] = []
        for cid in child_ids:
            child = by_id.get(str(cid))
            if child is not None:
                folded.extend(fold(child, name or parent_name, seen))

        transparent = raw.get("ignored") is True or (role in TRANSPARENT_ROLES and not name)
        if transparent:
            return folded
        if role in TEXT_ROLES and (not name or name == parent_name):
            return []

        raw_value = _ax_value(raw.get("value"))
        value = None if raw_value in (None, "") else str(raw_value)
        return [
            AXNode(
                role=role,
                name=name,
                value=value,
                children=tuple(folded) if child_ids else None,
                focusable=_ax_bool_prop(raw, "focusable") is True,
            )
        ]

    folded_root = fold(root_raw, "", set())
    if len(folded_root) == 1:
        return folded_root[0]
    # Root itself was transparent; keep a synthetic root so paths stay anchored.
    return AXNode(role="WebArea", children=tuple(folded_root))


def render(node: AXNode, *, refs: dict[str, str] | None = None, indent: int = 0) -> list[str]:
    """Render the tree as indented `- role "name"` lines, tagging nodes whose path is in `refs`."""
    lines: list[str] = []
    for current, path in walk(node):
        depth = path.count("-")
        line = f"{'  ' * (indent + depth)}- {current.role}"
        if current.name:
            line += f' "{current.name}"'
        if current.value is not None:
            line += f": {current.value}"
        code = (refs or {}).get(path)
        if code:
            line += f" [ref={code}]"
        lines.append(line)
    return lines
