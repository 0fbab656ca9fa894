"""Element reference cache.

A reference code is a short digest of an element's identity in the accessibility tree:
its structural path (e.g. "-0-2-1", the root being ""), role, accessible name and value.
The same element on an unchanged page yields the same code in every invocation, so a
code printed by `snapshot` can be passed back later as `--ref <code>`.

Codes map to engine-usable selectors in a shared JSON file keyed by tab scope, then code.
Entries are never deleted; a code may go stale when the page changes.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from .ax_tree import AXNode, walk
from .errors import RefNotFound, SelectorNotFound
from .http_client import HttpClientError
from .selectors import first_success, xpath_literal
from .state_store import JsonFileStore

logger = logging.getLogger("pwcli.browser.refs")

CODE_LENGTH = 6
GLOBAL_SCOPE = "global"

INTERACTIVE_ROLES = frozenset(
    {
        "button",
        "link",
        "textbox",
        "checkbox",
        "radio",
        "combobox",
        "menuitem",
        "tab",
        "switch",
        "slider",
        "searchbox",
        "spinbutton",
        "option",
    }
)
# Document roots report themselves focusable but are never a useful target.
ROOT_ROLES = frozenset({"RootWebArea", "WebArea"})

_INPUT_TYPES_TEXT = "not(@type) or @type='text' or @type='email' or @type='password' or @type='tel' or @type='url'"

ROLE_PREDICATES: dict[str, str] = {
    "button": "self::button or (self::input and (@type='button' or @type='submit' or @type='reset')) or @role='button'",
    "link": "(self::a and @href) or @role='link'",
    "textbox": f"(self::input and ({_INPUT_TYPES_TEXT})) or self::textarea or @role='textbox' or @contenteditable='true'",
    "searchbox": "(self::input and @type='search') or @role='searchbox'",
    "checkbox": "(self::input and @type='checkbox') or @role='checkbox'",
    "radio": "(self::input and @type='radio') or @role='radio'",
    "combobox": "self::select or (self::input and @list) or @role='combobox'",
    "option": "self::option or @role='option'",
    "slider": "(self::input and @type='range') or @role='slider'",
    "spinbutton": "(self::input and @type='number') or @role='spinbutton'",
    "heading": "self::h1 or self::h2 or self::h3 or self::h4 or self::h5 or self::h6 or @role='heading'",
    "img": "self::img or @role='img'",
}


@dataclass(frozen=True)
class ElementRef:
    code: str
    selector: str
    tab_scope: str = GLOBAL_SCOPE
    created_at: int = 0


@dataclass(frozen=True)
class InteractiveElement:
    code: str
    role: str
    name: str
    value: str | None
    path: str

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ref": self.code, "role": self.role, "name": self.name, "path": self.path}
        if self.value is not None:
            out["value"] = self.value
        return out


def generate(node: AXNode, path: str) -> str:
    """Deterministic 6-character code for `node` at tree position `path`."""
    blob = f"{path}|{node.role}|{node.name}|{node.value or ''}"
    return hashlib.sha1(blob.encode("utf-8")).hexdigest()[:CODE_LENGTH]


def find_with_path(tree: AXNode | None, code: str) -> tuple[AXNode, str] | None:
    if tree is None:
        return None
    for node, path in walk(tree):
        if generate(node, path) == code:
            return node, path
    return None


def find(tree: AXNode | None, code: str) -> AXNode | None:
    """Depth-first search for the node whose code is `code`."""
    hit = find_with_path(tree, code)
    return hit[0] if hit else None


def is_interactive(node: AXNode) -> bool:
    if node.role in INTERACTIVE_ROLES:
        return True
    return node.focusable and node.role not in ROOT_ROLES


def extract_interactive(tree: AXNode | None) -> list[InteractiveElement]:
    """Interactive elements in document (depth-first) order with their codes."""
    if tree is None:
        return []
    return [
        InteractiveElement(generate(node, path), node.role, node.name, node.value, path)
        for node, path in walk(tree)
        if is_interactive(node)
    ]


def role_predicate(role: str) -> str:
    return ROLE_PREDICATES.get(role, f"@role={xpath_literal(role)}")


def selector_candidates(node: AXNode) -> list[str]:
    """Locators for `node` in priority order: role+text, role+value, role only."""
    role = f"//*[{role_predicate(node.role)}]"
    out: list[str] = []
    if node.name:
        lit = xpath_literal(node.name)
        text = (
            f"normalize-space(.)={lit} or @aria-label={lit} or @placeholder={lit} or @title={lit}"
            f" or @value={lit} or @alt={lit} or @id=//label[normalize-space(.)={lit}]/@for"
        )
        out.append(f"xpath={role}[{text}]")
    if node.value:
        out.append(f"xpath={role}[@value={xpath_literal(node.value)}]")
    out.append(f"xpath={role}")
    return out


def node_to_selector(node: AXNode, page: Any = None) -> str:
    """Derive an engine selector for `node`.

    Without a page the highest-priority candidate is returned as-is; with one, the first
    candidate that matches on the live page wins.
    """
    candidates = selector_candidates(node)
    if page is None:
        return candidates[0]

    def _exists(selector: str):
        def _try() -> str | None:
            try:
                return selector if page.count(selector) > 0 else None
            except (HttpClientError, SelectorNotFound) as exc:
                logger.debug("Ref selector %s failed: %s", selector, exc)
                return None

        return _try

    return first_success([_exists(s) for s in candidates]) or candidates[0]


class RefCache:
    """Persistent `code -> selector` map shared by every CLI invocation."""

    def __init__(self, store: JsonFileStore) -> None:
        self.store_file = store

    @staticmethod
    def _merge(items: dict[str, Any], scope: str, entries: dict[str, str]) -> dict[str, Any]:
        now_ms = int(time.time() * 1000)
        bucket = items.get(scope)
        if not isinstance(bucket, dict):
            bucket = {}
        for code, selector in entries.items():
            bucket[code] = {"selector": selector, "createdAt": now_ms}
        items[scope] = bucket
        return items

    def store_many(self, entries: dict[str, str], tab_scope: str | None = None) -> None:
        if not entries:
            return
        scope = tab_scope or GLOBAL_SCOPE
        try:
            self.store_file.update(lambda items: self._merge(items, scope, entries))
        except OSError as exc:
            logger.warning("Cannot persist %d element refs to %s: %s", len(entries), self.store_file.path, exc)

    def store(self, code: str, selector: str, tab_scope: str | None = None) -> None:
        self.store_many({code: selector}, tab_scope)

    def get(self, code: str, tab_scope: str | None = None) -> ElementRef | None:
        items = self.store_file.load()
        scopes = [tab_scope] if tab_scope and tab_scope != GLOBAL_SCOPE else []
        scopes.append(GLOBAL_SCOPE)
        for scope in scopes:
            bucket = items.get(scope)
            entry = bucket.get(code) if isinstance(bucket, dict) else None
            if isinstance(entry, dict) and isinstance(entry.get("selector"), str):
                created = entry.get("createdAt")
                if not isinstance(created, (int, float)) or isinstance(created, bool) or not math.isfinite(created):
                    created = 0
                return ElementRef(code, entry["selector"], scope, int(created))
        return None

    def lookup(self, code: str, tab_scope: str | None = None) -> str | None:
        """Selector stored for `code`, checking the tab's scope before the global one."""
        ref = self.get(code, tab_scope)
        return ref.selector if ref else None

    def resolve(self, page: Any, code: str, tab_scope: str | None = None) -> str:
        """Selector for `code`, re-deriving it from a fresh snapshot on a cache miss."""
        selector = self.lookup(code, tab_scope)
        if selector:
            return selector

        logger.info("Ref %s not cached; searching a fresh snapshot", code)
        hit = find_with_path(page.accessibility_snapshot(), code)
        if hit is None:
            raise RefNotFound(
                f"Element with ref {code} not found",
                operation="resolve ref",
                suggestion="Run `snapshot` again; the page may have changed",
                details={"ref": code, "tabScope": tab_scope or GLOBAL_SCOPE},
            )
        selector = node_to_selector(hit[0], page)
        self.store(code, selector, tab_scope)
        return selector
