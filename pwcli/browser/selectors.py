"""
Selector strategy resolver.

Turns a fuzzy user query ("Submit", "Email", "Search...") into an engine selector by
trying strategies in a fixed priority order; the first one that matches an element on
the live page wins:

    exactText > partialText > ariaLabel > placeholder > labelFor > nameAttr > idAttr > cssFallback

Each strategy is a pure function `query -> selector | None`, so each one can be tested
without a browser. When several elements match at the winning level, the first in
document order is used and a warning is logged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import SelectorNotFound
from .http_client import HttpClientError

logger = logging.getLogger("pwcli.browser.selectors")

T = TypeVar("T")

# Elements a user can click by their visible text. Labels are reached through labelFor.
TEXT_TARGETS = (
    "self::button or self::a or self::summary or self::option"
    " or @role='button' or @role='link' or @role='menuitem' or @role='tab'"
    " or @role='checkbox' or @role='radio' or @role='switch' or @role='option'"
)
BUTTON_INPUTS = "self::input and (@type='button' or @type='submit' or @type='reset')"
FIELDS = ("input", "textarea", "select", "button")

VALID_TAGS = frozenset(
    {
        "a", "button", "div", "span", "p", "h1", "h2", "h3", "h4", "h5", "h6",
        "input", "textarea", "select", "form", "label", "img", "video", "audio",
        "ul", "ol", "li", "table", "tr", "td", "th", "thead", "tbody", "tfoot",
        "header", "footer", "nav", "main", "section", "article", "aside",
        "iframe", "canvas", "svg", "body", "html", "option", "summary", "details",
    }
)  # fmt: skip

_CSS_PATTERNS = [
    re.compile(r"^#[\w-]+$"),  # #id
    re.compile(r"^\.[\w-]+(\.[\w-]+)*$"),  # .class
    re.compile(r"^\[.+\]$"),  # [attr]
    re.compile(r"^[a-zA-Z][\w-]*[#.\[:].*$"),  # tag#id, tag.class, tag[attr], tag:pseudo
    re.compile(r"[>+~]"),  # combinators
    re.compile(r"^:[\w-]+"),  # :pseudo
    re.compile(r"::[\w-]+"),  # ::pseudo-element
]


@dataclass(frozen=True)
class SelectorCandidate:
    selector: str
    strategy: str
    count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "strategy": self.strategy, "count": self.count}


def first_success(attempts: Iterable[Callable[[], T | None]]) -> T | None:
    """Call each attempt in order; return the first non-None result."""
    for attempt in attempts:
        result = attempt()
        if result is not None:
            return result
    return None


def xpath_literal(text: str) -> str:
    """Quote `text` as an XPath 1.0 string literal."""
    if "'" not in text:
        return f"'{text}'"
    if '"' not in text:
        return f'"{text}"'
    parts = text.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


def css_string(text: str) -> str:
    """Quote `text` as a CSS string for attribute selectors."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def looks_like_selector(query: str) -> bool:
    """True when `query` is syntactically an engine-native selector rather than free text."""
    q = query.strip()
    if not q:
        return False
    if q.startswith(("xpath=", "css=", "//")) or " >> " in q:
        return True
    if " " in q and not re.search(r"[>+~]", q):
        return False
    if re.fullmatch(r"[a-zA-Z][\w-]*", q):
        return q.lower() in VALID_TAGS
    return any(p.search(q) for p in _CSS_PATTERNS)


# ─────────────────────────────────────────────────────────────────────────
# Strategies
# ─────────────────────────────────────────────────────────────────────────


def exact_text(query: str) -> str | None:
    lit = xpath_literal(query.strip())
    return f"xpath=//*[({TEXT_TARGETS}) and normalize-space(.)={lit} or ({BUTTON_INPUTS}) and @value={lit}]"


def partial_text(query: str) -> str | None:
    lit = xpath_literal(query.strip())
    return (
        f"xpath=//*[({TEXT_TARGETS}) and contains(normalize-space(.), {lit})"
        f" or ({BUTTON_INPUTS}) and contains(@value, {lit})]"
    )


def aria_label(query: str) -> str | None:
    return f"[aria-label*={css_string(query)} i]"


def placeholder(query: str) -> str | None:
    q = css_string(query)
    return f"input[placeholder*={q} i], textarea[placeholder*={q} i]"


def label_for(query: str) -> str | None:
    lit = xpath_literal(query.strip())
    label = f"contains(normalize-space(.), {lit})"
    return (
        "xpath=//*[(self::input or self::textarea or self::select)"
        f" and (@id=//label[{label}]/@for or ancestor::label[{label}])]"
    )


def name_attr(query: str) -> str | None:
    if not query or any(ch.isspace() for ch in query):
        return None
    q = css_string(query)
    return ", ".join(f"{tag}[name={q}]" for tag in FIELDS)


def id_attr(query: str) -> str | None:
    if not query or any(ch.isspace() for ch in query):
        return None
    q = css_string(query)
    return ", ".join(f"{tag}[id={q}]" for tag in FIELDS)


def css_fallback(query: str) -> str | None:
    return query.strip() if looks_like_selector(query) else None


STRATEGIES: list[tuple[str, Callable[[str], str | None]]] = [
    ("exactText", exact_text),
    ("partialText", partial_text),
    ("ariaLabel", aria_label),
    ("placeholder", placeholder),
    ("labelFor", label_for),
    ("nameAttr", name_attr),
    ("idAttr", id_attr),
    ("cssFallback", css_fallback),
]

# The raw fallback is taken as-is; the engine reports not-found when it is used.
UNCHECKED_STRATEGIES = frozenset({"cssFallback"})


def scoped(selector: str, scope: str | None) -> str:
    return f"{scope} >> {selector}" if scope else selector


def _count(page: Any, selector: str) -> int:
    """Matches for `selector`; a selector the page cannot evaluate matches nothing.

    Timeouts propagate: a strategy that could not be checked must not be skipped.
    """
    try:
        return int(page.count(selector))
    except (HttpClientError, SelectorNotFound) as exc:
        logger.debug("Selector %s could not be evaluated: %s", selector, exc)
        return 0


class SelectorResolver:
    """Resolve fuzzy queries against a live page."""

    def __init__(self, strategies: list[tuple[str, Callable[[str], str | None]]] | None = None) -> None:
        self.strategies = list(strategies or STRATEGIES)

    @property
    def strategy_names(self) -> list[str]:
        return [name for name, _ in self.strategies]

    def _attempt(self, page: Any, query: str, name: str, build: Callable[[str], str | None], scope: str | None):
        def _run() -> SelectorCandidate | None:
            raw = build(query)
            if raw is None:
                return None
            selector = scoped(raw, scope)
            if name in UNCHECKED_STRATEGIES:
                return SelectorCandidate(selector, name, 0)
            n = _count(page, selector)
            if n <= 0:
                return None
            if n > 1:
                logger.warning(
                    "Query %r matched %d elements via %s; using the first in document order", query, n, name
                )
            return SelectorCandidate(selector, name, n)

        return _run

    def resolve(self, page: Any, query: str, scope: str | None = None) -> SelectorCandidate | None:
        if not query or not query.strip():
            return None
        return first_success(self._attempt(page, query, name, build, scope) for name, build in self.strategies)

    def resolve_or_raise(self, page: Any, query: str, scope: str | None = None) -> SelectorCandidate:
        candidate = self.resolve(page, query, scope)
        if candidate is None:
            tried = ", ".join(n for n in self.strategy_names if n not in UNCHECKED_STRATEGIES)
            raise SelectorNotFound(
                f"No element matches {query!r} (tried: {tried})",
                operation="resolve selector",
                suggestion="Use `snapshot` to find a ref, or pass a CSS/XPath selector",
                details={"query": query, "scope": scope, "strategies": self.strategy_names},
            )
        return candidate


def resolve(page: Any, query: str, scope: str | None = None) -> SelectorCandidate | None:
    return SelectorResolver().resolve(page, query, scope)
