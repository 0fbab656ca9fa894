"""Tab targeting: pick the page a command operates on.

Targets are resolved fresh on every command. Tab ids are stable engine-assigned
identifiers; tab indexes are positions in the current page list and shift whenever a
tab is opened or closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .errors import InvalidArgument, TabNotFound

logger = logging.getLogger("pwcli.browser.tabs")


@dataclass(frozen=True)
class TabTarget:
    tab_id: str
    tab_index: int
    url: str = ""
    title: str = ""
    created: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"tabId": self.tab_id, "tabIndex": self.tab_index, "url": self.url, "title": self.title}


def validate_tab_args(tab_index: int | None = None, tab_id: str | None = None) -> None:
    """Reject contradictory or malformed tab selectors. Performs no I/O."""
    if tab_index is not None and tab_id is not None:
        raise InvalidArgument(
            "Cannot specify both tabIndex and tabId",
            operation="resolve tab",
            suggestion="Pass either --tab-index or --tab-id",
            details={"tabIndex": tab_index, "tabId": tab_id},
        )
    if tab_index is not None and tab_index < 0:
        raise InvalidArgument(
            f"Tab index {tab_index} must not be negative",
            operation="resolve tab",
            details={"tabIndex": tab_index},
        )
    if tab_id is not None and not str(tab_id).strip():
        raise InvalidArgument("Tab id must not be empty", operation="resolve tab", details={"tabId": tab_id})


def resolve(handle: Any, tab_index: int | None = None, tab_id: str | None = None) -> TabTarget:
    """Resolve the target page on a pooled browser handle.

    - `tab_id`: the page with that id, else `TabNotFound`.
    - `tab_index`: position in the enumeration order, else `TabNotFound`.
    - neither: the most recently active page, then the first page, then a new blank page.
    """
    validate_tab_args(tab_index, tab_id)
    pages = handle.list_pages()

    if tab_id is not None:
        for i, page in enumerate(pages):
            if page.tab_id == tab_id:
                return TabTarget(page.tab_id, i, page.url, page.title)
        raise TabNotFound(
            f"Tab with ID {tab_id} not found",
            operation="resolve tab",
            suggestion="Run `tabs list` to see open tabs; the tab may have been closed",
            details={"tabId": tab_id, "available": [p.tab_id for p in pages]},
        )

    if tab_index is not None:
        if tab_index >= len(pages):
            available = f"0-{len(pages) - 1}" if pages else "none"
            raise TabNotFound(
                f"Tab index {tab_index} is out of bounds. Available tabs: {available}",
                operation="resolve tab",
                suggestion="Run `tabs list` to see open tabs",
                details={"tabIndex": tab_index, "count": len(pages)},
            )
        page = pages[tab_index]
        return TabTarget(page.tab_id, tab_index, page.url, page.title)

    active_id = handle.active_page_id()
    for i, page in enumerate(pages):
        if page.tab_id == active_id:
            return TabTarget(page.tab_id, i, page.url, page.title)
    if pages:
        return TabTarget(pages[0].tab_id, 0, pages[0].url, pages[0].title)

    logger.info("No open pages; creating a blank one")
    new_id = handle.new_page("about:blank")
    return TabTarget(new_id, 0, "about:blank", "", created=True)
