"""Per-invocation dependencies threaded through command handlers."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from ..config import BrowserConfig
from ..errors import BrowserCliError, InvalidArgument
from ..history import ActionHistory
from ..pool import ConnectionPool
from ..refs import GLOBAL_SCOPE, RefCache
from ..selectors import SelectorResolver
from ..state_store import JsonFileStore
from ..tabs import TabTarget

logger = logging.getLogger("pwcli.browser.commands")


@dataclass
class CommandContext:
    """Explicitly constructed pool/cache/history handles for one CLI process.

    `handle`, `target` and `page` are filled in by the registry for commands that need a
    browser or a page; handlers never reach for process-wide singletons.
    """

    config: BrowserConfig
    pool: Any
    refs: RefCache
    history: ActionHistory
    resolver: SelectorResolver = field(default_factory=SelectorResolver)
    handle: Any = None
    target: TabTarget | None = None
    page: Any = None
    explicit_tab_id: str | None = None

    @classmethod
    def from_config(cls, config: BrowserConfig) -> CommandContext:
        return cls(
            config=config,
            pool=ConnectionPool(config),
            refs=RefCache(JsonFileStore(config.refs_path, empty=dict)),
            history=ActionHistory(
                JsonFileStore(config.history_path, empty=list),
                limit=config.history_limit,
                retention_s=config.history_retention_s,
            ),
        )

    @property
    def tab_scope(self) -> str:
        """Refs are scoped to a tab only when the user addressed that tab by id."""
        return self.explicit_tab_id or GLOBAL_SCOPE

    @property
    def tab_id(self) -> str | None:
        return self.target.tab_id if self.target else None

    def locate(self, args: dict[str, Any], key: str = "target", ref_key: str = "ref") -> tuple[str, str]:
        """Turn a `--ref` code or a selector/text query into `(selector, label)`."""
        code = args.get(ref_key)
        query = args.get(key)
        if code:
            if query:
                raise InvalidArgument(
                    "Cannot specify both a ref and a target",
                    operation="locate element",
                    details={"ref": code, "target": query},
                )
            selector = self.refs.resolve(self.page, str(code), self.tab_scope)
            logger.info("Ref %s -> %s", code, selector)
            return selector, f"[ref={code}]"
        if not query:
            raise InvalidArgument(
                "Expected a selector, a text query or --ref",
                operation="locate element",
                suggestion="Pass the element's text, a CSS/XPath selector, or --ref <code> from `snapshot`",
            )
        candidate = self.resolver.resolve_or_raise(self.page, str(query), args.get("within"))
        logger.info("Query %r -> %s (%s)", query, candidate.selector, candidate.strategy)
        return candidate.selector, str(query)

    @contextmanager
    def acting_on(self, label: str) -> Iterator[None]:
        """Tag errors raised by a page action with the element the user asked for."""
        try:
            yield
        except BrowserCliError as exc:
            exc.details.setdefault("element", label)
            if label not in exc.reason:
                exc.reason = f"{exc.reason} (element {label})"
            raise

    def record(self, type: str, target: str = "", value: str | None = None) -> None:
        self.history.append(type, target, value=value, tab_id=self.tab_id)
