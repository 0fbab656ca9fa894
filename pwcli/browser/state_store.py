"""Small JSON state files shared between CLI invocations.

Design
- One JSON object per file: `{"version": 1, "updatedAt": <ms>, "items": ...}`.
- Atomic writes: write a per-process temp file, then replace.
- Fail-soft reads: missing, partially written or corrupt files load as empty.
- `update()` re-reads under a sidecar lock and merges, so two invocations writing
  close together do not drop each other's entries.

These files are advisory caches; deleting them never breaks correctness.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path
from typing import Any

from .file_lock import hold as hold_lock

logger = logging.getLogger("pwcli.browser.state")


class JsonFileStore:
    """File-backed key-value store behind a `load()`/`save()` interface."""

    def __init__(self, path: Path | str, empty: Callable[[], Any] = dict, lock_timeout: float = 2.0) -> None:
        self.path = Path(path)
        self._empty = empty
        self._lock_timeout = lock_timeout

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".lock")

    def load(self) -> Any:
        p = self.path
        try:
            if not p.is_file():
                return self._empty()
            obj = json.loads(p.read_text(encoding="utf-8", errors="replace"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", p, exc)
            return self._empty()

        if not isinstance(obj, dict):
            logger.warning("Ignoring state file %s: top-level value is not an object", p)
            return self._empty()

        items = obj.get("items")
        empty = self._empty()
        if not isinstance(items, type(empty)):
            return empty
        return items

    def save(self, items: Any) -> dict[str, Any]:
        p = self.path
        p.parent.mkdir(parents=True, exist_ok=True)

        now_ms = int(time.time() * 1000)
        payload = {"version": 1, "updatedAt": now_ms, "items": items}
        text = json.dumps(payload, ensure_ascii=True, indent=2, sort_keys=True)

        tmp = p.with_name(f"{p.name}.{os.getpid()}.tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            with suppress(OSError):
                os.chmod(tmp, 0o600)
            os.replace(tmp, p)
        finally:
            with suppress(OSError):
                tmp.unlink()

        return {"ok": True, "path": str(p), "updatedAt": now_ms}

    def update(self, fn: Callable[[Any], Any]) -> Any:
        """Read-merge-write: `fn` receives the current on-disk items and returns the new items."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with hold_lock(self.lock_path, timeout=self._lock_timeout):
            items = fn(self.load())
            self.save(items)
            return items

    def clear(self) -> None:
        with suppress(FileNotFoundError):
            self.path.unlink()
