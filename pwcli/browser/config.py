from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")

# Looked up on PATH, in order. Snap builds come last: they ignore --user-data-dir.
BROWSER_COMMANDS = ("chromium", "chromium-browser", "google-chrome", "google-chrome-stable", "chrome")
BROWSER_APP_PATHS = (
    "/opt/chromium/chromium",
    "/opt/google/chrome/chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
)

ATTACH_MODES = frozenset({"attach", "connect", "external"})


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def default_state_dir() -> str:
    return str(Path(tempfile.gettempdir()) / "pwcli")


def _env(name: str, parse: Callable[[str], T], fallback: T) -> T:
    """Parsed value of env var `name`; unset, blank or unparsable values give `fallback`."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return fallback
    try:
        return parse(raw)
    except ValueError:
        return fallback


@dataclass
class BrowserConfig:
    binary_path: str
    profile_path: str
    cdp_port: int = 9222
    mode: str = "launch"
    extra_flags: list[str] = field(default_factory=list)
    headless: bool = True
    state_dir: str = field(default_factory=default_state_dir)
    timeout_ms: int = 5000
    launch_timeout_s: float = 10.0
    health_timeout_s: float = 0.5
    health_retries: int = 3
    pool_idle_s: float = 60.0
    shutdown_ceiling_ms: int = 3000
    history_limit: int = 10
    history_retention_s: float = 24 * 60 * 60

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        """`attach` never launches a browser; anything else may launch one."""
        return "attach" if (raw or "").strip().lower() in ATTACH_MODES else "launch"

    @staticmethod
    def detect_binary() -> str:
        configured = os.environ.get("PWCLI_BROWSER_BINARY")
        if configured:
            return expand_path(configured)
        for name in BROWSER_COMMANDS:
            found = shutil.which(name)
            if found and not found.startswith("/snap/"):
                return found
        for app in BROWSER_APP_PATHS:
            if os.access(app, os.X_OK):
                return app
        return "chromium"

    @classmethod
    def from_env(cls) -> BrowserConfig:
        flags = os.environ.get("PWCLI_BROWSER_FLAGS", "")
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(os.environ.get("PWCLI_BROWSER_PROFILE", "~/.cache/pwcli/browser-profile")),
            cdp_port=_env("PWCLI_PORT", int, 9222),
            mode=cls.normalize_mode(os.environ.get("PWCLI_MODE")),
            extra_flags=[f.strip() for f in flags.split(",") if f.strip()],
            headless=os.environ.get("PWCLI_HEADLESS", "1") != "0",
            state_dir=expand_path(os.environ.get("PWCLI_STATE_DIR") or default_state_dir()),
            timeout_ms=_env("PWCLI_TIMEOUT", int, 5000),
            launch_timeout_s=_env("PWCLI_LAUNCH_TIMEOUT", float, 10.0),
            health_timeout_s=_env("PWCLI_HEALTH_TIMEOUT", float, 0.5),
            health_retries=max(1, _env("PWCLI_HEALTH_RETRIES", int, 3)),
            pool_idle_s=_env("PWCLI_POOL_IDLE", float, 60.0),
            shutdown_ceiling_ms=_env("PWCLI_SHUTDOWN_CEILING", int, 3000),
            history_limit=max(1, _env("PWCLI_HISTORY_LIMIT", int, 10)),
            history_retention_s=_env("PWCLI_HISTORY_RETENTION", float, 24 * 60 * 60),
        )

    @property
    def refs_path(self) -> Path:
        return Path(self.state_dir) / "refs.json"

    @property
    def history_path(self) -> Path:
        return Path(self.state_dir) / "actions.json"

    @property
    def launch_lock_path(self) -> Path:
        return Path(self.state_dir) / f"launch-{self.cdp_port}.lock"
