from __future__ import annotations

import contextlib
import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import BrowserConfig, expand_path
from .file_lock import hold as hold_lock
from .http_client import HttpClientError, http_get_json

logger = logging.getLogger("pwcli.browser.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str
    attached: bool = False

    @property
    def ok(self) -> bool:
        return self.started or self.attached


class BrowserLauncher:
    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig.from_env()
        self.process: subprocess.Popen | None = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.config.cdp_port}"

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the CDP HTTP endpoint responds."""
        try:
            http_get_json(f"{self.base_url}/json/version", timeout=timeout)
        except HttpClientError:
            return False
        return True

    def _port_available(self, timeout: float = 0.2) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            try:
                result = sock.connect_ex(("127.0.0.1", self.config.cdp_port))
                return result != 0
            except OSError:
                return False

    def _build_common_flags(self) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={expand_path(self.config.profile_path)}",
            "--remote-allow-origins=*",
            "--disable-fre",
            "--no-first-run",
            "--no-default-browser-check",
        ]

        # Add --no-sandbox for portable chromium builds
        if "vendor/chromium" in self.config.binary_path:
            flags.append("--no-sandbox")

        if self.config.headless:
            flags.append("--headless=new")
        elif "--start-minimized" not in self.config.extra_flags:
            flags.append("--start-maximized")

        return flags

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = self._build_common_flags() + self.config.extra_flags
        if extra:
            flags.extend(extra)
        # Open on a blank page so the first command has something to resolve against.
        return [self.config.binary_path, *flags, "about:blank"]

    def _spawn(self, timeout: float) -> LaunchResult:
        cmd = self.build_launch_command()
        with contextlib.suppress(OSError):
            Path(expand_path(self.config.profile_path)).mkdir(parents=True, exist_ok=True)
        try:
            # The browser must outlive this short-lived process, so detach it from our session.
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            return LaunchResult(cmd, False, f"Cannot start {self.config.binary_path}: {exc}")

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.cdp_ready():
                return LaunchResult(cmd, True, "Browser launched")
            if self.process.poll() is not None:
                return LaunchResult(cmd, False, f"Browser exited early with code {self.process.returncode}")
            time.sleep(0.1)
        return LaunchResult(cmd, False, "Browser launch timed out")

    def ensure_running(self, timeout: float | None = None) -> LaunchResult:
        """Attach to the browser listening on the configured port, launching one if allowed.

        The listening endpoint is the only source of truth: the check is repeated while
        holding the per-port launch lock so concurrent invocations converge on one browser.
        """
        timeout = self.config.launch_timeout_s if timeout is None else timeout
        port = self.config.cdp_port

        if self.cdp_ready():
            logger.info("Attaching to browser already listening on port %s", port)
            return LaunchResult([], False, "Attached to existing browser on CDP port", attached=True)

        if self.config.mode == "attach":
            if self._port_available():
                return LaunchResult(
                    [],
                    False,
                    f"Attach mode: no browser listening on CDP port {port} (start it with --remote-debugging-port)",
                )
            return LaunchResult(
                [],
                False,
                f"Attach mode: port {port} is in use but CDP is not reachable",
            )

        with hold_lock(self.config.launch_lock_path, timeout=timeout) as locked:
            if not locked:
                logger.warning("Launch lock %s not acquired within %.1fs", self.config.launch_lock_path, timeout)
            if self.cdp_ready():
                logger.info("Browser on port %s came up while waiting for the launch lock", port)
                return LaunchResult([], False, "Attached to browser launched by another invocation", attached=True)
            if not self._port_available():
                return LaunchResult([], False, f"Port {port} already in use but CDP is not reachable")
            logger.info("No browser on port %s; launching %s", port, self.config.binary_path)
            return self._spawn(timeout)

    def cdp_version(self, timeout: float = 0.8) -> dict[str, Any]:
        payload = http_get_json(f"{self.base_url}/json/version", timeout=timeout)
        return payload if isinstance(payload, dict) else {}

    def browser_ws_url(self, timeout: float = 0.8) -> str:
        ws_url = self.cdp_version(timeout=timeout).get("webSocketDebuggerUrl")
        if not isinstance(ws_url, str) or not ws_url:
            raise HttpClientError(f"No browser WebSocket URL advertised on port {self.config.cdp_port}")
        return ws_url

    def list_targets(self, timeout: float = 0.5) -> list[dict[str, Any]]:
        """Targets from /json/list, most recently activated first."""
        try:
            payload = http_get_json(f"{self.base_url}/json/list", timeout=timeout)
        except HttpClientError:
            return []
        return [t for t in payload if isinstance(t, dict)] if isinstance(payload, list) else []
