"""
Command-line entry point.

Every invocation is a short-lived process: it acquires a pooled browser connection,
resolves the target tab, runs one command and exits. A forced-exit guard bounds the
shutdown so a wedged browser transport can never keep the process alive.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
import threading
from typing import Any

from .commands import CommandContext, create_default_registry
from .config import BrowserConfig
from .errors import BrowserCliError, BrowserConnectionError, InvalidArgument
from .http_client import HttpClientError

logger = logging.getLogger("pwcli.browser")

EXIT_OK = 0
EXIT_FAILURE = 1


class CliParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors surface as `InvalidArgument` (exit code 1)."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise InvalidArgument(message, operation=self.prog, suggestion=f"Run `{self.prog} --help`")


def _common_options() -> argparse.ArgumentParser:
    common = CliParser(add_help=False)
    common.add_argument("--port", type=int, default=None, help="Remote debugging port (default: $PWCLI_PORT or 9222)")
    common.add_argument("--timeout", type=int, default=None, help="Per-operation timeout in ms (default: 5000)")
    # Mutual exclusion is checked by the tab resolver so it reports InvalidArgument.
    common.add_argument("--tab-index", dest="tab_index", type=int, default=None, help="Target tab by position")
    common.add_argument("--tab-id", dest="tab_id", default=None, help="Target tab by id")
    common.add_argument("-v", "--verbose", action="count", default=0, help="Log to stderr (-vv for debug)")
    return common


def build_parser() -> CliParser:
    common = _common_options()
    parser = CliParser(prog="pwcli", description="Stateless browser automation over the DevTools protocol")
    sub = parser.add_subparsers(dest="command", metavar="<command>", parser_class=CliParser)
    sub.required = True

    def add(name: str, help_text: str) -> argparse.ArgumentParser:
        return sub.add_parser(name, help=help_text, parents=[common])

    p = add("open", "Attach to (or launch) the browser and optionally open a URL")
    p.add_argument("url", nargs="?")

    p = add("navigate", "Navigate the target tab to a URL")
    p.add_argument("url")

    def element(p: argparse.ArgumentParser, *, required_extra: str | None = None) -> None:
        p.add_argument("target", nargs="?", help="Text, label, placeholder or CSS/XPath selector")
        if required_extra:
            p.add_argument(required_extra)
        p.add_argument("--ref", help="Element ref code printed by `snapshot`")
        p.add_argument("--within", help="Container selector to scope text queries to")

    p = add("click", "Click an element")
    element(p)
    p.add_argument("--double", action="store_true", help="Double-click")

    p = add("type", "Type text into an element")
    element(p, required_extra="text")

    p = add("fill", "Replace an input's value")
    element(p, required_extra="value")

    p = add("hover", "Hover over an element")
    element(p)

    p = add("select", "Select an option in a <select>")
    element(p, required_extra="value")

    p = add("drag", "Drag one element onto another")
    p.add_argument("source", nargs="?")
    p.add_argument("target")
    p.add_argument("--ref", help="Ref code of the element to drag")
    p.add_argument("--to-ref", dest="to_ref", help="Ref code of the drop target")
    p.add_argument("--within", help="Container selector to scope text queries to")

    p = add("press", "Press a key on the focused element")
    p.add_argument("key")

    p = add("eval", "Evaluate a JavaScript expression")
    p.add_argument("expression")

    p = add("snapshot", "Print interactive elements with ref codes")
    p.add_argument("--full", action="store_true", help="Print the whole accessibility tree")
    p.add_argument("--json", action="store_true", help="Print JSON")

    p = add("context", "Show the target tab's state and recent actions")
    p.add_argument("--limit", type=int, default=5)

    p = add("screenshot", "Save a screenshot")
    p.add_argument("--path", default="screenshot.png")
    p.add_argument("--full-page", dest="full_page", action="store_true")

    p = add("pdf", "Save the page as PDF (headless only)")
    p.add_argument("--path", default="page.pdf")

    p = add("tabs", "List, open, close or select tabs")
    p.add_argument("action", nargs="?", default="list", choices=["list", "new", "close", "select"])
    p.add_argument("--url", help="URL for `tabs new`")

    p = add("history", "Show recent actions")
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--clear", action="store_true")

    return parser


def configure_logging(verbose: int = 0) -> None:
    level_name = os.environ.get("PWCLI_LOG_LEVEL", "").upper()
    level = getattr(logging, level_name, None) if level_name else None
    if not isinstance(level, int):
        level = logging.WARNING
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = min(level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def config_from_args(args: argparse.Namespace, base: BrowserConfig | None = None) -> BrowserConfig:
    config = base or BrowserConfig.from_env()
    overrides: dict[str, Any] = {}
    if args.port is not None:
        overrides["cdp_port"] = args.port
    if args.timeout is not None:
        if args.timeout <= 0:
            raise InvalidArgument(
                f"Timeout must be positive, got {args.timeout}",
                operation="pwcli",
                details={"timeout": args.timeout},
            )
        overrides["timeout_ms"] = args.timeout
    return dataclasses.replace(config, **overrides) if overrides else config


def arm_exit_guard(ceiling_ms: int, code: int) -> threading.Timer:
    """Force the process to exit with `code` if shutdown runs past `ceiling_ms`."""
    timer = threading.Timer(max(0.0, ceiling_ms / 1000.0), os._exit, args=(code,))
    timer.daemon = True
    timer.start()
    return timer


def _report(exc: BrowserCliError) -> None:
    print(f"Error: {exc}", file=sys.stderr)
    if exc.details:
        logger.info("Error details: %s", exc.details)


def run(argv: list[str] | None = None, *, context: CommandContext | None = None) -> int:
    """Parse `argv`, run one command and return the process exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except InvalidArgument as exc:
        _report(exc)
        return EXIT_FAILURE

    configure_logging(args.verbose)
    code = EXIT_OK
    ctx = context
    try:
        config = config_from_args(args, context.config if context else None)
        if ctx is None:
            ctx = CommandContext.from_config(config)
        else:
            ctx.config = config
        registry = create_default_registry()
        result = registry.dispatch(args.command, ctx, vars(args))
        if result.output:
            print(result.output)
        if result.is_error:
            code = EXIT_FAILURE
    except BrowserCliError as exc:
        _report(exc)
        code = EXIT_FAILURE
    except HttpClientError as exc:
        _report(BrowserConnectionError(str(exc), operation=args.command))
        code = EXIT_FAILURE
    finally:
        if ctx is not None:
            ceiling = ctx.config.shutdown_ceiling_ms
            guard = arm_exit_guard(ceiling + 500, code)
            try:
                ctx.pool.shutdown(ceiling)
            finally:
                guard.cancel()
    return code


def main() -> None:
    """Console-script entry point."""
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
