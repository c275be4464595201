"""Command-line interface for preview-tui."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
import sys
from typing import Iterable, Optional

from rich.console import Console

from preview_tui.classifier import ContentClass
from preview_tui.config import SessionConfig
from preview_tui.errors import PreviewError
from preview_tui.logging_setup import init_logging, set_console_level

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="preview-tui", description="Live previews for terminal file browsers"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )
    commands = parser.add_subparsers(dest="command")

    toggle = commands.add_parser("toggle", help="Open or close the preview pane")
    toggle.add_argument(
        "path",
        nargs="?",
        default="",
        help="Entry to preview first",
    )

    commands.add_parser("render", help="Run the renderer in the current pane")

    job = commands.add_parser("job", help="Render a single entry (internal)")
    job.add_argument(
        "--content-class",
        choices=[item.value for item in ContentClass],
        default=None,
    )
    job.add_argument("path")

    parser.set_defaults(command="toggle", path="")
    return parser


def report_error(exc: PreviewError, console: Optional[Console] = None) -> None:
    """Show a session-aborting problem once and wait for acknowledgement."""
    console = console or Console(stderr=True)
    console.print(f"[bold red]preview-tui:[/] {exc}")
    try:
        console.input("Press [bold]enter[/] to continue")
    except EOFError:
        pass


def _run_toggle(path: str) -> int:
    from preview_tui.supervisor import toggle

    if not path:
        path = os.getcwd()
    toggle(os.path.abspath(path))
    return 0


def _run_render() -> int:
    from preview_tui.engine import run_engine

    return run_engine(SessionConfig.from_env(os.environ))


def _run_job(path: str, content_class: Optional[str]) -> int:
    from preview_tui.job import run_job

    cls = ContentClass(content_class) if content_class else None
    return run_job(SessionConfig.from_env(os.environ), Path(path), cls)


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    init_logging(console=args.command == "toggle")
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        set_console_level(logging.DEBUG)

    def excepthook(exc_type, exc, tb) -> None:
        logger.exception("Uncaught exception", exc_info=(exc_type, exc, tb))
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = excepthook

    try:
        if args.command == "render":
            return _run_render()
        if args.command == "job":
            return _run_job(args.path, args.content_class)
        return _run_toggle(args.path)
    except PreviewError as exc:
        logger.error("%s", exc)
        report_error(exc)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
