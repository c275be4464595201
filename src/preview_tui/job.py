"""A render job: draws one selection, then exits or is terminated."""

from __future__ import annotations

import logging
from pathlib import Path
import shutil
import signal
import sys
from types import FrameType
from typing import Optional

from preview_tui.classifier import ContentClass, classify_path
from preview_tui.config import SessionConfig
from preview_tui.handlers import RenderContext, render
from preview_tui.tools import CommandRunner

logger = logging.getLogger(__name__)


def install_cancel_handlers(runner: CommandRunner) -> None:
    """On SIGTERM/SIGHUP signal our children, then unwind and exit.

    The children are waited for by :func:`run_job` once unwound.
    """

    def handler(signum: int, frame: Optional[FrameType]) -> None:
        del frame
        runner.terminate_children()
        # Unwinding lets producers drop partial artifacts on the way out.
        sys.exit(128 + signum)

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGHUP, handler)


def run_job(
    config: SessionConfig,
    path: Path,
    content_class: Optional[ContentClass] = None,
    *,
    context: Optional[RenderContext] = None,
) -> int:
    """Render ``path`` into the pane and return an exit status."""
    if context is None:
        size = shutil.get_terminal_size()
        context = RenderContext.create(config, columns=size.columns, rows=size.lines)
    install_cancel_handlers(context.runner)
    try:
        if not path.exists():
            logger.info("Selection %s no longer exists", path)
            return 1
        if content_class is None:
            content_class = classify_path(path, context.tools)
        render(context, path, content_class)
        return 0
    finally:
        context.runner.reap_children()
