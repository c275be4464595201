"""Image overlay layer for terminals without inline graphics."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import subprocess
from typing import Optional

from preview_tui.channels import make_fifo, remove_path, write_nonblocking
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)

IDENTIFIER = "preview"
FIFO_NAME = "overlay.fifo"
LISTENERS = ("ueberzug", "ueberzugpp")


def read_offset(path: Path) -> tuple[int, int]:
    """Return the persisted ``(x, y)`` placement offset, default ``(0, 0)``."""
    try:
        parts = path.read_text(encoding="utf-8").split()
    except OSError:
        return (0, 0)
    try:
        return (int(parts[0]), int(parts[1]))
    except (IndexError, ValueError):
        logger.debug("Ignoring malformed offset file %s", path)
        return (0, 0)


def fifo_path(runtime_dir: Path) -> Path:
    return runtime_dir / FIFO_NAME


class OverlayChannel:
    """Append-only writer of add/remove commands for the overlay listener."""

    def __init__(self, fifo: Path) -> None:
        self._fifo = fifo

    @property
    def fifo(self) -> Path:
        return self._fifo

    def available(self) -> bool:
        return self._fifo.exists()

    def add(
        self,
        path: Path,
        *,
        x: int,
        y: int,
        width: int,
        height: int,
        identifier: str = IDENTIFIER,
    ) -> bool:
        command = {
            "action": "add",
            "identifier": identifier,
            "x": x,
            "y": y,
            "width": width,
            "height": height,
            "scaler": "fit_contain",
            "path": str(path),
        }
        return self._send(command)

    def remove(self, identifier: str = IDENTIFIER) -> bool:
        return self._send({"action": "remove", "identifier": identifier})

    def _send(self, command: dict) -> bool:
        return write_nonblocking(self._fifo, json.dumps(command) + "\n")


def start_listener(
    runtime_dir: Path,
    tools: Optional[Toolbox] = None,
    runner: Optional[CommandRunner] = None,
) -> Optional[subprocess.Popen]:
    """Create the command conduit and start the overlay listener on it."""
    tools = tools or Toolbox()
    runner = runner or CommandRunner()
    program = tools.first(*LISTENERS)
    if program is None:
        return None
    fifo = fifo_path(runtime_dir)
    if not make_fifo(fifo):
        return None
    # Read-write keeps a writer attached, so the listener never sees EOF
    # between commands and opening does not block.
    try:
        fd = os.open(fifo, os.O_RDWR | os.O_NONBLOCK)
    except OSError as exc:
        logger.warning("Overlay disabled, cannot open %s: %s", fifo, exc)
        remove_path(fifo)
        return None
    os.set_blocking(fd, True)
    try:
        proc = runner.spawn(
            [program, "layer", "--silent", "--parser", "json"], stdin=fd
        )
    finally:
        os.close(fd)
    if proc is None:
        remove_path(fifo)
        return None
    logger.info("Overlay listener %s started pid=%s", program, proc.pid)
    return proc
