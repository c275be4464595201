"""Placement of images and video in the preview pane."""

from __future__ import annotations

import enum
import logging
import os
from pathlib import Path
import shlex
from typing import Mapping, Optional

from preview_tui.config import SessionConfig
from preview_tui.overlay import OverlayChannel, fifo_path, read_offset
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)


class ImageBackend(enum.Enum):
    KITTY = "kitty"
    KITTY_PASSTHROUGH = "kitty-passthrough"
    TERMINAL_CLI = "terminal-cli"
    OVERLAY = "overlay"
    CUSTOM = "custom"


def select_backend(
    config: SessionConfig,
    tools: Toolbox,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[ImageBackend]:
    """Return the first image backend usable in this environment."""
    if env is None:
        env = os.environ
    kind = config.terminal_kind
    if kind == "kitty" and tools.has("kitty"):
        return ImageBackend.KITTY
    if kind == "tmux" and env.get("KITTY_WINDOW_ID") and tools.has("kitty"):
        return ImageBackend.KITTY_PASSTHROUGH
    if kind == "wezterm" and tools.has("wezterm"):
        return ImageBackend.TERMINAL_CLI
    if kind == "iterm" and tools.has("imgcat"):
        return ImageBackend.TERMINAL_CLI
    if fifo_path(config.runtime_dir).exists():
        return ImageBackend.OVERLAY
    if config.image_prog:
        words = shlex.split(config.image_prog)
        if words and tools.has(words[0]):
            return ImageBackend.CUSTOM
    return None


def image_command(
    backend: ImageBackend,
    config: SessionConfig,
    image: Path,
    columns: int,
    rows: int,
) -> Optional[list[str]]:
    """Build the argument vector that draws ``image`` in the pane."""
    width = max(1, columns - 2)
    height = max(1, rows - 2)
    if backend in (ImageBackend.KITTY, ImageBackend.KITTY_PASSTHROUGH):
        argv = [
            "kitty",
            "+kitten",
            "icat",
            "--silent",
            "--scale-up",
            "--place",
            f"{width}x{height}@0x0",
            "--transfer-mode=stream",
            "--stdin=no",
        ]
        if backend is ImageBackend.KITTY_PASSTHROUGH:
            argv.append("--passthrough=tmux")
        return argv + [str(image)]
    if backend is ImageBackend.TERMINAL_CLI:
        if config.terminal_kind == "wezterm":
            return [
                "wezterm",
                "imgcat",
                "--width",
                str(width),
                "--height",
                str(height),
                str(image),
            ]
        return ["imgcat", str(image)]
    if backend is ImageBackend.CUSTOM:
        return shlex.split(config.image_prog) + [str(image)]
    return None


class ImageDisplay:
    """Draws images with whichever backend the session supports."""

    def __init__(
        self,
        config: SessionConfig,
        tools: Toolbox,
        runner: CommandRunner,
        *,
        columns: int,
        rows: int,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config = config
        self._runner = runner
        self._columns = columns
        self._rows = rows
        self.backend = select_backend(config, tools, env)

    @property
    def available(self) -> bool:
        return self.backend is not None

    @property
    def animates(self) -> bool:
        """True when frames can be redrawn in place fast enough to animate."""
        return self.backend in (
            ImageBackend.KITTY,
            ImageBackend.KITTY_PASSTHROUGH,
            ImageBackend.OVERLAY,
        )

    def show(self, image: Path) -> bool:
        """Draw ``image``; return False when no backend could do it."""
        if self.backend is None:
            return False
        if self.backend is ImageBackend.OVERLAY:
            x, y = read_offset(self._config.offset_file)
            channel = OverlayChannel(fifo_path(self._config.runtime_dir))
            return channel.add(
                image, x=x, y=y, width=self._columns, height=self._rows
            )
        argv = image_command(
            self.backend, self._config, image, self._columns, self._rows
        )
        if argv is None:
            return False
        status = self._runner.run(argv)
        if status != 0:
            logger.info("%s exited with %s for %s", argv[0], status, image)
            return False
        return True

    def clear(self) -> None:
        if self.backend in (ImageBackend.KITTY, ImageBackend.KITTY_PASSTHROUGH):
            self._runner.run(
                ["kitty", "+kitten", "icat", "--clear", "--silent"], quiet=True
            )
        elif self.backend is ImageBackend.OVERLAY:
            OverlayChannel(fifo_path(self._config.runtime_dir)).remove()


def video_command(config: SessionConfig, media: Path) -> Optional[list[str]]:
    """Build the playback command for the configured video backend."""
    backend = config.video_backend.strip()
    if not backend:
        return None
    if backend == "mpv":
        output = "kitty" if config.terminal_kind == "kitty" else "tct"
        return [
            "mpv",
            "--no-config",
            "--really-quiet",
            "--loop-file=inf",
            "--mute=yes",
            f"--vo={output}",
            str(media),
        ]
    return shlex.split(backend) + [str(media)]
