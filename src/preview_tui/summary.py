"""Short metadata summary shown instead of raw binary content."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import subprocess
from typing import Optional

from PIL import Image, UnidentifiedImageError
from rich.console import Console
from rich.table import Table

from preview_tui.tools import Toolbox

logger = logging.getLogger(__name__)


def _extract_text(value: object | None) -> str | None:
    if value is None:
        return None
    if hasattr(value, "text"):
        value = getattr(value, "text")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, bytes):
        text = value.decode("utf-8", errors="replace")
    else:
        text = str(value)
    text = text.strip()
    return text or None


def _audio_rows(path: Path) -> list[tuple[str, str]]:
    try:
        from mutagen import File as MutagenFile
    except Exception:
        return []
    try:
        audio = MutagenFile(path, easy=True)
    except Exception:
        logger.debug("No audio tags in %s", path)
        return []
    if not audio:
        return []
    rows: list[tuple[str, str]] = []
    tags = getattr(audio, "tags", None) or {}
    for key in ("artist", "album", "title", "date", "genre"):
        getter = getattr(tags, "get", None)
        text = _extract_text(getter(key)) if getter else None
        if text:
            rows.append((key.capitalize(), text))
    info = getattr(audio, "info", None)
    length = getattr(info, "length", None)
    if isinstance(length, (int, float)) and length > 0:
        minutes, seconds = divmod(int(length), 60)
        rows.append(("Duration", f"{minutes}:{seconds:02d}"))
    bitrate = getattr(info, "bitrate", None)
    if isinstance(bitrate, int) and bitrate > 0:
        rows.append(("Bitrate", f"{bitrate // 1000} kbps"))
    return rows


def _image_rows(path: Path) -> list[tuple[str, str]]:
    try:
        with Image.open(path) as img:
            rows = [("Dimensions", f"{img.width}x{img.height}"), ("Mode", img.mode)]
            frames = getattr(img, "n_frames", 1)
    except (UnidentifiedImageError, OSError, ValueError):
        return []
    if frames > 1:
        rows.append(("Frames", str(frames)))
    return rows


def describe(path: Path, tools: Optional[Toolbox] = None) -> str:
    """Return the ``file -b`` description of ``path`` when available."""
    tools = tools or Toolbox()
    if not tools.has("file"):
        return ""
    try:
        completed = subprocess.run(
            ["file", "--brief", "--dereference", "--", str(path)],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return ""
    return completed.stdout.strip()


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def build_summary(path: Path, tools: Optional[Toolbox] = None) -> Table:
    """Build a two-column table describing ``path``."""
    table = Table(title=path.name, show_header=False, box=None, pad_edge=False)
    table.add_column("key", style="bold cyan", no_wrap=True)
    table.add_column("value", overflow="fold")
    description = describe(path, tools)
    if description:
        table.add_row("Type", description)
    try:
        info = path.stat()
    except OSError:
        table.add_row("Error", "cannot stat file")
        return table
    table.add_row("Size", _human_size(info.st_size))
    table.add_row(
        "Modified", datetime.fromtimestamp(info.st_mtime).strftime("%Y-%m-%d %H:%M")
    )
    table.add_row("Mode", oct(info.st_mode & 0o7777))
    for key, value in _image_rows(path) + _audio_rows(path):
        table.add_row(key, value)
    return table


def print_summary(
    path: Path,
    console: Optional[Console] = None,
    tools: Optional[Toolbox] = None,
) -> None:
    """Write the metadata summary for ``path`` to the preview pane."""
    console = console or Console()
    logger.debug("Showing metadata summary for %s", path)
    console.print(build_summary(path, tools))
