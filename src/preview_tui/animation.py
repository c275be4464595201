"""Frame decomposition and playback for animated GIFs."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
import time
from typing import Callable, Iterator, Optional

from PIL import Image, ImageSequence, UnidentifiedImageError

from preview_tui.cache import PreviewCache

logger = logging.getLogger(__name__)

INDEX_NAME = "frames.json"
DEFAULT_FRAME_MS = 100
MIN_FRAME_MS = 20


@dataclass(frozen=True)
class Frame:
    path: Path
    duration_ms: int


def _index_suffix() -> str:
    return "/" + INDEX_NAME


def load_frames(index: Path) -> list[Frame]:
    """Read a frame index written by :func:`decompose`."""
    try:
        raw = json.loads(index.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return []
    if not isinstance(raw, list):
        return []
    frames: list[Frame] = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("file"), str):
            continue
        duration = item.get("duration")
        if not isinstance(duration, int):
            duration = DEFAULT_FRAME_MS
        frames.append(Frame(path=index.parent / item["file"], duration_ms=duration))
    return frames


def decompose(source: Path, cache: PreviewCache) -> list[Frame]:
    """Split ``source`` into a cached frame set, reusing a valid one.

    The frame set lives in a directory named after the source; the index
    file is written last, so an interrupted decomposition never counts as
    a cache hit.
    """
    entry = cache.lookup(source, _index_suffix())
    if entry is not None:
        frames = load_frames(entry.artifact)
        if frames:
            return frames
    cache.discard(source)
    index = cache.prepare(source, _index_suffix())
    directory = index.parent
    written: list[dict[str, object]] = []
    try:
        with Image.open(source) as img:
            for number, frame in enumerate(ImageSequence.Iterator(img)):
                name = f"frame-{number:04d}.png"
                frame.convert("RGBA").save(directory / name)
                duration = frame.info.get("duration", DEFAULT_FRAME_MS)
                written.append(
                    {"file": name, "duration": max(MIN_FRAME_MS, int(duration or 0))}
                )
    except (UnidentifiedImageError, OSError, ValueError):
        logger.exception("Cannot decompose %s", source)
        cache.discard(source)
        return []
    except BaseException:
        cache.discard(source)
        raise
    index.write_text(json.dumps(written), encoding="utf-8")
    logger.debug("Decomposed %s into %d frames", source, len(written))
    return load_frames(index)


def cycle(frames: list[Frame], loops: Optional[int] = None) -> Iterator[Frame]:
    """Yield frames forever, or ``loops`` times over."""
    played = 0
    while frames and (loops is None or played < loops):
        yield from frames
        played += 1


def play(
    frames: list[Frame],
    draw: Callable[[Path], bool],
    *,
    clear: Callable[[], None],
    sleep: Callable[[float], None] = time.sleep,
    loops: Optional[int] = None,
) -> int:
    """Clear, draw and hold each frame; returns the number of frames drawn.

    Runs until the job process is terminated unless ``loops`` is given.
    """
    drawn = 0
    for frame in cycle(frames, loops):
        clear()
        if not draw(frame.path):
            break
        drawn += 1
        sleep(frame.duration_ms / 1000.0)
    return drawn
