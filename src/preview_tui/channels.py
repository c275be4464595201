"""Named-conduit channels shared with the file browser."""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
import stat
from typing import IO, Iterator, Optional

logger = logging.getLogger(__name__)

CLOSE_EVENT = "close"


class HoverChannel:
    """Blocking, single-consumer reader of hovered paths.

    Iterating yields one non-empty line per event. The reserved ``close``
    token is yielded like any other event; end-of-file stops iteration.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._handle: Optional[IO[str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> bool:
        """Open the conduit, returning False when it is unavailable."""
        if self._handle is not None:
            return True
        try:
            self._handle = open(
                self._path, "r", encoding="utf-8", errors="surrogateescape"
            )
        except OSError:
            logger.info("Hover channel %s unavailable", self._path)
            return False
        return True

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        except OSError:
            pass
        self._handle = None

    def __iter__(self) -> Iterator[str]:
        if not self.open():
            return
        assert self._handle is not None
        for line in self._handle:
            event = line.rstrip("\r\n")
            if event:
                yield event
        logger.debug("Hover channel reached end of file")

    def __enter__(self) -> "HoverChannel":
        self.open()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


def write_nonblocking(path: Path, payload: str) -> bool:
    """Write ``payload`` without blocking; return False on a silent drop."""
    if not str(path):
        return False
    try:
        fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
    except OSError as exc:
        if exc.errno == errno.ENXIO:
            logger.debug("No reader on %s, dropping %r", path, payload)
        else:
            logger.debug("Cannot open %s: %s", path, exc)
        return False
    try:
        os.write(fd, payload.encode("utf-8"))
    except OSError as exc:
        logger.debug("Write to %s failed: %s", path, exc)
        return False
    finally:
        os.close(fd)
    return True


def signal_session(path: str, active: bool) -> bool:
    """Tell the browser whether a preview session is live."""
    if not path:
        return False
    return write_nonblocking(Path(path), "1" if active else "0")


def read_preview_control(path: str) -> Optional[bool]:
    """Read the one-byte preview-control flag, or None when disabled."""
    if not path:
        return None
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    except OSError:
        logger.debug("Preview-control channel %s unavailable", path)
        return None
    try:
        data = os.read(fd, 1)
    except OSError:
        return None
    finally:
        os.close(fd)
    if not data:
        return None
    return data != b"0"


def make_fifo(path: Path) -> bool:
    """Create a FIFO at ``path``; return False when that is not possible."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            if stat.S_ISFIFO(path.stat().st_mode):
                return True
            path.unlink()
        os.mkfifo(path, 0o600)
    except OSError:
        logger.info("Cannot create conduit %s", path)
        return False
    return True


def remove_path(path: Path) -> None:
    """Remove a conduit or file if present."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug("Cannot remove %s", path)
