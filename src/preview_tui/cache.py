"""On-disk cache of generated preview artifacts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shutil
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A generated artifact and the source mtime it was created against."""

    source: Path
    artifact: Path
    recorded_mtime: float


class PreviewCache:
    """Maps (source path, format) to an artifact mirrored under ``root``.

    An entry is valid while the artifact exists and the source has not been
    modified after the artifact was written.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def target_for(self, source: Path, suffix: str = "") -> Path:
        """Return the artifact path for ``source`` with ``suffix`` appended."""
        absolute = source.absolute()
        relative = Path(*absolute.parts[1:]) if absolute.anchor else absolute
        return self._root / (str(relative) + suffix)

    def lookup(self, source: Path, suffix: str = "") -> Optional[CacheEntry]:
        """Return the entry when it is still valid, otherwise None."""
        target = self.target_for(source, suffix)
        try:
            recorded = target.stat().st_mtime
        except OSError:
            return None
        try:
            current = source.stat().st_mtime
        except OSError:
            return None
        if current > recorded:
            logger.debug("Stale preview for %s", source)
            return None
        return CacheEntry(source=source, artifact=target, recorded_mtime=recorded)

    def prepare(self, source: Path, suffix: str = "") -> Path:
        """Create parent directories for a new artifact and return its path."""
        target = self.target_for(source, suffix)
        target.parent.mkdir(parents=True, exist_ok=True)
        return target

    def commit(self, source: Path, suffix: str = "") -> Optional[CacheEntry]:
        """Accept a freshly produced artifact, or discard an empty one."""
        target = self.target_for(source, suffix)
        try:
            info = target.stat()
        except OSError:
            return None
        if target.is_file() and info.st_size == 0:
            self.discard(source, suffix)
            return None
        return CacheEntry(source=source, artifact=target, recorded_mtime=info.st_mtime)

    def discard(self, source: Path, suffix: str = "") -> None:
        """Delete a (possibly partial) artifact so it is never reused."""
        target = self.target_for(source, suffix)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target, ignore_errors=True)
            return
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Cannot remove partial artifact %s", target)
