"""Process registry: at most one live process per role."""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
import logging
import os
from pathlib import Path
import signal
import subprocess
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Waiting on a process we did not spawn can only poll for its exit.
_FOREIGN_WAIT_STEPS = 40
_FOREIGN_WAIT_INTERVAL = 0.05


class Role(str, enum.Enum):
    """What a tracked process does for the session."""

    RENDER_JOB = "render-job"
    OVERLAY = "overlay-listener"
    SESSION = "session"


@dataclass
class ProcessHandle:
    """A tracked process, with a deterministic terminate-and-wait."""

    role: Role
    pid: int
    popen: Optional[subprocess.Popen] = field(default=None, repr=False, compare=False)

    def is_alive(self) -> bool:
        if self.popen is not None:
            return self.popen.poll() is None
        return pid_alive(self.pid)

    def terminate(self, sig: int = signal.SIGTERM) -> None:
        """Signal the process and wait until it is gone."""
        try:
            os.kill(self.pid, sig)
        except ProcessLookupError:
            logger.debug("%s pid=%s already exited", self.role.value, self.pid)
            if self.popen is not None:
                self.popen.wait()
            return
        except PermissionError:
            logger.warning("No permission to signal %s pid=%s", self.role.value, self.pid)
            return
        self.wait()

    def wait(self) -> None:
        if self.popen is not None:
            self.popen.wait()
            return
        try:
            os.waitpid(self.pid, 0)
            return
        except ChildProcessError:
            pass
        for _ in range(_FOREIGN_WAIT_STEPS):
            if not pid_alive(self.pid):
                return
            time.sleep(_FOREIGN_WAIT_INTERVAL)
        logger.warning("%s pid=%s ignored SIGTERM, killing", self.role.value, self.pid)
        try:
            os.kill(self.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


def pid_alive(pid: int) -> bool:
    """Return True when a process with ``pid`` exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class ProcessRegistry:
    """Tracks one :class:`ProcessHandle` per role, mirrored to pid files."""

    def __init__(self, runtime_dir: Path) -> None:
        self._runtime_dir = runtime_dir
        self._handles: dict[Role, ProcessHandle] = {}

    @property
    def runtime_dir(self) -> Path:
        return self._runtime_dir

    def pid_file(self, role: Role) -> Path:
        return self._runtime_dir / f"{role.value}.pid"

    def record(self, handle: ProcessHandle) -> None:
        """Track ``handle``; the previous handle for the role must be gone."""
        self._handles[handle.role] = handle
        try:
            self._runtime_dir.mkdir(parents=True, exist_ok=True)
            self.pid_file(handle.role).write_text(str(handle.pid), encoding="utf-8")
        except OSError:
            logger.debug("Cannot write pid file for %s", handle.role.value)

    def get(self, role: Role) -> Optional[ProcessHandle]:
        """Return the recorded handle for ``role`` if any."""
        handle = self._handles.get(role)
        if handle is not None:
            return handle
        try:
            text = self.pid_file(role).read_text(encoding="utf-8").strip()
        except OSError:
            return None
        try:
            pid = int(text)
        except ValueError:
            return None
        return ProcessHandle(role=role, pid=pid)

    def live(self, role: Role) -> Optional[ProcessHandle]:
        """Return the recorded handle only if its process still runs."""
        handle = self.get(role)
        if handle is None or not handle.is_alive():
            return None
        return handle

    def terminate(self, role: Role) -> bool:
        """Terminate the process in ``role``; return True if one was running."""
        handle = self.get(role)
        self.forget(role)
        if handle is None:
            return False
        running = handle.is_alive()
        if running:
            logger.debug("Terminating %s pid=%s", role.value, handle.pid)
            handle.terminate()
        return running

    def forget(self, role: Role) -> None:
        self._handles.pop(role, None)
        try:
            self.pid_file(role).unlink()
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        """Drop every pid record; safe to call repeatedly."""
        for role in Role:
            self.forget(role)
