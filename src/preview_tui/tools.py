"""Discovery and invocation of optional external programs."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from typing import IO, Any, Callable, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Exit status reported for programs that could not be started.
NOT_FOUND = 127

_Stream = Union[int, IO, None]

# Signals that cancel a render job.
CANCEL_SIGNALS = {signal.SIGTERM, signal.SIGHUP}


def _unblock_cancel_signals() -> None:
    signal.pthread_sigmask(signal.SIG_UNBLOCK, CANCEL_SIGNALS)


class Toolbox:
    """Answers "is this program installed?" with a per-process memo."""

    def __init__(self, which: Callable[[str], Optional[str]] = shutil.which) -> None:
        self._which = which
        self._seen: dict[str, Optional[str]] = {}

    def find(self, name: str) -> Optional[str]:
        if name not in self._seen:
            self._seen[name] = self._which(name)
        return self._seen[name]

    def has(self, name: str) -> bool:
        return self.find(name) is not None

    def first(self, *names: str) -> Optional[str]:
        """Return the first installed program out of ``names``."""
        for name in names:
            if self.has(name):
                return name
        return None


class CommandRunner:
    """Runs external programs and remembers the ones still in flight.

    Handlers go through this class so tests can fake it, and so that a
    terminated render job can take its children down with it.
    """

    def __init__(self) -> None:
        self._children: set[subprocess.Popen] = set()
        self._stopping: list[subprocess.Popen] = []

    def run(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        quiet: bool = False,
        stdin: _Stream = None,
    ) -> int:
        """Run ``argv`` to completion and return its exit status."""
        sink = subprocess.DEVNULL if quiet else None
        logger.debug("run %s", list(argv))
        try:
            proc = self._start(
                list(argv),
                env=_merged_env(env),
                cwd=cwd,
                stdin=stdin,
                stdout=sink,
                stderr=sink,
            )
        except OSError as exc:
            logger.debug("Cannot start %s: %s", argv[0], exc)
            return NOT_FOUND
        try:
            return proc.wait()
        finally:
            self._children.discard(proc)

    def spawn(
        self,
        argv: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        stdin: _Stream = None,
        quiet: bool = False,
        detach: bool = False,
    ) -> Optional[subprocess.Popen]:
        """Start ``argv`` without waiting for it.

        ``detach`` puts the process in a new session, for programs that must
        outlive the caller and never read the terminal.
        """
        sink = subprocess.DEVNULL if quiet else None
        logger.debug("spawn %s", list(argv))
        try:
            return subprocess.Popen(
                list(argv),
                env=_merged_env(env),
                cwd=cwd,
                stdin=stdin,
                stdout=sink,
                stderr=sink,
                start_new_session=detach,
            )
        except OSError as exc:
            logger.debug("Cannot start %s: %s", argv[0], exc)
            return None

    def pipeline(self, source: Sequence[str], sink: Sequence[str]) -> int:
        """Run ``source | sink`` and return the sink's exit status."""
        logger.debug("pipe %s | %s", list(source), list(sink))
        try:
            producer = self._start(
                list(source), stdout=subprocess.PIPE, stderr=subprocess.DEVNULL
            )
        except OSError as exc:
            logger.debug("Cannot start %s: %s", source[0], exc)
            return NOT_FOUND
        assert producer.stdout is not None
        try:
            try:
                consumer = self._start(list(sink), stdin=producer.stdout)
            except OSError as exc:
                logger.debug("Cannot start %s: %s", sink[0], exc)
                producer.terminate()
                return NOT_FOUND
            finally:
                producer.stdout.close()
            try:
                return consumer.wait()
            finally:
                self._children.discard(consumer)
        finally:
            producer.wait()
            self._children.discard(producer)

    def _start(self, argv: list[str], **kwargs: Any) -> subprocess.Popen:
        """Start and track a child with cancellation held off in between.

        A SIGTERM arriving meanwhile is delivered once the child is in
        ``_children``, so ``terminate_children`` always sees it.
        """
        previous = signal.pthread_sigmask(signal.SIG_BLOCK, CANCEL_SIGNALS)
        try:
            proc = subprocess.Popen(argv, preexec_fn=_unblock_cancel_signals, **kwargs)
            self._children.add(proc)
        finally:
            signal.pthread_sigmask(signal.SIG_SETMASK, previous)
        return proc

    def capture(self, argv: Sequence[str]) -> Optional[str]:
        """Return the stdout of ``argv``, or None when it fails."""
        try:
            completed = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError:
            return None
        if completed.returncode != 0:
            return None
        return completed.stdout

    def terminate_children(self) -> None:
        """SIGTERM every program still running, without waiting.

        Runs inside signal handlers, where the interrupted frame may hold
        the wait lock of the same child. Call :meth:`reap_children` once
        the stack has unwound.
        """
        for proc in list(self._children):
            if proc.returncode is None:
                proc.terminate()
            self._stopping.append(proc)
        self._children.clear()

    def reap_children(self) -> None:
        """Wait for every program stopped by :meth:`terminate_children`."""
        stopping, self._stopping = self._stopping, []
        for proc in stopping:
            proc.wait()


def _merged_env(extra: Optional[Mapping[str, str]]) -> Optional[dict[str, str]]:
    if extra is None:
        return None
    merged = dict(os.environ)
    merged.update(extra)
    return merged
