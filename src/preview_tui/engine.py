"""Renderer engine: reads hover events and keeps one render job alive."""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
import logging
import os
from pathlib import Path
import shutil
import signal
import sys
from types import FrameType
from typing import Callable, Optional

from rich.console import Console

from preview_tui.channels import (
    CLOSE_EVENT,
    HoverChannel,
    read_preview_control,
    remove_path,
    signal_session,
)
from preview_tui.classifier import ContentClass, classify_path
from preview_tui.config import SessionConfig
from preview_tui.display import ImageDisplay
from preview_tui.overlay import fifo_path, start_listener
from preview_tui.processes import ProcessHandle, ProcessRegistry, Role
from preview_tui.resize import ResizeCoordinator
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)

JOB_ENTRY = [sys.executable, "-m", "preview_tui.cli", "job"]


class JobStatus(enum.Enum):
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass
class RenderJob:
    path: str
    content_class: ContentClass
    pid: int
    status: JobStatus = JobStatus.RUNNING


@dataclass
class Session:
    """All mutable state of one preview session, owned by the engine."""

    config: SessionConfig
    registry: ProcessRegistry
    selection: Optional[str] = None
    job: Optional[RenderJob] = None
    finished: list[RenderJob] = field(default_factory=list)

    @classmethod
    def start(cls, config: SessionConfig) -> "Session":
        return cls(config=config, registry=ProcessRegistry(config.runtime_dir))

    @property
    def cursel_file(self) -> Path:
        return self.config.runtime_dir / "cursel"

    @property
    def overlay_fifo(self) -> Path:
        return fifo_path(self.config.runtime_dir)

    def remember(self, path: str) -> None:
        """Record ``path`` as the last known selection."""
        self.selection = path
        try:
            self.cursel_file.parent.mkdir(parents=True, exist_ok=True)
            self.cursel_file.write_text(path, encoding="utf-8")
        except OSError:
            logger.debug("Cannot persist selection to %s", self.cursel_file)


# Starts a render job process for (session, path, class); None if it failed.
JobSpawner = Callable[[Session, str, ContentClass], Optional[ProcessHandle]]


def spawn_job_process(
    session: Session,
    path: str,
    content_class: ContentClass,
    runner: Optional[CommandRunner] = None,
) -> Optional[ProcessHandle]:
    runner = runner or CommandRunner()
    argv = JOB_ENTRY + ["--content-class", content_class.value, "--", path]
    proc = runner.spawn(argv, env=session.config.to_env(), cwd=str(session.config.cwd))
    if proc is None:
        return None
    return ProcessHandle(role=Role.RENDER_JOB, pid=proc.pid, popen=proc)


class RendererEngine:
    """Idle -> Rendering -> Idle, once per hover event."""

    def __init__(
        self,
        session: Session,
        *,
        tools: Optional[Toolbox] = None,
        runner: Optional[CommandRunner] = None,
        spawn_job: Optional[JobSpawner] = None,
        classify: Optional[Callable[[Path], ContentClass]] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.session = session
        self._tools = tools or Toolbox()
        self._runner = runner or CommandRunner()
        self._spawn_job = spawn_job or (
            lambda s, p, c: spawn_job_process(s, p, c, self._runner)
        )
        self._classify = classify or (lambda p: classify_path(p, self._tools))
        self._console = console or Console()
        self._closed = False
        self.resize = ResizeCoordinator(self)

    @property
    def registry(self) -> ProcessRegistry:
        return self.session.registry

    def start(self) -> None:
        """Register the session and bring up the overlay listener."""
        with self.resize.held():
            self.registry.record(ProcessHandle(role=Role.SESSION, pid=os.getpid()))
            self.start_overlay()

    def start_overlay(self) -> bool:
        proc = start_listener(self.session.config.runtime_dir, self._tools, self._runner)
        if proc is None:
            return False
        self.registry.record(ProcessHandle(role=Role.OVERLAY, pid=proc.pid, popen=proc))
        return True

    def restart_overlay(self) -> None:
        if not self.session.overlay_fifo.exists():
            return
        self.registry.terminate(Role.OVERLAY)
        self.start_overlay()

    def cancel_current(self) -> None:
        """Terminate the running job, if any, and wait for it."""
        job = self.session.job
        if job is None:
            return
        was_running = self.registry.terminate(Role.RENDER_JOB)
        job.status = JobStatus.CANCELLED if was_running else JobStatus.COMPLETED
        logger.debug("Job for %s %s", job.path, job.status.value)
        self.session.finished.append(job)
        self.session.job = None

    def clear_images(self) -> None:
        size = shutil.get_terminal_size()
        display = ImageDisplay(
            self.session.config,
            self._tools,
            self._runner,
            columns=size.columns,
            rows=size.lines,
        )
        display.clear()

    def clear_screen(self) -> None:
        self._console.clear()

    def render(self, path: str) -> None:
        """Classify ``path`` and start a render job for it."""
        content_class = self._classify(Path(path))
        handle = self._spawn_job(self.session, path, content_class)
        if handle is None:
            logger.warning("Could not start render job for %s", path)
            return
        self.registry.record(handle)
        self.session.job = RenderJob(
            path=path, content_class=content_class, pid=handle.pid
        )

    def handle_event(self, event: str) -> bool:
        """Process one hover event; return False when the session ends."""
        with self.resize.held():
            self.cancel_current()
            self.clear_images()
            if event == CLOSE_EVENT:
                self.resize.stop()
                return False
            self.clear_screen()
            self.render(event)
            self.session.remember(event)
        return True

    def run(self, channel: HoverChannel) -> int:
        """Serve hover events until ``close``, end of input or a signal."""
        self.start()
        try:
            active = read_preview_control(self.session.config.preview_control)
            initial = self.session.config.path
            if initial and active is not False:
                self.handle_event(initial)
            with channel:
                for event in channel:
                    if not self.handle_event(event):
                        break
        finally:
            self.teardown()
        return 0

    def teardown(self) -> None:
        """Stop every process and remove session files; idempotent."""
        self.resize.stop()
        if self.session.job is not None:
            self.cancel_current()
        self.registry.terminate(Role.OVERLAY)
        remove_path(self.session.overlay_fifo)
        remove_path(self.session.cursel_file)
        self.registry.clear()
        try:
            self.session.config.runtime_dir.rmdir()
        except OSError:
            pass
        if not self._closed:
            signal_session(self.session.config.control_fifo, False)
            logger.info("Session ended")
        self._closed = True

    def __enter__(self) -> "RendererEngine":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.teardown()


def _exit_on_signal(signum: int, frame: Optional[FrameType]) -> None:
    del frame
    logger.debug("Received signal %s", signum)
    raise SystemExit(0)


def install_exit_handlers() -> None:
    """Turn hangup/terminate into a normal exit so teardown runs."""
    signal.signal(signal.SIGTERM, _exit_on_signal)
    signal.signal(signal.SIGHUP, _exit_on_signal)


def run_engine(config: SessionConfig) -> int:
    """Run a preview session in the current pane until it ends."""
    session = Session.start(config)
    engine = RendererEngine(session)
    install_exit_handlers()
    engine.resize.install()
    with engine:
        return engine.run(HoverChannel(Path(config.hover_fifo)))
