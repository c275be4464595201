"""Preview session lifecycle: toggle the preview pane on and off."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
import shlex
import shutil
import sys
from typing import Mapping, Optional

from preview_tui.channels import signal_session
from preview_tui.config import (
    SessionConfig,
    UserConfig,
    build_session_config,
    get_runtime_dir,
    load_config,
)
from preview_tui.errors import MissingPrerequisiteError
from preview_tui.multiplexer import SPLIT_KINDS, adapter_for, detect_environment
from preview_tui.processes import ProcessRegistry, Role
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)

ENGINE_ENTRY = [sys.executable, "-m", "preview_tui.cli"]
ENGINE_ARGS = ["render"]


def session_id(env: Mapping[str, str], hover_fifo: str = "") -> str:
    """Identify the browser instance the session belongs to.

    The hover FIFO is unique to one browser, so its path keys the session
    when ``PREVIEW_TUI_SESSION`` is unset. Plugins usually run through a
    fresh shell, so the parent pid only serves when there is no FIFO.
    """
    explicit = env.get("PREVIEW_TUI_SESSION")
    if explicit:
        return explicit
    if hover_fifo:
        key = os.path.abspath(hover_fifo).encode("utf-8")
        return hashlib.sha1(key).hexdigest()[:12]
    return str(os.getppid())


def stop_session(registry: ProcessRegistry, control_fifo: str) -> bool:
    """Stop a live session; return False when there was none."""
    live_session = registry.live(Role.SESSION)
    live_job = registry.live(Role.RENDER_JOB)
    if live_session is None and live_job is None:
        return False
    registry.terminate(Role.RENDER_JOB)
    registry.terminate(Role.OVERLAY)
    registry.terminate(Role.SESSION)
    registry.clear()
    signal_session(control_fifo, False)
    logger.info("Preview session stopped")
    return True


def check_prerequisites(user: UserConfig) -> None:
    if not user.hover_fifo:
        raise MissingPrerequisiteError(
            "No hover channel available (PREVIEW_TUI_FIFO is unset). "
            "Start the file browser with its hover FIFO enabled."
        )
    if not Path(user.hover_fifo).exists():
        raise MissingPrerequisiteError(
            f"Hover channel {user.hover_fifo} does not exist."
        )


def open_viewer(viewer: str, path: str, runner: CommandRunner) -> None:
    """Hand ``path`` to an external document viewer instead of a pane."""
    proc = runner.spawn(shlex.split(viewer) + [path], quiet=True, detach=True)
    if proc is None:
        raise MissingPrerequisiteError(f"Cannot start viewer '{viewer}'.")


def toggle(
    path: str,
    *,
    env: Optional[Mapping[str, str]] = None,
    tools: Optional[Toolbox] = None,
    runner: Optional[CommandRunner] = None,
    cwd: Optional[Path] = None,
) -> Optional[SessionConfig]:
    """Stop the live session, or start one previewing ``path``.

    Returns the started session's configuration, or None when a session
    was stopped or the path went to an external viewer.
    """
    env = os.environ if env is None else env
    tools = tools or Toolbox()
    runner = runner or CommandRunner()
    user = load_config(env)
    key = session_id(env, user.hover_fifo)
    registry = ProcessRegistry(get_runtime_dir(key))
    if stop_session(registry, user.control_fifo):
        return None

    kind = detect_environment(user.terminal, env=env, tools=tools, runner=runner)
    if kind not in SPLIT_KINDS and user.viewer:
        logger.info("No split available, opening %s in %s", path, user.viewer)
        open_viewer(user.viewer, path, runner)
        return None
    check_prerequisites(user)

    size = shutil.get_terminal_size()
    config = build_session_config(
        user,
        terminal_kind=kind,
        path=path,
        cwd=cwd or Path.cwd(),
        session_id=key,
        rows=size.lines,
        columns=size.columns,
    )
    adapter = adapter_for(kind, runner, env)
    logger.info(
        "Starting preview via %s (split=%s, %s%%)",
        adapter.name,
        config.split_dir,
        config.split_size_pct,
    )
    adapter.open(ENGINE_ENTRY, ENGINE_ARGS, config)
    signal_session(config.control_fifo, True)
    return config
