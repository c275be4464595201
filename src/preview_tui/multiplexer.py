"""Terminal/multiplexer adapters that open the preview pane."""

from __future__ import annotations

import logging
import os
import shlex
from typing import Mapping, Optional, Protocol, Sequence

from preview_tui.config import SessionConfig
from preview_tui.errors import MissingPrerequisiteError
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)

PANE_TITLE = "preview-tui"
DEFAULT_TERMINAL = "xterm"


class MultiplexerAdapter(Protocol):
    name: str

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None: ...


def _env_words(config: SessionConfig) -> list[str]:
    return [f"{key}={value}" for key, value in sorted(config.to_env().items())]


def _command(
    entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
) -> list[str]:
    """``env K=V ... entry args`` for splits that cannot set environment."""
    return ["env", *_env_words(config), *entry_point, *args]


class TmuxAdapter:
    """Native tmux split next to the browser pane."""

    name = "tmux"

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        # tmux names splits by the line dividing them: side by side is -h.
        orientation = "-h" if config.split_dir == "v" else "-v"
        argv = [
            "tmux",
            "split-window",
            "-d",
            orientation,
            "-l",
            f"{config.split_size_pct}%",
            "-c",
            str(config.cwd),
        ]
        for word in _env_words(config):
            argv += ["-e", word]
        return argv + [*entry_point, *args]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        status = self._runner.run(self.build(entry_point, args, config), quiet=True)
        if status != 0:
            raise MissingPrerequisiteError("tmux could not split the current window.")


class KittyAdapter:
    """Split through kitty's remote-control protocol."""

    name = "kitty"

    def __init__(
        self, runner: CommandRunner, env: Optional[Mapping[str, str]] = None
    ) -> None:
        self._runner = runner
        self._env = os.environ if env is None else env

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        argv = ["kitty", "@"]
        listen_on = self._env.get("KITTY_LISTEN_ON")
        if listen_on:
            argv += ["--to", listen_on]
        argv += [
            "launch",
            "--no-response",
            "--title",
            PANE_TITLE,
            "--keep-focus",
            "--cwd",
            str(config.cwd),
            "--location",
            "vsplit" if config.split_dir == "v" else "hsplit",
            "--bias",
            str(config.split_size_pct),
        ]
        for word in _env_words(config):
            argv += ["--env", word]
        return argv + [*entry_point, *args]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        status = self._runner.run(self.build(entry_point, args, config), quiet=True)
        if status != 0:
            raise MissingPrerequisiteError(
                "kitty remote control is disabled. Add 'allow_remote_control yes' "
                "and 'listen_on unix:/tmp/kitty' to kitty.conf, or start kitty "
                "with '-o allow_remote_control=yes --listen-on unix:/tmp/kitty'."
            )


class WeztermAdapter:
    """Split through ``wezterm cli``."""

    name = "wezterm"

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        return [
            "wezterm",
            "cli",
            "split-pane",
            "--cwd",
            str(config.cwd),
            "--right" if config.split_dir == "v" else "--bottom",
            "--percent",
            str(config.split_size_pct),
            "--",
            *_command(entry_point, args, config),
        ]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        status = self._runner.run(self.build(entry_point, args, config), quiet=True)
        if status != 0:
            raise MissingPrerequisiteError("wezterm could not split the current pane.")
        # split-pane focuses the new pane; hand focus back to the browser.
        direction = "Left" if config.split_dir == "v" else "Up"
        self._runner.run(
            ["wezterm", "cli", "activate-pane-direction", direction], quiet=True
        )


class ZellijAdapter:
    """Split through ``zellij run``."""

    name = "zellij"

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        return [
            "zellij",
            "run",
            "--name",
            PANE_TITLE,
            "--cwd",
            str(config.cwd),
            "--direction",
            "right" if config.split_dir == "v" else "down",
            "--",
            *_command(entry_point, args, config),
        ]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        status = self._runner.run(self.build(entry_point, args, config), quiet=True)
        if status != 0:
            raise MissingPrerequisiteError("zellij could not open a pane.")
        direction = "left" if config.split_dir == "v" else "up"
        self._runner.run(["zellij", "action", "move-focus", direction], quiet=True)


def applescript_string(text: str) -> str:
    """Quote ``text`` as an AppleScript string literal."""
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ITermAdapter:
    """Split the whole iTerm2 window through AppleScript."""

    name = "iterm"

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        command = shlex.join(
            ["cd", str(config.cwd)]
        ) + " && exec " + shlex.join(_command(entry_point, args, config))
        split = "vertically" if config.split_dir == "v" else "horizontally"
        script = "\n".join(
            [
                'tell application "iTerm2"',
                "  tell current session of current window",
                f"    set preview to (split {split} with same profile)",
                f"    tell preview to write text {applescript_string(command)}",
                "  end tell",
                "end tell",
            ]
        )
        return ["osascript", "-e", script]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        status = self._runner.run(self.build(entry_point, args, config), quiet=True)
        if status != 0:
            raise MissingPrerequisiteError("iTerm2 did not accept the split request.")


class ExternalTerminalAdapter:
    """Launch the engine in a separate terminal window."""

    name = "external"

    def __init__(self, runner: CommandRunner, terminal: str) -> None:
        self._runner = runner
        self._terminal = terminal or DEFAULT_TERMINAL

    def build(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> list[str]:
        del config
        return [*shlex.split(self._terminal), "-e", *entry_point, *args]

    def open(
        self, entry_point: Sequence[str], args: Sequence[str], config: SessionConfig
    ) -> None:
        argv = self.build(entry_point, args, config)
        proc = self._runner.spawn(
            argv, env=config.to_env(), cwd=str(config.cwd), quiet=True, detach=True
        )
        if proc is None:
            raise MissingPrerequisiteError(
                f"Cannot start terminal '{self._terminal}'. Set PREVIEW_TUI_TERMINAL."
            )


SPLIT_KINDS = ("tmux", "kitty", "wezterm", "zellij", "iterm")


def detect_environment(
    override: str,
    *,
    env: Optional[Mapping[str, str]] = None,
    tools: Optional[Toolbox] = None,
    runner: Optional[CommandRunner] = None,
) -> str:
    """Return the terminal kind to open the preview in; first match wins."""
    env = os.environ if env is None else env
    tools = tools or Toolbox()
    runner = runner or CommandRunner()
    if env.get("TMUX") and tools.has("tmux"):
        probe = ["tmux", "display-message", "-p", "#{pane_id}"]
        if runner.run(probe, quiet=True) == 0:
            return "tmux"
    if env.get("KITTY_LISTEN_ON"):
        return "kitty"
    if env.get("ZELLIJ") is not None:
        return "zellij"
    if env.get("WEZTERM_PANE"):
        return "wezterm"
    if env.get("KITTY_WINDOW_ID"):
        return "kitty"
    if env.get("TERM_PROGRAM") == "iTerm.app":
        return "iterm"
    if override:
        return override
    return env.get("TERMINAL") or DEFAULT_TERMINAL


def adapter_for(
    kind: str,
    runner: Optional[CommandRunner] = None,
    env: Optional[Mapping[str, str]] = None,
) -> MultiplexerAdapter:
    """Select the adapter variant for a detected terminal kind."""
    runner = runner or CommandRunner()
    if kind == "tmux":
        return TmuxAdapter(runner)
    if kind == "kitty":
        return KittyAdapter(runner, env)
    if kind == "wezterm":
        return WeztermAdapter(runner)
    if kind == "zellij":
        return ZellijAdapter(runner)
    if kind == "iterm":
        return ITermAdapter(runner)
    return ExternalTerminalAdapter(runner, kind)
