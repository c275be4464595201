"""Tests for environment detection and the split adapters."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from preview_tui import multiplexer
from preview_tui.config import default_session_config
from preview_tui.errors import MissingPrerequisiteError
from preview_tui.tools import Toolbox

ENTRY = ["/usr/bin/python3", "-m", "preview_tui.cli"]


class _Runner:
    def __init__(self, status: int = 0) -> None:
        self.status = status
        self.calls: list[list[str]] = []
        self.spawned: list[tuple[list[str], dict]] = []

    def run(self, argv, **_kwargs) -> int:
        self.calls.append(list(argv))
        return self.status

    def spawn(self, argv, **kwargs):
        self.spawned.append((list(argv), kwargs))
        return object() if self.status == 0 else None


def _tools(*installed: str) -> Toolbox:
    names = set(installed)
    return Toolbox(which=lambda name: f"/usr/bin/{name}" if name in names else None)


def _config(split_dir: str = "v"):
    return replace(
        default_session_config(),
        split_dir=split_dir,
        split_size_pct=40,
        cwd=Path("/work"),
        path="/work/a.txt",
    )


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        ({"KITTY_LISTEN_ON": "unix:/tmp/k", "ZELLIJ": "0"}, "kitty"),
        ({"ZELLIJ": "0", "WEZTERM_PANE": "1"}, "zellij"),
        ({"WEZTERM_PANE": "1", "KITTY_WINDOW_ID": "2"}, "wezterm"),
        ({"KITTY_WINDOW_ID": "2"}, "kitty"),
        ({"TERM_PROGRAM": "iTerm.app"}, "iterm"),
        ({"TERMINAL": "foot"}, "foot"),
        ({}, "xterm"),
    ],
)
def test_detection_order(env: dict, expected: str) -> None:
    kind = multiplexer.detect_environment(
        "", env=env, tools=_tools(), runner=_Runner()
    )
    assert kind == expected


def test_tmux_wins_when_reachable() -> None:
    env = {"TMUX": "/tmp/tmux-1000/default,1,0", "KITTY_LISTEN_ON": "unix:/k"}
    runner = _Runner()
    kind = multiplexer.detect_environment("", env=env, tools=_tools("tmux"), runner=runner)
    assert kind == "tmux"
    assert runner.calls[0][:2] == ["tmux", "display-message"]


def test_unreachable_tmux_falls_through() -> None:
    env = {"TMUX": "/tmp/tmux-1000/default,1,0"}
    kind = multiplexer.detect_environment(
        "", env=env, tools=_tools("tmux"), runner=_Runner(status=1)
    )
    assert kind == "xterm"


def test_override_beats_terminal_variable() -> None:
    kind = multiplexer.detect_environment(
        "alacritty", env={"TERMINAL": "foot"}, tools=_tools(), runner=_Runner()
    )
    assert kind == "alacritty"


def test_tmux_split_flags() -> None:
    adapter = multiplexer.TmuxAdapter(_Runner())  # type: ignore[arg-type]
    argv = adapter.build(ENTRY, ["render"], _config("v"))
    assert argv[:4] == ["tmux", "split-window", "-d", "-h"]
    assert argv[argv.index("-l") + 1] == "40%"
    assert argv[argv.index("-c") + 1] == "/work"
    assert "-e" in argv and "PREVIEW_TUI_PATH=/work/a.txt" in argv
    assert argv[-4:] == ENTRY + ["render"]

    assert adapter.build(ENTRY, ["render"], _config("h"))[3] == "-v"


def test_tmux_failure_raises() -> None:
    adapter = multiplexer.TmuxAdapter(_Runner(status=1))  # type: ignore[arg-type]
    with pytest.raises(MissingPrerequisiteError):
        adapter.open(ENTRY, ["render"], _config())


def test_kitty_targets_listen_socket() -> None:
    adapter = multiplexer.KittyAdapter(
        _Runner(), {"KITTY_LISTEN_ON": "unix:/tmp/kitty"}  # type: ignore[arg-type]
    )
    argv = adapter.build(ENTRY, ["render"], _config("h"))
    assert argv[:4] == ["kitty", "@", "--to", "unix:/tmp/kitty"]
    assert argv[argv.index("--location") + 1] == "hsplit"
    assert argv[argv.index("--bias") + 1] == "40"
    assert "--keep-focus" in argv


def test_kitty_without_remote_control_explains() -> None:
    adapter = multiplexer.KittyAdapter(_Runner(status=1), {})  # type: ignore[arg-type]
    with pytest.raises(MissingPrerequisiteError, match="allow_remote_control"):
        adapter.open(ENTRY, ["render"], _config())


def test_wezterm_returns_focus() -> None:
    runner = _Runner()
    multiplexer.WeztermAdapter(runner).open(  # type: ignore[arg-type]
        ENTRY, ["render"], _config("v")
    )
    split, focus = runner.calls
    assert split[:3] == ["wezterm", "cli", "split-pane"]
    assert "--right" in split
    assert split[split.index("--") + 1] == "env"
    assert focus == ["wezterm", "cli", "activate-pane-direction", "Left"]


def test_zellij_direction() -> None:
    runner = _Runner()
    multiplexer.ZellijAdapter(runner).open(  # type: ignore[arg-type]
        ENTRY, ["render"], _config("h")
    )
    split, focus = runner.calls
    assert split[split.index("--direction") + 1] == "down"
    assert focus == ["zellij", "action", "move-focus", "up"]


def test_iterm_script_quotes_command() -> None:
    argv = multiplexer.ITermAdapter(_Runner()).build(  # type: ignore[arg-type]
        ENTRY, ["render"], _config("v")
    )
    assert argv[:2] == ["osascript", "-e"]
    assert "split vertically" in argv[2]
    assert multiplexer.applescript_string('say "hi"') == '"say \\"hi\\""'


def test_external_terminal_gets_environment() -> None:
    runner = _Runner()
    adapter = multiplexer.ExternalTerminalAdapter(runner, "foot --app-id x")  # type: ignore[arg-type]
    config = _config()
    adapter.open(ENTRY, ["render"], config)
    argv, kwargs = runner.spawned[0]
    assert argv == ["foot", "--app-id", "x", "-e", *ENTRY, "render"]
    assert kwargs["env"] == config.to_env()
    assert kwargs["detach"] is True


def test_external_terminal_missing() -> None:
    adapter = multiplexer.ExternalTerminalAdapter(_Runner(status=1), "")  # type: ignore[arg-type]
    with pytest.raises(MissingPrerequisiteError, match="xterm"):
        adapter.open(ENTRY, ["render"], _config())


@pytest.mark.parametrize(
    ("kind", "adapter_type"),
    [
        ("tmux", multiplexer.TmuxAdapter),
        ("kitty", multiplexer.KittyAdapter),
        ("wezterm", multiplexer.WeztermAdapter),
        ("zellij", multiplexer.ZellijAdapter),
        ("iterm", multiplexer.ITermAdapter),
        ("foot", multiplexer.ExternalTerminalAdapter),
    ],
)
def test_adapter_for(kind: str, adapter_type: type) -> None:
    assert isinstance(multiplexer.adapter_for(kind, _Runner(), {}), adapter_type)  # type: ignore[arg-type]
