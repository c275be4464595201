"""Tests for user configuration and the session snapshot."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from preview_tui import config


def test_load_defaults_when_missing(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    loaded = config.load_config({})
    assert loaded == config.UserConfig()


def test_load_defaults_when_corrupt(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    (tmp_path / "config.json").write_text("{not-json", encoding="utf-8")
    assert config.load_config({}) == config.UserConfig()


def test_load_ignores_non_object_json(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    (tmp_path / "config.json").write_text("[1, 2]", encoding="utf-8")
    assert config.load_config({}) == config.UserConfig()


def test_load_reads_file_values(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    (tmp_path / "config.json").write_text(
        json.dumps(
            {
                "split": "h",
                "split_size": 30,
                "pager": "less -R",
                "bat_theme": "Nord",
                "image_prog": "chafa",
                "use_icons": True,
            }
        ),
        encoding="utf-8",
    )
    assert config.load_config({}) == config.UserConfig(
        split="h",
        split_size=30,
        pager="less -R",
        bat_theme="Nord",
        image_prog="chafa",
        use_icons=True,
    )


def test_invalid_values_fall_back(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    (tmp_path / "config.json").write_text(
        json.dumps(
            {
                "split": "diagonal",
                "split_size": 250,
                "pager": "",
                "use_icons": "yes",
                "preview_width": "wide",
            }
        ),
        encoding="utf-8",
    )
    loaded = config.load_config({})
    assert loaded.split == ""
    assert loaded.split_size == 99
    assert loaded.pager == config.DEFAULT_PAGER
    assert loaded.use_icons is False
    assert loaded.preview_width == 1920


def test_environment_overrides_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    (tmp_path / "config.json").write_text(
        json.dumps({"split": "v", "bat_theme": "Nord"}), encoding="utf-8"
    )
    loaded = config.load_config(
        {
            "PREVIEW_TUI_SPLIT": "h",
            "PREVIEW_TUI_SPLITSIZE": "40",
            "PREVIEW_TUI_ICONS": "1",
            "PREVIEW_TUI_FIFO": "/tmp/hover.fifo",
        }
    )
    assert loaded.split == "h"
    assert loaded.split_size == 40
    assert loaded.use_icons is True
    assert loaded.hover_fifo == "/tmp/hover.fifo"
    assert loaded.bat_theme == "Nord"


def test_bad_numeric_override_keeps_default(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path)
    loaded = config.load_config({"PREVIEW_TUI_SPLITSIZE": "half"})
    assert loaded.split_size == 50


@pytest.mark.parametrize(
    ("override", "rows", "columns", "expected"),
    [
        ("", 50, 80, "h"),
        ("", 40, 200, "v"),
        ("", 40, 80, "v"),
        ("v", 50, 80, "v"),
        ("h", 40, 200, "h"),
    ],
)
def test_choose_split(override: str, rows: int, columns: int, expected: str) -> None:
    assert config.choose_split(override, rows, columns) == expected


def test_build_session_config(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(config, "get_config_dir", lambda: tmp_path / "cfg")
    user = config.UserConfig(split_size=35, cache_dir=str(tmp_path / "previews"))
    session = config.build_session_config(
        user,
        terminal_kind="tmux",
        path="/data/a.jpg",
        cwd=tmp_path,
        session_id="42",
        rows=24,
        columns=200,
    )
    assert session.split_dir == "v"
    assert session.split_size_pct == 35
    assert session.cache_dir == tmp_path / "previews"
    assert session.runtime_dir.name == "preview-tui-42"
    assert session.offset_file == tmp_path / "cfg" / "previewpositionoffset"


def test_session_config_env_round_trip(tmp_path: Path) -> None:
    original = config.SessionConfig(
        split_dir="h",
        split_size_pct=25,
        terminal_kind="kitty",
        pager_cmd="less -R",
        pager_theme="ansi",
        pager_style="plain",
        preview_width=800,
        preview_height=600,
        cache_dir=tmp_path / "cache",
        image_prog="chafa",
        video_backend="mpv",
        cwd=tmp_path,
        path=str(tmp_path / "a.txt"),
        hover_fifo="/tmp/hover",
        control_fifo="/tmp/control",
        runtime_dir=tmp_path / "run",
        offset_file=tmp_path / "offset",
        use_icons=True,
    )
    env = original.to_env()
    assert env["PREVIEW_TUI_SPLIT_DIR"] == "h"
    assert env["PREVIEW_TUI_USE_ICONS"] == "1"
    assert config.SessionConfig.from_env(env) == original


def test_session_config_from_env_clamps_split() -> None:
    restored = config.SessionConfig.from_env(
        {"PREVIEW_TUI_SPLIT_SIZE_PCT": "150", "PREVIEW_TUI_SPLIT_DIR": "x"}
    )
    assert restored.split_size_pct == 99
    assert restored.split_dir == "v"


def test_cache_dir_follows_xdg(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert config.get_cache_dir() == tmp_path / "preview-tui" / "previews"
