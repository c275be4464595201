"""Pytest configuration for preview-tui."""

from __future__ import annotations

import os

import pytest


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    del config
    if os.environ.get("PREVIEW_TUI_CI") != "1" and os.name == "posix":
        return
    skip_spawn = pytest.mark.skip(reason="Skipping process-spawning tests.")
    for item in items:
        if "spawns" in item.keywords:
            item.add_marker(skip_spawn)


@pytest.fixture(autouse=True)
def isolated_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path_factory) -> None:
    """Keep config, cache and logs out of the real home directory."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / "cache"))
    monkeypatch.setenv("XDG_STATE_HOME", str(home / "state"))
