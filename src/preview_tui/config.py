"""User configuration and the per-session configuration snapshot."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

APP_NAME = "preview-tui"
ENV_PREFIX = "PREVIEW_TUI_"
SPLIT_CHOICES = {"h", "v"}
DEFAULT_PAGER = "less -P?n -R -C"


@dataclass(frozen=True)
class UserConfig:
    """Preferences loaded from disk and the environment."""

    split: str = ""
    split_size: int = 50
    terminal: str = ""
    pager: str = DEFAULT_PAGER
    bat_theme: str = "ansi"
    bat_style: str = "numbers"
    preview_width: int = 1920
    preview_height: int = 1080
    cache_dir: str = ""
    image_prog: str = ""
    video_backend: str = ""
    hover_fifo: str = ""
    control_fifo: str = ""
    preview_control: str = ""
    use_icons: bool = False
    viewer: str = ""


# Environment variable (without prefix) -> UserConfig field.
_ENV_OVERRIDES = {
    "SPLIT": "split",
    "SPLITSIZE": "split_size",
    "TERMINAL": "terminal",
    "PAGER": "pager",
    "BATTHEME": "bat_theme",
    "BATSTYLE": "bat_style",
    "PREVIEWWIDTH": "preview_width",
    "PREVIEWHEIGHT": "preview_height",
    "PREVIEWDIR": "cache_dir",
    "IMGPROG": "image_prog",
    "VIDEO": "video_backend",
    "FIFO": "hover_fifo",
    "CONTROL": "control_fifo",
    "PPIPE": "preview_control",
    "ICONS": "use_icons",
    "VIEWER": "viewer",
}


@dataclass(frozen=True)
class SessionConfig:
    """Immutable snapshot handed to the renderer when a session starts."""

    split_dir: str
    split_size_pct: int
    terminal_kind: str
    pager_cmd: str
    pager_theme: str
    pager_style: str
    preview_width: int
    preview_height: int
    cache_dir: Path
    image_prog: str
    video_backend: str
    cwd: Path
    path: str
    hover_fifo: str = ""
    control_fifo: str = ""
    preview_control: str = ""
    runtime_dir: Path = Path(tempfile.gettempdir()) / APP_NAME
    offset_file: Path = Path()
    use_icons: bool = False
    viewer: str = ""

    def to_env(self) -> dict[str, str]:
        """Serialize into ``PREVIEW_TUI_<KEY>`` environment variables."""
        env: dict[str, str] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, bool):
                text = "1" if value else "0"
            else:
                text = str(value)
            env[f"{ENV_PREFIX}{item.name.upper()}"] = text
        return env

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "SessionConfig":
        """Rebuild the snapshot written by :meth:`to_env`."""
        raw: dict[str, Any] = {}
        for item in fields(cls):
            key = f"{ENV_PREFIX}{item.name.upper()}"
            if key in env:
                raw[item.name] = env[key]
        defaults = default_session_config()
        return replace(
            defaults,
            split_dir=_coerce_split(raw.get("split_dir"), defaults.split_dir),
            split_size_pct=_parse_int(
                raw.get("split_size_pct"), defaults.split_size_pct, 1, 99
            ),
            terminal_kind=raw.get("terminal_kind", defaults.terminal_kind),
            pager_cmd=raw.get("pager_cmd") or defaults.pager_cmd,
            pager_theme=raw.get("pager_theme", defaults.pager_theme),
            pager_style=raw.get("pager_style", defaults.pager_style),
            preview_width=_parse_int(
                raw.get("preview_width"), defaults.preview_width, 1, None
            ),
            preview_height=_parse_int(
                raw.get("preview_height"), defaults.preview_height, 1, None
            ),
            cache_dir=Path(raw.get("cache_dir") or defaults.cache_dir),
            image_prog=raw.get("image_prog", ""),
            video_backend=raw.get("video_backend", ""),
            cwd=Path(raw.get("cwd") or defaults.cwd),
            path=raw.get("path", ""),
            hover_fifo=raw.get("hover_fifo", ""),
            control_fifo=raw.get("control_fifo", ""),
            preview_control=raw.get("preview_control", ""),
            runtime_dir=Path(raw.get("runtime_dir") or defaults.runtime_dir),
            offset_file=Path(raw.get("offset_file") or defaults.offset_file),
            use_icons=raw.get("use_icons", "0") == "1",
            viewer=raw.get("viewer", ""),
        )


def get_config_dir(app_name: str = APP_NAME) -> Path:
    """Return the per-user config directory."""
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / app_name


def get_cache_dir(app_name: str = APP_NAME) -> Path:
    """Return the default root for generated preview artifacts."""
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / app_name / "previews"


def get_config_path() -> Path:
    """Return the full config file path."""
    return get_config_dir() / "config.json"


def get_runtime_dir(session_id: str) -> Path:
    """Return the directory holding pid files and conduits for a session."""
    return Path(tempfile.gettempdir()) / f"{APP_NAME}-{session_id}"


def default_session_config() -> SessionConfig:
    user = UserConfig()
    return SessionConfig(
        split_dir="v",
        split_size_pct=user.split_size,
        terminal_kind="",
        pager_cmd=user.pager,
        pager_theme=user.bat_theme,
        pager_style=user.bat_style,
        preview_width=user.preview_width,
        preview_height=user.preview_height,
        cache_dir=get_cache_dir(),
        image_prog="",
        video_backend="",
        cwd=Path.cwd(),
        path="",
        offset_file=get_config_dir() / "previewpositionoffset",
    )


def load_config(env: Optional[Mapping[str, str]] = None) -> UserConfig:
    """Load configuration from disk and apply environment overrides."""
    if env is None:
        env = os.environ
    path = get_config_path()
    raw: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to load config from %s", path)
        else:
            if isinstance(loaded, dict):
                raw = loaded
    for name, field_name in _ENV_OVERRIDES.items():
        value = env.get(f"{ENV_PREFIX}{name}")
        if value is None:
            continue
        if field_name in {"split_size", "preview_width", "preview_height"}:
            raw[field_name] = _parse_int(value, None, None, None)
        elif field_name == "use_icons":
            raw[field_name] = value.strip().lower() in {"1", "true", "yes"}
        else:
            raw[field_name] = value
    return _config_from_mapping(raw)


def choose_split(override: str, rows: int, columns: int) -> str:
    """Pick the split orientation; an explicit override always wins."""
    if override in SPLIT_CHOICES:
        return override
    if rows * 2 > columns:
        return "h"
    return "v"


def build_session_config(
    user: UserConfig,
    *,
    terminal_kind: str,
    path: str,
    cwd: Path,
    session_id: str,
    rows: int,
    columns: int,
) -> SessionConfig:
    """Snapshot user preferences and detected environment for one session."""
    cache_dir = Path(user.cache_dir) if user.cache_dir else get_cache_dir()
    return SessionConfig(
        split_dir=choose_split(user.split, rows, columns),
        split_size_pct=user.split_size,
        terminal_kind=terminal_kind,
        pager_cmd=user.pager,
        pager_theme=user.bat_theme,
        pager_style=user.bat_style,
        preview_width=user.preview_width,
        preview_height=user.preview_height,
        cache_dir=cache_dir,
        image_prog=user.image_prog,
        video_backend=user.video_backend,
        cwd=cwd,
        path=path,
        hover_fifo=user.hover_fifo,
        control_fifo=user.control_fifo,
        preview_control=user.preview_control,
        runtime_dir=get_runtime_dir(session_id),
        offset_file=get_config_dir() / "previewpositionoffset",
        use_icons=user.use_icons,
        viewer=user.viewer,
    )


def _coerce_split(value: Optional[str], default: str) -> str:
    if value in SPLIT_CHOICES:
        return str(value)
    return default


def _parse_int(
    value: Optional[str],
    default: Optional[int],
    min_value: Optional[int],
    max_value: Optional[int],
) -> Any:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if min_value is not None:
        number = max(min_value, number)
    if max_value is not None:
        number = min(max_value, number)
    return number


def _get_bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    """Fetch a boolean value with fallback for invalid types."""
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    return default


def _get_int(
    raw: dict[str, Any],
    key: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Fetch an integer value with optional clamping."""
    value = raw.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool):
        value = default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def _get_str(
    raw: dict[str, Any],
    key: str,
    default: str,
    *,
    allow_empty: bool = False,
) -> str:
    """Fetch a string value, optionally allowing empty strings."""
    value = raw.get(key, default)
    if not isinstance(value, str):
        return default
    if not value and not allow_empty:
        return default
    return value


def _config_from_mapping(raw: dict[str, Any]) -> UserConfig:
    """Normalize raw JSON/environment data into a UserConfig."""
    split = raw.get("split", "")
    if split not in SPLIT_CHOICES:
        split = ""
    return UserConfig(
        split=split,
        split_size=_get_int(raw, "split_size", 50, min_value=1, max_value=99),
        terminal=_get_str(raw, "terminal", "", allow_empty=True),
        pager=_get_str(raw, "pager", DEFAULT_PAGER),
        bat_theme=_get_str(raw, "bat_theme", "ansi"),
        bat_style=_get_str(raw, "bat_style", "numbers"),
        preview_width=_get_int(raw, "preview_width", 1920, min_value=1),
        preview_height=_get_int(raw, "preview_height", 1080, min_value=1),
        cache_dir=_get_str(raw, "cache_dir", "", allow_empty=True),
        image_prog=_get_str(raw, "image_prog", "", allow_empty=True),
        video_backend=_get_str(raw, "video_backend", "", allow_empty=True),
        hover_fifo=_get_str(raw, "hover_fifo", "", allow_empty=True),
        control_fifo=_get_str(raw, "control_fifo", "", allow_empty=True),
        preview_control=_get_str(raw, "preview_control", "", allow_empty=True),
        use_icons=_get_bool(raw, "use_icons", False),
        viewer=_get_str(raw, "viewer", "", allow_empty=True),
    )
