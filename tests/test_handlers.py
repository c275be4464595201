"""Tests for handler dispatch and the per-class display chains."""

from __future__ import annotations

from dataclasses import replace
import io
from pathlib import Path
from typing import Optional

import pytest
from rich.console import Console

from preview_tui import handlers
from preview_tui.cache import PreviewCache
from preview_tui.classifier import ContentClass
from preview_tui.config import SessionConfig
from preview_tui.handlers import HANDLERS, RenderContext
from preview_tui.tools import Toolbox


class _Runner:
    def __init__(self) -> None:
        self.runs: list[list[str]] = []
        self.pipes: list[tuple[list[str], list[str]]] = []

    def run(self, argv, **_kwargs) -> int:
        self.runs.append(list(argv))
        return 0

    def pipeline(self, source, sink) -> int:
        self.pipes.append((list(source), list(sink)))
        return 0


class _Display:
    def __init__(self, available: bool = True, animates: bool = False) -> None:
        self.available = available
        self.animates = animates
        self.shown: list[Path] = []
        self.cleared = 0

    def show(self, image: Path) -> bool:
        if not self.available:
            return False
        self.shown.append(image)
        return True

    def clear(self) -> None:
        self.cleared += 1


class _Generator:
    def __init__(self, artifact: Optional[Path]) -> None:
        self.artifact = artifact
        self.requests: list[tuple[Path, ContentClass]] = []

    def generate(self, source: Path, content_class: ContentClass) -> Optional[Path]:
        self.requests.append((source, content_class))
        return self.artifact


def _context(
    tmp_path: Path,
    *,
    installed=(),
    display: Optional[_Display] = None,
    artifact: Optional[Path] = None,
    video_backend: str = "",
) -> RenderContext:
    names = set(installed)
    config = SessionConfig(
        split_dir="v",
        split_size_pct=50,
        terminal_kind="kitty",
        pager_cmd="less -P?n -R -C",
        pager_theme="ansi",
        pager_style="numbers",
        preview_width=640,
        preview_height=480,
        cache_dir=tmp_path / "cache",
        image_prog="",
        video_backend=video_backend,
        cwd=tmp_path,
        path="",
    )
    return RenderContext(
        config=config,
        tools=Toolbox(which=lambda n: f"/usr/bin/{n}" if n in names else None),
        runner=_Runner(),  # type: ignore[arg-type]
        cache=PreviewCache(tmp_path / "cache"),
        display=display or _Display(),  # type: ignore[arg-type]
        generator=_Generator(artifact),  # type: ignore[arg-type]
        console=Console(file=io.StringIO(), width=80),
        columns=80,
        rows=24,
    )


def _output(ctx: RenderContext) -> str:
    return ctx.console.file.getvalue()  # type: ignore[attr-defined]


def test_every_class_has_a_handler() -> None:
    assert set(HANDLERS) == set(ContentClass)


def test_text_goes_through_bat_and_pager(tmp_path: Path) -> None:
    ctx = _context(tmp_path, installed={"batcat"})
    handlers.render(ctx, tmp_path / "a.py", ContentClass.TEXT)
    source, sink = ctx.runner.pipes[0]  # type: ignore[attr-defined]
    assert source[0] == "batcat"
    assert "--theme=ansi" in source and "--style=numbers" in source
    assert sink == ["less", "-P?n", "-R", "-C"]


def test_text_without_bat_pages_the_file(tmp_path: Path) -> None:
    ctx = _context(tmp_path)
    handlers.render(ctx, tmp_path / "a.txt", ContentClass.TEXT)
    assert ctx.runner.runs == [  # type: ignore[attr-defined]
        ["less", "-P?n", "-R", "-C", str(tmp_path / "a.txt")]
    ]


def test_markdown_prefers_glow_then_falls_back(tmp_path: Path) -> None:
    ctx = _context(tmp_path, installed={"glow", "lowdown"})
    handlers.render(ctx, tmp_path / "r.md", ContentClass.MARKDOWN)
    assert ctx.runner.pipes[0][0][0] == "glow"  # type: ignore[attr-defined]

    bare = _context(tmp_path)
    handlers.render(bare, tmp_path / "r.md", ContentClass.MARKDOWN)
    assert bare.runner.runs[0][0] == "less"  # type: ignore[attr-defined]


def test_directory_uses_tree_listing(tmp_path: Path) -> None:
    ctx = _context(tmp_path, installed={"tree"})
    handlers.render(ctx, tmp_path, ContentClass.DIRECTORY)
    assert ctx.runner.pipes[0][0][:2] == ["tree", "-C"]  # type: ignore[attr-defined]


def test_directory_icons_with_eza(tmp_path: Path) -> None:
    ctx = _context(tmp_path, installed={"eza", "tree"})
    ctx.config = replace(ctx.config, use_icons=True)
    handlers.render(ctx, tmp_path, ContentClass.DIRECTORY)
    source = ctx.runner.pipes[0][0]  # type: ignore[attr-defined]
    assert source[0] == "eza" and "--icons=always" in source


def test_archive_listing_or_summary(tmp_path: Path) -> None:
    archive = tmp_path / "bundle.zip"
    archive.write_bytes(b"PK")
    ctx = _context(tmp_path, installed={"unzip"})
    handlers.render(ctx, archive, ContentClass.ARCHIVE)
    assert ctx.runner.pipes[0][0] == ["unzip", "-l", str(archive)]  # type: ignore[attr-defined]

    bare = _context(tmp_path)
    handlers.render(bare, archive, ContentClass.ARCHIVE)
    assert "bundle.zip" in _output(bare)


def test_jpeg_drawn_directly(tmp_path: Path) -> None:
    display = _Display()
    ctx = _context(tmp_path, display=display)
    handlers.render(ctx, tmp_path / "a.jpg", ContentClass.IMAGE_JPEG)
    assert display.shown == [tmp_path / "a.jpg"]


@pytest.mark.parametrize(
    "content_class",
    [ContentClass.PDF, ContentClass.OFFICE, ContentClass.AUDIO, ContentClass.FONT],
)
def test_generated_classes_show_artifact(
    tmp_path: Path, content_class: ContentClass
) -> None:
    artifact = tmp_path / "cache" / "out.jpg"
    display = _Display()
    ctx = _context(tmp_path, display=display, artifact=artifact)
    handlers.render(ctx, tmp_path / "src", content_class)
    assert ctx.generator.requests == [  # type: ignore[attr-defined]
        (tmp_path / "src", content_class)
    ]
    assert display.shown == [artifact]


def test_generated_without_artifact_shows_summary(tmp_path: Path) -> None:
    source = tmp_path / "report.pdf"
    source.write_bytes(b"%PDF-1.4")
    display = _Display()
    ctx = _context(tmp_path, display=display, artifact=None)
    handlers.render(ctx, source, ContentClass.PDF)
    assert display.shown == []
    assert "report.pdf" in _output(ctx)


def test_no_display_skips_generation(tmp_path: Path) -> None:
    source = tmp_path / "song.mp3"
    source.write_bytes(b"ID3")
    ctx = _context(tmp_path, display=_Display(available=False))
    handlers.render(ctx, source, ContentClass.AUDIO)
    assert ctx.generator.requests == []  # type: ignore[attr-defined]
    assert "song.mp3" in _output(ctx)


def test_binary_shows_summary(tmp_path: Path) -> None:
    blob = tmp_path / "core.bin"
    blob.write_bytes(b"\x00" * 2048)
    ctx = _context(tmp_path)
    handlers.render(ctx, blob, ContentClass.BINARY)
    output = _output(ctx)
    assert "core.bin" in output
    assert "2.0 KiB" in output


def test_video_backend_plays_instead_of_thumbnail(tmp_path: Path) -> None:
    ctx = _context(tmp_path, video_backend="mpv")
    handlers.render(ctx, tmp_path / "clip.mp4", ContentClass.VIDEO)
    assert ctx.runner.runs[0][0] == "mpv"  # type: ignore[attr-defined]
    assert ctx.generator.requests == []  # type: ignore[attr-defined]


def test_gif_animates_decomposed_frames(tmp_path: Path, monkeypatch) -> None:
    display = _Display(animates=True)
    ctx = _context(tmp_path, display=display)
    frames = [
        handlers.animation.Frame(tmp_path / "f0.png", 40),
        handlers.animation.Frame(tmp_path / "f1.png", 40),
    ]
    monkeypatch.setattr(handlers.animation, "decompose", lambda path, cache: frames)
    played: list[int] = []

    def fake_play(found, draw, *, clear):
        played.append(len(found))
        for frame in found:
            clear()
            draw(frame.path)
        return len(found)

    monkeypatch.setattr(handlers.animation, "play", fake_play)
    handlers.render(ctx, tmp_path / "spin.gif", ContentClass.GIF)
    assert played == [2]
    assert display.shown == [tmp_path / "f0.png", tmp_path / "f1.png"]
    assert display.cleared == 2


def test_gif_without_animation_draws_still(tmp_path: Path, monkeypatch) -> None:
    display = _Display(animates=False)
    ctx = _context(tmp_path, display=display)
    monkeypatch.setattr(
        handlers.animation,
        "decompose",
        lambda path, cache: pytest.fail("should not decompose"),
    )
    handlers.render(ctx, tmp_path / "spin.gif", ContentClass.GIF)
    assert display.shown == [tmp_path / "spin.gif"]
