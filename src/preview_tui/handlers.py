"""Content handlers: one per content class, selected from a single table."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shlex
from typing import Callable, Optional

from rich.console import Console

from preview_tui import animation
from preview_tui.cache import PreviewCache
from preview_tui.classifier import ContentClass
from preview_tui.config import SessionConfig
from preview_tui.display import ImageDisplay, video_command
from preview_tui.generator import ArtifactGenerator, ProducerContext
from preview_tui.summary import print_summary
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)


@dataclass
class RenderContext:
    """Everything a handler needs to draw one selection."""

    config: SessionConfig
    tools: Toolbox
    runner: CommandRunner
    cache: PreviewCache
    display: ImageDisplay
    generator: ArtifactGenerator
    console: Console
    columns: int
    rows: int

    @classmethod
    def create(
        cls,
        config: SessionConfig,
        *,
        columns: int,
        rows: int,
        tools: Optional[Toolbox] = None,
        runner: Optional[CommandRunner] = None,
        console: Optional[Console] = None,
    ) -> "RenderContext":
        tools = tools or Toolbox()
        runner = runner or CommandRunner()
        cache = PreviewCache(config.cache_dir)
        return cls(
            config=config,
            tools=tools,
            runner=runner,
            cache=cache,
            display=ImageDisplay(config, tools, runner, columns=columns, rows=rows),
            generator=ArtifactGenerator(
                cache, ProducerContext(config=config, tools=tools, runner=runner)
            ),
            console=console or Console(),
            columns=columns,
            rows=rows,
        )

    def pager(self) -> list[str]:
        return shlex.split(self.config.pager_cmd) or ["less", "-R"]


Handler = Callable[[RenderContext, Path], None]


def page(ctx: RenderContext, path: Path, source: Optional[list[str]] = None) -> None:
    """Show ``source``'s output (or the file itself) through the pager."""
    if source is None:
        ctx.runner.run(ctx.pager() + [str(path)])
        return
    ctx.runner.pipeline(source, ctx.pager())


def show_summary(ctx: RenderContext, path: Path) -> None:
    print_summary(path, console=ctx.console, tools=ctx.tools)


def show_directory(ctx: RenderContext, path: Path) -> None:
    lister = ctx.tools.first("eza", "exa")
    if lister is not None:
        argv = [lister, "-T", "--level", "2", "--color=always", "--group-directories-first"]
        if ctx.config.use_icons:
            argv.append("--icons=always" if lister == "eza" else "--icons")
        page(ctx, path, argv + [str(path)])
    elif ctx.tools.has("tree"):
        page(ctx, path, ["tree", "-C", "-L", "2", "--dirsfirst", str(path)])
    else:
        page(ctx, path, ["ls", "-l", "--color=always", "--", str(path)])


def show_text(ctx: RenderContext, path: Path) -> None:
    bat = ctx.tools.first("bat", "batcat")
    if bat is None:
        page(ctx, path)
        return
    argv = [
        bat,
        f"--terminal-width={ctx.columns}",
        "--decorations=always",
        "--color=always",
        "--paging=never",
        f"--style={ctx.config.pager_style}",
        f"--theme={ctx.config.pager_theme}",
        str(path),
    ]
    page(ctx, path, argv)


def _reader(choices: list[tuple[str, Callable[[RenderContext, Path], list[str]]]]) -> Handler:
    """Build a handler trying specialised readers in preference order."""

    def handler(ctx: RenderContext, path: Path) -> None:
        for program, build in choices:
            if ctx.tools.has(program):
                page(ctx, path, build(ctx, path))
                return
        show_text(ctx, path)

    return handler


show_troff = _reader([("man", lambda ctx, p: ["man", "-Pcat", "-l", str(p)])])
show_markdown = _reader(
    [
        ("glow", lambda ctx, p: ["glow", "-s", "dark", "-w", str(ctx.columns), str(p)]),
        ("lowdown", lambda ctx, p: ["lowdown", "-Tterm", str(p)]),
    ]
)
show_html = _reader(
    [
        ("w3m", lambda ctx, p: ["w3m", "-dump", str(p)]),
        ("lynx", lambda ctx, p: ["lynx", "-dump", "--", str(p)]),
        ("elinks", lambda ctx, p: ["elinks", "-dump", str(p)]),
    ]
)
show_json = _reader([("jq", lambda ctx, p: ["jq", "--color-output", ".", str(p)])])


def show_archive(ctx: RenderContext, path: Path) -> None:
    choices = [
        ("atool", ["atool", "-l", "-q", str(path)]),
        ("bsdtar", ["bsdtar", "-tvf", str(path)]),
    ]
    if path.suffix.lower() == ".zip":
        choices.append(("unzip", ["unzip", "-l", str(path)]))
    choices.append(("tar", ["tar", "-tvf", str(path)]))
    for program, argv in choices:
        if ctx.tools.has(program):
            page(ctx, path, argv)
            return
    show_summary(ctx, path)


def show_image(ctx: RenderContext, path: Path) -> None:
    if not ctx.display.show(path):
        show_summary(ctx, path)


def show_generated(ctx: RenderContext, path: Path, content_class: ContentClass) -> None:
    """Display the cached or freshly produced artifact for ``path``."""
    artifact = ctx.generator.generate(path, content_class)
    if artifact is None or not ctx.display.show(artifact):
        show_summary(ctx, path)


def _generated(content_class: ContentClass) -> Handler:
    def handler(ctx: RenderContext, path: Path) -> None:
        if not ctx.display.available:
            show_summary(ctx, path)
            return
        show_generated(ctx, path, content_class)

    return handler


def play_video(ctx: RenderContext, path: Path) -> bool:
    """Hand ``path`` to the configured video backend, if any."""
    argv = video_command(ctx.config, path)
    if argv is None:
        return False
    return ctx.runner.run(argv) == 0


def show_raster(ctx: RenderContext, path: Path) -> None:
    if not ctx.display.available:
        show_summary(ctx, path)
    elif ctx.tools.first("magick", "convert"):
        show_generated(ctx, path, ContentClass.IMAGE)
    else:
        show_image(ctx, path)


def show_video(ctx: RenderContext, path: Path) -> None:
    if play_video(ctx, path):
        return
    _generated(ContentClass.VIDEO)(ctx, path)


def show_gif(ctx: RenderContext, path: Path) -> None:
    if play_video(ctx, path):
        return
    if not ctx.display.animates:
        show_image(ctx, path)
        return
    frames = animation.decompose(path, ctx.cache)
    if len(frames) <= 1:
        show_image(ctx, path)
        return
    animation.play(frames, ctx.display.show, clear=ctx.display.clear)


HANDLERS: dict[ContentClass, Handler] = {
    ContentClass.DIRECTORY: show_directory,
    ContentClass.IMAGE_JPEG: show_image,
    ContentClass.IMAGE_SVG: _generated(ContentClass.IMAGE_SVG),
    ContentClass.IMAGE: show_raster,
    ContentClass.GIF: show_gif,
    ContentClass.VIDEO: show_video,
    ContentClass.AUDIO: _generated(ContentClass.AUDIO),
    ContentClass.FONT: _generated(ContentClass.FONT),
    ContentClass.OFFICE: _generated(ContentClass.OFFICE),
    ContentClass.ARCHIVE: show_archive,
    ContentClass.TROFF: show_troff,
    ContentClass.MARKDOWN: show_markdown,
    ContentClass.HTML: show_html,
    ContentClass.JSON: show_json,
    ContentClass.PDF: _generated(ContentClass.PDF),
    ContentClass.EPUB: _generated(ContentClass.EPUB),
    ContentClass.VECTOR_IMAGE: _generated(ContentClass.VECTOR_IMAGE),
    ContentClass.DJVU: _generated(ContentClass.DJVU),
    ContentClass.BINARY: show_summary,
    ContentClass.TEXT: show_text,
}


def render(ctx: RenderContext, path: Path, content_class: ContentClass) -> None:
    """Dispatch ``path`` to the handler registered for its class."""
    handler = HANDLERS[content_class]
    logger.debug("Rendering %s as %s", path, content_class.value)
    handler(ctx, path)
