"""Cache-aware generation of preview artifacts by external producers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
from typing import Callable, Optional

from preview_tui.cache import PreviewCache
from preview_tui.classifier import ContentClass
from preview_tui.config import SessionConfig
from preview_tui.tools import CommandRunner, Toolbox

logger = logging.getLogger(__name__)

FONT_SPECIMEN = (
    "ABCDEFGHIJKLM\nNOPQRSTUVWXYZ\nabcdefghijklm\nnopqrstuvwxyz\n1234567890\n"
    "!@#$%^&*()-+=[]{}"
)


@dataclass(frozen=True)
class ProducerContext:
    """What a producer needs: where to write, how big, and how to run tools."""

    config: SessionConfig
    tools: Toolbox
    runner: CommandRunner

    @property
    def size(self) -> tuple[int, int]:
        return (self.config.preview_width, self.config.preview_height)


# A producer writes a preview of ``source`` to ``out`` and reports success.
Producer = Callable[[ProducerContext, Path, Path], bool]


def _ok(ctx: ProducerContext, argv: list[str]) -> bool:
    return ctx.runner.run(argv, quiet=True) == 0


def _magick(ctx: ProducerContext) -> Optional[str]:
    return ctx.tools.first("magick", "convert")


def produce_video_thumbnail(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if not ctx.tools.has("ffmpegthumbnailer"):
        return False
    return _ok(
        ctx,
        ["ffmpegthumbnailer", "-m", "-s", "0", "-i", str(source), "-o", str(out)],
    )


def produce_waveform(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if not ctx.tools.has("ffmpeg"):
        return False
    width, height = ctx.size
    return _ok(
        ctx,
        [
            "ffmpeg",
            "-v",
            "error",
            "-y",
            "-i",
            str(source),
            "-filter_complex",
            f"showwavespic=s={width}x{height // 2}:split_channels=1",
            "-frames:v",
            "1",
            str(out),
        ],
    )


def produce_pdf_page(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if not ctx.tools.has("pdftoppm"):
        return False
    # pdftoppm appends the extension itself.
    stem = str(out)[: -len(out.suffix)] if out.suffix else str(out)
    return _ok(
        ctx,
        [
            "pdftoppm",
            "-jpeg",
            "-f",
            "1",
            "-singlefile",
            "-scale-to-x",
            str(ctx.config.preview_width),
            "-scale-to-y",
            "-1",
            str(source),
            stem,
        ],
    )


def produce_epub_cover(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if not ctx.tools.has("gnome-epub-thumbnailer"):
        return False
    return _ok(
        ctx,
        [
            "gnome-epub-thumbnailer",
            "-s",
            str(ctx.config.preview_width),
            str(source),
            str(out),
        ],
    )


def produce_office_page(ctx: ProducerContext, source: Path, out: Path) -> bool:
    office = ctx.tools.first("libreoffice", "soffice")
    if office is None or not ctx.tools.has("pdftoppm"):
        return False
    workdir = out.parent / f".{out.name}.convert"
    workdir.mkdir(parents=True, exist_ok=True)
    try:
        converted = _ok(
            ctx,
            [
                office,
                "--headless",
                "--convert-to",
                "pdf",
                "--outdir",
                str(workdir),
                str(source),
            ],
        )
        pdf = workdir / (source.stem + ".pdf")
        if not converted or not pdf.exists():
            return False
        return produce_pdf_page(ctx, pdf, out)
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


def produce_font_specimen(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if ctx.tools.has("fontpreview"):
        return _ok(ctx, ["fontpreview", "-i", str(source), "-o", str(out)])
    magick = _magick(ctx)
    if magick is None:
        return False
    width, height = ctx.size
    return _ok(
        ctx,
        [
            magick,
            "-size",
            f"{width}x{height}",
            "xc:#ffffff",
            "-gravity",
            "center",
            "-pointsize",
            "72",
            "-font",
            str(source),
            "-fill",
            "#000000",
            "-annotate",
            "+0+0",
            FONT_SPECIMEN,
            "-flatten",
            str(out),
        ],
    )


def produce_svg_raster(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if ctx.tools.has("rsvg-convert"):
        return _ok(
            ctx,
            [
                "rsvg-convert",
                "--keep-aspect-ratio",
                "--width",
                str(ctx.config.preview_width),
                str(source),
                "-o",
                str(out),
            ],
        )
    return produce_raster(ctx, source, out)


def produce_raster(ctx: ProducerContext, source: Path, out: Path) -> bool:
    """Flatten the first frame/page of any ImageMagick-readable file."""
    magick = _magick(ctx)
    if magick is None:
        return False
    width, height = ctx.size
    return _ok(
        ctx,
        [
            magick,
            f"{source}[0]",
            "-flatten",
            "-resize",
            f"{width}x{height}>",
            str(out),
        ],
    )


def produce_djvu_page(ctx: ProducerContext, source: Path, out: Path) -> bool:
    if not ctx.tools.has("ddjvu"):
        return False
    width, height = ctx.size
    return _ok(
        ctx,
        [
            "ddjvu",
            "-format=tiff",
            "-page=1",
            f"-size={width}x{height}",
            str(source),
            str(out),
        ],
    )


@dataclass(frozen=True)
class Recipe:
    suffix: str
    producer: Producer


RECIPES: dict[ContentClass, Recipe] = {
    ContentClass.VIDEO: Recipe(".jpg", produce_video_thumbnail),
    ContentClass.AUDIO: Recipe(".png", produce_waveform),
    ContentClass.PDF: Recipe(".jpg", produce_pdf_page),
    ContentClass.EPUB: Recipe(".png", produce_epub_cover),
    ContentClass.OFFICE: Recipe(".jpg", produce_office_page),
    ContentClass.FONT: Recipe(".jpg", produce_font_specimen),
    ContentClass.IMAGE_SVG: Recipe(".png", produce_svg_raster),
    ContentClass.VECTOR_IMAGE: Recipe(".png", produce_raster),
    ContentClass.IMAGE: Recipe(".jpg", produce_raster),
    ContentClass.DJVU: Recipe(".tiff", produce_djvu_page),
}


class ArtifactGenerator:
    """Returns a cached artifact or runs the class producer to make one."""

    def __init__(
        self,
        cache: PreviewCache,
        context: ProducerContext,
        recipes: Optional[dict[ContentClass, Recipe]] = None,
    ) -> None:
        self._cache = cache
        self._context = context
        self._recipes = RECIPES if recipes is None else recipes

    def supports(self, content_class: ContentClass) -> bool:
        return content_class in self._recipes

    def generate(self, source: Path, content_class: ContentClass) -> Optional[Path]:
        """Return an artifact for ``source`` or None when none could be made."""
        recipe = self._recipes.get(content_class)
        if recipe is None:
            return None
        entry = self._cache.lookup(source, recipe.suffix)
        if entry is not None:
            logger.debug("Cache hit for %s", source)
            return entry.artifact
        self._cache.discard(source, recipe.suffix)
        target = self._cache.prepare(source, recipe.suffix)
        # Producers write beside the target; only a finished artifact is
        # renamed into place, so a killed producer never leaves a cache hit.
        partial = target.with_name(f".{target.stem}.partial{recipe.suffix}")
        try:
            produced = recipe.producer(self._context, source, partial)
            if produced and partial.exists() and partial.stat().st_size > 0:
                os.replace(partial, target)
        finally:
            _unlink_quietly(partial)
        entry = self._cache.commit(source, recipe.suffix)
        if entry is None:
            logger.info("No preview produced for %s (%s)", source, content_class.value)
            self._cache.discard(source, recipe.suffix)
            return None
        return entry.artifact


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
