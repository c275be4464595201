"""Content classification for handler dispatch."""

from __future__ import annotations

from dataclasses import dataclass
import enum
import logging
import mimetypes
from pathlib import Path
import subprocess
from typing import Optional

from preview_tui.tools import Toolbox

logger = logging.getLogger(__name__)

_SNIFF_BYTES = 8192


class ContentClass(enum.Enum):
    DIRECTORY = "directory"
    IMAGE_JPEG = "image/jpeg"
    IMAGE_SVG = "image/svg"
    IMAGE = "image"
    GIF = "gif"
    VIDEO = "video"
    AUDIO = "audio"
    FONT = "font"
    OFFICE = "office"
    ARCHIVE = "archive"
    TROFF = "troff"
    MARKDOWN = "markdown"
    HTML = "html"
    JSON = "json"
    PDF = "pdf"
    EPUB = "epub"
    VECTOR_IMAGE = "vector-image"
    DJVU = "djvu"
    BINARY = "binary"
    TEXT = "text"


@dataclass(frozen=True)
class Probe:
    """Inputs the classifier works from."""

    encoding: str
    mime: str
    extension: str
    is_dir: bool


ARCHIVE_EXTENSIONS = {
    "a", "ace", "alz", "arc", "arj", "bz", "bz2", "cab", "cpio", "deb", "gz",
    "jar", "lha", "lz", "lzh", "lzma", "lzo", "rar", "rpm", "rz", "t7z", "tar",
    "tbz", "tbz2", "tgz", "tlz", "txz", "tz", "tzo", "war", "xpi", "xz", "z",
    "zip", "zst", "7z",
}
OFFICE_EXTENSIONS = {
    "odt", "ods", "odp", "sxw", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
    "rtf",
}
FONT_EXTENSIONS = {"otf", "ttf", "woff", "woff2", "pfa", "pfb"}
VECTOR_EXTENSIONS = {"ai", "eps", "ps"}
MARKDOWN_EXTENSIONS = {"md", "markdown", "mkd"}
HTML_EXTENSIONS = {"htm", "html", "xhtml"}
TROFF_EXTENSIONS = {"man", "roff", "troff"}

_BINARY_MIME = {
    "application/pdf": ContentClass.PDF,
    "application/epub+zip": ContentClass.EPUB,
    "image/vnd.djvu": ContentClass.DJVU,
    "image/gif": ContentClass.GIF,
    "image/jpeg": ContentClass.IMAGE_JPEG,
    "image/svg+xml": ContentClass.IMAGE_SVG,
    "application/postscript": ContentClass.VECTOR_IMAGE,
    "application/illustrator": ContentClass.VECTOR_IMAGE,
}

_TEXT_MIME = {
    "text/troff": ContentClass.TROFF,
    "text/markdown": ContentClass.MARKDOWN,
    "text/html": ContentClass.HTML,
    "application/json": ContentClass.JSON,
    "image/svg+xml": ContentClass.IMAGE_SVG,
    "application/postscript": ContentClass.VECTOR_IMAGE,
}


def classify(encoding: str, mime: str, extension: str, is_dir: bool) -> ContentClass:
    """Map probe results to a content class.

    Pure: the same inputs always yield the same class.
    """
    if is_dir:
        return ContentClass.DIRECTORY
    ext = extension.lower().lstrip(".")
    if encoding.lower() == "binary":
        return _classify_binary(mime, ext)
    return _classify_text(mime, ext)


def _classify_binary(mime: str, ext: str) -> ContentClass:
    if mime in _BINARY_MIME:
        return _BINARY_MIME[mime]
    major = mime.split("/", 1)[0]
    if major == "image":
        return ContentClass.IMAGE
    if major == "video":
        return ContentClass.VIDEO
    if major == "audio":
        return ContentClass.AUDIO
    if major == "font" or "font" in mime:
        return ContentClass.FONT
    if "opendocument" in mime or "officedocument" in mime or "msword" in mime:
        return ContentClass.OFFICE
    if ext in ARCHIVE_EXTENSIONS:
        return ContentClass.ARCHIVE
    if ext in OFFICE_EXTENSIONS:
        return ContentClass.OFFICE
    if ext in FONT_EXTENSIONS:
        return ContentClass.FONT
    if ext in VECTOR_EXTENSIONS:
        return ContentClass.VECTOR_IMAGE
    if ext == "djvu":
        return ContentClass.DJVU
    if ext == "epub":
        return ContentClass.EPUB
    if ext == "pdf":
        return ContentClass.PDF
    return ContentClass.BINARY


def _classify_text(mime: str, ext: str) -> ContentClass:
    if mime in _TEXT_MIME:
        return _TEXT_MIME[mime]
    if ext in MARKDOWN_EXTENSIONS:
        return ContentClass.MARKDOWN
    if ext in HTML_EXTENSIONS:
        return ContentClass.HTML
    if ext == "json":
        return ContentClass.JSON
    if ext == "svg":
        return ContentClass.IMAGE_SVG
    if ext in VECTOR_EXTENSIONS:
        return ContentClass.VECTOR_IMAGE
    if ext in TROFF_EXTENSIONS:
        return ContentClass.TROFF
    return ContentClass.TEXT


def probe(path: Path, tools: Optional[Toolbox] = None) -> Probe:
    """Gather encoding, MIME type, extension and directory flag for ``path``."""
    tools = tools or Toolbox()
    is_dir = path.is_dir()
    extension = path.suffix.lower().lstrip(".")
    if is_dir:
        return Probe(encoding="", mime="inode/directory", extension="", is_dir=True)
    encoding = mime = ""
    if tools.has("file"):
        mime = _file_query(path, "--mime-type")
        encoding = _file_query(path, "--mime-encoding")
    if not mime:
        guessed, _ = mimetypes.guess_type(path.name)
        mime = guessed or "application/octet-stream"
    if not encoding:
        encoding = "binary" if _looks_binary(path) else "utf-8"
    return Probe(encoding=encoding, mime=mime, extension=extension, is_dir=False)


def classify_path(path: Path, tools: Optional[Toolbox] = None) -> ContentClass:
    result = probe(path, tools)
    return classify(result.encoding, result.mime, result.extension, result.is_dir)


def _file_query(path: Path, flag: str) -> str:
    try:
        completed = subprocess.run(
            ["file", "--brief", "--dereference", flag, "--", str(path)],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return ""
    if completed.returncode != 0:
        return ""
    return completed.stdout.strip()


def _looks_binary(path: Path) -> bool:
    try:
        with path.open("rb") as handle:
            chunk = handle.read(_SNIFF_BYTES)
    except OSError:
        return True
    return b"\x00" in chunk
