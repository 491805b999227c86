"""
Output rendering service.

Turns an IntermediateDocument into the bytes of the requested target format.

Public API:
  TargetFormat                         supported output formats
  RenderedFile                         bytes + MIME type + download filename
  output_filename(source_name, fmt)    -> str
  render(document, target_format, source_filename) -> RenderedFile
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import PureWindowsPath
from typing import Callable

from app.models.document import IntermediateDocument
from app.services.docx_renderer import render_docx
from app.services.html_renderer import render_html
from app.services.pdf_renderer import render_pdf

logger = logging.getLogger(__name__)

DEFAULT_BASE_NAME = "converted"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UnsupportedFormatError(ValueError):
    """Raised when the requested output format is not supported."""

    def __init__(self, requested: str):
        self.requested = requested
        self.message = (
            f'Format "{requested}" is not supported. '
            f"Supported formats: {', '.join(f.value for f in TargetFormat)}"
        )
        super().__init__(self.message)


class RenderError(Exception):
    """Raised when an output document could not be produced."""

    def __init__(self, message: str, target_format: str):
        super().__init__(message)
        self.message = message
        self.target_format = target_format


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------

class TargetFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    HTML = "html"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @classmethod
    def parse(cls, value: str) -> "TargetFormat":
        """Parse a requested format, ignoring case and surrounding whitespace."""
        normalized = (value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedFormatError(value)


_MIME_TYPES: dict[TargetFormat, str] = {
    TargetFormat.PDF: "application/pdf",
    TargetFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    TargetFormat.TXT: "text/plain; charset=utf-8",
    TargetFormat.HTML: "text/html; charset=utf-8",
}


@dataclass
class RenderedFile:
    """Result of render()."""
    content: bytes
    mime_type: str
    filename: str


def base_name(source_filename: str) -> str:
    """
    Source filename without directories and without its last extension.

    Browsers on Windows may send a full path, so both separators are
    accepted.
    """
    name = PureWindowsPath(source_filename or "").name
    stem, dot, _ext = name.rpartition(".")
    if dot and stem:
        name = stem
    return name.strip() or DEFAULT_BASE_NAME


def output_filename(source_filename: str, target_format: TargetFormat) -> str:
    """report.eml + pdf -> report.pdf"""
    return f"{base_name(source_filename)}.{target_format.extension}"


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------

def render_txt(document: IntermediateDocument, title: str) -> bytes:
    return document.plain_text.encode("utf-8")


_RENDERERS: dict[TargetFormat, Callable[[IntermediateDocument, str], bytes]] = {
    TargetFormat.PDF: render_pdf,
    TargetFormat.DOCX: render_docx,
    TargetFormat.TXT: render_txt,
    TargetFormat.HTML: render_html,
}


def render(
    document: IntermediateDocument,
    target_format: TargetFormat,
    source_filename: str,
) -> RenderedFile:
    """
    Render the document in the target format.

    Raises:
        RenderError: if the output library fails. Not retried.
    """
    title = base_name(source_filename)
    try:
        content = _RENDERERS[target_format](document, title)
    except Exception as e:
        logger.exception(f"Rendering {target_format.value} failed")
        raise RenderError(str(e) or "Conversion failed", target_format.value) from e

    return RenderedFile(
        content=content,
        mime_type=target_format.mime_type,
        filename=output_filename(source_filename, target_format),
    )
