"""
Source extraction service.

Turns an uploaded file into an IntermediateDocument. The source format is
chosen from the file extension only; unknown extensions are read as UTF-8
text.

Public API:
  SourceKind                          supported source formats
  extract_document(content, filename) -> IntermediateDocument
"""

import io
import json
import logging
from enum import Enum
from pathlib import PurePath
from typing import Callable

import docx
import mammoth

from app.models.document import IntermediateDocument
from app.services.email_extractor import extract_eml_document, extract_msg_document
from app.services.salvage import ExtractionError, extract_with_fallback
from app.services.text_helpers import (
    decode_text,
    escape_html,
    preformatted,
    salvage_printable_text,
    strip_markup,
)

logger = logging.getLogger(__name__)

NO_TEXT_PLACEHOLDER = "(No readable content)"


class SourceKind(str, Enum):
    MSG = "msg"
    EML = "eml"
    DOCX = "docx"
    HTML = "html"
    CSV = "csv"
    JSON = "json"
    TEXT = "text"

    @classmethod
    def from_extension(cls, extension: str) -> "SourceKind":
        """Map a file extension (with or without the dot) to a SourceKind."""
        ext = extension.lower().lstrip(".")
        if ext == "htm":
            return cls.HTML
        try:
            return cls(ext)
        except ValueError:
            return cls.TEXT

    @classmethod
    def from_filename(cls, filename: str) -> "SourceKind":
        return cls.from_extension(PurePath(filename or "").suffix)


# ---------------------------------------------------------------------------
# .docx
# ---------------------------------------------------------------------------

def _docx_with_mammoth(content: bytes) -> IntermediateDocument:
    try:
        text = mammoth.extract_raw_text(io.BytesIO(content)).value
        html = mammoth.convert_to_html(io.BytesIO(content)).value
    except Exception as e:
        raise ExtractionError(f"mammoth could not read document: {e}", strategy="mammoth") from e
    return IntermediateDocument(plain_text=text, html_fragment=html or preformatted(text))


def _docx_with_python_docx(content: bytes) -> IntermediateDocument:
    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as e:
        raise ExtractionError(f"python-docx could not open document: {e}", strategy="python-docx") from e
    text = "\n".join(p.text for p in document.paragraphs)
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


def _printable_salvage(content: bytes) -> IntermediateDocument:
    text = salvage_printable_text(content)
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


def extract_docx(content: bytes) -> IntermediateDocument:
    return extract_with_fallback(
        content,
        _docx_with_mammoth,
        _docx_with_python_docx,
        _printable_salvage,
    )


# ---------------------------------------------------------------------------
# Text formats
# ---------------------------------------------------------------------------

def extract_html(content: bytes) -> IntermediateDocument:
    """Markup is stripped for the text view and passed through for the HTML view."""
    markup = decode_text(content)
    # markup without any text (images only, empty body) keeps its source as text
    text = strip_markup(markup) or markup
    return IntermediateDocument(plain_text=text, html_fragment=markup)


def csv_to_html_table(text: str) -> str:
    """
    Render CSV text as an HTML table, first row as the header.

    Rows are split on newlines and cells on commas; quoted fields are not
    interpreted.
    """
    rows = [row.split(",") for row in text.strip().split("\n")]
    parts = [
        '<table border="1" cellpadding="6" cellspacing="0" '
        'style="border-collapse:collapse;font-family:sans-serif;">'
    ]
    for index, row in enumerate(rows):
        tag = "th" if index == 0 else "td"
        style = "background:#f0f0f0;font-weight:bold;" if index == 0 else ""
        cells = "".join(
            f'<{tag} style="{style}">{escape_html(cell.strip())}</{tag}>' for cell in row
        )
        parts.append(f"<tr>{cells}</tr>")
    parts.append("</table>")
    return "".join(parts)


def extract_csv(content: bytes) -> IntermediateDocument:
    text = decode_text(content)
    return IntermediateDocument(plain_text=text, html_fragment=csv_to_html_table(text))


def extract_json(content: bytes) -> IntermediateDocument:
    """Pretty-print JSON with a 2-space indent; invalid JSON passes through."""
    raw = decode_text(content)
    try:
        text = json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
    except ValueError:
        logger.info("JSON upload did not parse; passing raw text through")
        text = raw
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


def extract_text(content: bytes) -> IntermediateDocument:
    text = decode_text(content)
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


# ---------------------------------------------------------------------------
# Registry and dispatcher
# ---------------------------------------------------------------------------

_EXTRACTORS: dict[SourceKind, Callable[[bytes], IntermediateDocument]] = {
    SourceKind.MSG: extract_msg_document,
    SourceKind.EML: extract_eml_document,
    SourceKind.DOCX: extract_docx,
    SourceKind.HTML: extract_html,
    SourceKind.CSV: extract_csv,
    SourceKind.JSON: extract_json,
    SourceKind.TEXT: extract_text,
}

SUPPORTED_EXTENSIONS = sorted({kind.value for kind in SourceKind if kind is not SourceKind.TEXT} | {"htm"})


def extract_document(content: bytes, filename: str) -> IntermediateDocument:
    """
    Extract an IntermediateDocument from an uploaded file.

    Dispatches on the lower-cased extension of filename. Every source kind
    ends in a salvage strategy, so this never raises for malformed input.
    """
    kind = SourceKind.from_filename(filename)
    logger.info(f"Extracting {kind.value} source ({len(content)} bytes)")
    document = _EXTRACTORS[kind](content)

    # Only a zero-byte upload may produce empty text
    if content and not document.plain_text:
        logger.warning(f"No text recovered from {kind.value} source; using placeholder")
        document = IntermediateDocument(
            plain_text=NO_TEXT_PLACEHOLDER,
            html_fragment=preformatted(NO_TEXT_PLACEHOLDER),
            metadata=document.metadata,
        )
    return document
