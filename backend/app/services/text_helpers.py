"""
Shared text / HTML helpers for the extractors and renderers.

Public API:
  escape_html(value)              -> str
  preformatted(text)              -> str   (escaped <pre> block)
  strip_markup(html)              -> str
  clean_text(value)               -> str   (control chars + mojibake)
  xml_safe(value)                 -> str
  decode_text(content)            -> str
  salvage_printable_text(content) -> str
  build_email_text(meta)          -> str
  build_email_html(meta, body_html) -> str
"""

import html
import re
from typing import Optional

from bs4 import BeautifulSoup

from app.models.document import EmailMetadata

# Divider between the header block and the body in the canonical email text
DIVIDER = "─" * 50

NO_SUBJECT = "(No Subject)"
UNKNOWN = "(Unknown)"

_WHITESPACE_RE = re.compile(r"\s+")
_PRINTABLE_RUN_RE = re.compile(rb"[\x20-\x7e]+")

# C0 controls except tab, newline and carriage return, plus DEL and C1 controls
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

# Characters that are not allowed anywhere in an XML 1.0 document
_XML_ILLEGAL_RE = re.compile(
    "[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]"
)

# Characters commonly seen as mojibake after UTF-8 text was decoded as cp1252.
# Three-byte sequences come first so their prefixes are not replaced early.
_MOJIBAKE_SOURCES = "’‘“”–—…•éèàüöä\u00a0"


def _as_cp1252(char: str) -> str:
    """Return how char looks when its UTF-8 bytes are read as cp1252."""
    decoded = []
    for byte in char.encode("utf-8"):
        try:
            decoded.append(bytes([byte]).decode("cp1252"))
        except UnicodeDecodeError:
            # bytes undefined in cp1252 usually survive as the latin-1 char
            decoded.append(chr(byte))
    return "".join(decoded)


_MOJIBAKE_REPLACEMENTS: list[tuple[str, str]] = [
    (_as_cp1252(char), char) for char in _MOJIBAKE_SOURCES
]


def escape_html(value: Optional[str]) -> str:
    """Escape &, <, > and quotes for safe embedding in HTML."""
    return html.escape(value or "", quote=True)


def preformatted(text: str) -> str:
    """Return text as an escaped <pre> block."""
    return f"<pre>{escape_html(text)}</pre>"


def strip_markup(markup: str) -> str:
    """Remove all tags and collapse whitespace runs into single spaces."""
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_text(value: Optional[str]) -> str:
    """
    Clean a string recovered from a binary container.

    Removes control characters (keeping tab, newline and carriage return) and
    U+FFFD replacement characters, and repairs the common cp1252 mojibake
    sequences listed in _MOJIBAKE_REPLACEMENTS.
    """
    if not value:
        return ""
    for broken, fixed in _MOJIBAKE_REPLACEMENTS:
        value = value.replace(broken, fixed)
    value = value.replace("\ufffd", "")
    return _CONTROL_CHARS_RE.sub("", value)


def xml_safe(value: str) -> str:
    """Drop characters that cannot be written into an XML document."""
    return _XML_ILLEGAL_RE.sub("", value)


def decode_text(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8, replacing undecodable sequences."""
    return content.decode("utf-8", errors="replace")


def salvage_printable_text(content: bytes) -> str:
    """
    Return the longest contiguous run of printable ASCII bytes (0x20-0x7E).

    Last-resort text recovery for binary containers that no reader could
    open. Returns an empty string when the content has no printable bytes.
    """
    longest = b""
    for match in _PRINTABLE_RUN_RE.finditer(content):
        run = match.group(0)
        if len(run) > len(longest):
            longest = run
    return longest.decode("ascii")


# ---------------------------------------------------------------------------
# Canonical email layout
# ---------------------------------------------------------------------------

def build_email_text(meta: EmailMetadata) -> str:
    """
    Flatten email metadata into the canonical text layout:

        Subject: ...
        From: ...
        To: ...
        CC: ...            (optional)
        Date: ...          (optional)
        Attachments: ...   (optional)

        ──────────...

        <body>
    """
    lines = [
        f"Subject: {meta.subject}",
        f"From: {meta.sender}",
        f"To: {meta.to_display or UNKNOWN}",
    ]
    if meta.cc_recipients:
        lines.append(f"CC: {meta.cc_display}")
    if meta.date:
        lines.append(f"Date: {meta.date}")
    if meta.attachments:
        lines.append(f"Attachments: {meta.attachment_names}")
    lines.extend(["", DIVIDER, "", meta.body])
    return "\n".join(lines)


def build_email_html(meta: EmailMetadata, body_html: Optional[str] = None) -> str:
    """
    Render the email header block followed by the body.

    body_html is embedded as-is when given; otherwise the plain-text body is
    escaped into a pre-wrap div.
    """
    if not body_html:
        body_html = f'<div style="white-space:pre-wrap">{escape_html(meta.body)}</div>'

    parts = [
        '<div class="email-header">',
        f'<div class="subject">{escape_html(meta.subject)}</div>',
        f"<p><strong>From:</strong> {escape_html(meta.sender)}</p>",
        f"<p><strong>To:</strong> {escape_html(meta.to_display or UNKNOWN)}</p>",
    ]
    if meta.cc_recipients:
        parts.append(f"<p><strong>CC:</strong> {escape_html(meta.cc_display)}</p>")
    if meta.date:
        parts.append(f"<p><strong>Date:</strong> {escape_html(meta.date)}</p>")
    if meta.attachments:
        names = ", ".join(f"\U0001f4ce {escape_html(a.name)}" for a in meta.attachments)
        parts.append(f"<p><strong>Attachments:</strong> {names}</p>")
    parts.append("</div>")
    parts.append(f'<div class="email-body">{body_html}</div>')
    return "".join(parts)
