"""
Email extraction (.eml and Outlook .msg).

Both formats produce an IntermediateDocument with EmailMetadata plus the
canonical text / HTML layout built by text_helpers.

.msg strategy chain:
  1. extract_msg reader, gaps filled from the raw property streams
  2. raw property streams alone (olefile)
  3. longest printable ASCII run

.eml strategy chain:
  1. email.parser.BytesParser with the modern policy
  2. raw bytes as UTF-8 text
"""

import io
import logging
from datetime import datetime
from email import policy
from email.parser import BytesParser
from typing import Any, Optional

import extract_msg

from app.models.document import AttachmentInfo, EmailMetadata, IntermediateDocument
from app.services.msg_properties import MsgFields, merge_fields, read_property_streams
from app.services.salvage import ExtractionError, extract_with_fallback
from app.services.text_helpers import (
    NO_SUBJECT,
    UNKNOWN,
    build_email_html,
    build_email_text,
    clean_text,
    decode_text,
    preformatted,
    salvage_printable_text,
    strip_markup,
)

logger = logging.getLogger(__name__)

DATE_DISPLAY_FORMAT = "%Y-%m-%d %H:%M %Z"

MSG_SALVAGE_PLACEHOLDER = "(Unable to read MSG content)"


def format_date(value: Optional[datetime]) -> str:
    """Format a message date for display. Naive datetimes get no zone suffix."""
    if value is None:
        return ""
    return value.strftime(DATE_DISPLAY_FORMAT).strip()


def email_document(meta: EmailMetadata, body_html: str = "") -> IntermediateDocument:
    """Build the canonical text and HTML layout for an email."""
    return IntermediateDocument(
        plain_text=build_email_text(meta),
        html_fragment=build_email_html(meta, body_html or None),
        metadata=meta,
    )


# ---------------------------------------------------------------------------
# .msg
# ---------------------------------------------------------------------------

def _split_addresses(value: Optional[str]) -> list[str]:
    """extract_msg joins recipients with '; '."""
    if not value:
        return []
    return [clean_text(part).strip() for part in str(value).split(";") if part.strip()]


def _optional_attr(obj: Any, name: str) -> Any:
    """
    Read a lazily computed extract_msg property.

    Some properties (htmlBody in particular) are derived from other streams
    and may fail on damaged files; a failure there should not discard the
    fields that were read successfully.
    """
    try:
        return getattr(obj, name, None)
    except Exception as e:
        logger.warning(f"extract_msg could not read {name}: {e}")
        return None


def _reader_attachments(msg: Any) -> list[AttachmentInfo]:
    attachments: list[AttachmentInfo] = []
    for att in _optional_attr(msg, "attachments") or []:
        name = (
            _optional_attr(att, "longFilename")
            or _optional_attr(att, "shortFilename")
            or _optional_attr(att, "name")
            or "file"
        )
        data = _optional_attr(att, "data")
        size = len(data) if isinstance(data, (bytes, bytearray)) else 0
        attachments.append(AttachmentInfo(name=clean_text(str(name)), size=size))
    return attachments


def read_msg_fields(content: bytes) -> MsgFields:
    """
    Read an .msg file with extract_msg.

    Raises:
        ExtractionError: if extract_msg cannot open the file.
    """
    try:
        # bytes shorter than an OLE header would be taken as a file path
        msg = extract_msg.Message(io.BytesIO(content))
    except Exception as e:
        raise ExtractionError(f"extract_msg could not open file: {e}", strategy="extract_msg") from e

    try:
        date = _optional_attr(msg, "date")
        html_body = _optional_attr(msg, "htmlBody") or b""
        if isinstance(html_body, bytes):
            html_body = html_body.decode("utf-8", errors="replace")

        sender = clean_text(_optional_attr(msg, "sender") or "")
        return MsgFields(
            subject=clean_text(_optional_attr(msg, "subject") or ""),
            sender_name=sender,
            to=_split_addresses(_optional_attr(msg, "to")),
            cc=_split_addresses(_optional_attr(msg, "cc")),
            date=date if isinstance(date, datetime) else None,
            body=clean_text(_optional_attr(msg, "body") or ""),
            html_body=clean_text(html_body),
            attachments=_reader_attachments(msg),
        )
    finally:
        msg.close()


def _sender_display(msg_fields: MsgFields) -> str:
    name, email = msg_fields.sender_name, msg_fields.sender_email
    if name and email and email not in name:
        return f"{name} <{email}>"
    return name or email or UNKNOWN


def msg_fields_to_document(msg_fields: MsgFields) -> IntermediateDocument:
    meta = EmailMetadata(
        subject=msg_fields.subject or NO_SUBJECT,
        sender=_sender_display(msg_fields),
        recipients=msg_fields.to,
        cc_recipients=msg_fields.cc,
        date=format_date(msg_fields.date),
        attachments=msg_fields.attachments,
        body=msg_fields.body,
    )
    return email_document(meta, msg_fields.html_body)


def _msg_from_reader(content: bytes) -> IntermediateDocument:
    """extract_msg first; raw property streams fill whatever it left empty."""
    primary = read_msg_fields(content)
    try:
        fallback = read_property_streams(content)
    except ExtractionError as e:
        logger.debug(f"Raw property scan unavailable: {e.message}")
        fallback = None
    return msg_fields_to_document(merge_fields(primary, fallback))


def _msg_from_property_streams(content: bytes) -> IntermediateDocument:
    return msg_fields_to_document(read_property_streams(content))


def _msg_salvage(content: bytes) -> IntermediateDocument:
    text = salvage_printable_text(content) or MSG_SALVAGE_PLACEHOLDER
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


def extract_msg_document(content: bytes) -> IntermediateDocument:
    """Extract an Outlook .msg file. Never raises."""
    return extract_with_fallback(
        content,
        _msg_from_reader,
        _msg_from_property_streams,
        _msg_salvage,
    )


# ---------------------------------------------------------------------------
# .eml
# ---------------------------------------------------------------------------

def _header_addresses(header: Any) -> list[str]:
    """Return the addresses of an address header as display strings."""
    if header is None:
        return []
    addresses = getattr(header, "addresses", ())
    if addresses:
        return [str(address) for address in addresses]
    text = str(header).strip()
    return [text] if text else []


def _header_date(header: Any) -> str:
    if header is None:
        return ""
    parsed = getattr(header, "datetime", None)
    if parsed is not None:
        return format_date(parsed)
    return str(header).strip()


def _part_text(part: Any) -> str:
    if part is None:
        return ""
    return part.get_content()


def _eml_from_parser(content: bytes) -> IntermediateDocument:
    try:
        message = BytesParser(policy=policy.default).parsebytes(content)

        body = _part_text(message.get_body(preferencelist=("plain",)))
        body_html = _part_text(message.get_body(preferencelist=("html",)))
        if not body and body_html:
            body = strip_markup(body_html)

        attachments = [
            AttachmentInfo(
                name=part.get_filename() or "file",
                size=len(part.get_payload(decode=True) or b""),
            )
            for part in message.iter_attachments()
        ]

        senders = _header_addresses(message["from"])
        meta = EmailMetadata(
            subject=str(message["subject"] or "").strip() or NO_SUBJECT,
            sender=", ".join(senders) or UNKNOWN,
            recipients=_header_addresses(message["to"]),
            cc_recipients=_header_addresses(message["cc"]),
            date=_header_date(message["date"]),
            attachments=attachments,
            body=body,
        )
    except Exception as e:
        raise ExtractionError(f"MIME parse failed: {e}", strategy="eml") from e

    return email_document(meta, body_html)


def _eml_raw(content: bytes) -> IntermediateDocument:
    text = decode_text(content)
    return IntermediateDocument(plain_text=text, html_fragment=preformatted(text))


def extract_eml_document(content: bytes) -> IntermediateDocument:
    """Extract a MIME .eml message. Never raises."""
    return extract_with_fallback(content, _eml_from_parser, _eml_raw)
