"""
Raw property reader for Outlook .msg files.

An .msg file is an OLE compound file. Every MAPI property of the message is
stored either in a stream named "__substg1.0_<ID><TYPE>" (variable-length
values such as strings) or in the fixed-size "__properties_version1.0"
stream (integers, timestamps). This module opens the container with olefile
and reads the well-known properties directly, so fields a higher-level reader
misses can still be recovered.

Public API:
  MsgFields                      recovered message fields
  read_property_streams(content) -> MsgFields   (raises ExtractionError)
  merge_fields(primary, fallback) -> MsgFields
"""

import io
import logging
import struct
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import olefile

from app.models.document import AttachmentInfo
from app.services.salvage import ExtractionError
from app.services.text_helpers import clean_text

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# MAPI property identifiers and types
# ---------------------------------------------------------------------------

PR_SUBJECT = 0x0037
PR_CLIENT_SUBMIT_TIME = 0x0039
PR_SENT_REPRESENTING_NAME = 0x0042
PR_SENT_REPRESENTING_EMAIL = 0x0065
PR_SENDER_NAME = 0x0C1A
PR_SENDER_EMAIL = 0x0C1F
PR_RECIPIENT_TYPE = 0x0C15
PR_DISPLAY_CC = 0x0E03
PR_DISPLAY_TO = 0x0E04
PR_MESSAGE_DELIVERY_TIME = 0x0E06
PR_BODY = 0x1000
PR_HTML = 0x1013
PR_DISPLAY_NAME = 0x3001
PR_EMAIL_ADDRESS = 0x3003
PR_ATTACH_DATA = 0x3701
PR_ATTACH_FILENAME = 0x3704
PR_ATTACH_LONG_FILENAME = 0x3707
PR_SMTP_ADDRESS = 0x39FE
PR_SENDER_SMTP_ADDRESS = 0x5D01

PT_LONG = 0x0003
PT_STRING8 = 0x001E
PT_UNICODE = 0x001F
PT_SYSTIME = 0x0040
PT_BINARY = 0x0102

MAPI_CC = 2

# Property ids tried per field, in precedence order
SENDER_NAME_IDS = (PR_SENDER_NAME, PR_SENT_REPRESENTING_NAME)
SENDER_EMAIL_IDS = (PR_SENDER_EMAIL, PR_SENT_REPRESENTING_EMAIL, PR_SENDER_SMTP_ADDRESS)
RECIPIENT_ADDRESS_IDS = (PR_DISPLAY_NAME, PR_SMTP_ADDRESS, PR_EMAIL_ADDRESS)
DATE_IDS = (PR_MESSAGE_DELIVERY_TIME, PR_CLIENT_SUBMIT_TIME)

PROPERTIES_STREAM = "__properties_version1.0"
ATTACHMENT_PREFIX = "__attach_version1.0_#"
RECIPIENT_PREFIX = "__recip_version1.0_#"

# Size of the header in front of the 16-byte property entries
_TOP_LEVEL_HEADER_SIZE = 32
_SUBOBJECT_HEADER_SIZE = 8
_PROPERTY_ENTRY = struct.Struct("<HHIq")

_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


@dataclass
class MsgFields:
    """Message fields recovered from an .msg file. Empty means "not found"."""
    subject: str = ""
    sender_name: str = ""
    sender_email: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    date: Optional[datetime] = None
    body: str = ""
    html_body: str = ""
    attachments: list[AttachmentInfo] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


def merge_fields(primary: MsgFields, fallback: Optional[MsgFields]) -> MsgFields:
    """
    Fill the empty fields of primary from fallback.

    Precedence is fixed: a non-empty primary value always wins, regardless
    of what the fallback holds.
    """
    if fallback is None:
        return primary
    updates = {}
    for f in fields(MsgFields):
        if not getattr(primary, f.name):
            value = getattr(fallback, f.name)
            if value:
                updates[f.name] = value
    return replace(primary, **updates)


# ---------------------------------------------------------------------------
# Stream decoding helpers
# ---------------------------------------------------------------------------

def _stream_name(prop_id: int, prop_type: int) -> str:
    return f"__substg1.0_{prop_id:04X}{prop_type:04X}"


def _read_stream(ole: olefile.OleFileIO, path: list[str]) -> Optional[bytes]:
    if not ole.exists("/".join(path)):
        return None
    return ole.openstream(path).read()


def _read_string(ole: olefile.OleFileIO, storage: list[str], prop_id: int) -> str:
    """Read a string property, preferring the Unicode stream over the ANSI one."""
    raw = _read_stream(ole, storage + [_stream_name(prop_id, PT_UNICODE)])
    if raw:
        return clean_text(raw.decode("utf-16-le", errors="replace"))
    raw = _read_stream(ole, storage + [_stream_name(prop_id, PT_STRING8)])
    if raw:
        return clean_text(raw.decode("cp1252", errors="replace"))
    return ""


def _first_string(ole: olefile.OleFileIO, storage: list[str], prop_ids: tuple[int, ...]) -> str:
    for prop_id in prop_ids:
        value = _read_string(ole, storage, prop_id)
        if value:
            return value
    return ""


def _read_html(ole: olefile.OleFileIO) -> str:
    """PR_HTML is usually binary (raw HTML bytes) but may be a string."""
    raw = _read_stream(ole, [_stream_name(PR_HTML, PT_BINARY)])
    if raw:
        return clean_text(raw.decode("utf-8", errors="replace"))
    return _read_string(ole, [], PR_HTML)


def _fixed_properties(ole: olefile.OleFileIO, storage: list[str], header_size: int) -> dict[int, tuple[int, int]]:
    """
    Parse a __properties_version1.0 stream.

    Returns {prop_id: (prop_type, raw 8-byte value as int)}.
    """
    raw = _read_stream(ole, storage + [PROPERTIES_STREAM])
    if not raw:
        return {}
    props: dict[int, tuple[int, int]] = {}
    for offset in range(header_size, len(raw) - _PROPERTY_ENTRY.size + 1, _PROPERTY_ENTRY.size):
        prop_type, prop_id, _flags, value = _PROPERTY_ENTRY.unpack_from(raw, offset)
        props[prop_id] = (prop_type, value)
    return props


def filetime_to_datetime(value: int) -> Optional[datetime]:
    """Convert a FILETIME (100ns ticks since 1601-01-01 UTC) to a datetime."""
    if value <= 0:
        return None
    try:
        return _FILETIME_EPOCH + timedelta(microseconds=value // 10)
    except OverflowError:
        return None


def _read_date(props: dict[int, tuple[int, int]]) -> Optional[datetime]:
    for prop_id in DATE_IDS:
        prop_type, value = props.get(prop_id, (None, 0))
        if prop_type == PT_SYSTIME:
            parsed = filetime_to_datetime(value)
            if parsed is not None:
                return parsed
    return None


def _split_display_list(value: str) -> list[str]:
    """PR_DISPLAY_TO / PR_DISPLAY_CC are ';'-separated display names."""
    return [part.strip() for part in value.split(";") if part.strip()]


def _substorages(ole: olefile.OleFileIO, prefix: str) -> list[str]:
    """Names of top-level storages starting with prefix, in sorted order."""
    names = {
        entry[0]
        for entry in ole.listdir(streams=True, storages=True)
        if len(entry) > 1 and entry[0].startswith(prefix)
    }
    return sorted(names)


def _read_recipients(ole: olefile.OleFileIO) -> tuple[list[str], list[str]]:
    """Read recipient storages; returns (to, cc)."""
    to: list[str] = []
    cc: list[str] = []
    for storage in _substorages(ole, RECIPIENT_PREFIX):
        address = _first_string(ole, [storage], RECIPIENT_ADDRESS_IDS)
        if not address:
            continue
        props = _fixed_properties(ole, [storage], _SUBOBJECT_HEADER_SIZE)
        prop_type, value = props.get(PR_RECIPIENT_TYPE, (None, 0))
        recipient_type = value & 0xFFFFFFFF if prop_type == PT_LONG else 1
        (cc if recipient_type == MAPI_CC else to).append(address)
    return to, cc


def _read_attachments(ole: olefile.OleFileIO) -> list[AttachmentInfo]:
    attachments: list[AttachmentInfo] = []
    for storage in _substorages(ole, ATTACHMENT_PREFIX):
        name = (
            _read_string(ole, [storage], PR_ATTACH_LONG_FILENAME)
            or _read_string(ole, [storage], PR_ATTACH_FILENAME)
            or "file"
        )
        data_path = f"{storage}/{_stream_name(PR_ATTACH_DATA, PT_BINARY)}"
        size = ole.get_size(data_path) if ole.exists(data_path) else 0
        attachments.append(AttachmentInfo(name=name, size=size))
    return attachments


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def read_property_streams(content: bytes) -> MsgFields:
    """
    Read message fields straight from the compound-file streams.

    Raises:
        ExtractionError: if the content is not a compound file, or no known
            property could be read from it.
    """
    if not olefile.isOleFile(io.BytesIO(content)):
        raise ExtractionError("not an OLE compound file", strategy="msg_properties")

    try:
        with olefile.OleFileIO(io.BytesIO(content)) as ole:
            to = _split_display_list(_read_string(ole, [], PR_DISPLAY_TO))
            cc = _split_display_list(_read_string(ole, [], PR_DISPLAY_CC))
            if not to and not cc:
                to, cc = _read_recipients(ole)

            result = MsgFields(
                subject=_read_string(ole, [], PR_SUBJECT),
                sender_name=_first_string(ole, [], SENDER_NAME_IDS),
                sender_email=_first_string(ole, [], SENDER_EMAIL_IDS),
                to=to,
                cc=cc,
                date=_read_date(_fixed_properties(ole, [], _TOP_LEVEL_HEADER_SIZE)),
                body=_read_string(ole, [], PR_BODY),
                html_body=_read_html(ole),
                attachments=_read_attachments(ole),
            )
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"compound file unreadable: {e}", strategy="msg_properties") from e

    if result.is_empty():
        raise ExtractionError("no message properties found", strategy="msg_properties")

    logger.debug("Recovered .msg fields from raw property streams")
    return result
