"""
Raw .msg property-stream reader tests.

olefile is replaced by FakeOle, an in-memory compound file keyed by
"/"-joined stream paths, so every property layout can be built explicitly.
"""

import io
import struct
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from app.services.msg_properties import (
    PR_CLIENT_SUBMIT_TIME,
    PR_MESSAGE_DELIVERY_TIME,
    PR_RECIPIENT_TYPE,
    PT_LONG,
    PT_SYSTIME,
    MsgFields,
    filetime_to_datetime,
    merge_fields,
    read_property_streams,
)
from app.services.salvage import ExtractionError


# ---------------------------------------------------------------------------
# Fake compound file
# ---------------------------------------------------------------------------

class FakeOle:
    """Minimal stand-in for olefile.OleFileIO."""

    def __init__(self, streams: dict[str, bytes]):
        self.streams = streams

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def exists(self, path: str) -> bool:
        return path in self.streams

    def openstream(self, path) -> io.BytesIO:
        key = path if isinstance(path, str) else "/".join(path)
        return io.BytesIO(self.streams[key])

    def get_size(self, path: str) -> int:
        return len(self.streams[path])

    def listdir(self, streams=True, storages=False):
        return [key.split("/") for key in self.streams]


def _utf16(text: str) -> bytes:
    return text.encode("utf-16-le")


def _filetime(value: datetime) -> int:
    return (value - datetime(1601, 1, 1, tzinfo=timezone.utc)) // timedelta(microseconds=1) * 10


def _properties(entries: list[tuple[int, int, int]], header_size: int = 32) -> bytes:
    """Build a __properties_version1.0 stream from (type, id, value) entries."""
    body = b"".join(struct.pack("<HHIq", prop_type, prop_id, 0, value) for prop_type, prop_id, value in entries)
    return b"\x00" * header_size + body


def _read(streams: dict[str, bytes]) -> MsgFields:
    with patch("app.services.msg_properties.olefile.isOleFile", return_value=True), \
         patch("app.services.msg_properties.olefile.OleFileIO", return_value=FakeOle(streams)):
        return read_property_streams(b"ole bytes")


# ---------------------------------------------------------------------------
# String properties
# ---------------------------------------------------------------------------

class TestStringProperties:

    def test_unicode_stream_preferred_over_ansi(self):
        fields = _read({
            "__substg1.0_0037001F": _utf16("Unicode subject"),
            "__substg1.0_0037001E": b"ANSI subject",
        })
        assert fields.subject == "Unicode subject"

    def test_ansi_stream_decoded_as_cp1252(self):
        fields = _read({"__substg1.0_0037001E": b"Caf\xe9 \x93menu\x94"})
        assert fields.subject == "Café “menu”"

    def test_control_characters_stripped(self):
        fields = _read({"__substg1.0_1000001F": _utf16("Body\x00\x00 text\r\n")})
        assert fields.body == "Body text\r\n"

    def test_sender_name_and_email(self):
        fields = _read({
            "__substg1.0_0C1A001F": _utf16("Ann Smith"),
            "__substg1.0_0C1F001F": _utf16("ann@x.com"),
        })
        assert fields.sender_name == "Ann Smith"
        assert fields.sender_email == "ann@x.com"

    def test_sent_representing_name_used_when_sender_missing(self):
        fields = _read({"__substg1.0_0042001F": _utf16("On behalf of")})
        assert fields.sender_name == "On behalf of"

    def test_binary_html_body(self):
        fields = _read({"__substg1.0_10130102": "<p>Grüße</p>".encode("utf-8")})
        assert fields.html_body == "<p>Grüße</p>"


# ---------------------------------------------------------------------------
# Fixed-size properties
# ---------------------------------------------------------------------------

class TestDate:

    def test_delivery_time_read(self):
        sent = datetime(2025, 1, 6, 10, 30, tzinfo=timezone.utc)
        fields = _read({
            "__substg1.0_0037001F": _utf16("x"),
            "__properties_version1.0": _properties([(PT_SYSTIME, PR_MESSAGE_DELIVERY_TIME, _filetime(sent))]),
        })
        assert fields.date == sent

    def test_submit_time_used_when_delivery_time_missing(self):
        sent = datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc)
        fields = _read({
            "__substg1.0_0037001F": _utf16("x"),
            "__properties_version1.0": _properties([(PT_SYSTIME, PR_CLIENT_SUBMIT_TIME, _filetime(sent))]),
        })
        assert fields.date == sent

    def test_wrong_property_type_ignored(self):
        fields = _read({
            "__substg1.0_0037001F": _utf16("x"),
            "__properties_version1.0": _properties([(PT_LONG, PR_MESSAGE_DELIVERY_TIME, 12345)]),
        })
        assert fields.date is None

    def test_filetime_conversion_edges(self):
        assert filetime_to_datetime(0) is None
        assert filetime_to_datetime(-5) is None
        assert filetime_to_datetime(10) == datetime(1601, 1, 1, 0, 0, 0, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Recipients and attachments
# ---------------------------------------------------------------------------

class TestRecipients:

    def test_display_lists_split(self):
        fields = _read({
            "__substg1.0_0E04001F": _utf16("Bob; Carol ;"),
            "__substg1.0_0E03001F": _utf16("Dave"),
        })
        assert fields.to == ["Bob", "Carol"]
        assert fields.cc == ["Dave"]

    def test_recipient_storages_used_when_display_lists_missing(self):
        fields = _read({
            "__recip_version1.0_#00000000/__substg1.0_3001001F": _utf16("Bob"),
            "__recip_version1.0_#00000000/__properties_version1.0":
                _properties([(PT_LONG, PR_RECIPIENT_TYPE, 1)], header_size=8),
            "__recip_version1.0_#00000001/__substg1.0_39FE001F": _utf16("carol@x.com"),
            "__recip_version1.0_#00000001/__properties_version1.0":
                _properties([(PT_LONG, PR_RECIPIENT_TYPE, 2)], header_size=8),
        })
        assert fields.to == ["Bob"]
        assert fields.cc == ["carol@x.com"]


class TestAttachments:

    def test_long_filename_and_size(self):
        fields = _read({
            "__attach_version1.0_#00000000/__substg1.0_3707001F": _utf16("quarterly report.pdf"),
            "__attach_version1.0_#00000000/__substg1.0_3704001F": _utf16("QUARTE~1.PDF"),
            "__attach_version1.0_#00000000/__substg1.0_37010102": b"x" * 42,
        })
        assert [(a.name, a.size) for a in fields.attachments] == [("quarterly report.pdf", 42)]

    def test_short_filename_fallback_and_missing_data(self):
        fields = _read({
            "__attach_version1.0_#00000001/__substg1.0_3704001E": b"B.TXT",
            "__attach_version1.0_#00000000/__substg1.0_3704001E": b"A.TXT",
        })
        assert [(a.name, a.size) for a in fields.attachments] == [("A.TXT", 0), ("B.TXT", 0)]


# ---------------------------------------------------------------------------
# Failure modes
# ---------------------------------------------------------------------------

class TestReadPropertyStreamsErrors:

    def test_non_ole_content_rejected(self):
        with pytest.raises(ExtractionError):
            read_property_streams(b"plain text, not a compound file")

    def test_no_known_properties(self):
        with pytest.raises(ExtractionError, match="no message properties"):
            _read({"__substg1.0_ABCD001F": _utf16("unrelated")})

    def test_unreadable_container_wrapped(self):
        with patch("app.services.msg_properties.olefile.isOleFile", return_value=True), \
             patch("app.services.msg_properties.olefile.OleFileIO", side_effect=OSError("truncated")):
            with pytest.raises(ExtractionError, match="truncated"):
                read_property_streams(b"ole bytes")


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

class TestMergeFields:

    def test_primary_values_win(self):
        primary = MsgFields(subject="Primary", to=["a@x.com"])
        fallback = MsgFields(subject="Fallback", to=["b@x.com"], body="fallback body")

        merged = merge_fields(primary, fallback)

        assert merged.subject == "Primary"
        assert merged.to == ["a@x.com"]
        assert merged.body == "fallback body"

    def test_no_fallback_returns_primary(self):
        primary = MsgFields(subject="Only")
        assert merge_fields(primary, None) is primary

    def test_primary_not_mutated(self):
        primary = MsgFields()
        merge_fields(primary, MsgFields(subject="x"))
        assert primary.subject == ""

    def test_is_empty(self):
        assert MsgFields().is_empty()
        assert not MsgFields(cc=["x"]).is_empty()
