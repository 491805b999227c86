"""
Email extraction tests (.eml and .msg).

.eml inputs are built in-memory with email.message.EmailMessage.
extract_msg is mocked with plain SimpleNamespace fakes: unset attributes on a
MagicMock would come back as truthy mocks and leak into the metadata.
"""

from datetime import datetime, timezone
from email.message import EmailMessage
from types import SimpleNamespace
from unittest.mock import patch

from app.services.text_helpers import DIVIDER


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_eml_bytes(**overrides) -> bytes:
    headers = {
        "Subject": "Hi",
        "From": "a@x.com",
        "To": "b@x.com",
        "Cc": "c@x.com, d@x.com",
        "Date": "Mon, 06 Jan 2025 10:30:00 +0000",
    }
    headers.update(overrides)
    message = EmailMessage()
    for name, value in headers.items():
        if value is not None:
            message[name] = value
    message.set_content("Hello there")
    message.add_attachment(b"abc", maintype="application", subtype="octet-stream", filename="a.bin")
    return message.as_bytes()


def _fake_msg(**overrides) -> SimpleNamespace:
    fields = {
        "subject": "Quarterly numbers",
        "sender": "Ann <ann@x.com>",
        "to": "b@x.com; c@x.com",
        "cc": "",
        "date": datetime(2025, 1, 6, 10, 30, tzinfo=timezone.utc),
        "body": "Body text",
        "htmlBody": b"<p>Body <b>text</b></p>",
        "attachments": [
            SimpleNamespace(longFilename="report.pdf", shortFilename="REPORT~1.PDF", name=None, data=b"12345"),
        ],
        "close": lambda: None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# ---------------------------------------------------------------------------
# .eml
# ---------------------------------------------------------------------------

class TestExtractEml:

    def test_headers_body_and_attachments(self):
        from app.services.email_extractor import extract_eml_document

        doc = extract_eml_document(_make_eml_bytes())
        meta = doc.metadata

        assert doc.is_email
        assert meta.subject == "Hi"
        assert meta.sender == "a@x.com"
        assert meta.recipients == ["b@x.com"]
        assert meta.cc_recipients == ["c@x.com", "d@x.com"]
        assert meta.date.startswith("2025-01-06 10:30")
        assert meta.body.strip() == "Hello there"
        assert [(a.name, a.size) for a in meta.attachments] == [("a.bin", 3)]

    def test_plain_text_follows_canonical_layout(self):
        from app.services.email_extractor import extract_eml_document

        lines = extract_eml_document(_make_eml_bytes()).plain_text.split("\n")

        assert lines[0] == "Subject: Hi"
        assert lines[1] == "From: a@x.com"
        assert lines[2] == "To: b@x.com"
        assert lines[3] == "CC: c@x.com, d@x.com"
        assert lines[4].startswith("Date: 2025-01-06 10:30")
        assert lines[5] == "Attachments: a.bin"
        assert lines[6:9] == ["", DIVIDER, ""]
        assert lines[9] == "Hello there"

    def test_missing_subject_gets_placeholder(self):
        from app.services.email_extractor import extract_eml_document

        doc = extract_eml_document(_make_eml_bytes(Subject=None))
        assert doc.metadata.subject == "(No Subject)"

    def test_display_names_kept(self):
        from app.services.email_extractor import extract_eml_document

        doc = extract_eml_document(_make_eml_bytes(From="Ann Smith <ann@x.com>"))
        assert doc.metadata.sender == "Ann Smith <ann@x.com>"

    def test_html_only_message(self):
        from app.services.email_extractor import extract_eml_document

        message = EmailMessage()
        message["Subject"] = "Rich"
        message["From"] = "a@x.com"
        message["To"] = "b@x.com"
        message.set_content("<p>Hello <b>world</b></p>", subtype="html")

        doc = extract_eml_document(message.as_bytes())

        assert doc.metadata.body == "Hello world"
        assert '<div class="email-body"><p>Hello <b>world</b></p>' in doc.html_fragment

    def test_plain_body_escaped_in_html_view(self):
        from app.services.email_extractor import extract_eml_document

        message = EmailMessage()
        message["Subject"] = "x"
        message["From"] = "a@x.com"
        message["To"] = "b@x.com"
        message.set_content("1 < 2")

        doc = extract_eml_document(message.as_bytes())
        assert "1 &lt; 2" in doc.html_fragment

    def test_parser_failure_falls_back_to_raw_text(self):
        from app.services.email_extractor import extract_eml_document

        raw = b"Subject: x\n\nbody <b>"
        with patch("app.services.email_extractor.BytesParser", side_effect=RuntimeError("boom")):
            doc = extract_eml_document(raw)

        assert doc.metadata is None
        assert doc.plain_text == "Subject: x\n\nbody <b>"
        assert doc.html_fragment == "<pre>Subject: x\n\nbody &lt;b&gt;</pre>"


# ---------------------------------------------------------------------------
# .msg
# ---------------------------------------------------------------------------

class TestExtractMsg:

    def test_fields_from_reader(self):
        from app.services.email_extractor import extract_msg_document

        with patch("app.services.email_extractor.extract_msg.Message", return_value=_fake_msg()):
            doc = extract_msg_document(b"not a real msg")
        meta = doc.metadata

        assert meta.subject == "Quarterly numbers"
        assert meta.sender == "Ann <ann@x.com>"
        assert meta.recipients == ["b@x.com", "c@x.com"]
        assert meta.cc_recipients == []
        assert meta.date == "2025-01-06 10:30 UTC"
        assert meta.body == "Body text"
        assert [(a.name, a.size) for a in meta.attachments] == [("report.pdf", 5)]
        assert '<div class="email-body"><p>Body <b>text</b></p></div>' in doc.html_fragment
        assert doc.plain_text.split("\n")[-1] == "Body text"

    def test_reader_closed_after_use(self):
        from app.services.email_extractor import extract_msg_document

        closed = []
        fake = _fake_msg(close=lambda: closed.append(True))
        with patch("app.services.email_extractor.extract_msg.Message", return_value=fake):
            extract_msg_document(b"x")

        assert closed == [True]

    def test_empty_fields_get_placeholders(self):
        from app.services.email_extractor import extract_msg_document

        fake = _fake_msg(subject="", sender="", to="", date=None, htmlBody=None, attachments=[])
        with patch("app.services.email_extractor.extract_msg.Message", return_value=fake):
            doc = extract_msg_document(b"x")

        lines = doc.plain_text.split("\n")
        assert lines[:3] == ["Subject: (No Subject)", "From: (Unknown)", "To: (Unknown)"]
        assert not any(line.startswith("Date:") for line in lines)
        assert '<div style="white-space:pre-wrap">Body text</div>' in doc.html_fragment

    def test_failing_lazy_property_does_not_discard_other_fields(self):
        from app.services.email_extractor import extract_msg_document

        class BrokenHtml(SimpleNamespace):
            @property
            def htmlBody(self):
                raise ValueError("corrupt RTF")

        fake = BrokenHtml(**{k: v for k, v in vars(_fake_msg()).items() if k != "htmlBody"})
        with patch("app.services.email_extractor.extract_msg.Message", return_value=fake):
            doc = extract_msg_document(b"x")

        assert doc.metadata.subject == "Quarterly numbers"
        assert '<div style="white-space:pre-wrap">Body text</div>' in doc.html_fragment

    def test_raw_streams_fill_gaps_but_never_override(self):
        from app.services.email_extractor import extract_msg_document
        from app.services.msg_properties import MsgFields

        raw = MsgFields(subject="raw subject", body="raw body", cc=["z@x.com"], sender_email="ann@x.com")
        fake = _fake_msg(sender="Ann")
        with patch("app.services.email_extractor.extract_msg.Message", return_value=fake), \
             patch("app.services.email_extractor.read_property_streams", return_value=raw):
            doc = extract_msg_document(b"x")
        meta = doc.metadata

        assert meta.subject == "Quarterly numbers"
        assert meta.body == "Body text"
        assert meta.cc_recipients == ["z@x.com"]
        assert meta.sender == "Ann <ann@x.com>"

    def test_property_streams_used_when_reader_cannot_open(self):
        from app.services.email_extractor import extract_msg_document
        from app.services.msg_properties import MsgFields

        raw = MsgFields(subject="From streams", to=["b@x.com"], body="stream body")
        with patch("app.services.email_extractor.extract_msg.Message", side_effect=OSError("bad header")), \
             patch("app.services.email_extractor.read_property_streams", return_value=raw):
            doc = extract_msg_document(b"x")

        assert doc.metadata.subject == "From streams"
        assert doc.metadata.recipients == ["b@x.com"]
        assert doc.metadata.body == "stream body"

    def test_malformed_bytes_salvaged(self):
        from app.services.email_extractor import extract_msg_document

        doc = extract_msg_document(b"\x00\x01\x02 some readable text \x00\xff")

        assert doc.metadata is None
        assert doc.plain_text == " some readable text "

    def test_reader_given_in_memory_stream(self):
        import io
        import extract_msg
        from app.services.email_extractor import extract_msg_document

        with patch("app.services.email_extractor.extract_msg.Message", wraps=extract_msg.Message) as mock_message:
            doc = extract_msg_document(b"not a compound file")

        source = mock_message.call_args.args[0]
        assert isinstance(source, io.BytesIO)
        assert source.getvalue() == b"not a compound file"
        assert doc.plain_text == "not a compound file"

    def test_short_upload_naming_a_file_never_opens_it(self, tmp_path):
        import builtins
        from app.services.email_extractor import extract_msg_document

        target = tmp_path / "server-side.msg"
        target.write_bytes(b"secret contents")
        real_open = builtins.open

        with patch("builtins.open", wraps=real_open) as mock_open:
            doc = extract_msg_document(str(target).encode())

        opened = [call.args[0] for call in mock_open.call_args_list if call.args]
        assert str(target) not in opened
        assert str(target).encode() not in opened
        assert "secret contents" not in doc.plain_text

    def test_no_printable_bytes_gives_placeholder(self):
        from app.services.email_extractor import extract_msg_document

        doc = extract_msg_document(b"")
        assert doc.plain_text == "(Unable to read MSG content)"
        assert doc.html_fragment == "<pre>(Unable to read MSG content)</pre>"


class TestFormatDate:

    def test_aware_datetime_has_zone(self):
        from app.services.email_extractor import format_date

        assert format_date(datetime(2025, 1, 6, 10, 30, tzinfo=timezone.utc)) == "2025-01-06 10:30 UTC"

    def test_naive_datetime_has_no_trailing_space(self):
        from app.services.email_extractor import format_date

        assert format_date(datetime(2025, 1, 6, 10, 30)) == "2025-01-06 10:30"

    def test_missing_date(self):
        from app.services.email_extractor import format_date

        assert format_date(None) == ""
