"""Tests for turning EML source into an EmailRecord."""

from __future__ import annotations

from datetime import datetime
from email.message import EmailMessage
from zoneinfo import ZoneInfo

import pytest

from email_models import Address, BodyKind
from email_parser import NO_CONTENT_MARKER, EmailRecordParser, parse_email
from errors import ParseError

from conftest import FIXED_NOW, build_eml, build_pdf


def test_basic_plain_text_message() -> None:
    record = parse_email(build_eml())

    assert record.subject == "Q3 Report"
    assert record.sender == Address("Alice", "alice@x.com")
    assert record.to == (Address("Bob", "bob@y.com"),)
    assert record.cc == ()
    assert record.bcc == ()
    assert record.date == datetime(2024, 3, 1, 10, 0, tzinfo=ZoneInfo("Australia/Brisbane"))
    assert record.body.kind is BodyKind.PLAIN_TEXT
    assert record.body.content.strip() == "Hi Bob"
    assert record.attachments == ()


def test_missing_subject_becomes_placeholder() -> None:
    record = parse_email(build_eml(subject=None))
    assert record.subject == "No Subject"


def test_subject_label_is_stripped() -> None:
    record = parse_email(build_eml(subject="Subject: Budget"))
    assert record.subject == "Budget"


def test_missing_recipients_are_empty_sequences() -> None:
    record = parse_email(build_eml(to=None))
    assert record.to == ()
    assert record.cc == ()


def test_multiple_recipients_and_cc() -> None:
    record = parse_email(
        build_eml(
            to='"Alpha, A." <alpha@example.com>, Beta <beta@example.com>',
            cc="carol@example.com",
        )
    )
    assert [a.email for a in record.to] == ["alpha@example.com", "beta@example.com"]
    assert record.to[0].display_name == "Alpha, A."
    assert record.cc == (Address(None, "carol@example.com"),)


def test_unparseable_date_uses_clock() -> None:
    parser = EmailRecordParser(clock=lambda: FIXED_NOW)
    raw = build_eml().replace(b"Fri, 01 Mar 2024 10:00:00 +1000", b"sometime last tuesday")
    record = parser.parse(raw)
    assert record.date == FIXED_NOW


def test_missing_date_falls_back_to_received_header() -> None:
    raw = build_eml(
        date=None,
        headers=[("Received", "from a by b; Sat, 02 Mar 2024 08:30:00 +0000")],
    )
    record = EmailRecordParser(clock=lambda: FIXED_NOW).parse(raw)
    assert record.date == datetime(2024, 3, 2, 8, 30, tzinfo=ZoneInfo("UTC"))


def test_html_alternative_is_preferred() -> None:
    record = parse_email(build_eml(body="plain", html="<p>Hello <b>HTML</b></p>"))
    assert record.body.kind is BodyKind.HTML
    assert "<b>HTML</b>" in record.body.content


def test_body_only_in_nested_multipart() -> None:
    inner = EmailMessage()
    inner.set_content("Nested body")
    msg = EmailMessage()
    msg["Subject"] = "Nested"
    msg["From"] = "a@example.com"
    msg.make_mixed()
    msg.attach(inner)

    record = parse_email(msg.as_bytes())
    assert record.body.content.strip() == "Nested body"


def test_no_body_uses_placeholder() -> None:
    record = parse_email(build_eml(body=None, attachments=[("a.bin", "application/octet-stream", b"x")]))
    assert record.body.kind is BodyKind.PLAIN_TEXT
    assert record.body.content == NO_CONTENT_MARKER


def test_attachments_are_collected_in_order() -> None:
    pdf_bytes = build_pdf()
    record = parse_email(
        build_eml(
            attachments=[
                ("report.pdf", "application/pdf", pdf_bytes),
                ("notes.txt", "application/octet-stream", b"some notes"),
            ]
        )
    )
    assert [a.filename for a in record.attachments] == ["report.pdf", "notes.txt"]
    assert record.attachments[0].content_type == "application/pdf"
    assert record.attachments[0].payload == pdf_bytes
    assert record.attachments[1].payload == b"some notes"


def test_unnamed_attachment_gets_generated_name() -> None:
    record = parse_email(build_eml(attachments=[(None, "application/octet-stream", b"data")]))
    assert record.attachments[0].filename == "attachment_1"


def _single_part_pdf_message(pdf_bytes: bytes) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = "Scan from MFP"
    msg["From"] = "scanner@example.com"
    msg["To"] = "archive@example.com"
    msg["Date"] = "Fri, 01 Mar 2024 00:00:00 +0000"
    msg.set_content(pdf_bytes, maintype="application", subtype="pdf", filename="scan.pdf")
    return msg


def test_single_part_pdf_message_is_an_attachment() -> None:
    pdf_bytes = build_pdf(2)

    record = parse_email(_single_part_pdf_message(pdf_bytes).as_bytes())

    assert len(record.attachments) == 1
    assert record.attachments[0].filename == "scan.pdf"
    assert record.attachments[0].content_type == "application/pdf"
    assert record.attachments[0].payload == pdf_bytes
    assert record.body.content == NO_CONTENT_MARKER


def test_single_part_binary_without_filename_gets_generated_name() -> None:
    msg = EmailMessage()
    msg["From"] = "fax@example.com"
    msg.set_content(b"\x00\x01binary", maintype="application", subtype="octet-stream")

    record = parse_email(msg.as_bytes())

    assert [a.filename for a in record.attachments] == ["attachment_1"]
    assert record.attachments[0].payload == b"\x00\x01binary"


def test_single_part_text_message_has_no_attachments() -> None:
    record = parse_email(build_eml())
    assert record.attachments == ()


def test_attached_message_is_kept_whole() -> None:
    inner = EmailMessage()
    inner["Subject"] = "Inner subject"
    inner["From"] = "inner@example.com"
    inner.set_content("Inner body")
    inner.add_attachment(b"inner data", maintype="application", subtype="octet-stream", filename="inner.bin")

    outer = EmailMessage()
    outer["Subject"] = "Fwd"
    outer["From"] = "outer@example.com"
    outer.set_content("See attached")
    outer.add_attachment(inner)

    record = parse_email(outer.as_bytes())
    assert len(record.attachments) == 1
    attachment = record.attachments[0]
    assert attachment.content_type == "message/rfc822"
    assert b"Inner subject" in attachment.payload
    assert record.body.content.strip() == "See attached"


def test_message_id_is_recorded() -> None:
    record = parse_email(build_eml(headers=[("Message-ID", "<abc@example.com>")]))
    assert record.message_id == "<abc@example.com>"


@pytest.mark.parametrize("raw", [b"", b"   \r\n", 42, None])
def test_unusable_input_raises_parse_error(raw) -> None:
    with pytest.raises(ParseError):
        parse_email(raw)


def test_text_without_headers_raises_parse_error() -> None:
    with pytest.raises(ParseError):
        parse_email(b"this is not an email message")
