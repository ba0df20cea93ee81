"""Parse raw ``.eml`` source into a normalized :class:`EmailRecord`.

All fallbacks (missing subject, missing or odd dates, absent bodies, unnamed
attachments) are resolved here so later stages never re-check them.
"""

from __future__ import annotations

import email
import logging
from datetime import datetime
from email import policy as email_policy
from email.message import Message
from typing import Callable, List, Optional, Tuple

from email_metadata import (
    clean_subject,
    extract_message_date,
    iter_header_values,
    parse_addresses,
    safe_decode_header,
)
from email_models import (
    Address,
    Attachment,
    BodyKind,
    DEFAULT_CONTENT_TYPE,
    EmailBody,
    EmailRecord,
)
from errors import ParseError


logger = logging.getLogger(__name__)

NO_CONTENT_MARKER = "No readable content found"
_FALLBACK_CHARSETS = ("utf-8", "latin-1", "cp1252")


def get_part_content(part: Message) -> Optional[str]:
    """Decode a text part, trying the declared charset then common fallbacks."""

    payload = part.get_payload(decode=True)
    if isinstance(payload, (bytes, bytearray)):
        charset = part.get_content_charset()
        for enc in ((charset,) if charset else ()) + _FALLBACK_CHARSETS:
            try:
                return bytes(payload).decode(enc)
            except (UnicodeDecodeError, LookupError):
                continue
        return bytes(payload).decode("utf-8", errors="replace")

    payload = part.get_payload()
    if isinstance(payload, str):
        return payload
    return None


def _is_attachment_part(part: Message) -> bool:
    return part.get_content_disposition() == "attachment"


def iter_leaf_parts(msg: Message):
    """Yield non-container parts; attached messages are yielded whole."""
    for part in msg.iter_parts() if msg.is_multipart() else ():
        if part.get_content_type() == "message/rfc822":
            yield part
        elif part.is_multipart():
            yield from iter_leaf_parts(part)
        else:
            yield part


def _first_header(msg: Message, name: str) -> str:
    try:
        return safe_decode_header(msg.get(name, ""))
    except Exception:
        logger.warning("Could not read %s header", name, exc_info=True)
        return ""


def _collect_addresses(msg: Message, name: str) -> Tuple[Address, ...]:
    out: List[Address] = []
    for value in iter_header_values(msg, name):
        try:
            out.extend(parse_addresses(value))
        except Exception:
            logger.warning("Ignoring malformed %s header: %r", name, value, exc_info=True)
    return tuple(out)


class EmailRecordParser:
    """Turns email source bytes into an immutable :class:`EmailRecord`."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock

    def parse(self, raw) -> EmailRecord:
        msg = self._load_message(raw)

        sender_list = _collect_addresses(msg, "From")
        sender = sender_list[0] if sender_list else Address(None, "")

        now = self.clock() if self.clock else None
        body, body_part = self._select_body(msg)

        record = EmailRecord(
            subject=clean_subject(_first_header(msg, "Subject")),
            sender=sender,
            to=_collect_addresses(msg, "To"),
            cc=_collect_addresses(msg, "Cc"),
            bcc=_collect_addresses(msg, "Bcc"),
            date=extract_message_date(msg, now=now),
            body=body,
            attachments=self._collect_attachments(msg, body_part),
            message_id=_first_header(msg, "Message-ID"),
            in_reply_to=_first_header(msg, "In-Reply-To"),
        )
        logger.info(
            "Parsed email: subject=%r from=%r to=%d cc=%d bcc=%d attachments=%d body=%s",
            record.subject,
            record.sender.label,
            len(record.to),
            len(record.cc),
            len(record.bcc),
            len(record.attachments),
            record.body.kind.value,
        )
        return record

    # Internals -----------------------------------------------------
    def _load_message(self, raw) -> Message:
        if isinstance(raw, str):
            try:
                raw = raw.encode("utf-8", errors="surrogateescape")
            except UnicodeEncodeError as exc:
                raise ParseError(f"Email text could not be encoded: {exc}") from exc
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            raise ParseError(f"Unsupported email source type: {type(raw).__name__}")

        raw = bytes(raw)
        if not raw.strip():
            raise ParseError("Email source is empty")

        try:
            msg = email.message_from_bytes(raw, policy=email_policy.default)
        except Exception as exc:
            raise ParseError(f"Failed to parse email source: {exc}") from exc

        if not msg.keys():
            raise ParseError("Email source has no header fields")
        return msg

    def _select_body(self, msg: Message) -> Tuple[EmailBody, Optional[Message]]:
        for preference, kind in (("html", BodyKind.HTML), ("plain", BodyKind.PLAIN_TEXT)):
            try:
                part = msg.get_body(preferencelist=(preference,))
            except Exception:
                logger.debug("get_body(%s) failed", preference, exc_info=True)
                part = None
            if part is not None:
                content = get_part_content(part)
                if content and content.strip():
                    return EmailBody(kind, content), part

        for ctype, kind in (("text/html", BodyKind.HTML), ("text/plain", BodyKind.PLAIN_TEXT)):
            for part in iter_leaf_parts(msg):
                if _is_attachment_part(part):
                    continue
                if part.get_content_type() != ctype:
                    continue
                content = get_part_content(part)
                if content and content.strip():
                    logger.info("Body taken from multipart %s sub-part", ctype)
                    return EmailBody(kind, content), part

        logger.warning("No readable body found; using placeholder text")
        return EmailBody(BodyKind.PLAIN_TEXT, NO_CONTENT_MARKER), None

    def _collect_attachments(self, msg: Message, body_part: Optional[Message]) -> Tuple[Attachment, ...]:
        if not msg.is_multipart():
            if msg is body_part:
                return ()
            filename = msg.get_filename()
            if not (_is_attachment_part(msg) or filename or msg.get_content_maintype() != "text"):
                return ()
            name = safe_decode_header(filename) if filename else ""
            attachment = self._build_attachment(msg, name or "attachment_1")
            return (attachment,) if attachment is not None else ()

        attachments: List[Attachment] = []
        for part in iter_leaf_parts(msg):
            if part is body_part:
                continue
            filename = part.get_filename()
            nested = part.get_content_type() == "message/rfc822"
            if not (_is_attachment_part(part) or filename or nested):
                continue

            index = len(attachments) + 1
            name = safe_decode_header(filename) if filename else ""
            attachment = self._build_attachment(part, name or f"attachment_{index}")
            if attachment is not None:
                attachments.append(attachment)
        return tuple(attachments)

    def _build_attachment(self, part: Message, filename: str) -> Optional[Attachment]:
        content_type = part.get_content_type() or DEFAULT_CONTENT_TYPE
        encoding = (part.get("Content-Transfer-Encoding") or "").strip().lower() or None

        if content_type == "message/rfc822":
            nested = part.get_payload()
            if isinstance(nested, list) and nested:
                nested = nested[0]
            if isinstance(nested, Message):
                return Attachment(filename, content_type, nested.as_bytes())

        try:
            payload = part.get_payload(decode=True)
        except Exception:
            logger.warning("Transport decode failed for attachment %s", filename, exc_info=True)
            payload = None

        if isinstance(payload, (bytes, bytearray)):
            return Attachment(filename, content_type, bytes(payload))

        raw = part.get_payload()
        if isinstance(raw, str):
            return Attachment(filename, content_type, raw, transfer_encoding=encoding)

        logger.warning("Attachment %s has no usable payload; skipped", filename)
        return None


def parse_email(raw) -> EmailRecord:
    return EmailRecordParser().parse(raw)


__all__ = ["EmailRecordParser", "NO_CONTENT_MARKER", "get_part_content", "parse_email"]
