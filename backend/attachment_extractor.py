"""Decode attachment payloads carried in an :class:`EmailRecord`."""

from __future__ import annotations

import base64
import binascii
import logging
import quopri
from pathlib import Path
from typing import List, Optional, Sequence

from email_models import Attachment, DecodedAttachment, EmailRecord, SavedAttachment
from filename_utils import sanitize_filename


logger = logging.getLogger(__name__)

_TEXT_ENCODINGS = ("7bit", "8bit", "binary")


def decode_payload(attachment: Attachment) -> Optional[bytes]:
    """Return raw bytes for *attachment*, or ``None`` when it cannot be decoded."""
    payload = attachment.payload
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    if not isinstance(payload, str):
        logger.warning(
            "Skipping attachment %s: unsupported payload type %s",
            attachment.filename,
            type(payload).__name__,
        )
        return None

    encoding = (attachment.transfer_encoding or "base64").lower()
    try:
        if encoding == "base64":
            compact = "".join(payload.split())
            return base64.b64decode(compact, validate=True)
        if encoding == "quoted-printable":
            return quopri.decodestring(payload.encode("ascii", errors="strict"))
        if encoding in _TEXT_ENCODINGS:
            return payload.encode("utf-8", errors="surrogateescape")
    except (binascii.Error, ValueError, UnicodeError) as exc:
        logger.warning(
            "Skipping attachment %s: %s payload did not decode (%s)",
            attachment.filename,
            encoding,
            exc,
        )
        return None

    logger.warning(
        "Skipping attachment %s: unrecognized transfer encoding %r",
        attachment.filename,
        encoding,
    )
    return None


class AttachmentExtractor:
    """Turns record attachments into addressable byte buffers."""

    def decode(self, record: EmailRecord) -> List[DecodedAttachment]:
        decoded: List[DecodedAttachment] = []
        for attachment in record.attachments:
            data = decode_payload(attachment)
            if data is None:
                continue
            decoded.append(DecodedAttachment(attachment.filename, attachment.content_type, data))
        logger.info(
            "Decoded %d of %d attachment(s)", len(decoded), len(record.attachments)
        )
        return decoded

    def save(
        self,
        dest_dir: str | Path,
        attachments: Sequence[DecodedAttachment],
    ) -> List[SavedAttachment]:
        """Write attachments under sanitized names; one result per input."""
        dest = Path(dest_dir)
        results: List[SavedAttachment] = []
        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Could not create attachment directory %s: %s", dest, exc)
            return [
                SavedAttachment(a.filename, None, a.content_type, a.size_bytes, error=str(exc))
                for a in attachments
            ]

        used: set[str] = set()
        for index, attachment in enumerate(attachments, start=1):
            safe_name = _unique_name(
                sanitize_filename(attachment.filename, default=f"attachment_{index}"), used
            )
            target = dest / safe_name
            try:
                target.write_bytes(attachment.data)
            except OSError as exc:
                logger.error("Error saving attachment %s: %s", attachment.filename, exc)
                results.append(
                    SavedAttachment(
                        attachment.filename, None, attachment.content_type,
                        attachment.size_bytes, error=str(exc),
                    )
                )
                continue
            logger.info("Saved attachment: %s", target)
            results.append(
                SavedAttachment(attachment.filename, target, attachment.content_type, attachment.size_bytes)
            )
        return results


def _unique_name(name: str, used: set[str]) -> str:
    candidate = name
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        stem, suffix = name, ""
    counter = 2
    while candidate.lower() in used:
        candidate = f"{stem}_{counter}.{suffix}" if suffix else f"{stem}_{counter}"
        counter += 1
    used.add(candidate.lower())
    return candidate


__all__ = ["AttachmentExtractor", "decode_payload"]
