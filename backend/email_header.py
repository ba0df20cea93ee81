"""Helpers for preparing email header metadata for rendering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Mapping, Optional, Tuple

from email_metadata import format_address_list, format_display_date, format_file_size
from email_models import EmailRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentSummary:
    filename: str
    detail: str

    @property
    def text(self) -> str:
        return f"{self.filename} ({self.detail})" if self.detail else self.filename


@dataclass(frozen=True)
class EmailHeaderContext:
    """Rendered fields needed to display the email header block."""

    subject: str
    metadata_rows: Tuple[Tuple[str, str], ...]
    attachments: Tuple[AttachmentSummary, ...]
    sidecar_rows: Tuple[Tuple[str, str], ...]
    generated_on: str


def _scalar_sidecar_rows(metadata: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, str], ...]:
    if not metadata:
        return ()
    rows = []
    for key, value in metadata.items():
        if isinstance(value, bool):
            text = "yes" if value else "no"
        elif isinstance(value, (str, int, float)):
            text = str(value).strip()
        else:
            continue
        if text:
            rows.append((str(key), text))
    return tuple(rows)


def collect_header_context(
    record: EmailRecord,
    zone: tzinfo,
    metadata: Optional[Mapping[str, Any]] = None,
    generated_at: Optional[datetime] = None,
) -> EmailHeaderContext:
    """Extract and format header metadata for downstream rendering.

    CC/BCC/Message-ID rows appear only when they have a value.
    """

    rows = [
        ("From", record.sender.label or "Unknown Sender"),
        ("To", format_address_list(record.to) or "Unknown Recipient"),
    ]
    cc_display = format_address_list(record.cc)
    if cc_display:
        rows.append(("CC", cc_display))
    bcc_display = format_address_list(record.bcc)
    if bcc_display:
        rows.append(("BCC", bcc_display))
    rows.append(("Date", format_display_date(record.date, zone)))
    if record.message_id:
        rows.append(("Message-ID", record.message_id))

    attachments = tuple(
        AttachmentSummary(
            filename=att.filename,
            detail=", ".join(
                part for part in (att.content_type, format_file_size(att.size_bytes)) if part
            ),
        )
        for att in record.attachments
    )

    generated = format_display_date(generated_at or datetime.now(timezone.utc), zone)
    return EmailHeaderContext(
        subject=record.subject,
        metadata_rows=tuple(rows),
        attachments=attachments,
        sidecar_rows=_scalar_sidecar_rows(metadata),
        generated_on=generated,
    )


__all__ = ["AttachmentSummary", "EmailHeaderContext", "collect_header_context"]
