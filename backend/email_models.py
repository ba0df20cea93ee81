"""Normalized email data passed between the conversion stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union


DEFAULT_CONTENT_TYPE = "application/octet-stream"
PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class Address:
    display_name: Optional[str]
    email: str

    @property
    def local_part(self) -> str:
        return self.email.split("@", 1)[0].strip()

    @property
    def label(self) -> str:
        """``Name <addr>`` when both are known, otherwise whichever exists."""
        name = (self.display_name or "").strip()
        addr = (self.email or "").strip()
        if name and addr and name != addr:
            return f"{name} <{addr}>"
        return addr or name


class BodyKind(str, Enum):
    HTML = "html"
    PLAIN_TEXT = "text"


@dataclass(frozen=True)
class EmailBody:
    kind: BodyKind
    content: str


@dataclass(frozen=True)
class Attachment:
    """An attachment as carried inside the parsed record.

    ``payload`` is raw bytes when the transport encoding was decoded at parse
    time. Otherwise it is the still-encoded text and ``transfer_encoding``
    records how to decode it.
    """

    filename: str
    content_type: str
    payload: Union[bytes, str]
    transfer_encoding: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        if isinstance(self.payload, str):
            return len(self.payload.encode("utf-8", errors="replace"))
        return len(self.payload)


@dataclass(frozen=True)
class EmailRecord:
    subject: str
    sender: Address
    to: Tuple[Address, ...]
    cc: Tuple[Address, ...]
    bcc: Tuple[Address, ...]
    date: datetime
    body: EmailBody
    attachments: Tuple[Attachment, ...] = ()
    message_id: str = ""
    in_reply_to: str = ""


@dataclass(frozen=True)
class DecodedAttachment:
    filename: str
    content_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def is_pdf(self) -> bool:
        """Declared type or ``.pdf`` suffix; either is enough."""
        ctype = (self.content_type or "").split(";", 1)[0].strip().lower()
        return ctype == PDF_CONTENT_TYPE or self.filename.lower().endswith(".pdf")


@dataclass(frozen=True)
class RenderedDocument:
    data: bytes
    page_count: int


@dataclass(frozen=True)
class SavedAttachment:
    original_name: str
    saved_path: Optional[Path]
    content_type: str
    size_bytes: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    outputs: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


__all__ = [
    "Address",
    "Attachment",
    "BatchResult",
    "BodyKind",
    "DEFAULT_CONTENT_TYPE",
    "DecodedAttachment",
    "EmailBody",
    "EmailRecord",
    "PDF_CONTENT_TYPE",
    "RenderedDocument",
    "SavedAttachment",
]
