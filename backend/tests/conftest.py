"""Shared fixtures: EML and PDF builders, fixed clock, fpdf2 settings."""

from __future__ import annotations

import io
import sys
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

import pytest
from pypdf import PdfWriter


PROJECT_ROOT = Path(__file__).resolve().parents[2]
BACKEND_PATH = PROJECT_ROOT / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))


from converter_settings import ConverterSettings  # noqa: E402  pylint: disable=wrong-import-position


FIXED_NOW = datetime(2024, 6, 1, 0, 0, 0, tzinfo=timezone.utc)

# (filename, content type, data)
AttachmentSpec = Tuple[Optional[str], str, bytes]


def build_eml(
    *,
    subject: Optional[str] = "Q3 Report",
    sender: Optional[str] = "Alice <alice@x.com>",
    to: Optional[str] = "Bob <bob@y.com>",
    cc: Optional[str] = None,
    bcc: Optional[str] = None,
    date: Optional[str] = "Fri, 01 Mar 2024 10:00:00 +1000",
    body: Optional[str] = "Hi Bob",
    html: Optional[str] = None,
    attachments: Sequence[AttachmentSpec] = (),
    headers: Iterable[Tuple[str, str]] = (),
) -> bytes:
    msg = EmailMessage()
    for name, value in (
        ("Subject", subject), ("From", sender), ("To", to),
        ("Cc", cc), ("Bcc", bcc), ("Date", date),
    ):
        if value is not None:
            msg[name] = value
    for name, value in headers:
        msg[name] = value

    if body is not None:
        msg.set_content(body)
    if html is not None:
        if body is None:
            msg.set_content(html, subtype="html")
        else:
            msg.add_alternative(html, subtype="html")

    for filename, content_type, data in attachments:
        maintype, subtype = content_type.split("/", 1)
        if filename is None:
            msg.add_attachment(data, maintype=maintype, subtype=subtype)
        else:
            msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


def build_pdf(pages: int = 1, width: float = 72, height: float = 72) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_eml():
    return build_eml


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def write_eml(tmp_path: Path):
    def _write(name: str = "mail.eml", directory: Optional[Path] = None, **kwargs) -> Path:
        target_dir = directory or (tmp_path / "input")
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_bytes(build_eml(**kwargs))
        return path

    return _write


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def settings() -> ConverterSettings:
    return ConverterSettings(renderer="fpdf")
