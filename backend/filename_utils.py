"""Helpers for deriving safe filenames from email metadata."""
from __future__ import annotations

import logging
import re
from datetime import tzinfo
from pathlib import Path
from typing import Optional

from email_metadata import to_target_zone
from email_models import Address, EmailRecord


logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 200
MAX_TOKEN_LENGTH = 80
FILENAME_TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M_%S"

_INVALID_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_NON_TOKEN_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def _collapse(value: str, max_length: int) -> str:
    value = _UNDERSCORE_RUNS.sub('_', value).strip('_')
    return value[:max_length].rstrip('_')


def sanitize_filename(name: str, default: str = 'file', max_length: int = MAX_FILENAME_LENGTH) -> str:
    """Return a filesystem-safe name, keeping the extension.

    Invalid characters and whitespace become underscores, runs of underscores
    collapse, and leading/trailing underscores are trimmed.
    """
    if not name:
        return default
    safe_name = _INVALID_PATH_CHARS.sub('_', name)
    safe_name = re.sub(r"\s+", '_', safe_name)
    safe_name = _collapse(safe_name, max_length)
    safe_name = safe_name.rstrip('. ')
    if not safe_name or set(safe_name) <= {'.'}:
        return default
    return safe_name


def filename_token(value: Optional[str], default: str) -> str:
    """Lower-case ``[a-z0-9_-]`` token for use inside an output filename."""
    if not value:
        return default
    token = _NON_TOKEN_CHARS.sub('_', value.strip()).lower()
    token = _collapse(token, MAX_TOKEN_LENGTH)
    return token or default


def address_token(address: Optional[Address], default: str) -> str:
    """Display name token if it has one, else the local part of the address."""
    if address is None:
        return default
    token = filename_token(address.display_name or '', '')
    return token or filename_token(address.local_part, default)


def build_output_filename(record: EmailRecord, zone: tzinfo) -> str:
    stamp = to_target_zone(record.date, zone).strftime(FILENAME_TIMESTAMP_FORMAT)
    sender = address_token(record.sender, 'unknown_sender')
    receiver = address_token(record.to[0] if record.to else None, 'unknown_receiver')
    return f"{stamp}_{sender}_to_{receiver}.pdf"


def fallback_output_filename(source_path: str | Path) -> str:
    stem = Path(source_path).stem
    return f"{sanitize_filename(stem, default='email')}.pdf"


def safe_output_filename(record: EmailRecord, zone: tzinfo, source_path: str | Path) -> str:
    """Computed name, or ``<source stem>.pdf`` when computing it fails."""
    try:
        return build_output_filename(record, zone)
    except Exception as exc:
        logger.warning("Filename computation failed (%s); using source basename", exc)
        return fallback_output_filename(source_path)


__all__ = [
    'address_token',
    'build_output_filename',
    'fallback_output_filename',
    'filename_token',
    'safe_output_filename',
    'sanitize_filename',
]
