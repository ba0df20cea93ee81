import logging
import re
from datetime import datetime, timezone, tzinfo
from email.header import decode_header
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from email_models import Address


logger = logging.getLogger(__name__)

DISPLAY_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
_SUBJECT_LABEL = re.compile(r"^\s*subject:\s*", re.IGNORECASE)
_ANGLE_ADDR = re.compile(r"<([^>]+)>")
_ALT_DATE_HEADERS = ('Sent', 'Resent-Date', 'X-Original-Date', 'Original-Date')


def safe_decode_header(value) -> str:
    try:
        if value is None:
            return ""
        if not isinstance(value, (str, bytes)):
            value = str(value)
        parts = decode_header(value)
        out: List[str] = []
        for chunk, enc in parts:
            if isinstance(chunk, bytes):
                try:
                    out.append(chunk.decode(enc or 'utf-8', errors='replace'))
                except LookupError:
                    out.append(chunk.decode('utf-8', errors='replace'))
            else:
                out.append(chunk)
        return ''.join(out).strip()
    except Exception:
        logger.debug("Header decode failed; using raw value", exc_info=True)
        return str(value).strip()


def clean_subject(value) -> str:
    subject = _SUBJECT_LABEL.sub('', safe_decode_header(value)).strip()
    return subject or "No Subject"


def address_from_raw(value: str) -> Optional[Address]:
    """Parse ``Display Name <addr@host>``; without brackets the text is the address."""
    candidate = (value or '').strip()
    if not candidate:
        return None

    match = _ANGLE_ADDR.search(candidate)
    if match:
        display = candidate[:match.start()].strip().strip('"').strip() or None
        return Address(display, match.group(1).strip())

    display, addr = parseaddr(candidate)
    if addr and '@' in addr:
        return Address(display.strip() or None, addr.strip())
    return Address(None, candidate)


def address_from_structured(value) -> Optional[Address]:
    """Accept header-registry addresses, mail-parser style objects or dicts."""
    if isinstance(value, dict):
        name = value.get('display_name') or value.get('name')
        addr = value.get('addr_spec') or value.get('address') or value.get('email')
    else:
        name = getattr(value, 'display_name', None) or getattr(value, 'name', None)
        addr = (
            getattr(value, 'addr_spec', None)
            or getattr(value, 'address', None)
            or getattr(value, 'email', None)
        )
    if not isinstance(addr, str) and not isinstance(name, str):
        return None
    name = (name or '').strip() or None
    addr = (addr or '').strip()
    if addr.startswith('<') and addr.endswith('>'):
        addr = addr[1:-1].strip()
    if not addr and not name:
        return None
    return Address(name, addr)


def _split_raw_addresses(value: str) -> List[Tuple[str, str]]:
    try:
        return [(d.strip(), a.strip()) for d, a in getaddresses([value]) if d.strip() or a.strip()]
    except Exception:
        return []


def parse_addresses(value) -> Tuple[Address, ...]:
    """Normalize a header value (raw, structured or list) into ``Address`` values."""
    if value is None:
        return ()

    if isinstance(value, (list, tuple)):
        out: List[Address] = []
        for item in value:
            out.extend(parse_addresses(item))
        return tuple(out)

    addresses = getattr(value, 'addresses', None)
    if addresses is not None:
        return tuple(a for a in (address_from_structured(x) for x in addresses) if a)

    if not isinstance(value, str):
        single = address_from_structured(value)
        if single:
            return (single,)
        value = str(value)

    decoded = safe_decode_header(value)
    if not decoded:
        return ()

    pairs = _split_raw_addresses(decoded)
    if pairs and all('@' in addr for _, addr in pairs):
        return tuple(Address(display or None, addr) for display, addr in pairs)

    single = address_from_raw(decoded)
    return (single,) if single else ()


def format_address_list(addresses: Sequence[Address]) -> str:
    return ', '.join(a.label for a in addresses if a.label)


def _parse_date_value(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = parsedate_to_datetime(str(value))
        except (TypeError, ValueError, IndexError):
            return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def extract_message_date(msg, now: Optional[datetime] = None) -> datetime:
    """Best-effort message timestamp; the current UTC time when nothing parses."""
    candidates: List[object] = []
    try:
        candidates.append(getattr(msg.get('Date'), 'datetime', None) or msg.get('Date'))
    except Exception:
        candidates.append(None)
    for header in _ALT_DATE_HEADERS:
        try:
            candidates.append(msg.get(header))
        except Exception:
            continue

    try:
        received = msg.get_all('Received') or []
        if received:
            first = safe_decode_header(received[0]) or ''
            if ';' in first:
                candidates.append(first.rsplit(';', 1)[-1].strip())
    except Exception:
        pass

    for candidate in candidates:
        if isinstance(candidate, str):
            candidate = safe_decode_header(candidate)
        parsed = _parse_date_value(candidate)
        if parsed is not None:
            return parsed

    logger.info("No usable date header; using current time")
    return now or datetime.now(timezone.utc)


def to_target_zone(dt: datetime, zone: tzinfo) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(zone)


def format_display_date(dt: datetime, zone: tzinfo) -> str:
    return to_target_zone(dt, zone).strftime(DISPLAY_DATE_FORMAT)


def format_file_size(size: int) -> str:
    """Human readable size: ``0 B``, ``512 B``, ``1 KB``, ``2.34 MB``."""
    if size <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip('0').rstrip('.')
    return f"{text} {units[index]}"


def iter_header_values(msg, name: str) -> Iterable:
    try:
        return msg.get_all(name) or []
    except Exception:
        logger.warning("Could not read %s header", name, exc_info=True)
        return []


__all__ = [
    'DISPLAY_DATE_FORMAT',
    'address_from_raw',
    'address_from_structured',
    'clean_subject',
    'extract_message_date',
    'format_address_list',
    'format_display_date',
    'format_file_size',
    'iter_header_values',
    'parse_addresses',
    'safe_decode_header',
    'to_target_zone',
]
