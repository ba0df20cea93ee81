import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)

DEFAULT_PDF_PAGE_FORMAT = "A4"
DEFAULT_TIMEZONE = "Australia/Brisbane"
DEFAULT_RENDERER = "auto"
RENDERER_CHOICES = ("auto", "playwright", "fpdf")

PDF_PAGE_FORMAT_ENV_KEYS = (
    "PDF_PAGE_FORMAT",
    "PDF_PAGE_SIZE",
    "PAGE_FORMAT",
    "PAGE_SIZE",
)
PDF_PAGE_FORMAT_ALIASES = {
    "LETTER": "Letter",
    "US-LETTER": "Letter",
    "US_LETTER": "Letter",
    "A4": "A4",
    "LEGAL": "Legal",
    "A3": "A3",
}
PDF_DEFAULT_MARGINS: Dict[str, Dict[str, str]] = {
    "A4": {
        "top": "20mm",
        "right": "20mm",
        "bottom": "20mm",
        "left": "20mm",
    },
    "Letter": {
        "top": "0.75in",
        "right": "0.75in",
        "bottom": "0.75in",
        "left": "0.75in",
    },
}
_MARGIN_SIDES = ("top", "right", "bottom", "left")
_UNIT_TO_MM = {"mm": 1.0, "cm": 10.0, "in": 25.4, "px": 25.4 / 96.0, "pt": 25.4 / 72.0}


@dataclass(frozen=True)
class ConverterSettings:
    """Resolved runtime configuration for a conversion run."""

    page_format: str = DEFAULT_PDF_PAGE_FORMAT
    margins: Dict[str, str] = field(default_factory=lambda: dict(PDF_DEFAULT_MARGINS["A4"]))
    timezone_name: str = DEFAULT_TIMEZONE
    renderer: str = DEFAULT_RENDERER
    output_dir: Optional[Path] = None
    log_level: str = "INFO"

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def margins_mm(self) -> Dict[str, float]:
        return {side: length_to_mm(self.margins.get(side)) for side in _MARGIN_SIDES}

    def with_overrides(self, **overrides) -> "ConverterSettings":
        values = {k: v for k, v in overrides.items() if v is not None}
        if "timezone_name" in values:
            values["timezone_name"] = _resolve_timezone(values["timezone_name"], "override")
        if "renderer" in values:
            values["renderer"] = _resolve_renderer(values["renderer"], "override")
        if "page_format" in values:
            values["page_format"] = _resolve_page_format(values["page_format"], "override")
            if "margins" not in values:
                values["margins"] = _default_margins(values["page_format"])
        if "output_dir" in values:
            values["output_dir"] = Path(values["output_dir"])
        return replace(self, **values)


def length_to_mm(value: str | float | int | None) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*(mm|cm|in|px|pt)?\s*", str(value).lower())
    if not match:
        return 0.0
    return float(match.group(1)) * _UNIT_TO_MM[match.group(2) or "mm"]


def _standardize_page_key(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"[^A-Z0-9]+", "-", value.upper()).strip('-')


def _default_margins(page_format: str) -> Dict[str, str]:
    return dict(PDF_DEFAULT_MARGINS.get(page_format, PDF_DEFAULT_MARGINS[DEFAULT_PDF_PAGE_FORMAT]))


def _normalize_margin_value(value: str | None, fallback: str, side: str) -> str:
    if value is None:
        return fallback

    candidate = str(value).strip()
    if not candidate:
        return fallback

    lower_candidate = candidate.lower()
    if re.fullmatch(r"\d+(?:\.\d+)?\s*(mm|cm|in|px|pt)", lower_candidate):
        return lower_candidate.replace(" ", "")

    if re.fullmatch(r"\d+(?:\.\d+)?", candidate):
        normalized = f"{candidate}mm"
        logger.debug("Normalized numeric margin for %s side: %s -> %s", side, candidate, normalized)
        return normalized

    logger.warning(
        "Invalid margin value '%s' for %s side. Falling back to %s.",
        value,
        side,
        fallback,
    )
    return fallback


def _resolve_page_format(raw_value: str, source: str) -> str:
    resolved = PDF_PAGE_FORMAT_ALIASES.get(_standardize_page_key(raw_value))
    if resolved:
        return resolved
    logger.warning(
        "Unrecognized PDF page format '%s' from %s; using %s.",
        raw_value,
        source,
        DEFAULT_PDF_PAGE_FORMAT,
    )
    return DEFAULT_PDF_PAGE_FORMAT


def _resolve_timezone(raw_value: str, source: str) -> str:
    try:
        ZoneInfo(raw_value)
        return raw_value
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "Unknown time zone '%s' from %s; using %s.", raw_value, source, DEFAULT_TIMEZONE
        )
        return DEFAULT_TIMEZONE


def _resolve_renderer(raw_value: str, source: str) -> str:
    candidate = (raw_value or "").strip().lower()
    if candidate in RENDERER_CHOICES:
        return candidate
    logger.warning(
        "Unknown renderer '%s' from %s; using %s.", raw_value, source, DEFAULT_RENDERER
    )
    return DEFAULT_RENDERER


def resolve_pdf_layout_settings() -> Tuple[str, Dict[str, str]]:
    page_format = DEFAULT_PDF_PAGE_FORMAT

    for key in PDF_PAGE_FORMAT_ENV_KEYS:
        val = os.environ.get(key)
        if val:
            page_format = _resolve_page_format(val.strip(), key)
            break

    margins = _default_margins(page_format)

    general_margin = os.environ.get('PDF_MARGIN')
    if general_margin:
        normalized_general = _normalize_margin_value(general_margin, margins['top'], 'all')
        for side in _MARGIN_SIDES:
            margins[side] = normalized_general

    for side in _MARGIN_SIDES:
        env_key = f'PDF_MARGIN_{side.upper()}'
        side_value = os.environ.get(env_key)
        if side_value:
            margins[side] = _normalize_margin_value(side_value, margins[side], side)

    logger.debug("Using PDF page format '%s' with margins %s", page_format, margins)
    return page_format, margins


def load_settings(**overrides) -> ConverterSettings:
    """Build settings from the environment, then apply non-``None`` overrides."""
    page_format, margins = resolve_pdf_layout_settings()

    timezone_name = DEFAULT_TIMEZONE
    tz_value = os.environ.get("EML2PDF_TIMEZONE")
    if tz_value:
        timezone_name = _resolve_timezone(tz_value.strip(), "EML2PDF_TIMEZONE")

    renderer = DEFAULT_RENDERER
    renderer_value = os.environ.get("EML2PDF_RENDERER")
    if renderer_value:
        renderer = _resolve_renderer(renderer_value, "EML2PDF_RENDERER")
    if os.environ.get("TEST_MODE", "").lower() == "true":
        renderer = "fpdf"

    output_dir = os.environ.get("EML2PDF_OUTPUT_DIR")

    settings = ConverterSettings(
        page_format=page_format,
        margins=margins,
        timezone_name=timezone_name,
        renderer=renderer,
        output_dir=Path(output_dir) if output_dir else None,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
    return settings.with_overrides(**overrides)


__all__ = [
    "ConverterSettings",
    "DEFAULT_TIMEZONE",
    "RENDERER_CHOICES",
    "length_to_mm",
    "load_settings",
    "resolve_pdf_layout_settings",
]
