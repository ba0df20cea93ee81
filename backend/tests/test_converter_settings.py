"""Tests for environment-driven converter settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from converter_settings import ConverterSettings, length_to_mm, load_settings


_ENV_KEYS = (
    "PDF_PAGE_FORMAT", "PDF_PAGE_SIZE", "PAGE_FORMAT", "PAGE_SIZE",
    "PDF_MARGIN", "PDF_MARGIN_TOP", "PDF_MARGIN_RIGHT", "PDF_MARGIN_BOTTOM", "PDF_MARGIN_LEFT",
    "EML2PDF_TIMEZONE", "EML2PDF_RENDERER", "EML2PDF_OUTPUT_DIR", "TEST_MODE", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.page_format == "A4"
    assert settings.margins == {"top": "20mm", "right": "20mm", "bottom": "20mm", "left": "20mm"}
    assert settings.timezone_name == "Australia/Brisbane"
    assert settings.renderer == "auto"
    assert settings.output_dir is None
    assert settings.log_level == "INFO"


def test_page_format_alias_switches_default_margins(monkeypatch) -> None:
    monkeypatch.setenv("PAGE_SIZE", "us letter")

    settings = load_settings()

    assert settings.page_format == "Letter"
    assert settings.margins["left"] == "0.75in"


def test_margin_overrides(monkeypatch) -> None:
    monkeypatch.setenv("PDF_MARGIN", "15")
    monkeypatch.setenv("PDF_MARGIN_TOP", "1in")
    monkeypatch.setenv("PDF_MARGIN_LEFT", "wide")

    margins = load_settings().margins

    assert margins == {"top": "1in", "right": "15mm", "bottom": "15mm", "left": "15mm"}


def test_unknown_values_fall_back_with_warning(monkeypatch, caplog) -> None:
    monkeypatch.setenv("PDF_PAGE_FORMAT", "tabloid-ish")
    monkeypatch.setenv("EML2PDF_TIMEZONE", "Mars/Olympus_Mons")
    monkeypatch.setenv("EML2PDF_RENDERER", "wkhtmltopdf")

    settings = load_settings()

    assert settings.page_format == "A4"
    assert settings.timezone_name == "Australia/Brisbane"
    assert settings.renderer == "auto"
    assert "Unknown time zone" in caplog.text


def test_test_mode_forces_fpdf(monkeypatch) -> None:
    monkeypatch.setenv("EML2PDF_RENDERER", "playwright")
    monkeypatch.setenv("TEST_MODE", "true")
    assert load_settings().renderer == "fpdf"


def test_overrides_win_over_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("EML2PDF_TIMEZONE", "UTC")

    settings = load_settings(timezone_name="Europe/London", output_dir=str(tmp_path), renderer=None)

    assert settings.timezone_name == "Europe/London"
    assert settings.output_dir == tmp_path
    assert settings.renderer == "auto"


def test_with_overrides_resets_margins_for_new_format() -> None:
    settings = ConverterSettings().with_overrides(page_format="letter")
    assert settings.page_format == "Letter"
    assert settings.margins["top"] == "0.75in"


def test_margins_in_millimetres() -> None:
    margins = ConverterSettings(page_format="Letter", margins={"top": "0.75in", "right": "2cm",
                                                               "bottom": "72pt", "left": "10"}).margins_mm()
    assert margins["top"] == pytest.approx(19.05)
    assert margins["right"] == pytest.approx(20.0)
    assert margins["bottom"] == pytest.approx(25.4)
    assert margins["left"] == pytest.approx(10.0)
    assert length_to_mm("garbage") == 0.0
