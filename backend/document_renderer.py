"""Render an :class:`EmailRecord` into a base PDF document.

Two strategies are available: ``HtmlDocumentRenderer`` prints an HTML page
through headless Chromium, ``FpdfDocumentRenderer`` draws text directly with
fpdf2. ``FallbackDocumentRenderer`` tries the first and falls back to the
second when it raises :class:`RenderError`.
"""
from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Protocol

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from pypdf import PdfReader

from converter_settings import ConverterSettings
from email_header import EmailHeaderContext, collect_header_context
from email_html import build_email_html
from email_models import BodyKind, EmailRecord, RenderedDocument
from errors import RenderError
from html_text import FormattedLine, html_to_lines, plain_text_lines
from render_engine import PlaywrightEngine


logger = logging.getLogger(__name__)

FONT_FAMILY = "Helvetica"
TITLE_SIZE = 18
META_SIZE = 10
BODY_SIZE = 11
BODY_LINE_HEIGHT = 5.5

_CORE_FONT_REPLACEMENTS = {
    "•": "·",
    "‘": "'",
    "’": "'",
    "‚": ",",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    "…": "...",
    "\u200b": "",
    "\ufeff": "",
    "\t": "    ",
}


class DocumentRenderer(Protocol):
    def render(
        self, record: EmailRecord, metadata: Optional[Mapping[str, Any]] = None
    ) -> RenderedDocument: ...


def count_pdf_pages(data: bytes) -> int:
    try:
        return len(PdfReader(io.BytesIO(data)).pages)
    except Exception as exc:
        raise RenderError(f"Renderer produced an unreadable PDF: {exc}") from exc


def _encode_latin1(text: str) -> str:
    for src, dst in _CORE_FONT_REPLACEMENTS.items():
        text = text.replace(src, dst)
    return text.encode("latin-1", errors="replace").decode("latin-1")


class _BaseRenderer:
    def __init__(
        self,
        settings: ConverterSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.clock = clock

    def _context(
        self, record: EmailRecord, metadata: Optional[Mapping[str, Any]]
    ) -> EmailHeaderContext:
        generated_at = self.clock() if self.clock else None
        return collect_header_context(
            record, self.settings.timezone, metadata=metadata, generated_at=generated_at
        )


class HtmlDocumentRenderer(_BaseRenderer):
    """Markup strategy: HTML page printed by a shared :class:`PlaywrightEngine`."""

    def __init__(
        self,
        engine: PlaywrightEngine,
        settings: ConverterSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(settings, clock)
        self.engine = engine

    def render(self, record, metadata=None) -> RenderedDocument:
        context = self._context(record, metadata)
        html_content = build_email_html(
            context,
            record.body,
            page_format=self.settings.page_format,
            margins=self.settings.margins,
        )
        logger.info("Rendering %d characters of HTML with Chromium", len(html_content))
        data = self.engine.html_to_pdf(html_content, self.settings.page_format, self.settings.margins)
        return RenderedDocument(data=data, page_count=count_pdf_pages(data))


class FpdfDocumentRenderer(_BaseRenderer):
    """Direct-drawing strategy using fpdf2 core fonts."""

    def render(self, record, metadata=None) -> RenderedDocument:
        context = self._context(record, metadata)
        if record.body.kind is BodyKind.HTML:
            body_lines = html_to_lines(record.body.content)
        else:
            body_lines = plain_text_lines(record.body.content)

        try:
            pdf = self._new_document(context.subject)
            self._draw_title(pdf, context.subject)
            self._draw_metadata(pdf, context)
            self._draw_separator(pdf)
            self._draw_body(pdf, body_lines)
            self._draw_attachments(pdf, context)
            self._draw_sidecar(pdf, context)
            self._draw_footer(pdf, context)
            data = bytes(pdf.output())
            page_count = pdf.page_no()
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(f"fpdf2 drawing failed: {exc}") from exc

        logger.info("Drew %d page(s) with fpdf2 (%d bytes)", page_count, len(data))
        return RenderedDocument(data=data, page_count=page_count)

    # Drawing helpers -------------------------------------------------
    def _new_document(self, title: str) -> FPDF:
        margins = self.settings.margins_mm()
        pdf = FPDF(orientation="P", unit="mm", format=self.settings.page_format.lower())
        pdf.set_margins(margins["left"], margins["top"], margins["right"])
        pdf.set_auto_page_break(auto=True, margin=margins["bottom"])
        pdf.set_title(title)
        pdf.add_page()
        return pdf

    def _draw_title(self, pdf: FPDF, subject: str) -> None:
        pdf.set_font(FONT_FAMILY, style="B", size=TITLE_SIZE)
        pdf.set_text_color(26, 26, 26)
        pdf.multi_cell(0, 9, _encode_latin1(subject), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(2)

    def _draw_metadata(self, pdf: FPDF, context: EmailHeaderContext) -> None:
        pdf.set_text_color(68, 68, 68)
        for label, value in context.metadata_rows:
            pdf.set_x(pdf.l_margin)
            pdf.set_font(FONT_FAMILY, style="B", size=META_SIZE)
            pdf.write(5, _encode_latin1(f"{label}: "))
            pdf.set_font(FONT_FAMILY, style="", size=META_SIZE)
            pdf.write(5, _encode_latin1(value))
            pdf.ln(5)

    def _draw_separator(self, pdf: FPDF) -> None:
        pdf.ln(2)
        y = pdf.get_y()
        pdf.set_draw_color(180, 180, 180)
        pdf.line(pdf.l_margin, y, pdf.w - pdf.r_margin, y)
        pdf.ln(4)

    def _draw_body(self, pdf: FPDF, lines: list[FormattedLine]) -> None:
        pdf.set_text_color(51, 51, 51)
        current_style = None
        for line in lines:
            if not line:
                pdf.ln(BODY_LINE_HEIGHT / 2)
                continue
            pdf.set_x(pdf.l_margin)
            for run in line:
                style = ("B" if run.bold else "") + ("I" if run.italic else "")
                if style != current_style:
                    pdf.set_font(FONT_FAMILY, style=style, size=BODY_SIZE)
                    current_style = style
                pdf.write(BODY_LINE_HEIGHT, _encode_latin1(run.text))
            pdf.ln(BODY_LINE_HEIGHT)

    def _draw_attachments(self, pdf: FPDF, context: EmailHeaderContext) -> None:
        if not context.attachments:
            return
        pdf.ln(4)
        pdf.set_text_color(44, 62, 80)
        pdf.set_font(FONT_FAMILY, style="BU", size=BODY_SIZE)
        pdf.multi_cell(0, 6, "Attachments:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font(FONT_FAMILY, style="", size=META_SIZE)
        pdf.set_text_color(51, 51, 51)
        for index, summary in enumerate(context.attachments, start=1):
            pdf.multi_cell(
                0, 5, _encode_latin1(f"{index}. {summary.text}"),
                new_x=XPos.LMARGIN, new_y=YPos.NEXT,
            )

    def _draw_sidecar(self, pdf: FPDF, context: EmailHeaderContext) -> None:
        if not context.sidecar_rows:
            return
        pdf.ln(4)
        pdf.set_text_color(44, 62, 80)
        pdf.set_font(FONT_FAMILY, style="BU", size=BODY_SIZE)
        pdf.multi_cell(0, 6, "Metadata:", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font(FONT_FAMILY, style="", size=META_SIZE)
        pdf.set_text_color(51, 51, 51)
        for key, value in context.sidecar_rows:
            pdf.multi_cell(
                0, 5, _encode_latin1(f"{key}: {value}"),
                new_x=XPos.LMARGIN, new_y=YPos.NEXT,
            )

    def _draw_footer(self, pdf: FPDF, context: EmailHeaderContext) -> None:
        pdf.ln(6)
        pdf.set_font(FONT_FAMILY, style="I", size=8)
        pdf.set_text_color(136, 136, 136)
        pdf.multi_cell(
            0, 4, _encode_latin1(f"Generated on: {context.generated_on}"),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )


class FallbackDocumentRenderer:
    """Try *primary*; on :class:`RenderError` use *fallback*."""

    def __init__(self, primary: DocumentRenderer, fallback: DocumentRenderer) -> None:
        self.primary = primary
        self.fallback = fallback

    def render(self, record, metadata=None) -> RenderedDocument:
        try:
            return self.primary.render(record, metadata)
        except RenderError as exc:
            logger.error("Primary renderer failed (%s); falling back to fpdf2", exc)
        return self.fallback.render(record, metadata)


def build_renderer(
    settings: ConverterSettings,
    engine: Optional[PlaywrightEngine] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> DocumentRenderer:
    """Renderer for ``settings.renderer``; Chromium strategies need *engine*."""
    fpdf_renderer = FpdfDocumentRenderer(settings, clock=clock)
    if settings.renderer == "fpdf":
        return fpdf_renderer
    if engine is None:
        raise ValueError(f"Renderer '{settings.renderer}' requires a PlaywrightEngine")
    html_renderer = HtmlDocumentRenderer(engine, settings, clock=clock)
    if settings.renderer == "playwright":
        return html_renderer
    return FallbackDocumentRenderer(html_renderer, fpdf_renderer)


__all__ = [
    "DocumentRenderer",
    "FallbackDocumentRenderer",
    "FpdfDocumentRenderer",
    "HtmlDocumentRenderer",
    "build_renderer",
    "count_pdf_pages",
]
