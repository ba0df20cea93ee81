"""Build the printable HTML page for an email (markup rendering strategy)."""

from __future__ import annotations

import html
import logging
import re
from typing import Dict

from bs4 import BeautifulSoup

from email_header import EmailHeaderContext
from email_models import BodyKind, EmailBody


logger = logging.getLogger(__name__)

_REMOVED_TAGS = ("script", "style", "meta", "link", "base", "title", "iframe", "object", "embed")

PAGE_STYLES = """
        body {
            font-family: "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
            line-height: 1.5;
            color: #333;
            margin: 0;
            padding: 0;
            overflow-wrap: anywhere;
        }
        .subject {
            font-size: 20px;
            font-weight: bold;
            color: #1a1a1a;
            margin-bottom: 12px;
        }
        .email-header {
            border-bottom: 2px solid #e1e5e9;
            padding-bottom: 14px;
            margin-bottom: 20px;
            page-break-inside: avoid;
            break-inside: avoid;
        }
        .email-meta {
            display: grid;
            grid-template-columns: auto 1fr;
            gap: 4px 16px;
            font-size: 12px;
            color: #555;
        }
        .meta-label { font-weight: 700; color: #222; }
        .email-body { font-size: 13px; }
        .email-body img { max-width: 100%; height: auto; }
        .email-body pre.plain-text {
            white-space: pre-wrap;
            font-family: inherit;
            margin: 0;
        }
        .attachments-section, .sidecar-section {
            margin-top: 28px;
            padding-top: 12px;
            border-top: 1px solid #e1e5e9;
            font-size: 12px;
        }
        .attachments-section h3, .sidecar-section h3 { font-size: 14px; margin: 0 0 8px; }
        .attachments-list { margin: 0; padding-left: 20px; }
        .file-info { color: #666; }
        .generated-on { margin-top: 24px; color: #888; font-size: 10px; }
"""


def clean_body_html(body_html: str) -> str:
    """Keep only the inner ``<body>`` markup, minus active/head-only content."""
    if not body_html or not body_html.strip():
        return ""
    try:
        soup = BeautifulSoup(body_html, "lxml")
        for tag in soup.find_all(_REMOVED_TAGS):
            tag.decompose()
        for tag in soup.find_all(True):
            for attr in [a for a in tag.attrs if a.lower().startswith("on")]:
                del tag[attr]
            href = tag.get("href")
            if isinstance(href, str) and href.strip().lower().startswith("javascript:"):
                del tag["href"]
        container = soup.body or soup
        return "".join(str(child) for child in container.children).strip()
    except Exception as exc:
        logger.warning("HTML body cleanup failed (%s); escaping body instead", exc)
        return f'<pre class="plain-text">{html.escape(body_html)}</pre>'


def body_markup(body: EmailBody) -> str:
    if body.kind is BodyKind.HTML:
        cleaned = clean_body_html(body.content)
        if cleaned:
            return cleaned
        text = re.sub(r"<[^>]*>", "", body.content or "")
        return f'<pre class="plain-text">{html.escape(text)}</pre>'
    return f'<pre class="plain-text">{html.escape(body.content or "")}</pre>'


def page_css(page_format: str, margins: Dict[str, str]) -> str:
    return (
        f"@page {{ size: {page_format}; margin: {margins.get('top', '20mm')} "
        f"{margins.get('right', '20mm')} {margins.get('bottom', '20mm')} "
        f"{margins.get('left', '20mm')}; }}"
    )


def build_email_html(
    context: EmailHeaderContext,
    body: EmailBody,
    page_format: str = "A4",
    margins: Dict[str, str] | None = None,
) -> str:
    """Full HTML document: subject, metadata, body, attachments, footer."""
    meta_rows = "\n".join(
        f'<span class="meta-label">{html.escape(label)}:</span>'
        f'<span class="meta-value">{html.escape(value)}</span>'
        for label, value in context.metadata_rows
    )

    attachments_html = ""
    if context.attachments:
        items = "\n".join(
            f'<li><strong>{html.escape(att.filename)}</strong>'
            + (f' <span class="file-info">({html.escape(att.detail)})</span>' if att.detail else "")
            + "</li>"
            for att in context.attachments
        )
        attachments_html = (
            '<div class="attachments-section"><h3>Attachments</h3>'
            f'<ol class="attachments-list">{items}</ol></div>'
        )

    sidecar_html = ""
    if context.sidecar_rows:
        items = "\n".join(
            f"<li><strong>{html.escape(key)}:</strong> {html.escape(value)}</li>"
            for key, value in context.sidecar_rows
        )
        sidecar_html = (
            '<div class="sidecar-section"><h3>Metadata</h3>'
            f'<ul class="attachments-list">{items}</ul></div>'
        )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{html.escape(context.subject)}</title>
    <style>
        {page_css(page_format, margins or {})}
{PAGE_STYLES}
    </style>
</head>
<body>
    <div class="email-header">
        <div class="subject">{html.escape(context.subject)}</div>
        <div class="email-meta">
{meta_rows}
        </div>
    </div>
    <div class="email-body">{body_markup(body)}</div>
    {attachments_html}
    {sidecar_html}
    <div class="generated-on">Generated on: {html.escape(context.generated_on)}</div>
</body>
</html>
"""


__all__ = ["body_markup", "build_email_html", "clean_body_html"]
