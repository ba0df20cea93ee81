"""Append PDF attachments to a rendered email document."""
from __future__ import annotations

import io
import logging
from typing import List, Sequence

from pypdf import PdfReader, PdfWriter

from email_models import DecodedAttachment, RenderedDocument
from errors import MergeError


logger = logging.getLogger(__name__)


def load_pdf_pages(attachment: DecodedAttachment) -> list:
    """Read every page of *attachment* or raise :class:`MergeError`."""
    if not attachment.data:
        raise MergeError(f"PDF attachment '{attachment.filename}' is empty")
    try:
        reader = PdfReader(io.BytesIO(attachment.data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = list(reader.pages)
    except Exception as exc:
        raise MergeError(f"'{attachment.filename}' is not a readable PDF: {exc}") from exc
    if not pages:
        raise MergeError(f"PDF attachment '{attachment.filename}' has no pages")
    return pages


class PdfMerger:
    """Appends the pages of PDF attachments, in order, after the base document."""

    def merge(
        self,
        base: RenderedDocument,
        attachments: Sequence[DecodedAttachment],
    ) -> RenderedDocument:
        pdf_attachments = [a for a in attachments if a.is_pdf]
        if not pdf_attachments:
            logger.info("No PDF attachments found; base document unchanged")
            return base

        writer = PdfWriter()
        try:
            for page in PdfReader(io.BytesIO(base.data)).pages:
                writer.add_page(page)
        except Exception as exc:
            logger.error("Failed reading base PDF; attachments not merged: %s", exc)
            return base
        base_pages = len(writer.pages)

        appended: List[str] = []
        for attachment in pdf_attachments:
            try:
                pages = load_pdf_pages(attachment)
            except MergeError as exc:
                logger.warning("Skipping unreadable PDF attachment: %s", exc)
                continue
            for page in pages:
                writer.add_page(page)
            appended.append(attachment.filename)
            logger.info(
                "Appended attachment '%s' (%d page%s)",
                attachment.filename,
                len(pages),
                "s" if len(pages) != 1 else "",
            )

        if not appended:
            return base

        buffer = io.BytesIO()
        try:
            writer.write(buffer)
        except Exception as exc:
            logger.error("Writing merged PDF failed; keeping base document: %s", exc)
            return base

        page_count = len(writer.pages)
        logger.info(
            "Merged %d PDF attachment(s): %d base page(s) + %d attachment page(s)",
            len(appended),
            base_pages,
            page_count - base_pages,
        )
        return RenderedDocument(data=buffer.getvalue(), page_count=page_count)


__all__ = ["PdfMerger", "load_pdf_pages"]
