"""Single-email conversion: read, parse, render, merge and publish a PDF."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional

from attachment_extractor import AttachmentExtractor
from converter_settings import ConverterSettings, load_settings
from document_renderer import DocumentRenderer
from email_models import EmailRecord
from email_parser import EmailRecordParser
from errors import ConversionError, IoError
from filename_utils import safe_output_filename
from pdf_merger import PdfMerger


logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".meta.json"
DEFAULT_OUTPUT_SUBDIR = "output"


def sidecar_path_for(input_path: Path) -> Path:
    return input_path.with_name(input_path.stem + SIDECAR_SUFFIX)


def load_sidecar(input_path: str | Path) -> Optional[Dict[str, Any]]:
    """Return the JSON object stored next to *input_path*, if any.

    Missing, unreadable or malformed sidecars are ignored.
    """
    path = sidecar_path_for(Path(input_path))
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable metadata sidecar %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring metadata sidecar %s: expected a JSON object", path)
        return None
    return data


def write_atomic(destination: Path, data: bytes) -> None:
    """Write *data* to a temp file beside *destination*, then rename it in place."""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IoError(f"Cannot create output directory {destination.parent}: {exc}") from exc

    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=destination.parent,
            prefix=f".{destination.stem}.",
            suffix=".part",
            delete=False,
        ) as tmp_file:
            tmp_name = tmp_file.name
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_name, destination)
        tmp_name = None
    except OSError as exc:
        raise IoError(f"Failed writing {destination}: {exc}") from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_name)


class ConversionPipeline:
    """Converts one ``.eml`` file into one PDF on disk."""

    def __init__(
        self,
        renderer: DocumentRenderer,
        *,
        parser: Optional[EmailRecordParser] = None,
        extractor: Optional[AttachmentExtractor] = None,
        merger: Optional[PdfMerger] = None,
        settings: Optional[ConverterSettings] = None,
    ) -> None:
        self.renderer = renderer
        self.parser = parser or EmailRecordParser()
        self.extractor = extractor or AttachmentExtractor()
        self.merger = merger or PdfMerger()
        self.settings = settings or load_settings()

    def resolve_destination(
        self,
        record: EmailRecord,
        input_path: Path,
        output_dir: str | Path | None = None,
        output_path: str | Path | None = None,
    ) -> Path:
        if output_path is not None:
            return Path(output_path)
        if output_dir is not None:
            directory = Path(output_dir)
        elif self.settings.output_dir is not None:
            directory = Path(self.settings.output_dir)
        else:
            directory = input_path.parent / DEFAULT_OUTPUT_SUBDIR
        return directory / safe_output_filename(record, self.settings.timezone, input_path)

    def convert(
        self,
        input_path: str | Path,
        output_dir: str | Path | None = None,
        output_path: str | Path | None = None,
    ) -> Path:
        """Convert *input_path* and return the published PDF path.

        Raises :class:`ConversionError` naming the failed stage.
        """
        source = Path(input_path)
        start_time = time.time()
        try:
            try:
                raw = source.read_bytes()
            except OSError as exc:
                raise IoError(f"Cannot read {source}: {exc}") from exc

            metadata = load_sidecar(source)
            record = self.parser.parse(raw)
            attachments = self.extractor.decode(record)
            document = self.renderer.render(record, metadata)
            document = self.merger.merge(document, attachments)

            destination = self.resolve_destination(record, source, output_dir, output_path)
            write_atomic(destination, document.data)
        except ConversionError:
            raise
        except Exception as exc:
            logger.error("Conversion of %s failed: %s", source, exc)
            raise ConversionError.wrap(exc, source) from exc

        logger.info(
            "Converted %s -> %s (%d page(s), %d bytes) in %.2fs",
            source.name,
            destination,
            document.page_count,
            len(document.data),
            time.time() - start_time,
        )
        return destination


__all__ = ["ConversionPipeline", "load_sidecar", "sidecar_path_for", "write_atomic"]
