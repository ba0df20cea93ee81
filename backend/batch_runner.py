"""Convert every ``.eml`` file under a file or directory root."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from conversion_pipeline import ConversionPipeline
from email_models import BatchResult, SavedAttachment
from errors import ConversionError, IoError


logger = logging.getLogger(__name__)

EML_EXTENSION = ".eml"


def _is_within(path: Path, directory: Optional[Path]) -> bool:
    if directory is None:
        return False
    try:
        path.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    return True


def discover_email_files(
    root: str | Path,
    extension: str = EML_EXTENSION,
    exclude: Optional[Path] = None,
) -> List[Path]:
    """Sorted list of files under *root* whose suffix matches *extension*.

    Matching is case-insensitive and recursive. Files inside *exclude* are
    skipped. Raises :class:`IoError` when *root* does not exist.
    """
    root_path = Path(root)
    if not root_path.exists():
        raise IoError(f"Source path does not exist: {root_path}")

    wanted = extension.lower()
    if root_path.is_file():
        return [root_path] if root_path.suffix.lower() == wanted else []

    matches = [
        path
        for path in root_path.rglob("*")
        if path.is_file() and path.suffix.lower() == wanted and not _is_within(path, exclude)
    ]
    return sorted(matches)


class BatchRunner:
    """Runs a :class:`ConversionPipeline` over many files, isolating failures."""

    def __init__(
        self,
        pipeline: ConversionPipeline,
        *,
        output_dir: str | Path | None = None,
        attachments_dir: str | Path | None = None,
        report: Callable[[str], None] = print,
    ) -> None:
        self.pipeline = pipeline
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.attachments_dir = Path(attachments_dir) if attachments_dir is not None else None
        self.report = report

    def _effective_output_dir(self, root: Path) -> Path:
        if self.output_dir is not None:
            return self.output_dir
        if self.pipeline.settings.output_dir is not None:
            return Path(self.pipeline.settings.output_dir)
        base = root if root.is_dir() else root.parent
        return base / "output"

    def run(self, root: str | Path) -> BatchResult:
        root_path = Path(root)
        exclude = self._effective_output_dir(root_path) if root_path.exists() else None
        files = discover_email_files(root_path, exclude=exclude)

        result = BatchResult()
        if not files:
            logger.info("No %s files found under %s", EML_EXTENSION, root_path)
            self.report(f"No {EML_EXTENSION} files found in {root_path}")
            return result

        logger.info("Found %d email file(s) under %s", len(files), root_path)
        for path in files:
            try:
                output = self.pipeline.convert(path, output_dir=self.output_dir)
            except ConversionError as exc:
                result.failed += 1
                result.failures.append((path, exc))
                logger.error("Failed to convert %s (%s): %s", path, exc.kind, exc)
                self.report(f"FAILED {path.name}: {exc}")
                continue

            result.succeeded += 1
            result.outputs.append(output)
            self.report(f"Converted {path.name} -> {output.name}")

            if self.attachments_dir is not None:
                self._save_attachments(path)

        summary = (
            f"Finished: {result.succeeded} converted, {result.failed} failed "
            f"({result.total} total)"
        )
        logger.info(summary)
        self.report(summary)
        return result

    def _save_attachments(self, path: Path) -> List[SavedAttachment]:
        """Write decoded attachments of *path* to ``<attachments_dir>/<stem>/``."""
        try:
            record = self.pipeline.parser.parse(path.read_bytes())
        except Exception as exc:
            logger.warning("Could not re-read %s to save attachments: %s", path, exc)
            return []
        decoded = self.pipeline.extractor.decode(record)
        if not decoded:
            return []
        return self.pipeline.extractor.save(self.attachments_dir / path.stem, decoded)


__all__ = ["BatchRunner", "EML_EXTENSION", "discover_email_files"]
