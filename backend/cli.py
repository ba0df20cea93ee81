"""Command-line entry point: ``eml2pdf SOURCE [-o OUTPUT] ...``."""
from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from pathlib import Path

from batch_runner import BatchRunner
from conversion_pipeline import ConversionPipeline
from converter_settings import RENDERER_CHOICES, load_settings
from document_renderer import build_renderer
from errors import EmlToPdfError
from logging_utils import configure_logging
from render_engine import PlaywrightEngine


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ITEM_FAILED = 1
EXIT_FATAL = 2


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="eml2pdf",
        description="Convert .eml files to PDF, appending any PDF attachments",
    )
    p.add_argument("source", type=Path, help="EML file or directory (searched recursively)")
    p.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output directory (default: <source dir>/output)",
    )
    p.add_argument("--renderer", choices=RENDERER_CHOICES, default=None, help="Rendering strategy")
    p.add_argument("--timezone", default=None, help="IANA zone for dates and filenames")
    p.add_argument("--page-format", default=None, help="Page format such as A4 or Letter")
    p.add_argument(
        "--save-attachments", type=Path, default=None, metavar="DIR",
        help="Also save decoded attachments under DIR/<email name>/",
    )
    p.add_argument(
        "--log-level", default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        type=str.upper,
        help="Log verbosity (default: LOG_LEVEL or INFO)",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level)

    settings = load_settings(
        renderer=args.renderer,
        timezone_name=args.timezone,
        page_format=args.page_format,
        output_dir=args.output,
        log_level=args.log_level,
    )

    if not args.source.exists():
        print(f"error: source not found: {args.source}", file=sys.stderr)
        return EXIT_FATAL

    engine_scope = PlaywrightEngine() if settings.renderer != "fpdf" else contextlib.nullcontext()
    try:
        with engine_scope as engine:
            renderer = build_renderer(settings, engine=engine)
            pipeline = ConversionPipeline(renderer, settings=settings)
            runner = BatchRunner(
                pipeline,
                output_dir=settings.output_dir,
                attachments_dir=args.save_attachments,
            )
            result = runner.run(args.source)
    except EmlToPdfError as exc:
        logger.error("Batch aborted: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    return EXIT_ITEM_FAILED if result.failed else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
