"""Exception types raised by the conversion pipeline."""

from __future__ import annotations

from pathlib import Path


class EmlToPdfError(Exception):
    """Base class for every error raised by the converter."""


class ParseError(EmlToPdfError):
    """The email source could not be read as an email message."""


class RenderError(EmlToPdfError):
    """The layout/drawing engine failed to produce a document."""


class MergeError(EmlToPdfError):
    """A PDF attachment could not be appended to the document."""


class IoError(EmlToPdfError):
    """A filesystem read, write or mkdir failed."""


class ConversionError(EmlToPdfError):
    """Top-level failure of a single email conversion.

    ``kind`` names the stage that failed (``"parse"``, ``"render"``, ``"io"``
    or ``"unexpected"``); the underlying exception is kept as ``__cause__``.
    """

    def __init__(self, message: str, *, kind: str, source_path: str | Path | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.source_path = Path(source_path) if source_path is not None else None

    @classmethod
    def wrap(cls, exc: BaseException, source_path: str | Path | None = None) -> "ConversionError":
        if isinstance(exc, ParseError):
            kind = "parse"
        elif isinstance(exc, RenderError):
            kind = "render"
        elif isinstance(exc, IoError):
            kind = "io"
        elif isinstance(exc, MergeError):
            kind = "merge"
        else:
            kind = "unexpected"
        message = str(exc) or type(exc).__name__
        error = cls(message, kind=kind, source_path=source_path)
        error.__cause__ = exc
        return error


__all__ = [
    "ConversionError",
    "EmlToPdfError",
    "IoError",
    "MergeError",
    "ParseError",
    "RenderError",
]
