import logging
import os


LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'
_QUIET_LOGGERS = ('pypdf', 'fpdf', 'fontTools', 'asyncio', 'urllib3')


def configure_logging(level: str | None = None) -> None:
    """Configure logging consistently for CLI and library use."""
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()

    resolved = getattr(logging, log_level, None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    root.setLevel(resolved)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
