"""Scoped headless-Chromium handle used by the markup rendering strategy.

One browser is launched per batch; every document gets its own browser
context and page, and access is serialized with a lock so concurrent
conversions sharing the engine never see each other's content.
"""
from __future__ import annotations

import logging
import subprocess
import sys
import threading
import time
from typing import Callable, Dict, Iterable, Optional

from errors import RenderError


logger = logging.getLogger(__name__)

CHROME_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--disable-extensions",
    "--font-render-hinting=none",
)

# Known fragments that indicate the Playwright browser executable is missing.
_MISSING_BROWSER_MARKERS: tuple[str, ...] = (
    "executable doesn't exist at",
    "playwright install",
    "download new browsers",
)


def is_missing_browser_error(exc: BaseException | None) -> bool:
    """Return ``True`` when *exc* suggests the Playwright browser is missing."""
    if exc is None:
        return False
    lowered = (str(exc) or "").lower()
    return any(marker in lowered for marker in _MISSING_BROWSER_MARKERS)


def _run_install_command(command: Iterable[str]) -> bool:
    command = list(command)
    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except FileNotFoundError:
        logger.debug("Playwright CLI not found when running %s", " ".join(command))
        return False
    except subprocess.CalledProcessError as err:
        stderr = (err.stderr or err.stdout or str(err)).strip()
        logger.error("Playwright install command failed (%s): %s", " ".join(command), stderr)
        return False
    logger.info("Successfully executed '%s'", " ".join(command))
    return True


def ensure_playwright_browsers_installed(browser: str = "chromium") -> bool:
    commands = [
        (sys.executable, "-m", "playwright", "install", browser),
        ("playwright", "install", browser),
    ]
    for command in commands:
        if _run_install_command(command):
            return True
    logger.error("Unable to install Playwright %s browser automatically", browser)
    return False


def _default_playwright_factory():
    from playwright.sync_api import sync_playwright

    return sync_playwright()


class PlaywrightEngine:
    """Context-managed Chromium instance that prints HTML to PDF bytes.

    ``playwright_factory`` returns an object with ``start()``/``stop()`` (the
    ``sync_playwright()`` context manager); tests pass a fake.
    """

    def __init__(
        self,
        *,
        max_retries: int = 3,
        auto_install: bool = True,
        playwright_factory: Optional[Callable[[], object]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.auto_install = auto_install
        self._factory = playwright_factory or _default_playwright_factory
        self._sleep = sleep
        self._lock = threading.Lock()
        self._playwright = None
        self._browser = None
        self._launch_error: Optional[BaseException] = None

    # Lifecycle ------------------------------------------------------
    def __enter__(self) -> "PlaywrightEngine":
        # Chromium is launched lazily by start().
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def started(self) -> bool:
        return self._browser is not None

    def start(self) -> None:
        with self._lock:
            if self._browser is not None:
                return
            if self._launch_error is not None:
                raise RenderError(f"Headless Chromium unavailable: {self._launch_error}")
            try:
                self._launch()
            except Exception as exc:
                self._stop_playwright()
                if not (self.auto_install and is_missing_browser_error(exc)):
                    self._launch_error = exc
                    raise RenderError(f"Could not launch headless Chromium: {exc}") from exc
                logger.warning("Chromium missing; attempting 'playwright install chromium'")
                if not ensure_playwright_browsers_installed():
                    self._launch_error = exc
                    raise RenderError(f"Could not launch headless Chromium: {exc}") from exc
                try:
                    self._launch()
                except Exception as retry_exc:
                    self._stop_playwright()
                    self._launch_error = retry_exc
                    raise RenderError(
                        f"Could not launch headless Chromium after install: {retry_exc}"
                    ) from retry_exc

    def _launch(self) -> None:
        start_time = time.time()
        self._playwright = self._factory().start()
        self._browser = self._playwright.chromium.launch(
            headless=True,
            args=list(CHROME_ARGS),
            timeout=30000,
            chromium_sandbox=False,
        )
        logger.info("Browser launched in %.2fs", time.time() - start_time)

    def _stop_playwright(self) -> None:
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception:
                logger.warning("Playwright shutdown failed", exc_info=True)
            self._playwright = None

    def close(self) -> None:
        with self._lock:
            if self._browser is not None:
                try:
                    self._browser.close()
                except Exception:
                    logger.warning("Browser close failed", exc_info=True)
                self._browser = None
            self._stop_playwright()

    # Rendering ------------------------------------------------------
    def html_to_pdf(self, html_content: str, page_format: str, margins: Dict[str, str]) -> bytes:
        """Print *html_content* in a fresh context; retries with backoff."""
        self.start()

        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                with self._lock:
                    return self._print_once(html_content, page_format, margins)
            except Exception as exc:
                last_error = exc
                logger.error(
                    "Playwright PDF generation attempt %d/%d failed: %s",
                    attempt + 1,
                    self.max_retries,
                    exc,
                )
                if attempt < self.max_retries - 1:
                    delay = 2 ** attempt
                    logger.info("Waiting %ss before retry...", delay)
                    self._sleep(delay)
        raise RenderError(f"Playwright PDF generation failed: {last_error}") from last_error

    def _print_once(self, html_content: str, page_format: str, margins: Dict[str, str]) -> bytes:
        if self._browser is None:
            raise RenderError("Browser is not running")
        context = self._browser.new_context()
        try:
            page = context.new_page()
            page.set_default_timeout(60000)
            page.set_content(html_content, wait_until="load", timeout=30000)
            pdf_bytes = page.pdf(
                format=page_format,
                margin=dict(margins),
                print_background=True,
                prefer_css_page_size=False,
                display_header_footer=False,
            )
        finally:
            context.close()
        if not pdf_bytes:
            raise RenderError("Chromium returned an empty PDF")
        logger.info("Printed page to PDF (%d bytes)", len(pdf_bytes))
        return bytes(pdf_bytes)


__all__ = [
    "CHROME_ARGS",
    "PlaywrightEngine",
    "ensure_playwright_browsers_installed",
    "is_missing_browser_error",
]
