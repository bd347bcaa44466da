"""Lazily launched, self-healing browser page shared by agent sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from warden.errors import BrowserUnavailableError
from warden.log_utils import log_event

logger = logging.getLogger(__name__)

PLAYWRIGHT_MISSING = (
    "Playwright is not installed. Please install it to use the browser agent: "
    "pip install playwright && playwright install chromium"
)
CHROMIUM_ARGS = ("--no-sandbox", "--disable-setuid-sandbox", "--window-size=1024,1024")

BrowserLauncher = Callable[[bool], Awaitable[Any]]


class AcquisitionStatus(str, Enum):
    READY = "ready"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class PageAcquisition:
    status: AcquisitionStatus
    page: Any = None
    message: str | None = None

    @property
    def ready(self) -> bool:
        return self.status is AcquisitionStatus.READY


def _async_playwright() -> Any:
    try:
        from playwright.async_api import async_playwright  # type: ignore
    except ImportError as exc:
        raise BrowserUnavailableError(PLAYWRIGHT_MISSING) from exc
    return async_playwright


class BrowserManager:
    """Owns one Chromium browser, context and page.

    ``acquire()`` takes a lease for the calling session (other sessions wait
    until ``release()``) and reports whether a page could be produced. Inside
    a lease, ``get_page()`` returns the live page, recreating whatever part of
    the browser/context/page chain has gone away.
    """

    def __init__(self, *, headless: bool = False, launcher: BrowserLauncher | None = None) -> None:
        self.headless = headless
        self._launcher = launcher
        self._lease = asyncio.Lock()
        self._handles = asyncio.Lock()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @property
    def leased(self) -> bool:
        return self._lease.locked()

    async def acquire(self) -> PageAcquisition:
        await self._lease.acquire()
        try:
            page = await self._ensure_page()
        except BrowserUnavailableError as exc:
            self._lease.release()
            log_event(logger, "browser.unavailable", level=logging.WARNING, error=str(exc))
            return PageAcquisition(AcquisitionStatus.UNAVAILABLE, message=str(exc))
        except Exception as exc:
            log_event(logger, "browser.launch_failed", level=logging.WARNING, error=str(exc))
            return PageAcquisition(AcquisitionStatus.FAILED, message=str(exc))
        except asyncio.CancelledError:
            self._lease.release()
            raise
        return PageAcquisition(AcquisitionStatus.READY, page=page)

    def release(self) -> None:
        if self._lease.locked():
            self._lease.release()

    async def get_page(self) -> Any:
        """Return the live page, relaunching as needed.

        Raises :class:`BrowserUnavailableError` when Playwright is missing.
        """
        return await self._ensure_page()

    async def close(self) -> None:
        async with self._handles:
            browser, playwright = self._browser, self._playwright
            self._reset()
            self._playwright = None
            if browser is not None:
                try:
                    await browser.close()
                except Exception as exc:
                    log_event(logger, "browser.close_failed", level=logging.DEBUG, error=str(exc))
            if playwright is not None:
                await playwright.stop()

    async def _ensure_page(self) -> Any:
        async with self._handles:
            if self._browser is None or not self._browser.is_connected():
                await self._launch()
            if self._page is None or self._page.is_closed():
                if self._context is None:
                    context = await self._browser.new_context(viewport=None)
                    context.on("close", lambda *_: self._on_context_close(context))
                    self._context = context
                page = await self._context.new_page()
                page.on("close", lambda *_: self._on_page_close(page))
                self._page = page
            if self._page is None:
                raise RuntimeError("Failed to create page")
            return self._page

    async def _launch(self) -> None:
        self._reset()
        if self._launcher is not None:
            browser = await self._launcher(self.headless)
        else:
            async_playwright = _async_playwright()
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            browser = await self._playwright.chromium.launch(headless=self.headless, args=list(CHROMIUM_ARGS))
        browser.on("disconnected", lambda *_: self._on_disconnected(browser))
        self._browser = browser
        log_event(logger, "browser.launch", headless=self.headless)

    def _reset(self) -> None:
        self._browser = None
        self._context = None
        self._page = None

    def _on_disconnected(self, browser: Any) -> None:
        if self._browser is browser:
            log_event(logger, "browser.disconnected", level=logging.DEBUG)
            self._reset()

    def _on_context_close(self, context: Any) -> None:
        if self._context is context:
            self._context = None
            self._page = None

    def _on_page_close(self, page: Any) -> None:
        if self._page is page:
            self._page = None


_default_manager: BrowserManager | None = None


def get_browser_manager(*, headless: bool = False) -> BrowserManager:
    """Process-wide default manager; ``headless`` only applies on first creation."""
    global _default_manager
    if _default_manager is None:
        _default_manager = BrowserManager(headless=headless)
    return _default_manager
