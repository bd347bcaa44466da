"""The browser as the agent loop's environment."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from warden.agent.browser import actions
from warden.agent.browser.manager import AcquisitionStatus, BrowserManager
from warden.agent.loop import Observation
from warden.log_utils import log_event

logger = logging.getLogger(__name__)


class BrowserEnvironment:
    """Observation, URL and overlay access over a leased browser page."""

    def __init__(self, manager: BrowserManager, notify: Callable[[str], Any] | None = None) -> None:
        self.manager = manager
        self.notify = notify
        self._leased = False

    async def check_available(self) -> str | None:
        acquisition = await self.manager.acquire()
        if acquisition.status is AcquisitionStatus.UNAVAILABLE:
            return acquisition.message
        self._leased = True
        if acquisition.status is AcquisitionStatus.FAILED:
            await self._notify(f"Warning: Failed to launch browser: {acquisition.message}")
        return None

    async def observe(self) -> Observation | None:
        page = await self.manager.get_page()
        await actions.update_border_overlay(page, active=True, capturing=True)
        try:
            screenshot = await page.screenshot()
            tree = await actions.accessibility_tree(page)
        finally:
            try:
                await actions.update_border_overlay(page, active=True, capturing=False)
            except Exception as exc:
                log_event(logger, "browser.overlay_failed", level=logging.DEBUG, error=str(exc))
        return Observation(screenshot=screenshot, accessibility_tree=tree)

    async def current_url(self) -> str | None:
        page = await self.manager.get_page()
        return page.url

    async def activate_overlay(self) -> None:
        page = await self.manager.get_page()
        await actions.update_border_overlay(page, active=True, capturing=False)

    async def release_overlay(self) -> None:
        page = await self.manager.get_page()
        await actions.update_border_overlay(page, active=False, capturing=False)

    def close(self) -> None:
        """Give the browser back to other sessions."""
        if self._leased:
            self._leased = False
            self.manager.release()

    async def _notify(self, message: str) -> None:
        if self.notify is None:
            return
        result = self.notify(message)
        if inspect.isawaitable(result):
            await result
