"""Browser automation: session resource, actions and the browser agent."""

from warden.agent.browser.agent import BROWSER_SYSTEM_INSTRUCTION, BrowserAgent
from warden.agent.browser.environment import BrowserEnvironment
from warden.agent.browser.manager import (
    PLAYWRIGHT_MISSING,
    AcquisitionStatus,
    BrowserManager,
    PageAcquisition,
    get_browser_manager,
)
from warden.agent.browser.tools import BROWSER_ACTIONS, build_browser_registry

__all__ = [
    "AcquisitionStatus",
    "BROWSER_ACTIONS",
    "BROWSER_SYSTEM_INSTRUCTION",
    "BrowserAgent",
    "BrowserEnvironment",
    "BrowserManager",
    "PLAYWRIGHT_MISSING",
    "PageAcquisition",
    "build_browser_registry",
    "get_browser_manager",
]
