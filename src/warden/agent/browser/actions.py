"""Page-level browser actions, overlay and observation capture.

Coordinates arrive on a 0-999 grid and are scaled to the current viewport.
Every action returns a dict that becomes the function response, carrying the
page URL after the action.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from warden.agent.constants import ACCESSIBILITY_TREE_LIMIT
from warden.agent.tool_io import truncate_text
from warden.log_utils import log_event

logger = logging.getLogger(__name__)

GRID_SIZE = 1000
LOAD_TIMEOUT_MS = 5000
OVERLAY_ID = "__warden_border_overlay"

_KEY_ALIASES = {
    "ctrl": "Control",
    "control": "Control",
    "cmd": "Meta",
    "command": "Meta",
    "meta": "Meta",
    "alt": "Alt",
    "option": "Alt",
    "shift": "Shift",
    "enter": "Enter",
    "return": "Enter",
    "esc": "Escape",
    "escape": "Escape",
    "tab": "Tab",
    "space": "Space",
    "backspace": "Backspace",
    "delete": "Delete",
    "pagedown": "PageDown",
    "pageup": "PageUp",
}

_OVERLAY_SCRIPT = """
([id, active, capturing]) => {
  let el = document.getElementById(id);
  if (!active) {
    if (el) el.remove();
    return;
  }
  if (!el) {
    el = document.createElement("div");
    el.id = id;
    Object.assign(el.style, {
      position: "fixed",
      inset: "0",
      pointerEvents: "none",
      zIndex: "2147483647",
      border: "4px solid #1a73e8",
      boxSizing: "border-box",
    });
    document.documentElement.appendChild(el);
  }
  el.style.display = capturing ? "none" : "block";
}
"""


async def _viewport(page: Any) -> tuple[int, int]:
    size = page.viewport_size
    if size:
        return int(size["width"]), int(size["height"])
    width, height = await page.evaluate("() => [window.innerWidth, window.innerHeight]")
    return int(width), int(height)


async def denormalize(page: Any, x: int, y: int) -> tuple[float, float]:
    width, height = await _viewport(page)
    return x / GRID_SIZE * width, y / GRID_SIZE * height


async def _settle(page: Any) -> None:
    try:
        await page.wait_for_load_state("domcontentloaded", timeout=LOAD_TIMEOUT_MS)
    except Exception as exc:
        log_event(logger, "browser.settle_timeout", level=logging.DEBUG, error=str(exc))


async def _state(page: Any) -> Dict[str, Any]:
    await _settle(page)
    return {"url": page.url}


def normalize_keys(keys: str) -> str:
    """Map a combination such as ``ctrl+shift+t`` to Playwright's ``Control+Shift+t``."""
    names = [part.strip() for part in keys.split("+") if part.strip()]
    return "+".join(_KEY_ALIASES.get(name.lower(), name) for name in names)


async def open_web_browser(page: Any) -> Dict[str, Any]:
    return await _state(page)


async def navigate(page: Any, url: str) -> Dict[str, Any]:
    await page.goto(url)
    return await _state(page)


async def click_at(page: Any, x: int, y: int) -> Dict[str, Any]:
    px, py = await denormalize(page, x, y)
    await page.mouse.click(px, py)
    return await _state(page)


async def hover_at(page: Any, x: int, y: int) -> Dict[str, Any]:
    px, py = await denormalize(page, x, y)
    await page.mouse.move(px, py)
    return await _state(page)


async def type_text_at(
    page: Any,
    x: int,
    y: int,
    text: str,
    press_enter: bool = False,
    clear_before_typing: bool = True,
) -> Dict[str, Any]:
    px, py = await denormalize(page, x, y)
    await page.mouse.click(px, py)
    if clear_before_typing:
        await page.keyboard.press("ControlOrMeta+A")
        await page.keyboard.press("Delete")
    await page.keyboard.type(text)
    if press_enter:
        await page.keyboard.press("Enter")
    return await _state(page)


async def scroll_document(page: Any, direction: str, amount: int = 800) -> Dict[str, Any]:
    dx, dy = {
        "up": (0, -amount),
        "down": (0, amount),
        "left": (-amount, 0),
        "right": (amount, 0),
    }[direction]
    await page.mouse.wheel(dx, dy)
    return await _state(page)


async def drag_and_drop(page: Any, x: int, y: int, dest_x: int, dest_y: int) -> Dict[str, Any]:
    start_x, start_y = await denormalize(page, x, y)
    end_x, end_y = await denormalize(page, dest_x, dest_y)
    await page.mouse.move(start_x, start_y)
    await page.mouse.down()
    await page.mouse.move(end_x, end_y, steps=10)
    await page.mouse.up()
    return await _state(page)


async def pagedown(page: Any) -> Dict[str, Any]:
    await page.keyboard.press("PageDown")
    return await _state(page)


async def pageup(page: Any) -> Dict[str, Any]:
    await page.keyboard.press("PageUp")
    return await _state(page)


async def key_combination(page: Any, keys: str) -> Dict[str, Any]:
    await page.keyboard.press(normalize_keys(keys))
    return await _state(page)


async def go_back(page: Any) -> Dict[str, Any]:
    await page.go_back()
    return await _state(page)


async def go_forward(page: Any) -> Dict[str, Any]:
    await page.go_forward()
    return await _state(page)


async def wait_5_seconds(page: Any) -> Dict[str, Any]:
    await page.wait_for_timeout(5000)
    return await _state(page)


async def update_border_overlay(page: Any, *, active: bool, capturing: bool) -> None:
    await page.evaluate(_OVERLAY_SCRIPT, [OVERLAY_ID, active, capturing])


async def accessibility_tree(page: Any, limit: int = ACCESSIBILITY_TREE_LIMIT) -> str | None:
    """Serialized accessibility snapshot, or None when the page exposes nothing."""
    accessibility = getattr(page, "accessibility", None)
    if accessibility is not None:
        snapshot = await accessibility.snapshot()
        text = json.dumps(snapshot, indent=2) if snapshot else None
    else:
        text = await page.locator("body").aria_snapshot()
    if not text:
        return None
    clipped, _truncated = truncate_text(text, limit)
    return clipped
