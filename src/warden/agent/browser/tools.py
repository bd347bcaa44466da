"""Browser actions exposed to the model as tools."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Type

from pydantic import BaseModel

from warden.agent.browser import actions
from warden.agent.browser.manager import BrowserManager
from warden.agent.policy import ToolKind
from warden.agent.tools.args import (
    ClickAtArgs,
    DragAndDropArgs,
    HoverAtArgs,
    KeyCombinationArgs,
    NavigateArgs,
    NoArgs,
    ScrollDocumentArgs,
    TypeTextAtArgs,
)
from warden.agent.tools.base import DeclarativeTool, ToolContext, ToolInvocation, ToolResult
from warden.agent.tools.registry import ToolRegistry

BrowserAction = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class BrowserActionSpec:
    name: str
    display_name: str
    description: str
    args_model: Type[BaseModel]
    action: BrowserAction


BROWSER_ACTIONS: tuple[BrowserActionSpec, ...] = (
    BrowserActionSpec(
        "open_web_browser",
        "Open Web Browser",
        "Open the web browser and report the current page.",
        NoArgs,
        actions.open_web_browser,
    ),
    BrowserActionSpec("navigate", "Navigate", "Navigate the current page to a URL.", NavigateArgs, actions.navigate),
    BrowserActionSpec(
        "click_at",
        "Click",
        "Click at a position given on a 0-999 grid over the viewport.",
        ClickAtArgs,
        actions.click_at,
    ),
    BrowserActionSpec(
        "hover_at",
        "Hover",
        "Move the mouse to a position given on a 0-999 grid over the viewport.",
        HoverAtArgs,
        actions.hover_at,
    ),
    BrowserActionSpec(
        "type_text_at",
        "Type Text",
        "Click at a position and type text, optionally clearing the field first and pressing Enter after.",
        TypeTextAtArgs,
        actions.type_text_at,
    ),
    BrowserActionSpec(
        "scroll_document",
        "Scroll",
        "Scroll the whole document up, down, left or right.",
        ScrollDocumentArgs,
        actions.scroll_document,
    ),
    BrowserActionSpec(
        "drag_and_drop",
        "Drag and Drop",
        "Drag from one grid position and drop at another.",
        DragAndDropArgs,
        actions.drag_and_drop,
    ),
    BrowserActionSpec("pagedown", "Page Down", "Scroll down one page.", NoArgs, actions.pagedown),
    BrowserActionSpec("pageup", "Page Up", "Scroll up one page.", NoArgs, actions.pageup),
    BrowserActionSpec(
        "key_combination",
        "Key Combination",
        "Press a key or key combination such as 'Control+A' or 'Enter'.",
        KeyCombinationArgs,
        actions.key_combination,
    ),
    BrowserActionSpec("go_back", "Go Back", "Go back in the page history.", NoArgs, actions.go_back),
    BrowserActionSpec("go_forward", "Go Forward", "Go forward in the page history.", NoArgs, actions.go_forward),
    BrowserActionSpec(
        "wait_5_seconds",
        "Wait",
        "Wait five seconds for the page to finish loading or animating.",
        NoArgs,
        actions.wait_5_seconds,
    ),
)


class BrowserActionTool(DeclarativeTool[BaseModel]):
    kind = ToolKind.OTHER

    def __init__(self, context: ToolContext, manager: BrowserManager, spec: BrowserActionSpec) -> None:
        super().__init__(context)
        self.manager = manager
        self.spec = spec
        self.name = spec.name
        self.display_name = spec.display_name
        self.description = spec.description
        self.args_model = spec.args_model

    def create_invocation(self, args: BaseModel) -> "BrowserActionInvocation":
        return BrowserActionInvocation(self, args)


class BrowserActionInvocation(ToolInvocation[BaseModel]):
    tool: BrowserActionTool

    async def run(self, cancel: asyncio.Event | None) -> ToolResult:
        page = await self.tool.manager.get_page()
        result = await self.tool.spec.action(page, **self.args.model_dump())
        return ToolResult(llm_content=result, return_display=f"{self.tool.display_name}: {result.get('url', '')}")


def build_browser_registry(context: ToolContext, manager: BrowserManager) -> ToolRegistry:
    return ToolRegistry(BrowserActionTool(context, manager, spec) for spec in BROWSER_ACTIONS)
