"""Tool registry: name to tool lookup and declarations for the model."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator

from warden.agent.tools.base import DeclarativeTool, ToolContext, ToolDeclaration
from warden.agent.tools.exit_plan_mode import ExitPlanModeTool


class ToolRegistry:
    def __init__(self, tools: Iterable[DeclarativeTool] = ()) -> None:
        self._tools: Dict[str, DeclarativeTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: DeclarativeTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> DeclarativeTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def declarations(self) -> list[ToolDeclaration]:
        return [tool.declaration() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[DeclarativeTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def build_plan_registry(context: ToolContext) -> ToolRegistry:
    """Registry with the planning tools."""
    return ToolRegistry([ExitPlanModeTool(context)])
