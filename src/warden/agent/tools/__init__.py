from warden.agent.tools.base import (
    ConfirmationState,
    DeclarativeTool,
    ToolContext,
    ToolDeclaration,
    ToolInvocation,
    ToolResult,
)
from warden.agent.tools.exit_plan_mode import EXIT_PLAN_MODE_TOOL_NAME, ExitPlanModeTool
from warden.agent.tools.registry import ToolRegistry, build_plan_registry
from warden.agent.tools.scheduler import DispatchOutcome, ToolScheduler

__all__ = [
    "ConfirmationState",
    "DeclarativeTool",
    "DispatchOutcome",
    "EXIT_PLAN_MODE_TOOL_NAME",
    "ExitPlanModeTool",
    "ToolContext",
    "ToolDeclaration",
    "ToolInvocation",
    "ToolRegistry",
    "ToolResult",
    "ToolScheduler",
    "build_plan_registry",
]
