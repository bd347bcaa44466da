"""exit_plan_mode: ask the user to approve a finished plan before implementation."""

from __future__ import annotations

import asyncio
from pathlib import Path

from warden.agent.confirmation import ConfirmationKind, ConfirmationRequest
from warden.agent.policy import ApprovalMode, ModeTransition, ToolKind, describe_approval_mode
from warden.agent.tools.args import ExitPlanModeArgs
from warden.agent.tools.base import DeclarativeTool, ToolInvocation, ToolResult
from warden.fs import is_within_root, resolve_path

EXIT_PLAN_MODE_TOOL_NAME = "exit_plan_mode"

OUTSIDE_PLANS_DIR = "Error: Plan path is outside the designated plans directory."
PLAN_CANCELLED = (
    "User cancelled the plan approval dialog. The plan was not approved and you are still in Plan Mode."
)


class ExitPlanModeTool(DeclarativeTool[ExitPlanModeArgs]):
    name = EXIT_PLAN_MODE_TOOL_NAME
    display_name = "Exit Plan Mode"
    description = (
        "Signals that the planning phase is complete and requests user approval to start implementation."
    )
    kind = ToolKind.PLAN
    args_model = ExitPlanModeArgs

    def validate_param_values(self, args: ExitPlanModeArgs) -> str | None:
        if not args.plan_path.strip():
            return "plan_path is required."
        plans_dir = self.context.storage.get_project_temp_plans_dir()
        if not is_within_root(resolve_path(self.context.target_dir, args.plan_path), plans_dir):
            return f"Access denied: plan path must be within the designated plans directory ({plans_dir})."
        return None

    def create_invocation(self, args: ExitPlanModeArgs) -> "ExitPlanModeInvocation":
        return ExitPlanModeInvocation(self, args)


class ExitPlanModeInvocation(ToolInvocation[ExitPlanModeArgs]):
    def get_description(self) -> str:
        return f"Requesting plan approval for: {self.args.plan_path}"

    def validated_plan_path(self) -> Path | None:
        """Resolved plan path, or None when it escapes the plans directory."""
        plans_dir = self.context.storage.get_project_temp_plans_dir()
        resolved = resolve_path(self.context.target_dir, self.args.plan_path)
        return resolved if is_within_root(resolved, plans_dir) else None

    def confirmation_request(self) -> ConfirmationRequest | None:
        plan_path = self.validated_plan_path()
        if plan_path is None:
            return None
        return ConfirmationRequest(
            kind=ConfirmationKind.PLAN_APPROVAL,
            tool_name=self.tool.name,
            title="Plan Approval",
            subject_path=str(plan_path),
        )

    def precheck(self) -> ToolResult | None:
        if self.validated_plan_path() is None:
            return ToolResult(llm_content=OUTSIDE_PLANS_DIR, return_display=OUTSIDE_PLANS_DIR, error=OUTSIDE_PLANS_DIR)
        return None

    def on_cancelled(self) -> ToolResult:
        return ToolResult(llm_content=PLAN_CANCELLED, return_display="Cancelled")

    async def run(self, cancel: asyncio.Event | None) -> ToolResult:
        plan_path = self.validated_plan_path()
        payload = self.resolution.payload if self.resolution is not None else None
        if payload is not None and payload.approved:
            mode = payload.approval_mode or ApprovalMode.DEFAULT
            return ToolResult(
                llm_content=(
                    f"Plan approved. Switching to {describe_approval_mode(mode)}.\n\n"
                    f"The approved implementation plan is stored at: {plan_path}\n"
                    "Read and follow the plan strictly during implementation."
                ),
                return_display=f"Plan approved: {plan_path}",
                mode_transition=ModeTransition(mode),
            )

        feedback = (payload.feedback if payload is not None else None) or "None"
        return ToolResult(
            llm_content=(
                f"Plan rejected. Feedback: {feedback}\n\n"
                f"The plan is stored at: {plan_path}\n"
                "Revise the plan based on the feedback."
            ),
            return_display=f"Feedback: {feedback}",
        )
