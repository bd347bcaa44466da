"""Interactive terminal resolver for confirmation requests."""

from __future__ import annotations

from typing import Awaitable, Callable

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.shortcuts import radiolist_dialog  # type: ignore

from warden.agent.confirmation import (
    ConfirmationKind,
    ConfirmationOutcome,
    ConfirmationRequest,
    ConfirmationResolution,
    PlanApprovalPayload,
)
from warden.agent.policy import ApprovalMode
from warden.client.display import print_plan

Chooser = Callable[[ConfirmationRequest, list[tuple[str, str]]], Awaitable[str | None]]
FeedbackReader = Callable[[], Awaitable[str]]

PLAN_CHOICES = [
    ("auto_edit", "Yes, automatically accept edits"),
    ("default", "Yes, manually accept edits"),
    ("feedback", "No, keep planning (provide feedback)"),
]
TOOL_CHOICES = [
    ("once", "Allow once"),
    ("always", "Allow always"),
    ("cancel", "No"),
]
SAFETY_CHOICES = [
    ("once", "Proceed"),
    ("cancel", "Cancel"),
]


async def _dialog_choice(request: ConfirmationRequest, values: list[tuple[str, str]]) -> str | None:
    text = request.subject_path or str(request.details.get("description") or request.details.get("explanation") or "")
    return await radiolist_dialog(title=request.title, text=text, values=values).run_async()


async def _read_feedback() -> str:
    return await PromptSession().prompt_async("Feedback: ")


class TerminalResolver:
    """Ask the person at the terminal; closing a dialog cancels."""

    def __init__(self, choose: Chooser | None = None, read_feedback: FeedbackReader | None = None) -> None:
        self._choose = choose or _dialog_choice
        self._read_feedback = read_feedback or _read_feedback

    async def __call__(self, request: ConfirmationRequest) -> ConfirmationResolution:
        if request.kind is ConfirmationKind.PLAN_APPROVAL:
            return await self._plan(request)
        values = TOOL_CHOICES if request.kind is ConfirmationKind.TOOL_CONFIRMATION else SAFETY_CHOICES
        choice = await self._choose(request, values)
        if choice == "always":
            return ConfirmationResolution(ConfirmationOutcome.PROCEED_ALWAYS)
        if choice == "once":
            return ConfirmationResolution(ConfirmationOutcome.PROCEED_ONCE)
        return ConfirmationResolution(ConfirmationOutcome.CANCEL)

    async def _plan(self, request: ConfirmationRequest) -> ConfirmationResolution:
        if request.subject_path:
            print_plan(request.subject_path)
        choice = await self._choose(request, PLAN_CHOICES)
        if choice is None:
            return ConfirmationResolution(ConfirmationOutcome.CANCEL)
        if choice == "feedback":
            feedback = (await self._read_feedback()).strip()
            payload = PlanApprovalPayload(approved=False, feedback=feedback or None)
        else:
            mode = ApprovalMode.AUTO_EDIT if choice == "auto_edit" else ApprovalMode.DEFAULT
            payload = PlanApprovalPayload(approved=True, approval_mode=mode)
        return ConfirmationResolution(ConfirmationOutcome.PROCEED_ONCE, payload)
