"""Resolve confirmation requests by asking an ACP client for permission."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from acp.helpers import text_block, tool_content
from acp.schema import PermissionOption, ToolCall, ToolCallUpdate

from warden.agent.confirmation import (
    ConfirmationKind,
    ConfirmationOutcome,
    ConfirmationRequest,
    ConfirmationResolution,
    PlanApprovalPayload,
)
from warden.agent.policy import ApprovalMode
from warden.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

APPROVE_AUTO_EDIT = "approve_auto_edit"
APPROVE_DEFAULT = "approve_default"
REJECT_PLAN = "reject_plan"

_ACP_KINDS = {"edit": "edit", "execute": "execute", "read": "read"}


def _options_for(request: ConfirmationRequest) -> list[PermissionOption]:
    if request.kind is ConfirmationKind.PLAN_APPROVAL:
        return [
            PermissionOption(option_id=APPROVE_AUTO_EDIT, name="Yes, automatically accept edits", kind="allow_once"),
            PermissionOption(option_id=APPROVE_DEFAULT, name="Yes, manually accept edits", kind="allow_once"),
            PermissionOption(option_id=REJECT_PLAN, name="No, keep planning", kind="reject_once"),
        ]
    options = [PermissionOption(option_id="allow_once", name="Allow once", kind="allow_once")]
    if request.kind is ConfirmationKind.TOOL_CONFIRMATION:
        options.append(PermissionOption(option_id="allow_always", name="Always allow this tool", kind="allow_always"))
    options.append(PermissionOption(option_id="reject_once", name="Reject", kind="reject_once"))
    return options


def _tool_call_for(request: ConfirmationRequest) -> ToolCallUpdate:
    if request.kind is ConfirmationKind.PLAN_APPROVAL:
        kind = "think"
        body = f"Plan: {request.subject_path}"
    else:
        kind = _ACP_KINDS.get(str(request.details.get("kind", "")), "other")
        body = str(request.details.get("description") or request.details.get("explanation") or request.title)
    tool_call = ToolCall(
        tool_call_id=request.request_id,
        title=request.title,
        kind=kind,
        raw_input={"tool": request.tool_name, **request.details},
        content=[tool_content(text_block(body))],
        status="pending",
    )
    return ToolCallUpdate.model_validate(tool_call.model_dump(by_alias=True))


def resolution_for(request: ConfirmationRequest, option_id: str) -> ConfirmationResolution:
    """Map a selected ACP option to a bus resolution; unknown ids cancel."""
    if request.kind is ConfirmationKind.PLAN_APPROVAL:
        if option_id == APPROVE_AUTO_EDIT:
            payload = PlanApprovalPayload(approved=True, approval_mode=ApprovalMode.AUTO_EDIT)
        elif option_id == APPROVE_DEFAULT:
            payload = PlanApprovalPayload(approved=True, approval_mode=ApprovalMode.DEFAULT)
        elif option_id == REJECT_PLAN:
            payload = PlanApprovalPayload(approved=False)
        else:
            return ConfirmationResolution(ConfirmationOutcome.CANCEL)
        return ConfirmationResolution(ConfirmationOutcome.PROCEED_ONCE, payload)
    if option_id == "allow_always" and request.kind is ConfirmationKind.TOOL_CONFIRMATION:
        return ConfirmationResolution(ConfirmationOutcome.PROCEED_ALWAYS)
    if option_id == "allow_once":
        return ConfirmationResolution(ConfirmationOutcome.PROCEED_ONCE)
    return ConfirmationResolution(ConfirmationOutcome.CANCEL)


class AcpPermissionResolver:
    """Bus resolver that forwards each request to ``conn.request_permission``."""

    def __init__(self, conn: Any, session_id: str | None = None) -> None:
        self._conn = conn
        self.session_id = session_id or uuid.uuid4().hex

    async def __call__(self, request: ConfirmationRequest) -> ConfirmationResolution:
        requester = getattr(self._conn, "request_permission", None)
        if requester is None:
            raise RuntimeError("Connection missing request_permission handler")
        with log_context(session_id=self.session_id, tool_call_id=request.request_id):
            log_event(logger, "acp.permission.request", kind=request.kind.value, tool_name=request.tool_name)
            resp = await requester(
                options=_options_for(request),
                session_id=self.session_id,
                tool_call=_tool_call_for(request),
            )
            outcome = getattr(resp, "outcome", None)
            option_id = getattr(outcome, "option_id", "") if outcome is not None else ""
            resolution = resolution_for(request, option_id or "")
            log_event(
                logger,
                "acp.permission.granted" if not resolution.cancelled else "acp.permission.denied",
                option_id=option_id or None,
            )
        return resolution
