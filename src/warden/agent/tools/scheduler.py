"""Dispatch model function calls through hooks, confirmation and execution."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from warden.agent.confirmation import ConfirmationBus, ConfirmationOutcome
from warden.agent.content import FunctionCall
from warden.agent.hooks import AggregatedHookResult, HookEvent, HookEventName, HookRunner
from warden.agent.policy import ApprovalPolicy
from warden.agent.tool_io import Cancelled, await_with_cancel
from warden.agent.tools.base import ToolResult
from warden.agent.tools.registry import ToolRegistry
from warden.errors import ToolValidationError
from warden.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

Notifier = Callable[[str], Any]


@dataclass
class DispatchOutcome:
    """What one function call produced, plus hook side channels."""

    name: str
    call_id: str | None
    response: Dict[str, Any]
    result: ToolResult | None = None
    additional_context: list[str] = field(default_factory=list)
    system_messages: list[str] = field(default_factory=list)
    stop_requested: bool = False
    stop_reason: str | None = None

    def absorb(self, hooks: AggregatedHookResult) -> None:
        self.additional_context.extend(hooks.additional_context)
        self.system_messages.extend(hooks.system_messages)
        if hooks.stop_requested:
            self.stop_requested = True
            self.stop_reason = hooks.stop_reason or self.stop_reason


class ToolScheduler:
    """Run one function call at a time: BeforeTool, confirm, execute, AfterTool.

    Unknown tools, validation errors, hook vetoes, cancellation and tool
    exceptions all come back as ``{"error": ...}`` responses.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        bus: ConfirmationBus,
        policy: ApprovalPolicy,
        hooks: HookRunner | None = None,
        session_id: str = "",
        notify: Notifier | None = None,
    ) -> None:
        self.registry = registry
        self.bus = bus
        self.policy = policy
        self.hooks = hooks
        self.session_id = session_id
        self.notify = notify

    async def dispatch(self, call: FunctionCall, cancel: asyncio.Event | None = None) -> DispatchOutcome:
        with log_context(session_id=self.session_id or None, tool_call_id=call.id):
            log_event(logger, "tool.call.start", tool_name=call.name)
            outcome = await self._dispatch(call, cancel)
            log_event(
                logger,
                "tool.call.complete",
                tool_name=call.name,
                error=outcome.response.get("error"),
            )
        await self._notify_all(outcome.system_messages)
        return outcome

    async def _dispatch(self, call: FunctionCall, cancel: asyncio.Event | None) -> DispatchOutcome:
        tool = self.registry.get(call.name)
        if tool is None:
            return DispatchOutcome(call.name, call.id, {"error": f"Unknown tool: {call.name}"})

        try:
            invocation = tool.build(call.args)
        except ToolValidationError as exc:
            log_event(logger, "tool.call.invalid", level=logging.WARNING, tool_name=call.name, error=str(exc))
            return DispatchOutcome(call.name, call.id, {"error": str(exc)})

        outcome = DispatchOutcome(call.name, call.id, {})
        before = await self._run_hooks(HookEventName.BEFORE_TOOL, call.name, {"tool_args": call.args})
        outcome.absorb(before)
        if before.blocked:
            outcome.response = {"error": before.reason or f"Tool call {call.name} was blocked by a hook."}
            return outcome

        try:
            request = await invocation.should_confirm(cancel)
            if request is not None:
                notification = await self._run_hooks(
                    HookEventName.NOTIFICATION,
                    call.name,
                    {
                        "notification_type": "ToolPermission",
                        "message": request.title,
                        "details": {"kind": request.kind.value, "subject_path": request.subject_path},
                    },
                )
                outcome.absorb(notification)
                resolution = await self.bus.request(request, cancel)
                invocation.record_confirmation(resolution)
                if resolution.outcome is ConfirmationOutcome.PROCEED_ALWAYS:
                    self.policy.allow_always(tool.name)
            result = await await_with_cancel(invocation.execute(cancel), cancel)
        except Cancelled:
            log_event(logger, "tool.call.cancelled", tool_name=call.name)
            outcome.response = {"error": "cancelled"}
            return outcome
        except Exception as exc:
            log_event(logger, "tool.call.failed", level=logging.WARNING, tool_name=call.name, error=str(exc))
            outcome.response = {"error": str(exc)}
            result = None
        else:
            outcome.result = result
            outcome.response = result.to_response()
            if result.mode_transition is not None:
                self.policy.apply(result.mode_transition)

        after = await self._run_hooks(
            HookEventName.AFTER_TOOL,
            call.name,
            {"tool_args": call.args, "tool_response": outcome.response},
        )
        outcome.absorb(after)
        if after.blocked and after.reason:
            outcome.response = {**outcome.response, "hook_feedback": after.reason}
        return outcome

    async def _run_hooks(self, event: HookEventName, tool_name: str, payload: Dict[str, Any]) -> AggregatedHookResult:
        if self.hooks is None:
            return AggregatedHookResult()
        return await self.hooks.run(HookEvent(event, self.session_id, tool_name=tool_name, payload=payload))

    async def _notify_all(self, messages: list[str]) -> None:
        if self.notify is None:
            return
        for message in messages:
            result = self.notify(message)
            if inspect.isawaitable(result):
                await result
