"""Observe, ask the model, dispatch its function calls, repeat.

One :class:`AgentLoop` drives one session. The loop owns the turn history
and pending prompt; the environment supplies observations, the scheduler
runs tools, and hooks can veto or stop at each step.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Protocol, Sequence

from pydantic import ValidationError

from warden.agent.constants import BLANK_PAGE_URL, MAX_ITERATIONS, SCREENSHOT_MIME_TYPE
from warden.agent.content import ConversationTurn, FunctionResponse, Part, is_function_response_prompt
from warden.agent.hooks import AggregatedHookResult, HookEvent, HookEventName, HookRunner
from warden.agent.models import GenerateRequest, ModelClient
from warden.agent.tool_io import Cancelled, await_with_cancel
from warden.agent.tools import ToolScheduler
from warden.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

SAFETY_HALT_TEMPLATE = (
    'Action Required: The model requested a safety confirmation for the action "{name}". '
    "Please confirm if you want to proceed with: {explanation}"
)
EXHAUSTED_TEMPLATE = (
    "The browser agent reached the maximum number of steps ({limit}) without completing the task. "
    "Please try refining your prompt or breaking the task into smaller steps."
)
CANCELLED_TEXT = "Cancelled."


class LoopStatus(str, Enum):
    COMPLETED = "completed"
    SAFETY_HALT = "safety_halt"
    EXHAUSTED = "exhausted"
    BLOCKED = "blocked"
    STOPPED = "stopped"
    CANCELLED = "cancelled"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class LoopOutcome:
    status: LoopStatus
    text: str
    iterations: int = 0


@dataclass(frozen=True)
class Observation:
    screenshot: bytes | None = None
    accessibility_tree: str | None = None

    @property
    def empty(self) -> bool:
        return not self.screenshot and not self.accessibility_tree

    def prompt_parts(self) -> list[Part]:
        """Parts attached ahead of a fresh text prompt."""
        parts: list[Part] = []
        if self.accessibility_tree:
            parts.append(Part.from_text(f"Current Accessibility Tree:\n{self.accessibility_tree}"))
        if self.screenshot:
            parts.append(Part.from_bytes(self.screenshot, SCREENSHOT_MIME_TYPE))
        return parts

    def response_parts(self) -> list[Part]:
        """Parts attached to a function response after the call ran."""
        parts: list[Part] = []
        if self.screenshot:
            parts.append(Part.from_bytes(self.screenshot, SCREENSHOT_MIME_TYPE))
        if self.accessibility_tree:
            parts.append(Part.from_text(f"current_accessibility_tree:\n{self.accessibility_tree}"))
        return parts


class Environment(Protocol):
    """What the loop needs from the thing the agent acts on."""

    async def check_available(self) -> str | None:
        """Return a message when the environment can never work (missing dependency)."""

    async def observe(self) -> Observation | None: ...

    async def current_url(self) -> str | None: ...

    async def activate_overlay(self) -> None: ...

    async def release_overlay(self) -> None: ...


class TurnLogger(Protocol):
    def log_turn(self, contents: Sequence[ConversationTurn], response: ConversationTurn) -> None: ...


@dataclass
class AgentLoopState:
    turns: list[ConversationTurn] = field(default_factory=list)
    iteration: int = 0
    pending_prompt: str | list[Part] = ""
    pending_context: list[str] = field(default_factory=list)


class AgentLoop:
    def __init__(
        self,
        *,
        client: ModelClient,
        scheduler: ToolScheduler,
        environment: Environment,
        model: str,
        hooks: HookRunner | None = None,
        session_id: str = "",
        max_iterations: int = MAX_ITERATIONS,
        system_instruction: str | None = None,
        turn_logger: TurnLogger | None = None,
        notify: Callable[[str], Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.scheduler = scheduler
        self.environment = environment
        self.model = model
        self.hooks = hooks
        self.session_id = session_id
        self.max_iterations = max_iterations
        self.system_instruction = system_instruction
        self.turn_logger = turn_logger
        self.notify = notify
        self.cancel = cancel or asyncio.Event()
        self.state = AgentLoopState()

    async def run(self, task: str) -> LoopOutcome:
        with log_context(session_id=self.session_id or None):
            unavailable = await self.environment.check_available()
            if unavailable:
                log_event(logger, "agent.loop.unavailable", level=logging.WARNING, message=unavailable)
                return LoopOutcome(LoopStatus.UNAVAILABLE, f"Error: {unavailable}")

            log_event(logger, "agent.loop.start", max_iterations=self.max_iterations)
            before = await self._run_hooks(HookEventName.BEFORE_AGENT, {"prompt": task})
            if before.blocked:
                outcome = LoopOutcome(LoopStatus.BLOCKED, before.reason or "Agent run blocked by a hook.")
            elif before.stop_requested:
                outcome = LoopOutcome(LoopStatus.STOPPED, before.stop_reason or "Agent run stopped by a hook.")
            else:
                self.state = AgentLoopState(pending_prompt=task, pending_context=list(before.additional_context))
                await self._overlay(active=True)
                try:
                    outcome = await self._iterate()
                finally:
                    await self._overlay(active=False)

            await self._run_hooks(
                HookEventName.AFTER_AGENT,
                {"prompt": task, "prompt_response": outcome.text, "status": outcome.status.value},
            )
            log_event(
                logger,
                "agent.loop.finish",
                status=outcome.status.value,
                iterations=outcome.iterations,
            )
            return outcome

    async def _iterate(self) -> LoopOutcome:
        state = self.state
        while state.iteration < self.max_iterations:
            if self.cancel.is_set():
                return self._outcome(LoopStatus.CANCELLED, CANCELLED_TEXT)
            state.iteration += 1
            log_event(logger, "agent.loop.iteration", level=logging.DEBUG, iteration=state.iteration)

            state.turns.append(await self._next_user_turn())
            request = GenerateRequest(
                model=self.model,
                contents=tuple(state.turns),
                tools=tuple(self.scheduler.registry.declarations()),
                system_instruction=self.system_instruction,
            )
            stop_requested = False
            stop_reason: str | None = None

            before_model = await self._run_hooks(HookEventName.BEFORE_MODEL, {"llm_request": request.to_wire()})
            if before_model.blocked:
                return self._outcome(LoopStatus.BLOCKED, before_model.reason or "Model call blocked by a hook.")
            stop_requested |= before_model.stop_requested
            stop_reason = stop_reason or before_model.stop_reason
            if before_model.llm_request is not None:
                request = self._override_request(request, before_model.llm_request)

            try:
                response = await await_with_cancel(self.client.generate(request), self.cancel)
            except Cancelled:
                return self._outcome(LoopStatus.CANCELLED, CANCELLED_TEXT)
            except Exception as exc:
                log_event(logger, "agent.loop.model_failed", level=logging.ERROR, error=str(exc))
                return self._outcome(LoopStatus.FAILED, f"Error: {exc}")

            after_model = await self._run_hooks(
                HookEventName.AFTER_MODEL,
                {
                    "llm_request": request.to_wire(),
                    "llm_response": response.to_wire() if response is not None else None,
                },
            )
            if after_model.blocked:
                return self._outcome(LoopStatus.BLOCKED, after_model.reason or "Model response blocked by a hook.")
            stop_requested |= after_model.stop_requested
            stop_reason = stop_reason or after_model.stop_reason
            if after_model.llm_response is not None:
                response = self._override_response(response, after_model.llm_response)
            state.pending_context.extend(before_model.additional_context + after_model.additional_context)

            if response is None or not response.parts:
                return self._outcome(LoopStatus.COMPLETED, "")

            state.turns.append(response)
            self._log_turn(response)
            if response.text:
                await self._notify(response.text)

            calls = response.function_calls
            if not calls:
                return self._outcome(LoopStatus.COMPLETED, response.text)

            responses: list[Part] = []
            for call in calls:
                safety = call.args.get("safety_decision")
                if isinstance(safety, dict) and safety.get("decision") == "require_confirmation":
                    log_event(logger, "agent.loop.safety_halt", tool_name=call.name)
                    return self._outcome(
                        LoopStatus.SAFETY_HALT,
                        SAFETY_HALT_TEMPLATE.format(name=call.name, explanation=safety.get("explanation", "")),
                    )
                dispatch = await self.scheduler.dispatch(call, self.cancel)
                payload: Dict[str, Any] = dict(dispatch.response)
                if not payload.get("url"):
                    payload["url"] = await self._current_url()
                observation = await self._observe()
                responses.append(
                    Part(
                        function_response=FunctionResponse(
                            name=call.name,
                            response=payload,
                            parts=tuple(observation.response_parts()) if observation else (),
                            id=call.id,
                        )
                    )
                )
                state.pending_context.extend(dispatch.additional_context)
                stop_requested |= dispatch.stop_requested
                stop_reason = stop_reason or dispatch.stop_reason

            state.pending_prompt = responses
            if stop_requested:
                return self._outcome(LoopStatus.STOPPED, stop_reason or "Agent run stopped by a hook.")

        log_event(logger, "agent.loop.exhausted", level=logging.WARNING, limit=self.max_iterations)
        return self._outcome(LoopStatus.EXHAUSTED, EXHAUSTED_TEMPLATE.format(limit=self.max_iterations))

    async def _next_user_turn(self) -> ConversationTurn:
        state = self.state
        prompt = state.pending_prompt
        parts: list[Part] = [Part.from_text(prompt)] if isinstance(prompt, str) else list(prompt)
        parts.extend(Part.from_text(text) for text in state.pending_context)
        state.pending_context = []
        if not is_function_response_prompt(prompt):
            observation = await self._observe()
            if observation is not None:
                parts.extend(observation.prompt_parts())
        return ConversationTurn(role="user", parts=tuple(parts))

    def _outcome(self, status: LoopStatus, text: str) -> LoopOutcome:
        return LoopOutcome(status, text, self.state.iteration)

    def _override_request(self, request: GenerateRequest, override: Any) -> GenerateRequest:
        try:
            return request.with_wire_override(override)
        except ValidationError as exc:
            log_event(logger, "hook.override_invalid", level=logging.WARNING, field="llm_request", error=str(exc))
            return request

    def _override_response(self, response: ConversationTurn | None, override: Any) -> ConversationTurn | None:
        try:
            return ConversationTurn.model_validate(override)
        except ValidationError as exc:
            log_event(logger, "hook.override_invalid", level=logging.WARNING, field="llm_response", error=str(exc))
            return response

    async def _observe(self) -> Observation | None:
        try:
            observation = await self.environment.observe()
        except Exception as exc:
            log_event(logger, "agent.loop.observe_failed", level=logging.DEBUG, error=str(exc))
            return None
        if observation is None or observation.empty:
            return None
        return observation

    async def _current_url(self) -> str:
        try:
            url = await self.environment.current_url()
        except Exception as exc:
            log_event(logger, "agent.loop.url_failed", level=logging.DEBUG, error=str(exc))
            return BLANK_PAGE_URL
        return url or BLANK_PAGE_URL

    async def _overlay(self, *, active: bool) -> None:
        try:
            if active:
                await self.environment.activate_overlay()
            else:
                await self.environment.release_overlay()
        except Exception as exc:
            log_event(logger, "agent.loop.overlay_failed", level=logging.DEBUG, active=active, error=str(exc))

    def _log_turn(self, response: ConversationTurn) -> None:
        if self.turn_logger is None:
            return
        try:
            self.turn_logger.log_turn(self.state.turns[:-1], response)
        except Exception as exc:
            log_event(logger, "agent.loop.turn_log_failed", level=logging.DEBUG, error=str(exc))

    async def _run_hooks(self, event: HookEventName, payload: Dict[str, Any]) -> AggregatedHookResult:
        if self.hooks is None:
            return AggregatedHookResult()
        result = await self.hooks.run(HookEvent(event, self.session_id, payload=payload))
        for message in result.system_messages:
            await self._notify(message)
        return result

    async def _notify(self, message: str) -> None:
        if self.notify is None:
            return
        result = self.notify(message)
        if inspect.isawaitable(result):
            await result


__all__ = [
    "AgentLoop",
    "AgentLoopState",
    "Environment",
    "LoopOutcome",
    "LoopStatus",
    "Observation",
    "TurnLogger",
]
