"""Confirmation bus: keyed one-shot request/response between tools and resolvers.

A tool invocation publishes a :class:`ConfirmationRequest` and suspends. Exactly
one resolution unblocks it, supplied either by the bus resolver (a policy, a
terminal dialog, an ACP client) or by an external ``resolve()`` call from a UI.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import OrderedDict
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from warden.agent.policy import ApprovalMode, ApprovalPolicy, ToolKind
from warden.errors import ConfirmationNotFoundError
from warden.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

SETTLED_HISTORY = 1024


class ConfirmationKind(str, Enum):
    PLAN_APPROVAL = "plan_approval"
    TOOL_CONFIRMATION = "tool_confirmation"
    SAFETY_DECISION = "safety_decision"


class ConfirmationOutcome(str, Enum):
    PROCEED_ONCE = "proceed_once"
    PROCEED_ALWAYS = "proceed_always"
    CANCEL = "cancel"


class PlanApprovalPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    approved: bool
    approval_mode: ApprovalMode | None = None
    feedback: str | None = None

    @field_validator("approval_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ApprovalMode.parse(value, default=None) if value.strip() else None
        return value


@dataclass(frozen=True)
class ConfirmationRequest:
    kind: ConfirmationKind
    tool_name: str
    title: str
    subject_path: str | None = None
    details: Dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class ConfirmationResolution:
    outcome: ConfirmationOutcome
    payload: PlanApprovalPayload | None = None

    @property
    def cancelled(self) -> bool:
        return self.outcome is ConfirmationOutcome.CANCEL


CANCELLED = ConfirmationResolution(ConfirmationOutcome.CANCEL)

ConfirmationResolver = Callable[[ConfirmationRequest], Awaitable["ConfirmationResolution | None"]]
ConfirmationListener = Callable[[ConfirmationRequest], Any]


class ConfirmationBus:
    """Request/response map keyed by request id, backed by futures."""

    def __init__(self, resolver: ConfirmationResolver | None = None) -> None:
        self._resolver = resolver
        self._pending: Dict[str, tuple[ConfirmationRequest, asyncio.Future[ConfirmationResolution]]] = {}
        self._resolver_tasks: Dict[str, asyncio.Task[None]] = {}
        self._listeners: list[ConfirmationListener] = []
        self._settled: OrderedDict[str, None] = OrderedDict()

    def set_resolver(self, resolver: ConfirmationResolver | None) -> None:
        self._resolver = resolver

    def subscribe(self, listener: ConfirmationListener) -> Callable[[], None]:
        """Register a listener for published requests; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def pending(self) -> list[ConfirmationRequest]:
        return [request for request, _future in self._pending.values()]

    async def request(
        self,
        request: ConfirmationRequest,
        cancel: asyncio.Event | None = None,
    ) -> ConfirmationResolution:
        """Publish ``request`` and wait for its resolution.

        A set ``cancel`` event resolves the request with ``Cancel``.
        """
        if request.request_id in self._pending:
            raise ValueError(f"Confirmation request {request.request_id} is already pending")

        future: asyncio.Future[ConfirmationResolution] = asyncio.get_running_loop().create_future()
        self._pending[request.request_id] = (request, future)
        with log_context(request_id=request.request_id, tool_name=request.tool_name):
            log_event(logger, "confirmation.request", kind=request.kind.value, subject=request.subject_path)

        await self._publish(request)
        if self._resolver is not None and not future.done():
            self._resolver_tasks[request.request_id] = asyncio.create_task(self._run_resolver(request))

        cancel_waiter: asyncio.Task[Any] | None = None
        try:
            if cancel is None:
                return await future
            cancel_waiter = asyncio.create_task(cancel.wait())
            done, _pending = await asyncio.wait({future, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if future not in done:
                self.try_resolve(request.request_id, ConfirmationOutcome.CANCEL)
            return await future
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            resolver_task = self._resolver_tasks.pop(request.request_id, None)
            if resolver_task is not None and not resolver_task.done():
                resolver_task.cancel()
            self._mark_settled(request.request_id)
            entry = self._pending.pop(request.request_id, None)
            if entry is not None and not entry[1].done():
                entry[1].cancel()

    def resolve(
        self,
        request_id: str,
        outcome: ConfirmationOutcome,
        payload: PlanApprovalPayload | Dict[str, Any] | None = None,
    ) -> bool:
        """Resolve a pending request exactly once.

        Returns True when this call resolved the request and False when it was
        already settled (the first resolution stands). Raises
        :class:`ConfirmationNotFoundError` for ids this bus never issued.
        """
        entry = self._pending.get(request_id)
        if entry is None or entry[1].done():
            if request_id in self._settled:
                log_event(logger, "confirmation.resolve_ignored", level=logging.DEBUG, request_id=request_id)
                return False
            raise ConfirmationNotFoundError(request_id)
        if isinstance(payload, dict):
            payload = PlanApprovalPayload.model_validate(payload)
        request, future = self._pending.pop(request_id)
        self._mark_settled(request_id)
        future.set_result(ConfirmationResolution(outcome=ConfirmationOutcome(outcome), payload=payload))
        with log_context(request_id=request_id, tool_name=request.tool_name):
            log_event(logger, "confirmation.resolved", outcome=ConfirmationOutcome(outcome).value)
        return True

    def try_resolve(
        self,
        request_id: str,
        outcome: ConfirmationOutcome,
        payload: PlanApprovalPayload | Dict[str, Any] | None = None,
    ) -> bool:
        """Non-raising form of :meth:`resolve`; returns False when nothing was resolved."""
        try:
            return self.resolve(request_id, outcome, payload)
        except ConfirmationNotFoundError:
            log_event(logger, "confirmation.resolve_unknown", level=logging.DEBUG, request_id=request_id)
            return False

    def cancel_all(self) -> int:
        """Resolve every pending request with ``Cancel``; returns how many were pending."""
        cancelled = 0
        for request_id in list(self._pending):
            if self.try_resolve(request_id, ConfirmationOutcome.CANCEL):
                cancelled += 1
        return cancelled

    def _mark_settled(self, request_id: str) -> None:
        # Late resolves for ids older than the history window raise as unknown.
        self._settled[request_id] = None
        self._settled.move_to_end(request_id)
        while len(self._settled) > SETTLED_HISTORY:
            self._settled.popitem(last=False)

    async def _publish(self, request: ConfirmationRequest) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(request)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                log_event(
                    logger,
                    "confirmation.listener_error",
                    level=logging.WARNING,
                    request_id=request.request_id,
                    error=str(exc),
                )

    async def _run_resolver(self, request: ConfirmationRequest) -> None:
        assert self._resolver is not None
        try:
            resolution = await self._resolver(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_event(
                logger,
                "confirmation.resolver_error",
                level=logging.WARNING,
                request_id=request.request_id,
                error=str(exc),
            )
            resolution = CANCELLED
        if resolution is None:
            return
        self.try_resolve(request.request_id, resolution.outcome, resolution.payload)


class PolicyResolver:
    """Resolve requests the approval policy already covers; defer the rest.

    Tool confirmations for kinds the current mode auto-approves (or tools the
    user allowed with ``ProceedAlways``) never surface. Plan approvals and
    safety decisions always go to ``fallback``; with no fallback they stay
    pending for an external resolver.
    """

    def __init__(self, policy: ApprovalPolicy, fallback: ConfirmationResolver | None = None) -> None:
        self._policy = policy
        self._fallback = fallback

    async def __call__(self, request: ConfirmationRequest) -> ConfirmationResolution | None:
        if request.kind is ConfirmationKind.TOOL_CONFIRMATION:
            kind = ToolKind(request.details.get("kind", ToolKind.OTHER.value))
            if self._policy.is_always_allowed(request.tool_name) or self._policy.auto_approves(kind):
                return ConfirmationResolution(ConfirmationOutcome.PROCEED_ONCE)
        if self._fallback is None:
            return None
        return await self._fallback(request)


__all__ = [
    "CANCELLED",
    "ConfirmationBus",
    "ConfirmationKind",
    "ConfirmationListener",
    "ConfirmationOutcome",
    "ConfirmationRequest",
    "ConfirmationResolution",
    "ConfirmationResolver",
    "PlanApprovalPayload",
    "PolicyResolver",
]
