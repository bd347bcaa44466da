"""Tool capability contract: declare, validate, confirm, execute."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, Type, TypeVar

from pydantic import BaseModel, ValidationError

from warden.agent.confirmation import (
    ConfirmationKind,
    ConfirmationOutcome,
    ConfirmationRequest,
    ConfirmationResolution,
)
from warden.agent.policy import ApprovalPolicy, ModeTransition, ToolKind
from warden.errors import ToolValidationError
from warden.storage import Storage

logger = logging.getLogger(__name__)

ArgsT = TypeVar("ArgsT", bound=BaseModel)


@dataclass
class ToolContext:
    """Session collaborators shared by every tool in a registry."""

    storage: Storage
    policy: ApprovalPolicy = field(default_factory=ApprovalPolicy)

    @property
    def target_dir(self) -> Path:
        return self.storage.get_target_dir()


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ToolResult:
    llm_content: str | Dict[str, Any]
    return_display: str = ""
    error: str | None = None
    mode_transition: ModeTransition | None = None

    @classmethod
    def failure(cls, message: str, display: str | None = None) -> "ToolResult":
        return cls(llm_content=message, return_display=display or message, error=message)

    def to_response(self) -> Dict[str, Any]:
        """Render as a function-response payload for the model."""
        if self.error is not None:
            return {"error": self.error}
        if isinstance(self.llm_content, dict):
            return dict(self.llm_content)
        return {"output": self.llm_content}


class ConfirmationState(str, Enum):
    UNCHECKED = "unchecked"
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    RESOLVED = "resolved"


def format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "params"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return f"Invalid arguments: {'; '.join(problems)}"


class DeclarativeTool(Generic[ArgsT]):
    """A named tool that turns raw model arguments into invocations."""

    name: str
    display_name: str
    description: str
    kind: ToolKind = ToolKind.OTHER
    args_model: Type[BaseModel]

    def __init__(self, context: ToolContext) -> None:
        self.context = context

    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.args_model.model_json_schema(),
        )

    def parse_params(self, params: Dict[str, Any] | None) -> ArgsT:
        try:
            return self.args_model.model_validate(params or {})  # type: ignore[return-value]
        except ValidationError as exc:
            raise ToolValidationError(format_validation_error(exc)) from exc

    def validate_params(self, params: Dict[str, Any] | None) -> str | None:
        """Return an error message for bad params, or None. Has no side effects."""
        try:
            args = self.parse_params(params)
        except ToolValidationError as exc:
            return str(exc)
        return self.validate_param_values(args)

    def validate_param_values(self, args: ArgsT) -> str | None:
        return None

    def build(self, params: Dict[str, Any] | None) -> "ToolInvocation[ArgsT]":
        args = self.parse_params(params)
        error = self.validate_param_values(args)
        if error:
            raise ToolValidationError(error)
        return self.create_invocation(args)

    def create_invocation(self, args: ArgsT) -> "ToolInvocation[ArgsT]":
        raise NotImplementedError


class ToolInvocation(Generic[ArgsT]):
    """One validated call of a tool.

    The confirmation guard moves ``UNCHECKED`` to ``NOT_REQUIRED`` or
    ``PENDING``; ``record_confirmation`` moves ``PENDING`` to ``RESOLVED``.
    ``execute`` refuses to run from ``UNCHECKED``/``PENDING`` and after a
    ``Cancel`` resolution.
    """

    def __init__(self, tool: DeclarativeTool[ArgsT], args: ArgsT) -> None:
        self.tool = tool
        self.args = args
        self.context = tool.context
        self._state = ConfirmationState.UNCHECKED
        self._resolution: ConfirmationResolution | None = None

    @property
    def state(self) -> ConfirmationState:
        return self._state

    @property
    def resolution(self) -> ConfirmationResolution | None:
        return self._resolution

    def get_description(self) -> str:
        return f"{self.tool.display_name}: {self.args.model_dump_json()}"

    def precheck(self) -> ToolResult | None:
        """Errors that must surface before the confirmation guard, if any."""
        return None

    def confirmation_request(self) -> ConfirmationRequest | None:
        kind = self.tool.kind
        if kind not in (ToolKind.EDIT, ToolKind.EXECUTE):
            return None
        policy = self.context.policy
        if policy.auto_approves(kind) or policy.is_always_allowed(self.tool.name):
            return None
        return ConfirmationRequest(
            kind=ConfirmationKind.TOOL_CONFIRMATION,
            tool_name=self.tool.name,
            title=f"Allow {self.tool.display_name}?",
            details={"kind": kind.value, "description": self.get_description()},
        )

    async def should_confirm(self, cancel: asyncio.Event | None = None) -> ConfirmationRequest | None:
        request = self.confirmation_request()
        self._state = ConfirmationState.PENDING if request else ConfirmationState.NOT_REQUIRED
        return request

    def record_confirmation(self, resolution: ConfirmationResolution) -> None:
        if self._state is not ConfirmationState.PENDING:
            raise RuntimeError(f"No confirmation pending for {self.tool.name} (state={self._state.value})")
        self._resolution = resolution
        self._state = ConfirmationState.RESOLVED

    async def execute(self, cancel: asyncio.Event | None = None) -> ToolResult:
        early = self.precheck()
        if early is not None:
            return early
        if self._state in (ConfirmationState.UNCHECKED, ConfirmationState.PENDING):
            return ToolResult.failure(f"Refusing to run {self.tool.name}: confirmation has not been resolved.")
        if self._resolution is not None and self._resolution.outcome is ConfirmationOutcome.CANCEL:
            return self.on_cancelled()
        return await self.run(cancel)

    def on_cancelled(self) -> ToolResult:
        return ToolResult.failure(f"User cancelled {self.tool.name}.", display="Cancelled")

    async def run(self, cancel: asyncio.Event | None) -> ToolResult:
        raise NotImplementedError


__all__ = [
    "ConfirmationState",
    "DeclarativeTool",
    "ToolContext",
    "ToolDeclaration",
    "ToolInvocation",
    "ToolResult",
    "format_validation_error",
]
