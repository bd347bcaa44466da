"""Hook configuration and the JSON shapes exchanged with hook processes."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from warden.agent.constants import DEFAULT_HOOK_TIMEOUT_S


class HookEventName(str, Enum):
    BEFORE_TOOL = "BeforeTool"
    AFTER_TOOL = "AfterTool"
    BEFORE_AGENT = "BeforeAgent"
    AFTER_AGENT = "AfterAgent"
    BEFORE_MODEL = "BeforeModel"
    AFTER_MODEL = "AfterModel"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    NOTIFICATION = "Notification"
    # Declared so configs naming it validate; nothing here compresses history.
    PRE_COMPRESS = "PreCompress"


TOOL_EVENTS = frozenset({HookEventName.BEFORE_TOOL, HookEventName.AFTER_TOOL})

BLOCKING_DECISIONS = frozenset({"deny", "block"})

HookDecision = Literal["allow", "deny", "block", "approve", "ask"]


class HookDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    command: str = Field(..., min_length=1, description="Shell command to run.")
    matcher: str | None = Field(
        None,
        description="Regular expression matched against the tool name; '*' or absent matches all.",
    )
    timeout: float = Field(DEFAULT_HOOK_TIMEOUT_S, gt=0, description="Timeout in seconds.")
    name: str | None = None

    @field_validator("matcher")
    @classmethod
    def _compiles(cls, value: str | None) -> str | None:
        if value in (None, "", "*"):
            return value
        re.compile(value)
        return value

    @property
    def label(self) -> str:
        return self.name or self.command

    def matches(self, tool_name: str | None) -> bool:
        if self.matcher in (None, "", "*"):
            return True
        if tool_name is None:
            return False
        return re.fullmatch(self.matcher, tool_name) is not None


class HookSettings(BaseModel):
    """Hook definitions grouped per event, in registration order."""

    model_config = ConfigDict(extra="ignore")

    hooks: Dict[HookEventName, List[HookDefinition]] = Field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        data: Dict[str, Any] | None,
        default_timeout: float | None = None,
    ) -> "HookSettings":
        """Validate a mapping; hooks without a timeout get ``default_timeout`` when given."""
        raw = dict(data or {})
        if default_timeout is not None and isinstance(raw.get("hooks"), dict):
            raw["hooks"] = {
                event: [
                    {"timeout": default_timeout, **entry} if isinstance(entry, dict) else entry
                    for entry in entries
                ]
                for event, entries in raw["hooks"].items()
            }
        return cls.model_validate(raw)

    @classmethod
    def load(cls, path: str | Path | None, default_timeout: float | None = None) -> "HookSettings":
        """Read settings from a JSON file; a missing path yields no hooks."""
        if path is None:
            return cls()
        file_path = Path(path).expanduser()
        if not file_path.exists():
            return cls()
        data = json.loads(file_path.read_text(encoding="utf-8"))
        return cls.from_mapping(data, default_timeout=default_timeout)

    def for_event(self, event: HookEventName, tool_name: str | None = None) -> list[HookDefinition]:
        definitions = self.hooks.get(event, [])
        if event in TOOL_EVENTS:
            return [definition for definition in definitions if definition.matches(tool_name)]
        return list(definitions)

    def register(self, event: HookEventName, definition: HookDefinition) -> None:
        self.hooks.setdefault(event, []).append(definition)


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    hook_event_name: str | None = Field(None, alias="hookEventName")
    additional_context: str | None = Field(None, alias="additionalContext")
    llm_request: Dict[str, Any] | None = None
    llm_response: Dict[str, Any] | None = None


class HookOutput(BaseModel):
    """Structured result a hook prints to stdout on exit code 0."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    decision: HookDecision | None = None
    reason: str | None = None
    system_message: str | None = Field(None, alias="systemMessage")
    continue_: bool = Field(True, alias="continue")
    stop_reason: str | None = Field(None, alias="stopReason")
    hook_specific_output: HookSpecificOutput | None = Field(None, alias="hookSpecificOutput")

    @field_validator("decision", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def is_blocking(self) -> bool:
        return self.decision in BLOCKING_DECISIONS


@dataclass(frozen=True)
class HookEvent:
    """One occurrence of a lifecycle event, passed to hooks by value."""

    event_name: HookEventName
    session_id: str
    tool_name: str | None = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HookExecution:
    """Outcome of running one hook process."""

    hook: HookDefinition
    exit_code: int | None
    output: HookOutput | None = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: str | None = None

    @property
    def blocked(self) -> bool:
        if self.exit_code == 2:
            return True
        return self.output is not None and self.output.is_blocking


@dataclass
class AggregatedHookResult:
    """Merged view over every hook that ran for one event."""

    executions: list[HookExecution] = field(default_factory=list)
    blocked: bool = False
    reasons: list[str] = field(default_factory=list)
    system_messages: list[str] = field(default_factory=list)
    additional_context: list[str] = field(default_factory=list)
    stop_requested: bool = False
    stop_reason: str | None = None
    llm_request: Dict[str, Any] | None = None
    llm_response: Dict[str, Any] | None = None

    @property
    def reason(self) -> str | None:
        if not self.reasons:
            return None
        return "\n".join(self.reasons)

    @classmethod
    def merge(cls, executions: list[HookExecution]) -> "AggregatedHookResult":
        """Fold executions in registration order; a deny or block from any hook wins."""
        result = cls(executions=list(executions))
        for execution in executions:
            if execution.exit_code == 2:
                result.blocked = True
                message = execution.stderr.strip()
                if message:
                    result.reasons.append(message)
                    result.system_messages.append(message)
                continue
            output = execution.output
            if output is None:
                continue
            if output.is_blocking:
                result.blocked = True
            if output.reason:
                result.reasons.append(output.reason)
            if output.system_message:
                result.system_messages.append(output.system_message)
            if not output.continue_:
                result.stop_requested = True
                result.stop_reason = output.stop_reason or output.reason or result.stop_reason
            specific = output.hook_specific_output
            if specific is not None:
                if specific.additional_context:
                    result.additional_context.append(specific.additional_context)
                if specific.llm_request is not None:
                    result.llm_request = specific.llm_request
                if specific.llm_response is not None:
                    result.llm_response = specific.llm_response
        return result


__all__ = [
    "AggregatedHookResult",
    "BLOCKING_DECISIONS",
    "HookDecision",
    "HookDefinition",
    "HookEvent",
    "HookEventName",
    "HookExecution",
    "HookOutput",
    "HookSettings",
    "HookSpecificOutput",
    "TOOL_EVENTS",
]
