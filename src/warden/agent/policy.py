"""Session approval policy and the mode transitions it accepts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from warden.log_utils import log_event

logger = logging.getLogger(__name__)

PLAN_APPROVED = "plan_approved"


class ApprovalMode(str, Enum):
    PLAN = "plan"
    DEFAULT = "default"
    AUTO_EDIT = "autoEdit"
    YOLO = "yolo"

    @classmethod
    def parse(cls, value: str | None, default: "ApprovalMode | None" = None) -> "ApprovalMode":
        """Parse a mode from config text, accepting ``auto_edit``/``AUTO_EDIT`` spellings."""
        fallback = default or cls.DEFAULT
        if not value:
            return fallback
        normalized = value.strip().replace("-", "_").lower()
        for mode in cls:
            if normalized in {mode.value.lower(), mode.name.lower()}:
                return mode
        return fallback


class ToolKind(str, Enum):
    READ = "read"
    EDIT = "edit"
    EXECUTE = "execute"
    PLAN = "plan"
    OTHER = "other"


def describe_approval_mode(mode: ApprovalMode) -> str:
    """Human-readable description of a mode, used in model-facing messages."""
    if mode is ApprovalMode.AUTO_EDIT:
        return "Auto-Edit mode (edits will be applied automatically)"
    if mode is ApprovalMode.YOLO:
        return "YOLO mode (all tool calls will be approved automatically)"
    if mode is ApprovalMode.PLAN:
        return "Plan mode (read-only planning)"
    return "Default mode (edits will require confirmation)"


@dataclass(frozen=True)
class ModeTransition:
    """A requested change of approval mode, returned by a tool instead of applied in place."""

    mode: ApprovalMode
    reason: str = PLAN_APPROVED


@dataclass
class ApprovalPolicy:
    """Approval state for one session.

    The mode only changes through :meth:`apply` with a transition produced by an
    approved plan; rejected or cancelled plans never reach it.
    """

    mode: ApprovalMode = ApprovalMode.DEFAULT
    _always_allowed: set[str] = field(default_factory=set)

    def auto_approves(self, kind: ToolKind) -> bool:
        if self.mode is ApprovalMode.YOLO:
            return kind is not ToolKind.PLAN
        if self.mode is ApprovalMode.AUTO_EDIT:
            return kind is ToolKind.EDIT
        return False

    def allow_always(self, tool_name: str) -> None:
        self._always_allowed.add(tool_name)
        log_event(logger, "policy.allow_always", tool_name=tool_name)

    def is_always_allowed(self, tool_name: str) -> bool:
        return tool_name in self._always_allowed

    def apply(self, transition: ModeTransition) -> bool:
        """Apply a mode transition; returns False when the transition is refused."""
        if transition.reason != PLAN_APPROVED:
            log_event(
                logger,
                "policy.transition_refused",
                level=logging.WARNING,
                reason=transition.reason,
                requested=transition.mode.value,
            )
            return False
        previous = self.mode
        self.mode = transition.mode
        log_event(logger, "policy.mode_changed", previous=previous.value, current=self.mode.value)
        return True
