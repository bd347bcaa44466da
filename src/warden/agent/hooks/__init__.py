"""Lifecycle hooks: external programs that observe or veto agent events."""

from warden.agent.hooks.runner import HookRunner
from warden.agent.hooks.types import (
    AggregatedHookResult,
    HookDefinition,
    HookEvent,
    HookEventName,
    HookExecution,
    HookOutput,
    HookSettings,
)

__all__ = [
    "AggregatedHookResult",
    "HookDefinition",
    "HookEvent",
    "HookEventName",
    "HookExecution",
    "HookOutput",
    "HookRunner",
    "HookSettings",
]
