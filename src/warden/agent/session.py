"""Per-session state: approval policy, confirmation bus, hooks and cancel signal."""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable

from warden.agent.confirmation import ConfirmationBus, ConfirmationResolver, PolicyResolver
from warden.agent.hooks import AggregatedHookResult, HookEvent, HookEventName, HookRunner, HookSettings
from warden.agent.policy import ApprovalPolicy
from warden.agent.tools import ToolContext, ToolRegistry, ToolScheduler
from warden.config import AgentConfig
from warden.log_utils import log_context, log_event
from warden.storage import Storage

logger = logging.getLogger(__name__)

Notifier = Callable[[str], Any]


class AgentSession:
    """Owns everything one agent session must not share with another.

    Use as an async context manager: entering fires ``SessionStart``, leaving
    cancels any pending confirmations and then fires ``SessionEnd``.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        storage: Storage | None = None,
        hook_settings: HookSettings | None = None,
        resolver: ConfirmationResolver | None = None,
        notify: Notifier | None = None,
        session_id: str | None = None,
    ) -> None:
        self.config = config
        self.session_id = session_id or uuid.uuid4().hex
        self.storage = storage or Storage(config.target_dir)
        self.policy = ApprovalPolicy(config.approval_mode)
        self.bus = ConfirmationBus(PolicyResolver(self.policy, resolver))
        if hook_settings is None:
            hook_settings = HookSettings.load(config.hooks_file, default_timeout=config.hook_timeout_s)
        self.hooks = HookRunner(hook_settings, self.storage.get_target_dir())
        self.notify = notify
        self.cancel = asyncio.Event()
        self.tool_context = ToolContext(storage=self.storage, policy=self.policy)

    def scheduler(self, registry: ToolRegistry) -> ToolScheduler:
        return ToolScheduler(
            registry,
            self.bus,
            self.policy,
            hooks=self.hooks,
            session_id=self.session_id,
            notify=self.notify,
        )

    async def start(self) -> AggregatedHookResult:
        with log_context(session_id=self.session_id):
            self.storage.ensure_project_temp_dirs()
            log_event(logger, "session.start", mode=self.policy.mode.value)
            return await self._fire(HookEventName.SESSION_START, {"source": "startup"})

    async def end(self, reason: str = "exit") -> AggregatedHookResult:
        with log_context(session_id=self.session_id):
            cancelled = self.bus.cancel_all()
            log_event(logger, "session.end", reason=reason, cancelled_confirmations=cancelled)
            return await self._fire(HookEventName.SESSION_END, {"reason": reason})

    async def __aenter__(self) -> "AgentSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.end("error" if exc_type is not None else "exit")

    async def _fire(self, event: HookEventName, payload: dict[str, Any]) -> AggregatedHookResult:
        result = await self.hooks.run(HookEvent(event, self.session_id, payload=payload))
        if self.notify is not None:
            for message in result.system_messages:
                outcome = self.notify(message)
                if inspect.isawaitable(outcome):
                    await outcome
        return result
