"""Browser automation agent: an AgentLoop over the browser environment."""

from __future__ import annotations

from warden.agent.browser.environment import BrowserEnvironment
from warden.agent.browser.logger import BrowserTurnLogger
from warden.agent.browser.manager import BrowserManager, get_browser_manager
from warden.agent.browser.tools import build_browser_registry
from warden.agent.loop import AgentLoop, LoopOutcome
from warden.agent.models import ModelClient
from warden.agent.session import AgentSession

BROWSER_SYSTEM_INSTRUCTION = (
    "You are an expert browser automation agent. Your goal is to fully complete the user's task. "
    "Do not stop until the task is completely finished. If you need to perform multiple steps, "
    "continue calling tools until the objective is met."
)


class BrowserAgent:
    def __init__(
        self,
        session: AgentSession,
        client: ModelClient,
        *,
        manager: BrowserManager | None = None,
    ) -> None:
        self.session = session
        self.client = client
        self.manager = manager or get_browser_manager(headless=session.config.headless)

    async def run_task(self, task: str) -> LoopOutcome:
        session = self.session
        environment = BrowserEnvironment(self.manager, notify=session.notify)
        loop = AgentLoop(
            client=self.client,
            scheduler=session.scheduler(build_browser_registry(session.tool_context, self.manager)),
            environment=environment,
            model=session.config.model_id,
            hooks=session.hooks,
            session_id=session.session_id,
            max_iterations=session.config.max_iterations,
            system_instruction=BROWSER_SYSTEM_INSTRUCTION,
            turn_logger=BrowserTurnLogger(session.storage.get_project_temp_logs_dir()),
            notify=session.notify,
            cancel=session.cancel,
        )
        try:
            return await loop.run(task)
        finally:
            environment.close()
