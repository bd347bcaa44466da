"""warden command line: run the browser agent or approve a plan."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from warden.agent.browser import BrowserAgent, get_browser_manager
from warden.agent.content import FunctionCall
from warden.agent.loop import LoopStatus
from warden.agent.models import PydanticAIModelClient, build_model
from warden.agent.session import AgentSession
from warden.agent.tools import EXIT_PLAN_MODE_TOOL_NAME, build_plan_registry
from warden.client.confirm import TerminalResolver
from warden.client.display import console, print_notice, print_outcome, print_result
from warden.config import AgentConfig
from warden.errors import ModelBuildError
from warden.log_utils import build_log_config, configure_logging, log_event
from warden.storage import Storage

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="warden", description="Tool-gated agent runner")
    parser.add_argument("--target-dir", type=Path, default=None, help="Project directory (default: cwd)")
    sub = parser.add_subparsers(dest="command", required=True)

    browse = sub.add_parser("browse", help="Run the browser agent on a task")
    browse.add_argument("task", help="What the browser agent should do")
    browse.add_argument("--model", default=None, help="provider:model, e.g. google:gemini-2.5-flash")
    browse.add_argument("--max-steps", type=int, default=None, help="Iteration ceiling")
    browse.add_argument("--hooks", type=Path, default=None, help="Hook settings JSON file")
    browse.add_argument("--headless", action="store_true", help="Launch Chromium headless")

    approve = sub.add_parser("approve-plan", help="Ask for approval of a plan file")
    approve.add_argument("plan_path", help="Plan file, relative to the target directory")
    approve.add_argument("--hooks", type=Path, default=None, help="Hook settings JSON file")

    sub.add_parser("plans-dir", help="Print the project plans directory")
    return parser


def _load_config(args: argparse.Namespace) -> AgentConfig:
    config = AgentConfig.from_env(args.target_dir)
    if getattr(args, "model", None):
        config.model_id = args.model
    if getattr(args, "max_steps", None):
        config.max_iterations = max(1, args.max_steps)
    if getattr(args, "hooks", None):
        config.hooks_file = args.hooks
    if getattr(args, "headless", False):
        config.headless = True
    return config


async def _browse(config: AgentConfig, task: str) -> int:
    try:
        model = build_model(config.model_id)
    except ModelBuildError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2

    session = AgentSession(config, resolver=TerminalResolver(), notify=print_notice)
    manager = get_browser_manager(headless=config.headless)
    try:
        async with session:
            outcome = await BrowserAgent(session, PydanticAIModelClient(model), manager=manager).run_task(task)
    finally:
        await manager.close()
    print_outcome(outcome)
    return 0 if outcome.status is LoopStatus.COMPLETED else 1


async def _approve_plan(config: AgentConfig, plan_path: str) -> int:
    session = AgentSession(config, resolver=TerminalResolver(), notify=print_notice)
    async with session:
        scheduler = session.scheduler(build_plan_registry(session.tool_context))
        outcome = await scheduler.dispatch(
            FunctionCall(name=EXIT_PLAN_MODE_TOOL_NAME, args={"plan_path": plan_path}),
            session.cancel,
        )
    if outcome.result is not None:
        print_result(outcome.result.return_display, error=outcome.result.error is not None)
    else:
        print_result(str(outcome.response.get("error")), error=True)
    print_notice(f"Approval mode: {session.policy.mode.value}")
    return 0 if outcome.result is not None and outcome.result.error is None else 1


def _plans_dir(config: AgentConfig) -> int:
    storage = Storage(config.target_dir)
    storage.ensure_project_temp_dirs()
    console.print(str(storage.get_project_temp_plans_dir()), soft_wrap=True, markup=False)
    return 0


async def run(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(build_log_config(log_file_name="warden.log"))
    config = _load_config(args)
    log_event(logger, "cli.start", command=args.command, target_dir=str(config.target_dir))

    if args.command == "browse":
        return await _browse(config, args.task)
    if args.command == "approve-plan":
        return await _approve_plan(config, args.plan_path)
    return _plans_dir(config)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        return asyncio.run(run(argv))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
