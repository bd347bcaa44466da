"""Run hook subprocesses for lifecycle events and aggregate their decisions."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from warden.agent.hooks.types import (
    AggregatedHookResult,
    HookDefinition,
    HookEvent,
    HookEventName,
    HookExecution,
    HookOutput,
    HookSettings,
)
from warden.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

PROJECT_DIR_ENV = "WARDEN_PROJECT_DIR"
SESSION_ID_ENV = "WARDEN_SESSION_ID"
BLOCKING_EXIT_CODE = 2


class HookRunner:
    """Launch the hooks registered for an event and merge their results.

    Every hook runs as its own shell process with the event JSON on stdin.
    Failures, bad output and timeouts are logged and ignored (fail-open); only
    exit code 2 or an explicit ``deny``/``block`` decision vetoes the event.
    """

    def __init__(self, settings: HookSettings | None, target_dir: str | Path) -> None:
        self.settings = settings or HookSettings()
        self.target_dir = Path(target_dir)

    def has_hooks(self, event: HookEventName, tool_name: str | None = None) -> bool:
        return bool(self.settings.for_event(event, tool_name))

    async def run(self, event: HookEvent) -> AggregatedHookResult:
        definitions = self.settings.for_event(event.event_name, event.tool_name)
        if not definitions:
            return AggregatedHookResult()

        stdin_payload = self._build_input(event)
        with log_context(session_id=event.session_id, hook_event=event.event_name.value):
            executions = await asyncio.gather(
                *(self._run_one(definition, stdin_payload, event.session_id) for definition in definitions)
            )
            result = AggregatedHookResult.merge(list(executions))
            if result.blocked:
                log_event(
                    logger,
                    "hook.blocked",
                    level=logging.WARNING,
                    tool_name=event.tool_name,
                    reason=result.reason,
                )
        return result

    def _build_input(self, event: HookEvent) -> bytes:
        document: Dict[str, Any] = {
            "session_id": event.session_id,
            "hook_event_name": event.event_name.value,
            "cwd": str(self.target_dir),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if event.tool_name is not None:
            document["tool_name"] = event.tool_name
        for key, value in event.payload.items():
            document.setdefault(key, value)
        return json.dumps(document, default=str).encode("utf-8")

    async def _run_one(self, hook: HookDefinition, stdin_payload: bytes, session_id: str) -> HookExecution:
        env = dict(os.environ)
        env[PROJECT_DIR_ENV] = str(self.target_dir)
        env[SESSION_ID_ENV] = session_id
        log_event(logger, "hook.run", level=logging.DEBUG, hook=hook.label)

        try:
            proc = await asyncio.create_subprocess_shell(
                hook.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.target_dir),
                env=env,
            )
        except OSError as exc:
            log_event(logger, "hook.failed", level=logging.WARNING, hook=hook.label, error=str(exc))
            return HookExecution(hook=hook, exit_code=None, error=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin_payload), timeout=hook.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            log_event(logger, "hook.timeout", level=logging.WARNING, hook=hook.label, timeout=hook.timeout)
            return HookExecution(hook=hook, exit_code=None, timed_out=True, error="timeout")
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""
        code = proc.returncode

        if code == BLOCKING_EXIT_CODE:
            return HookExecution(hook=hook, exit_code=code, stdout=stdout_text, stderr=stderr_text)
        if code != 0:
            log_event(
                logger,
                "hook.failed",
                level=logging.WARNING,
                hook=hook.label,
                exit_code=code,
                stderr=stderr_text.strip(),
            )
            return HookExecution(
                hook=hook,
                exit_code=code,
                stdout=stdout_text,
                stderr=stderr_text,
                error=f"exit code {code}",
            )
        return HookExecution(
            hook=hook,
            exit_code=code,
            output=_parse_output(hook, stdout_text),
            stdout=stdout_text,
            stderr=stderr_text,
        )


def _parse_output(hook: HookDefinition, stdout_text: str) -> HookOutput | None:
    text = stdout_text.strip()
    if not text:
        return None
    try:
        return HookOutput.model_validate_json(text)
    except ValidationError as exc:
        log_event(
            logger,
            "hook.output_invalid",
            level=logging.WARNING,
            hook=hook.label,
            error=str(exc).splitlines()[0],
        )
        return None
