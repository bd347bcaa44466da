from __future__ import annotations

import shlex
import sys
from pathlib import Path

import pytest
from pydantic import BaseModel

from warden.agent.confirmation import ConfirmationBus
from warden.agent.constants import MAX_ITERATIONS
from warden.agent.content import FunctionCall
from warden.agent.hooks import HookDefinition, HookEventName, HookRunner, HookSettings
from warden.agent.loop import (
    EXHAUSTED_TEMPLATE,
    AgentLoop,
    LoopStatus,
)
from warden.agent.policy import ApprovalPolicy
from warden.agent.tools import DeclarativeTool, ToolContext, ToolInvocation, ToolRegistry, ToolResult, ToolScheduler
from warden.storage import Storage
from tests.utils import FakeEnvironment, ScriptedModelClient, model_calls, model_text


class PingArgs(BaseModel):
    pass


class PingTool(DeclarativeTool[PingArgs]):
    name = "ping"
    display_name = "Ping"
    description = "Return pong."
    args_model = PingArgs

    def create_invocation(self, args: PingArgs) -> "PingInvocation":
        return PingInvocation(self, args)


class PingInvocation(ToolInvocation[PingArgs]):
    async def run(self, cancel) -> ToolResult:
        return ToolResult(llm_content={"pong": True})


def _loop(storage: Storage, client, environment=None, hooks=None, **kwargs) -> AgentLoop:
    policy = ApprovalPolicy()
    registry = ToolRegistry([PingTool(ToolContext(storage=storage, policy=policy))])
    scheduler = ToolScheduler(registry, ConfirmationBus(), policy, hooks=hooks, session_id="sess")
    return AgentLoop(
        client=client,
        scheduler=scheduler,
        environment=environment or FakeEnvironment(),
        model="test",
        hooks=hooks,
        session_id="sess",
        **kwargs,
    )


def _hook(tmp_path: Path, name: str, body: str) -> HookDefinition:
    script = tmp_path / f"{name}.py"
    script.write_text(body)
    return HookDefinition(command=f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}")


@pytest.mark.asyncio
async def test_text_response_completes_after_one_call(storage: Storage):
    client = ScriptedModelClient([model_text("All done.")])
    environment = FakeEnvironment()

    outcome = await _loop(storage, client, environment).run("Find the weather")

    assert outcome.status is LoopStatus.COMPLETED
    assert outcome.text == "All done."
    assert len(client.requests) == 1
    first_turn = client.requests[0].contents[0]
    assert first_turn.parts[0].text == "Find the weather"
    assert first_turn.parts[1].text.startswith("Current Accessibility Tree:\n")
    assert first_turn.parts[2].inline_data is not None
    assert first_turn.parts[2].inline_data.mime_type == "image/png"
    assert environment.overlay_events == ["activate", "release"]


@pytest.mark.asyncio
async def test_empty_response_completes_silently(storage: Storage):
    client = ScriptedModelClient([None])
    outcome = await _loop(storage, client).run("task")
    assert outcome.status is LoopStatus.COMPLETED
    assert outcome.text == ""


@pytest.mark.asyncio
async def test_function_response_carries_url_and_observation(storage: Storage):
    client = ScriptedModelClient([model_calls(FunctionCall(name="ping", id="c1")), model_text("done")])
    environment = FakeEnvironment(url="https://example.com/page")

    outcome = await _loop(storage, client, environment).run("ping it")

    assert outcome.status is LoopStatus.COMPLETED
    assert outcome.iterations == 2
    second_user = client.requests[1].contents[-1]
    response = second_user.parts[0].function_response
    assert response is not None
    assert response.name == "ping"
    assert response.id == "c1"
    assert response.response == {"pong": True, "url": "https://example.com/page"}
    assert response.parts[0].inline_data is not None
    assert response.parts[1].text.startswith("current_accessibility_tree:\n")
    # One observation for the first prompt, one after the call; none for the response turn.
    assert environment.observations == 2


@pytest.mark.asyncio
async def test_missing_url_falls_back_to_blank_page(storage: Storage):
    client = ScriptedModelClient([model_calls(FunctionCall(name="ping")), model_text("done")])
    await _loop(storage, client, FakeEnvironment(url=None)).run("ping")
    response = client.requests[1].contents[-1].parts[0].function_response
    assert response is not None
    assert response.response["url"] == "about:blank"


@pytest.mark.asyncio
async def test_unknown_tool_reports_error_and_continues(storage: Storage):
    client = ScriptedModelClient([model_calls(FunctionCall(name="fly")), model_text("gave up")])

    outcome = await _loop(storage, client).run("fly")

    assert outcome.status is LoopStatus.COMPLETED
    response = client.requests[1].contents[-1].parts[0].function_response
    assert response is not None
    assert response.response["error"] == "Unknown tool: fly"


@pytest.mark.asyncio
async def test_safety_confirmation_halts_without_dispatch(storage: Storage):
    call = FunctionCall(
        name="ping",
        args={"safety_decision": {"decision": "require_confirmation", "explanation": "Buying a car"}},
    )
    client = ScriptedModelClient([model_calls(call)])

    outcome = await _loop(storage, client).run("buy a car")

    assert outcome.status is LoopStatus.SAFETY_HALT
    assert outcome.text == (
        'Action Required: The model requested a safety confirmation for the action "ping". '
        "Please confirm if you want to proceed with: Buying a car"
    )
    assert len(client.requests) == 1


@pytest.mark.asyncio
async def test_iteration_limit_stops_the_loop(storage: Storage):
    client = ScriptedModelClient(fallback=lambda request: model_calls(FunctionCall(name="ping")))

    outcome = await _loop(storage, client).run("forever")

    assert outcome.status is LoopStatus.EXHAUSTED
    assert outcome.text == EXHAUSTED_TEMPLATE.format(limit=MAX_ITERATIONS)
    assert len(client.requests) == MAX_ITERATIONS


@pytest.mark.asyncio
async def test_custom_iteration_limit(storage: Storage):
    client = ScriptedModelClient(fallback=lambda request: model_calls(FunctionCall(name="ping")))
    outcome = await _loop(storage, client, max_iterations=3).run("forever")
    assert outcome.status is LoopStatus.EXHAUSTED
    assert len(client.requests) == 3
    assert "(3)" in outcome.text


@pytest.mark.asyncio
async def test_unavailable_environment_returns_error(storage: Storage):
    client = ScriptedModelClient()
    environment = FakeEnvironment(unavailable="Playwright is not installed.")

    outcome = await _loop(storage, client, environment).run("task")

    assert outcome.status is LoopStatus.UNAVAILABLE
    assert outcome.text == "Error: Playwright is not installed."
    assert client.requests == []
    assert environment.overlay_events == []


@pytest.mark.asyncio
async def test_model_failure_releases_overlay(storage: Storage):
    client = ScriptedModelClient([RuntimeError("quota exceeded")])
    environment = FakeEnvironment()

    outcome = await _loop(storage, client, environment).run("task")

    assert outcome.status is LoopStatus.FAILED
    assert outcome.text == "Error: quota exceeded"
    assert environment.overlay_events == ["activate", "release"]


@pytest.mark.asyncio
async def test_cancel_before_first_step(storage: Storage):
    client = ScriptedModelClient()
    loop = _loop(storage, client)
    loop.cancel.set()

    outcome = await loop.run("task")

    assert outcome.status is LoopStatus.CANCELLED
    assert client.requests == []


@pytest.mark.asyncio
async def test_system_instruction_is_passed_to_client(storage: Storage):
    client = ScriptedModelClient([model_text("ok")])
    await _loop(storage, client, system_instruction="Be brief.").run("task")
    request = client.requests[0]
    assert request.system_instruction == "Be brief."
    assert [tool.name for tool in request.tools] == ["ping"]


@pytest.mark.asyncio
async def test_before_agent_hook_blocks_run(storage: Storage, tmp_path: Path):
    hook = _hook(tmp_path, "deny", "import sys\nsys.stderr.write('not today')\nsys.exit(2)\n")
    hooks = HookRunner(HookSettings(hooks={HookEventName.BEFORE_AGENT: [hook]}), tmp_path)
    client = ScriptedModelClient()

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.BLOCKED
    assert outcome.text == "not today"
    assert client.requests == []


@pytest.mark.asyncio
async def test_before_agent_context_reaches_first_prompt(storage: Storage, tmp_path: Path):
    hook = _hook(
        tmp_path,
        "context",
        "import json\nprint(json.dumps({'hookSpecificOutput': {'additionalContext': 'Use metric units.'}}))\n",
    )
    hooks = HookRunner(HookSettings(hooks={HookEventName.BEFORE_AGENT: [hook]}), tmp_path)
    client = ScriptedModelClient([model_text("ok")])

    await _loop(storage, client, hooks=hooks).run("task")

    texts = [part.text for part in client.requests[0].contents[0].parts if part.text]
    assert "Use metric units." in texts


@pytest.mark.asyncio
async def test_before_model_hook_blocks_model_call(storage: Storage, tmp_path: Path):
    hook = _hook(tmp_path, "block", "import json\nprint(json.dumps({'decision': 'block', 'reason': 'budget'}))\n")
    hooks = HookRunner(HookSettings(hooks={HookEventName.BEFORE_MODEL: [hook]}), tmp_path)
    client = ScriptedModelClient()

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.BLOCKED
    assert outcome.text == "budget"
    assert client.requests == []


@pytest.mark.asyncio
async def test_after_model_hook_can_replace_response(storage: Storage, tmp_path: Path):
    body = (
        "import json\n"
        "print(json.dumps({'hookSpecificOutput': {'llm_response': "
        "{'role': 'model', 'parts': [{'text': 'rewritten'}]}}}))\n"
    )
    hook = _hook(tmp_path, "rewrite", body)
    hooks = HookRunner(HookSettings(hooks={HookEventName.AFTER_MODEL: [hook]}), tmp_path)
    client = ScriptedModelClient([model_calls(FunctionCall(name="ping"))])

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.COMPLETED
    assert outcome.text == "rewritten"


@pytest.mark.asyncio
async def test_after_tool_stop_request_ends_run(storage: Storage, tmp_path: Path):
    hook = _hook(tmp_path, "stop", "import json\nprint(json.dumps({'continue': False, 'stopReason': 'enough'}))\n")
    hooks = HookRunner(HookSettings(hooks={HookEventName.AFTER_TOOL: [hook]}), tmp_path)
    client = ScriptedModelClient([model_calls(FunctionCall(name="ping"))])

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.STOPPED
    assert len(client.requests) == 1
    assert outcome.text == "enough"


@pytest.mark.asyncio
async def test_before_model_stop_reason_reaches_outcome(storage: Storage, tmp_path: Path):
    hook = _hook(tmp_path, "quota", "import json\nprint(json.dumps({'continue': False, 'stopReason': 'quota'}))\n")
    hooks = HookRunner(HookSettings(hooks={HookEventName.BEFORE_MODEL: [hook]}), tmp_path)
    client = ScriptedModelClient([model_calls(FunctionCall(name="ping"))])

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.STOPPED
    assert outcome.text == "quota"
    assert len(client.requests) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("event", "field"),
    [(HookEventName.BEFORE_MODEL, "llm_request"), (HookEventName.AFTER_MODEL, "llm_response")],
)
async def test_malformed_model_override_is_ignored(storage: Storage, tmp_path: Path, event, field):
    body = (
        "import json\n"
        f"print(json.dumps({{'hookSpecificOutput': {{{field!r}: {{'contents': [{{'bogus': 1}}], 'parts': 'x'}}}}}}))\n"
    )
    hook = _hook(tmp_path, "garbled", body)
    hooks = HookRunner(HookSettings(hooks={event: [hook]}), tmp_path)
    client = ScriptedModelClient([model_text("done")])

    outcome = await _loop(storage, client, hooks=hooks).run("task")

    assert outcome.status is LoopStatus.COMPLETED
    assert outcome.text == "done"
    assert len(client.requests) == 1
    assert client.requests[0].contents[0].parts[0].text == "task"
