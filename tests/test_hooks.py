from __future__ import annotations

import json
import shlex
import sys
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from warden.agent.hooks import (
    AggregatedHookResult,
    HookDefinition,
    HookEvent,
    HookEventName,
    HookExecution,
    HookOutput,
    HookRunner,
    HookSettings,
)


def _script(tmp_path: Path, name: str, body: str) -> str:
    path = tmp_path / f"{name}.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(path))}"


def _settings(event: HookEventName, *definitions: HookDefinition) -> HookSettings:
    return HookSettings(hooks={event: list(definitions)})


def test_settings_from_mapping_applies_default_timeout():
    settings = HookSettings.from_mapping(
        {
            "hooks": {
                "BeforeTool": [
                    {"command": "true", "matcher": "exit_.*"},
                    {"command": "false", "timeout": 5},
                ]
            }
        },
        default_timeout=12,
    )
    first, second = settings.for_event(HookEventName.BEFORE_TOOL, "exit_plan_mode")
    assert first.timeout == 12
    assert second.timeout == 5


def test_matcher_filters_tool_events_only():
    settings = HookSettings.from_mapping(
        {
            "hooks": {
                "BeforeTool": [{"command": "a", "matcher": "click_at|hover_at"}, {"command": "b", "matcher": "*"}],
                "BeforeAgent": [{"command": "c", "matcher": "never"}],
            }
        }
    )
    assert [d.command for d in settings.for_event(HookEventName.BEFORE_TOOL, "click_at")] == ["a", "b"]
    assert [d.command for d in settings.for_event(HookEventName.BEFORE_TOOL, "click")] == ["b"]
    assert [d.command for d in settings.for_event(HookEventName.BEFORE_AGENT)] == ["c"]


def test_invalid_matcher_is_rejected():
    with pytest.raises(ValidationError):
        HookDefinition(command="true", matcher="(")


def test_load_missing_file_yields_no_hooks(tmp_path: Path):
    settings = HookSettings.load(tmp_path / "absent.json")
    assert settings.hooks == {}


def test_load_reads_json_file(tmp_path: Path):
    path = tmp_path / "hooks.json"
    path.write_text(json.dumps({"hooks": {"SessionStart": [{"command": "echo hi", "name": "greet"}]}}))
    settings = HookSettings.load(path)
    (definition,) = settings.for_event(HookEventName.SESSION_START)
    assert definition.label == "greet"


def test_hook_output_aliases():
    output = HookOutput.model_validate(
        {
            "decision": "DENY",
            "reason": "nope",
            "systemMessage": "blocked by policy",
            "continue": False,
            "stopReason": "done",
            "hookSpecificOutput": {"hookEventName": "BeforeTool", "additionalContext": "ctx"},
        }
    )
    assert output.is_blocking
    assert output.system_message == "blocked by policy"
    assert output.continue_ is False
    assert output.hook_specific_output is not None
    assert output.hook_specific_output.additional_context == "ctx"


def test_merge_exit_code_two_blocks_with_stderr():
    hook = HookDefinition(command="x")
    result = AggregatedHookResult.merge(
        [
            HookExecution(hook=hook, exit_code=0, output=HookOutput(reason="fine")),
            HookExecution(hook=hook, exit_code=2, stderr="Dangerous path\n"),
        ]
    )
    assert result.blocked
    assert result.reason == "fine\nDangerous path"
    assert result.system_messages == ["Dangerous path"]


@pytest.mark.asyncio
async def test_runner_passes_event_json_and_env(tmp_path: Path):
    out_file = tmp_path / "seen.json"
    command = _script(
        tmp_path,
        "record",
        f"""
        import json, os, sys
        data = json.load(sys.stdin)
        data["env_project"] = os.environ["WARDEN_PROJECT_DIR"]
        data["env_session"] = os.environ["WARDEN_SESSION_ID"]
        data["cwd_actual"] = os.getcwd()
        open({str(out_file)!r}, "w").write(json.dumps(data))
        """,
    )
    runner = HookRunner(_settings(HookEventName.BEFORE_TOOL, HookDefinition(command=command)), tmp_path)

    result = await runner.run(
        HookEvent(HookEventName.BEFORE_TOOL, "sess-1", tool_name="click_at", payload={"tool_args": {"x": 1}})
    )

    assert not result.blocked
    seen = json.loads(out_file.read_text())
    assert seen["session_id"] == "sess-1"
    assert seen["hook_event_name"] == "BeforeTool"
    assert seen["tool_name"] == "click_at"
    assert seen["tool_args"] == {"x": 1}
    assert seen["cwd"] == str(tmp_path)
    assert seen["env_project"] == str(tmp_path)
    assert seen["env_session"] == "sess-1"
    assert Path(seen["cwd_actual"]).resolve() == tmp_path.resolve()
    assert "timestamp" in seen


@pytest.mark.asyncio
async def test_exit_code_two_blocks_and_siblings_still_run(tmp_path: Path):
    marker = tmp_path / "sibling-ran"
    blocker = _script(
        tmp_path,
        "blocker",
        """
        import sys
        sys.stderr.write("Dangerous path")
        sys.exit(2)
        """,
    )
    sibling = _script(
        tmp_path,
        "sibling",
        f"""
        open({str(marker)!r}, "w").write("ok")
        """,
    )
    runner = HookRunner(
        _settings(HookEventName.BEFORE_TOOL, HookDefinition(command=blocker), HookDefinition(command=sibling)),
        tmp_path,
    )

    result = await runner.run(HookEvent(HookEventName.BEFORE_TOOL, "s", tool_name="navigate"))

    assert result.blocked
    assert result.reason == "Dangerous path"
    assert marker.read_text() == "ok"


@pytest.mark.asyncio
async def test_structured_output_is_merged(tmp_path: Path):
    command = _script(
        tmp_path,
        "structured",
        """
        import json
        print(json.dumps({
            "decision": "allow",
            "systemMessage": "checked",
            "hookSpecificOutput": {"additionalContext": "Prefer the search box."},
        }))
        """,
    )
    runner = HookRunner(_settings(HookEventName.BEFORE_AGENT, HookDefinition(command=command)), tmp_path)

    result = await runner.run(HookEvent(HookEventName.BEFORE_AGENT, "s", payload={"prompt": "go"}))

    assert not result.blocked
    assert result.system_messages == ["checked"]
    assert result.additional_context == ["Prefer the search box."]


@pytest.mark.asyncio
async def test_deny_decision_blocks(tmp_path: Path):
    command = _script(
        tmp_path,
        "deny",
        """
        import json
        print(json.dumps({"decision": "deny", "reason": "not on this site"}))
        """,
    )
    runner = HookRunner(_settings(HookEventName.BEFORE_TOOL, HookDefinition(command=command)), tmp_path)
    result = await runner.run(HookEvent(HookEventName.BEFORE_TOOL, "s", tool_name="navigate"))
    assert result.blocked
    assert result.reason == "not on this site"


@pytest.mark.asyncio
async def test_timeout_fails_open(tmp_path: Path):
    command = _script(
        tmp_path,
        "slow",
        """
        import time
        time.sleep(3)
        """,
    )
    runner = HookRunner(
        _settings(HookEventName.BEFORE_TOOL, HookDefinition(command=command, timeout=0.5)),
        tmp_path,
    )

    result = await runner.run(HookEvent(HookEventName.BEFORE_TOOL, "s", tool_name="click_at"))

    assert not result.blocked
    (execution,) = result.executions
    assert execution.timed_out


@pytest.mark.asyncio
async def test_other_failures_and_bad_json_fail_open(tmp_path: Path):
    crashing = _script(
        tmp_path,
        "crash",
        """
        import sys
        sys.exit(1)
        """,
    )
    garbage = _script(
        tmp_path,
        "garbage",
        """
        print("not json at all")
        """,
    )
    runner = HookRunner(
        _settings(HookEventName.AFTER_MODEL, HookDefinition(command=crashing), HookDefinition(command=garbage)),
        tmp_path,
    )

    result = await runner.run(HookEvent(HookEventName.AFTER_MODEL, "s"))

    assert not result.blocked
    assert [execution.exit_code for execution in result.executions] == [1, 0]
    assert result.executions[1].output is None


@pytest.mark.asyncio
async def test_no_matching_hooks_returns_empty_result(tmp_path: Path):
    runner = HookRunner(
        _settings(HookEventName.BEFORE_TOOL, HookDefinition(command="exit 2", matcher="navigate")),
        tmp_path,
    )
    result = await runner.run(HookEvent(HookEventName.BEFORE_TOOL, "s", tool_name="click_at"))
    assert result.executions == []
    assert not result.blocked
    assert runner.has_hooks(HookEventName.BEFORE_TOOL, "navigate")
