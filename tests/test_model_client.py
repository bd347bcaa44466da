from __future__ import annotations

import pytest
from pydantic_ai.messages import (  # type: ignore
    BinaryContent,
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.function import AgentInfo, FunctionModel  # type: ignore
from pydantic_ai.models.test import TestModel as PydanticTestModel  # type: ignore

from warden.agent.content import ConversationTurn, FunctionCall, FunctionResponse, Part
from warden.agent.models import (
    GenerateRequest,
    PydanticAIModelClient,
    build_model,
    from_model_response,
    to_model_messages,
)
from warden.agent.tools.base import ToolDeclaration
from warden.errors import ModelBuildError

CLICK = ToolDeclaration(
    name="click_at",
    description="Click",
    parameters={
        "type": "object",
        "properties": {"x": {"type": "integer"}, "y": {"type": "integer"}},
        "required": ["x", "y"],
    },
)


def test_turns_map_to_pydantic_ai_messages():
    turns = [
        ConversationTurn(role="user", parts=(Part.from_text("open it"), Part.from_bytes(b"png", "image/png"))),
        ConversationTurn(role="model", parts=(Part(function_call=FunctionCall(name="click_at", args={"x": 1, "y": 2}, id="c1")),)),
        ConversationTurn(
            role="user",
            parts=(
                Part(
                    function_response=FunctionResponse(
                        name="click_at",
                        response={"url": "about:blank"},
                        parts=(Part.from_text("current_accessibility_tree:\n-"),),
                        id="c1",
                    )
                ),
            ),
        ),
    ]

    messages = to_model_messages(turns, system_instruction="Be a browser.")

    first, second, third = messages
    assert isinstance(first, ModelRequest)
    assert isinstance(first.parts[0], SystemPromptPart)
    prompt = first.parts[1]
    assert isinstance(prompt, UserPromptPart)
    assert prompt.content[0] == "open it"
    assert isinstance(prompt.content[1], BinaryContent)
    assert prompt.content[1].media_type == "image/png"

    assert isinstance(second, ModelResponse)
    call = second.parts[0]
    assert isinstance(call, ToolCallPart)
    assert call.tool_call_id == "c1"

    assert isinstance(third, ModelRequest)
    ret = third.parts[0]
    assert isinstance(ret, ToolReturnPart)
    assert ret.tool_call_id == "c1"
    assert ret.content == {"url": "about:blank"}
    assert isinstance(third.parts[1], UserPromptPart)


def test_empty_model_response_maps_to_none():
    assert from_model_response(ModelResponse(parts=[TextPart(content="")])) is None


@pytest.mark.asyncio
async def test_client_sends_tools_and_parses_calls():
    seen: dict[str, object] = {}

    def respond(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        seen["tools"] = [tool.name for tool in info.function_tools]
        seen["messages"] = messages
        return ModelResponse(
            parts=[
                TextPart(content="Clicking."),
                ToolCallPart(tool_name="click_at", args={"x": 10, "y": 20}, tool_call_id="call-1"),
            ]
        )

    client = PydanticAIModelClient(FunctionModel(respond))
    request = GenerateRequest(
        model="function",
        contents=(ConversationTurn(role="user", parts=(Part.from_text("click the button"),)),),
        tools=(CLICK,),
    )

    turn = await client.generate(request)

    assert seen["tools"] == ["click_at"]
    assert turn is not None
    assert turn.text == "Clicking."
    (call,) = turn.function_calls
    assert call.name == "click_at"
    assert call.args == {"x": 10, "y": 20}
    assert call.id == "call-1"


def test_request_wire_form_and_override():
    request = GenerateRequest(
        model="test",
        contents=(ConversationTurn(role="user", parts=(Part.from_text("hi"),)),),
        tools=(CLICK,),
    )
    wire = request.to_wire()
    assert wire["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]
    assert wire["config"]["tools"][0]["name"] == "click_at"

    replaced = request.with_wire_override(
        {"model": "other", "contents": [{"role": "user", "parts": [{"text": "bye"}]}]}
    )
    assert replaced.model == "other"
    assert replaced.contents[0].text == "bye"
    assert replaced.tools == request.tools


def test_build_model_test_id():
    assert isinstance(build_model("test"), PydanticTestModel)


def test_build_model_requires_provider_prefix():
    with pytest.raises(ModelBuildError):
        build_model("gemini-2.5-flash")


def test_build_model_requires_api_key(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    with pytest.raises(ModelBuildError, match="GOOGLE_API_KEY"):
        build_model("google:gemini-2.5-flash")


def test_build_model_rejects_unknown_provider():
    with pytest.raises(ModelBuildError, match="Unsupported"):
        build_model("acme:rocket")
