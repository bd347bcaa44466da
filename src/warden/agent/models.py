"""Model client contract and the pydantic-ai backed implementation.

The agent loop speaks in :class:`ConversationTurn` values; this module maps
them to pydantic-ai messages for a single direct model request per step and
maps the response back.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from dotenv import load_dotenv
from pydantic_ai.direct import model_request  # type: ignore
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
from pydantic_ai.models import Model, ModelRequestParameters  # type: ignore
from pydantic_ai.models.anthropic import AnthropicModel  # type: ignore
from pydantic_ai.models.google import GoogleModel  # type: ignore
from pydantic_ai.models.openai import OpenAIChatModel  # type: ignore
from pydantic_ai.models.test import TestModel  # type: ignore
from pydantic_ai.providers.anthropic import AnthropicProvider  # type: ignore
from pydantic_ai.providers.google import GoogleProvider  # type: ignore
from pydantic_ai.providers.openai import OpenAIProvider  # type: ignore
from pydantic_ai.tools import ToolDefinition  # type: ignore

from warden.agent.content import ConversationTurn, FunctionCall, Part
from warden.agent.tools.base import ToolDeclaration
from warden.errors import ModelBuildError
from warden.log_utils import log_event

logger = logging.getLogger(__name__)

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


@dataclass(frozen=True)
class GenerateRequest:
    model: str
    contents: Sequence[ConversationTurn]
    tools: Sequence[ToolDeclaration] = ()
    system_instruction: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """JSON form handed to BeforeModel hooks as ``llm_request``."""
        return {
            "model": self.model,
            "contents": [turn.to_wire() for turn in self.contents],
            "config": {
                "tools": [
                    {"name": tool.name, "description": tool.description, "parameters": tool.parameters}
                    for tool in self.tools
                ]
            },
        }

    def with_wire_override(self, override: dict[str, Any]) -> "GenerateRequest":
        """Apply a hook-supplied ``llm_request``; only ``model`` and ``contents`` are honored."""
        contents = override.get("contents")
        return GenerateRequest(
            model=str(override.get("model") or self.model),
            contents=(
                tuple(ConversationTurn.model_validate(item) for item in contents)
                if isinstance(contents, list)
                else self.contents
            ),
            tools=self.tools,
            system_instruction=self.system_instruction,
        )


class ModelClient(Protocol):
    async def generate(self, request: GenerateRequest) -> ConversationTurn | None: ...


def _user_content(part: Part) -> str | BinaryContent | None:
    if part.text is not None:
        return part.text
    if part.inline_data is not None:
        return BinaryContent(data=part.inline_data.to_bytes(), media_type=part.inline_data.mime_type)
    return None


def _request_from_turn(turn: ConversationTurn) -> ModelRequest:
    returns: list[Any] = []
    contents: list[str | BinaryContent] = []
    for part in turn.parts:
        response = part.function_response
        if response is not None:
            kwargs: dict[str, Any] = {"tool_name": response.name, "content": response.response}
            if response.id:
                kwargs["tool_call_id"] = response.id
            returns.append(ToolReturnPart(**kwargs))
            contents.extend(item for item in map(_user_content, response.parts) if item is not None)
            continue
        item = _user_content(part)
        if item is not None:
            contents.append(item)
    if contents:
        returns.append(UserPromptPart(content=contents))
    return ModelRequest(parts=returns)


def _response_from_turn(turn: ConversationTurn) -> ModelResponse:
    parts: list[Any] = []
    for part in turn.parts:
        if part.text is not None:
            parts.append(TextPart(content=part.text))
        elif part.function_call is not None:
            call = part.function_call
            kwargs: dict[str, Any] = {"tool_name": call.name, "args": dict(call.args)}
            if call.id:
                kwargs["tool_call_id"] = call.id
            parts.append(ToolCallPart(**kwargs))
    return ModelResponse(parts=parts)


def to_model_messages(turns: Sequence[ConversationTurn], system_instruction: str | None = None) -> list[ModelMessage]:
    messages: list[ModelMessage] = []
    for turn in turns:
        if turn.role == "user":
            messages.append(_request_from_turn(turn))
        else:
            messages.append(_response_from_turn(turn))
    if system_instruction:
        if messages and isinstance(messages[0], ModelRequest):
            first = messages[0]
            messages[0] = ModelRequest(parts=[SystemPromptPart(content=system_instruction), *first.parts])
        else:
            messages.insert(0, ModelRequest(parts=[SystemPromptPart(content=system_instruction)]))
    return messages


def from_model_response(response: ModelResponse) -> ConversationTurn | None:
    parts: list[Part] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            if part.content:
                parts.append(Part.from_text(part.content))
        elif isinstance(part, ToolCallPart):
            parts.append(
                Part(
                    function_call=FunctionCall(
                        name=part.tool_name,
                        args=part.args_as_dict(),
                        id=part.tool_call_id,
                    )
                )
            )
    if not parts:
        return None
    return ConversationTurn(role="model", parts=tuple(parts))


class PydanticAIModelClient:
    """Single-request model client over any pydantic-ai model."""

    def __init__(self, model: Model | str) -> None:
        self.model = model

    async def generate(self, request: GenerateRequest) -> ConversationTurn | None:
        params = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters_json_schema=tool.parameters,
                )
                for tool in request.tools
            ],
            allow_text_output=True,
        )
        messages = to_model_messages(request.contents, request.system_instruction)
        response = await model_request(self.model, messages, model_request_parameters=params)
        log_event(
            logger,
            "model.response",
            level=logging.DEBUG,
            model=request.model,
            parts=len(response.parts),
        )
        return from_model_response(response)


def build_model(model_id: str) -> Model:
    """Build a pydantic-ai model from ``provider:model`` or ``test``.

    The provider's API key must be in the environment (``.env`` is loaded).
    """
    load_dotenv()
    if model_id == "test":
        return TestModel(call_tools=[])

    provider, sep, model_name = model_id.partition(":")
    provider = provider.lower()
    if not sep or not model_name:
        raise ModelBuildError(f"Model id must look like 'provider:model', got {model_id!r}")
    env_name = _API_KEY_ENV.get(provider)
    if env_name is None:
        raise ModelBuildError(f"Unsupported model provider: {provider}")
    key = os.getenv(env_name)
    if not key:
        raise ModelBuildError(f"{env_name} is required for {provider} models")

    if provider == "openai":
        model: Model = OpenAIChatModel(model_name, provider=OpenAIProvider(api_key=key))
    elif provider == "anthropic":
        model = AnthropicModel(model_name, provider=AnthropicProvider(api_key=key))
    else:
        model = GoogleModel(model_name, provider=GoogleProvider(api_key=key))
    log_event(logger, "model.build", provider=provider, model=model_name)
    return model
