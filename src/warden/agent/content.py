"""Conversation content exchanged between the loop and the model client.

Turns are frozen once built; the loop appends new turns and never rewrites
earlier ones. The JSON wire form uses camelCase keys (``functionCall``,
``inlineData``) so payloads handed to hooks match what model APIs emit.
"""

from __future__ import annotations

import base64
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "model"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class InlineData(_WireModel):
    mime_type: str
    data: str = Field(description="Base64-encoded payload")

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "InlineData":
        return cls(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class FunctionCall(_WireModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class FunctionResponse(_WireModel):
    name: str
    response: dict[str, Any] = Field(default_factory=dict)
    parts: tuple["Part", ...] = ()
    id: str | None = None


class Part(_WireModel):
    """A tagged union: exactly one of the four fields is set."""

    text: str | None = None
    inline_data: InlineData | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None

    @model_validator(mode="after")
    def _exactly_one_tag(self) -> "Part":
        tags = [
            name
            for name in ("text", "inline_data", "function_call", "function_response")
            if getattr(self, name) is not None
        ]
        if len(tags) != 1:
            raise ValueError(f"Part must carry exactly one of text/inlineData/functionCall/functionResponse, got {tags}")
        return self

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "Part":
        return cls(inline_data=InlineData.from_bytes(raw, mime_type))


FunctionResponse.model_rebuild()


class ConversationTurn(_WireModel):
    role: Role
    parts: tuple[Part, ...] = ()

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [part.function_call for part in self.parts if part.function_call is not None]

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text is not None)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def is_function_response_prompt(prompt: str | list[Part]) -> bool:
    """True when a pending prompt is a batch of tool results rather than fresh text."""
    return (
        not isinstance(prompt, str)
        and len(prompt) > 0
        and prompt[0].function_response is not None
    )


__all__ = [
    "ConversationTurn",
    "FunctionCall",
    "FunctionResponse",
    "InlineData",
    "Part",
    "Role",
    "is_function_response_prompt",
]
