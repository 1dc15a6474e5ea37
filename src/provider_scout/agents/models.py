"""Pydantic models for the extraction agent's conversation and structured output."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter

from provider_scout.models import CamelModel


class ToolCall(CamelModel):
    """A model request to run a named tool. ``arguments`` is the raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


class SystemMessage(CamelModel):
    role: Literal["system"] = "system"
    content: str | None = None


class UserMessage(CamelModel):
    role: Literal["user"] = "user"
    content: str | None = None


class AssistantMessage(CamelModel):
    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ToolMessage(CamelModel):
    role: Literal["tool"] = "tool"
    content: str | None = None
    tool_call_id: str | None = None


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

message_adapter: TypeAdapter[Any] = TypeAdapter(Message)
