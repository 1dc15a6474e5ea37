"""Chat completion client for the extraction agent and the query generator.

Wraps an OpenAI-compatible ``ChatOpenAI`` model and translates between the
project's message models and LangChain messages. Tool calls are requested
one per turn (parallel tool calls disabled) so every tool reply maps to a
single assistant turn in the conversation window.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from langchain_core import messages as lc
from langchain_core.tools import BaseTool
from langchain_openai import ChatOpenAI

from provider_scout.agents.models import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
)
from provider_scout.agents.tracing import trace_config
from provider_scout.config import settings
from provider_scout.utils.logging import DIM, RESET, get_logger

log = get_logger()


def _get_llm() -> ChatOpenAI:
    """Create the OpenAI-compatible chat model from settings."""
    return ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.openai_api_key,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        timeout=settings.llm_timeout_s,
        max_tokens=4096,
    )


def _parse_arguments(arguments: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_langchain(messages: Sequence[Message]) -> list[lc.BaseMessage]:
    out: list[lc.BaseMessage] = []
    for msg in messages:
        if isinstance(msg, SystemMessage):
            out.append(lc.SystemMessage(content=msg.content or ""))
        elif isinstance(msg, UserMessage):
            out.append(lc.HumanMessage(content=msg.content or ""))
        elif isinstance(msg, AssistantMessage):
            out.append(
                lc.AIMessage(
                    content=msg.content or "",
                    tool_calls=[
                        {"name": call.name, "args": _parse_arguments(call.arguments), "id": call.id}
                        for call in msg.tool_calls
                    ],
                )
            )
        elif isinstance(msg, ToolMessage):
            if not msg.tool_call_id:
                log.debug(f"  {DIM}skipping tool message without tool_call_id{RESET}")
                continue
            out.append(lc.ToolMessage(content=msg.content or "", tool_call_id=msg.tool_call_id))
    return out


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return ""


def from_langchain(response: lc.AIMessage) -> AssistantMessage:
    calls = [
        ToolCall(id=tc.get("id") or f"call_{i}", name=tc["name"], arguments=json.dumps(tc.get("args") or {}))
        for i, tc in enumerate(response.tool_calls or [])
    ]
    # Calls whose arguments were not valid JSON still get a reply from the tool runner
    calls += [
        ToolCall(
            id=tc.get("id") or f"invalid_call_{i}",
            name=tc.get("name") or "",
            arguments=tc.get("args") or "",
        )
        for i, tc in enumerate(getattr(response, "invalid_tool_calls", None) or [])
    ]
    return AssistantMessage(content=_content_text(response.content) or None, tool_calls=calls)


class ChatCompleter:
    """``complete(messages, tools) -> AssistantMessage`` over a LangChain chat model."""

    def __init__(self, llm: ChatOpenAI | None = None, run_name: str = "provider_scout"):
        self._llm = llm or _get_llm()
        self._run_name = run_name

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[BaseTool] | None = None,
    ) -> AssistantMessage:
        config = trace_config(self._run_name, tools=[tool.name for tool in tools or []])
        runnable: Any = self._llm
        if tools:
            runnable = self._llm.bind_tools(
                list(tools),
                tool_choice="auto",
                parallel_tool_calls=False,
            )
        response = await runnable.ainvoke(to_langchain(messages), config=config)
        return from_langchain(response)
