"""LangChain tool definitions for the extraction agent, and the runner that executes them.

The model sees one tool, ``render_page``, which wraps the page renderer and
returns a compact JSON view of the page. ``run_tool`` always hands a string
back to the conversation, turning unknown tools, malformed arguments and
handler failures into JSON error payloads instead of exceptions.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Sequence

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from provider_scout.agents.models import ToolCall
from provider_scout.models import RenderedPage
from provider_scout.utils.logging import get_logger, DIM, RED, RESET

log = get_logger()

TOOL_TEXT_LIMIT = 15000
_TOOL_LINK_LIMIT = 60


class RenderPageArgs(BaseModel):
    url: str = Field(description="A fully-qualified URL to render (must include protocol).")


def page_payload(page: RenderedPage, text_limit: int = TOOL_TEXT_LIMIT) -> dict[str, Any]:
    """Compact, model-facing view of a rendered page.

    Contact links (tel:/mailto:) are always kept; other links are capped.
    """
    contact_links = [
        link for link in page.links if link.href.lower().startswith(("tel:", "mailto:"))
    ]
    other_links = [link for link in page.links if link not in contact_links][:_TOOL_LINK_LIMIT]
    text = page.text[:text_limit]
    return {
        "url": page.url,
        "finalUrl": page.final_url,
        "status": page.http_status,
        "title": page.title,
        "description": page.description,
        "socialTitle": page.social_title,
        "socialDescription": page.social_description,
        "structuredData": page.structured_data or "None found",
        "links": [{"href": link.href, "text": link.text} for link in contact_links + other_links],
        "text": text,
        "truncated": page.truncated or len(page.text) > len(text),
    }


def build_render_tool(renderer, timeout_s: float | None = None) -> BaseTool:
    """Wrap ``renderer.render`` as the ``render_page`` tool."""

    async def render_page(url: str) -> dict[str, Any]:
        page = await asyncio.wait_for(renderer.render(url), timeout=timeout_s)
        return page_payload(page)

    return StructuredTool.from_function(
        coroutine=render_page,
        name="render_page",
        description=(
            "Render a public web page in a headless browser and return its title, "
            "meta description, JSON-LD structured data, links and visible text. "
            "Call it once per URL."
        ),
        args_schema=RenderPageArgs,
    )


def _error(message: str) -> str:
    return json.dumps({"error": message})


async def run_tool(call: ToolCall, tools: Sequence[BaseTool]) -> str:
    """Execute one tool call and return the string the model will see."""
    impl = next((tool for tool in tools if tool.name == call.name), None)
    if impl is None:
        return _error(f"Unknown tool: {call.name}")

    try:
        args = json.loads(call.arguments) if call.arguments else {}
    except json.JSONDecodeError as e:
        return _error(f"Malformed arguments for {call.name}: {e}")
    if not isinstance(args, dict):
        return _error(f"Arguments for {call.name} must be a JSON object")

    log.info(f"  {DIM}→ {call.name}({json.dumps(args)[:120]}){RESET}")
    try:
        out = await impl.ainvoke(args)
    except asyncio.TimeoutError:
        log.warning(f"  {RED}✗{RESET} {call.name} timed out")
        return _error(f"{call.name} timed out")
    except Exception as e:
        log.warning(f"  {RED}✗{RESET} {call.name} failed: {e}")
        return _error(f"{call.name} failed: {e}")

    return out if isinstance(out, str) else json.dumps(out, default=str)
