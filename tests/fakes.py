"""In-memory stand-ins for the LLM, browser and search collaborators."""

from __future__ import annotations

import asyncio

from provider_scout.agents.models import AssistantMessage, ToolCall
from provider_scout.models import PageLink, RenderedPage
from provider_scout.scraper.render import RenderError


def page(url: str, **fields) -> RenderedPage:
    links = [PageLink(**link) if isinstance(link, dict) else link for link in fields.pop("links", [])]
    return RenderedPage(url=url, final_url=fields.pop("final_url", url), http_status=200, links=links, **fields)


class FakeRenderer:
    """Serves canned pages; unknown URLs fail like a 404."""

    def __init__(self, pages: dict[str, RenderedPage] | None = None, delay_s: float = 0):
        self.pages = pages or {}
        self.delay_s = delay_s
        self.calls: list[str] = []
        self.closed = False

    async def render(self, url: str, wait_for_selector: str | None = None) -> RenderedPage:
        self.calls.append(url)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        found = self.pages.get(url)
        if isinstance(found, Exception):
            raise found
        if found is None:
            raise RenderError(url, "HTTP 404", status=404)
        return found

    async def close(self) -> None:
        self.closed = True


class FakeCompleter:
    """Replays scripted assistant turns and records what it was sent."""

    def __init__(self, replies: list):
        self.replies = list(replies)
        self.requests: list[list] = []
        self.tool_names: list[list[str]] = []

    async def complete(self, messages, tools=None) -> AssistantMessage:
        self.requests.append(list(messages))
        self.tool_names.append([tool.name for tool in tools or []])
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return AssistantMessage(content=reply)
        return reply


def tool_call_reply(url: str, call_id: str = "call_1") -> AssistantMessage:
    return AssistantMessage(
        tool_calls=[ToolCall(id=call_id, name="render_page", arguments=f'{{"url": "{url}"}}')]
    )


class FakeSearcher:
    """`results` maps query to URLs; `scripts` maps query to outcomes consumed per call (last repeats)."""

    def __init__(self, results=None, scripts=None, default=None):
        self.results = results or {}
        self.scripts = {query: list(outcomes) for query, outcomes in (scripts or {}).items()}
        self.default = default or []
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, count: int) -> list[str]:
        self.calls.append((query, count))
        if query in self.scripts:
            outcomes = self.scripts[query]
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        else:
            outcome = self.results.get(query, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)[:count]


class FakeQueryGenerator:
    def __init__(self, queries: list[str] | Exception):
        self.queries = queries
        self.calls: list[tuple[str, str, str]] = []

    async def generate(self, city: str, state: str, category: str) -> list[str]:
        self.calls.append((city, state, category))
        if isinstance(self.queries, Exception):
            raise self.queries
        return list(self.queries)
