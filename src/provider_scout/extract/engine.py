"""Dual-path extraction: LLM agent first, deterministic heuristics as the fallback.

For each URL the agent gets a fresh conversation window and the
``render_page`` tool. If it produces a JSON object that coerces into a
ServiceRecord, that record wins. Otherwise (completion error, timeout, no
parseable JSON, invalid record) the page is rendered directly and the
heuristic extractor builds the record. A URL that cannot be rendered at all
still yields a shape-complete record with ``error`` set, so a batch never
stops on one bad provider.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import yaml

from provider_scout.agents.memory import ConversationWindow
from provider_scout.agents.models import (
    AssistantMessage,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from provider_scout.agents.tools import build_render_tool, run_tool
from provider_scout.config import settings
from provider_scout.extract.heuristic import (
    build_service_record,
    empty_service_record,
    extract_hours,
    hours_candidate_links,
    to_number,
)
from provider_scout.models import (
    Contact,
    ExtractedRecord,
    GeoPoint,
    HoursOfOperation,
    RenderedPage,
    ServiceRecord,
)
from provider_scout.text.hours import normalize_time
from provider_scout.text.normalize import normalize_whitespace, to_origin
from provider_scout.utils.logging import get_logger, GREEN, RED, YELLOW, DIM, RESET

log = get_logger()

_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "agents" / "prompts"


def _load_prompt(filename: str) -> dict:
    with open(_PROMPTS_DIR / filename) as f:
        return yaml.safe_load(f)


# --- Agent output parsing ---


def parse_agent_json(content: str | None) -> dict[str, Any] | None:
    """Parse a reply as one JSON object: the whole text, else the outermost ``{...}``."""
    if not content:
        return None
    text = content.strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return normalize_whitespace(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _portable_text(value: Any) -> str:
    """Plain text of a description given as a string or as portable-text blocks."""
    if not isinstance(value, list):
        return _text(value)
    blocks = []
    for block in value:
        if isinstance(block, str):
            blocks.append(block)
        elif isinstance(block, dict):
            spans = [
                child.get("text", "")
                for child in block.get("children") or []
                if isinstance(child, dict) and isinstance(child.get("text"), str)
            ]
            blocks.append("".join(spans))
    return normalize_whitespace(" ".join(b for b in blocks if b))


def _address(value: Any) -> str:
    if isinstance(value, dict):
        keys = ("streetAddress", "addressLocality", "addressRegion", "postalCode", "addressCountry")
        return ", ".join(p for p in (_text(value.get(k)) for k in keys) if p)
    return _text(value)


def _location(value: Any) -> GeoPoint | None:
    if not isinstance(value, dict):
        return None
    lat = to_number(value.get("latitude", value.get("lat")))
    lng = to_number(value.get("longitude", value.get("lng", value.get("lon"))))
    if lat is None and lng is None:
        return None
    return GeoPoint(lat=lat, lng=lng)


def _time_point(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    point = dict(value)
    time = point.get("time")
    if time is not None:
        point["time"] = normalize_time(str(time)) or time
    return point


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return value
    return []


def _hours(value: Any) -> HoursOfOperation:
    if not isinstance(value, dict):
        return HoursOfOperation()
    periods = [
        {"open": _time_point(p.get("open")), "close": _time_point(p.get("close"))}
        for p in _as_list(value.get("periods"))
        if isinstance(p, dict)
    ]
    weekday_text = _as_list(value.get("weekdayText", value.get("weekday_text")))
    return HoursOfOperation.model_validate(
        {"periods": periods, "weekdayText": [t for t in (_text(w) for w in weekday_text) if t]}
    )


def coerce_agent_record(data: dict[str, Any], url: str, category: str) -> ServiceRecord:
    """Turn the agent's loosely-shaped JSON into a ServiceRecord.

    The category is always the requested one. Raises pydantic.ValidationError
    when the hours block cannot be made valid.
    """
    contact = data.get("contact") if isinstance(data.get("contact"), dict) else {}
    return ServiceRecord(
        name=_text(data.get("name")),
        description=_portable_text(data.get("description")),
        address=_address(data.get("address")),
        location=_location(data.get("location")),
        service_category=category,
        hours_of_operation=_hours(data.get("hoursOfOperation", data.get("hours_of_operation"))),
        contact=Contact(
            phone=_text(contact.get("phone")),
            email=_text(contact.get("email")),
            website=_text(contact.get("website")) or to_origin(url),
        ),
    )


# --- Engine ---


class ExtractionEngine:
    """``await extract(url, category) -> ExtractedRecord``, tagged with the path that produced it."""

    def __init__(
        self,
        completer,
        renderer,
        use_agent: bool | None = None,
        max_turns: int | None = None,
        history_limit: int | None = None,
        hours_link_limit: int | None = None,
        llm_timeout_s: float | None = None,
        render_timeout_s: float | None = None,
        tool_content_max: int | None = None,
        prompt_file: str = "extraction_v1.yaml",
    ):
        self._completer = completer
        self._renderer = renderer
        self._use_agent = settings.agent_enabled if use_agent is None else use_agent
        self._max_turns = max_turns or settings.agent_max_turns
        self._history_limit = history_limit or settings.agent_history_limit
        self._hours_link_limit = (
            settings.hours_link_limit if hours_link_limit is None else hours_link_limit
        )
        self._llm_timeout_s = llm_timeout_s or settings.llm_timeout_s
        self._render_timeout_s = render_timeout_s or settings.render_timeout_ms / 1000
        self._tool_content_max = tool_content_max or settings.tool_content_max
        self._prompt = _load_prompt(prompt_file)

    @property
    def agent_enabled(self) -> bool:
        return self._use_agent and self._completer is not None

    async def extract(self, url: str, category: str) -> ExtractedRecord:
        if self.agent_enabled:
            record = await self._try_agent(url, category)
            if record is not None:
                log.info(f"  {GREEN}✓{RESET} agent: {record.name or url}")
                return ExtractedRecord(url=url, record=record, method="agent")
            log.info(f"  {YELLOW}↓{RESET} agent gave no usable record, using heuristics for {url}")
        return await self._run_fallback(url, category)

    # --- Agent path ---

    async def _try_agent(self, url: str, category: str) -> ServiceRecord | None:
        try:
            return await self._run_agent(url, category)
        except asyncio.TimeoutError:
            log.warning(f"  {RED}✗{RESET} agent timed out on {url}")
        except Exception as e:
            log.warning(f"  {RED}✗{RESET} agent failed on {url}: {e}")
        return None

    async def _complete(self, system: SystemMessage, window: ConversationWindow, tools) -> AssistantMessage:
        return await asyncio.wait_for(
            self._completer.complete([system, *window.tail(self._history_limit)], tools),
            timeout=self._llm_timeout_s,
        )

    async def _run_agent(self, url: str, category: str) -> ServiceRecord | None:
        # Rendered again here through the tool, independent of the fallback render.
        tools = [build_render_tool(self._renderer, self._render_timeout_s)]
        system = SystemMessage(content=self._prompt["system"])
        window = ConversationWindow(self._tool_content_max)
        window.append([UserMessage(content=self._prompt["user"].format(category=category, url=url).strip())])

        for turn in range(self._max_turns):
            reply = await self._complete(system, window, tools)
            window.append([reply])

            if reply.tool_calls:
                for call in reply.tool_calls:
                    result = await run_tool(call, tools)
                    window.append([ToolMessage(content=result, tool_call_id=call.id)])
                window.append([UserMessage(content=self._prompt["nudge"].strip())])
                continue

            if not reply.content:
                log.debug(f"  {DIM}empty agent reply on turn {turn + 1}{RESET}")
                return None

            data = parse_agent_json(reply.content)
            if data is None:
                window.append([UserMessage(content=self._prompt["repair"].strip())])
                repaired = await self._complete(system, window, tools)
                window.append([repaired])
                data = parse_agent_json(repaired.content)
            if data is None:
                log.warning(f"  {YELLOW}agent reply for {url} was not JSON{RESET}")
                return None
            return coerce_agent_record(data, url, category)

        log.warning(f"  {YELLOW}agent hit the {self._max_turns}-turn limit on {url}{RESET}")
        return None

    # --- Fallback path ---

    async def _render(self, url: str) -> RenderedPage:
        return await asyncio.wait_for(self._renderer.render(url), timeout=self._render_timeout_s)

    async def _run_fallback(self, url: str, category: str) -> ExtractedRecord:
        try:
            page = await self._render(url)
        except Exception as e:
            reason = str(e) or type(e).__name__
            log.warning(f"  {RED}✗{RESET} render failed for {url}: {reason}")
            return ExtractedRecord(
                url=url,
                record=empty_service_record(url, category),
                method="fallback",
                error=reason,
            )

        hours = extract_hours(page)
        if hours.is_empty:
            hours = await self._probe_hours(page, url) or hours

        record = build_service_record(page, category, fallback_url=url, hours=hours)
        log.info(f"  {GREEN}✓{RESET} heuristics: {record.name or url}")
        return ExtractedRecord(url=url, record=record, method="fallback")

    async def _probe_hours(self, page: RenderedPage, url: str) -> HoursOfOperation | None:
        """Render the best-ranked same-site links until one of them yields hours."""
        candidates = hours_candidate_links(page, page.final_url or url)[: self._hours_link_limit]
        for link in candidates:
            try:
                linked = await self._render(link)
            except Exception as e:
                log.debug(f"  {DIM}hours probe failed for {link}: {str(e) or type(e).__name__}{RESET}")
                continue
            hours = extract_hours(linked)
            if not hours.is_empty:
                log.info(f"  {DIM}hours found on {link}{RESET}")
                return hours
        return None
