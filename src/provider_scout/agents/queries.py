"""Search query generation: (city, state, category) -> exactly ten web search queries."""

from __future__ import annotations

import json
import re
from pathlib import Path

import yaml

from provider_scout.agents.models import AssistantMessage, SystemMessage, UserMessage
from provider_scout.utils.logging import get_logger, GREEN, YELLOW, RESET

log = get_logger()

_PROMPTS_DIR = Path(__file__).parent / "prompts"

QUERY_COUNT = 10

_FENCE_RE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)
_BULLET_RE = re.compile(r"^[-*•]\s*(.+)$")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s*(.+)$")
_WS_RE = re.compile(r"\s+")


class QueryGenerationError(Exception):
    """The model did not produce exactly ten distinct queries, even after a repair turn."""


def _load_prompt(filename: str = "query_generator_v1.yaml") -> dict:
    with open(_PROMPTS_DIR / filename) as f:
        return yaml.safe_load(f)


def build_system_prompt(category: str, prompt: dict | None = None) -> str:
    prompt = prompt or _load_prompt()
    hints = prompt.get("category_hints", {}).get(category) or [prompt["default_hint"]]
    lines = [prompt["system"].strip(), "", f"Category-specific guidance for {category}:"]
    lines += [f"- {hint}" for hint in hints]
    return "\n".join(lines)


def _user_block(city: str, state: str, category: str) -> str:
    return f"city: {city}\nstate: {state}\ncategory: {category}"


def strip_code_fences(text: str) -> str:
    trimmed = text.strip()
    match = _FENCE_RE.match(trimmed)
    return match.group(1).strip() if match else trimmed


def sanitize_query(line: str) -> str:
    """Strip surrounding whitespace, a leading bullet, or ``1.`` / ``1)`` numbering."""
    trimmed = line.strip()
    for pattern in (_BULLET_RE, _NUMBERED_RE):
        match = pattern.match(trimmed)
        if match:
            return match.group(1).strip()
    return trimmed


def parse_queries(raw: str) -> list[str]:
    """Parse model output as a JSON array of strings, else as one query per line."""
    stripped = strip_code_fences(raw)
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        queries = [sanitize_query(q) for q in parsed if isinstance(q, str)]
        return [q for q in queries if q]

    queries = [sanitize_query(line) for line in stripped.splitlines()]
    return [q for q in queries if q]


def validate_queries(queries: list[str]) -> list[str]:
    """De-duplicate in order; raise ValueError unless exactly ten remain."""
    unique: list[str] = []
    for query in queries:
        cleaned = query.strip()
        if cleaned and cleaned not in unique:
            unique.append(cleaned)
    if len(unique) != QUERY_COUNT:
        raise ValueError(f"Expected exactly {QUERY_COUNT} distinct queries, got {len(unique)}.")
    return unique


class QueryGenerator:
    """Few-shot query generation over a chat completer.

    The conversation is: system prompt (with category hints), the Salem
    FOOD_BANK example as a user/assistant pair, then the real request.
    """

    def __init__(self, completer, prompt_file: str = "query_generator_v1.yaml"):
        self._completer = completer
        self._prompt = _load_prompt(prompt_file)

    def build_messages(self, city: str, state: str, category: str) -> list:
        few_shot = self._prompt["few_shot"]
        return [
            SystemMessage(content=build_system_prompt(category, self._prompt)),
            UserMessage(content=few_shot["user"].strip()),
            AssistantMessage(content=few_shot["assistant"].strip()),
            UserMessage(content=_user_block(city, state, category)),
        ]

    async def _attempt(self, messages: list) -> list[str]:
        reply = await self._completer.complete(messages)
        if not reply.content:
            raise ValueError("The model returned an empty response.")
        return validate_queries(parse_queries(reply.content))

    async def generate(self, city: str, state: str, category: str) -> list[str]:
        messages = self.build_messages(city, state, category)
        try:
            queries = await self._attempt(messages)
        except ValueError as first:
            log.warning(f"  {YELLOW}Query generation invalid ({first}), asking for a repair{RESET}")
            repair = UserMessage(content=self._prompt["repair"].format(problem=first).strip())
            try:
                queries = await self._attempt(messages + [repair])
            except ValueError as second:
                raise QueryGenerationError(
                    "Query generation failed validation after repair attempt. "
                    f"First error: {first}. Repair error: {second}."
                ) from second

        log.info(f"  {GREEN}✓{RESET} {len(queries)} queries for {city}, {state} ({category})")
        return queries


def safe_stem(city: str, category: str) -> str:
    """``<City>_<Category>`` with whitespace runs replaced by ``_``."""
    return "_".join(_WS_RE.sub("_", part.strip()) for part in (city, category))


def save_queries_to_file(
    city: str,
    category: str,
    queries: list[str],
    output_dir: str | Path | None = None,
) -> Path:
    """Write one query per line to ``<City>_<Category>_queries.txt``."""
    directory = Path(output_dir) if output_dir else Path.cwd()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{safe_stem(city, category)}_queries.txt"
    path.write_text("\n".join(queries), encoding="utf-8")
    return path
