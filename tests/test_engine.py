import json

import pytest

from fakes import FakeCompleter, FakeRenderer, tool_call_reply
from provider_scout.agents.models import SystemMessage, ToolMessage, UserMessage
from provider_scout.extract.engine import ExtractionEngine, coerce_agent_record, parse_agent_json

URL = "https://pantry.example.org/"

AGENT_JSON = json.dumps({
    "name": "Marion Food Pantry",
    "description": [
        {"_type": "block", "children": [{"_type": "span", "text": "Free groceries "}, {"text": "weekly."}]},
    ],
    "address": "123 Main St, Salem, OR",
    "location": {"latitude": 44.9, "longitude": "-123.0"},
    "hoursOfOperation": {
        "periods": [{"open": {"day": 1, "time": "09:00"}, "close": {"day": 1, "time": "1700"}}],
        "weekdayText": ["Monday: 9:00 AM - 5:00 PM"],
    },
    "contact": {"phone": "503-555-0100", "email": None},
    "serviceCategory": "SOMETHING_ELSE",
})


def test_parse_agent_json_cascade():
    assert parse_agent_json('{"name": "A"}') == {"name": "A"}
    assert parse_agent_json('Sure! {"name": "B"} Hope that helps.') == {"name": "B"}
    assert parse_agent_json("```json\n{\"name\": \"C\"}\n```") == {"name": "C"}
    assert parse_agent_json("[1, 2]") is None
    assert parse_agent_json("no braces here") is None
    assert parse_agent_json(None) is None


def test_coerce_agent_record_normalizes_shapes():
    record = coerce_agent_record(json.loads(AGENT_JSON), URL, "FOOD_BANK")
    assert record.service_category == "FOOD_BANK"
    assert record.description == "Free groceries weekly."
    assert (record.location.lat, record.location.lng) == (44.9, -123.0)
    assert record.hours_of_operation.periods[0].open.time == "0900"
    assert record.contact.phone == "503-555-0100"
    assert record.contact.email == ""
    assert record.contact.website == "https://pantry.example.org"


def test_coerce_agent_record_single_weekday_string():
    record = coerce_agent_record({"hoursOfOperation": {"weekdayText": "Mon 9-5"}}, URL, "FOOD_BANK")
    assert record.hours_of_operation.weekday_text == ["Mon 9-5"]

    record = coerce_agent_record({"hoursOfOperation": {"weekdayText": 42, "periods": "daily"}}, URL, "FOOD_BANK")
    assert record.hours_of_operation.is_empty


def test_coerce_agent_record_accepts_lat_lng_and_missing_keys():
    record = coerce_agent_record({"location": {"lat": 1, "lng": 2}}, URL, "SHELTER")
    assert (record.location.lat, record.location.lng) == (1.0, 2.0)
    assert record.name == ""
    assert record.hours_of_operation.is_empty


@pytest.mark.asyncio
async def test_agent_path_renders_then_answers(pantry_page):
    renderer = FakeRenderer({URL: pantry_page})
    completer = FakeCompleter([tool_call_reply(URL), AGENT_JSON])
    engine = ExtractionEngine(completer, renderer, use_agent=True)

    result = await engine.extract(URL, "FOOD_BANK")

    assert result.method == "agent"
    assert result.error is None
    assert result.record.name == "Marion Food Pantry"
    assert result.record.service_category == "FOOD_BANK"
    assert renderer.calls == [URL]
    assert completer.tool_names[0] == ["render_page"]

    second = completer.requests[1]
    assert isinstance(second[0], SystemMessage)
    assert sum(isinstance(m, SystemMessage) for m in second) == 1
    tool_reply = next(m for m in second if isinstance(m, ToolMessage))
    assert tool_reply.tool_call_id == "call_1"
    assert json.loads(tool_reply.content)["title"] == "Marion Food Pantry | Home"
    assert isinstance(second[-1], UserMessage)


@pytest.mark.asyncio
async def test_agent_gets_one_repair_turn(pantry_page):
    completer = FakeCompleter(["I could not find it, sorry.", '{"name": "Repaired"}'])
    engine = ExtractionEngine(completer, FakeRenderer({URL: pantry_page}), use_agent=True)

    result = await engine.extract(URL, "FOOD_BANK")

    assert result.method == "agent"
    assert result.record.name == "Repaired"
    assert len(completer.requests) == 2


@pytest.mark.asyncio
async def test_unparseable_agent_output_falls_back(pantry_page):
    completer = FakeCompleter(["nope", "still nope"])
    renderer = FakeRenderer({URL: pantry_page})
    result = await ExtractionEngine(completer, renderer, use_agent=True).extract(URL, "FOOD_BANK")

    assert result.method == "fallback"
    assert result.record.name == "Marion Food Pantry"
    assert result.record.address == "123 Main St, Salem, OR, 97301"


@pytest.mark.asyncio
async def test_completion_error_falls_back(pantry_page):
    completer = FakeCompleter([RuntimeError("model unavailable")])
    result = await ExtractionEngine(completer, FakeRenderer({URL: pantry_page}), use_agent=True).extract(
        URL, "FOOD_BANK"
    )
    assert result.method == "fallback"
    assert result.error is None


@pytest.mark.asyncio
async def test_invalid_agent_record_falls_back(pantry_page):
    bad = json.dumps({
        "name": "Bad",
        "hoursOfOperation": {
            "periods": [{"open": {"day": 9, "time": "0900"}, "close": {"day": 9, "time": "1700"}}]
        },
    })
    completer = FakeCompleter([bad])
    result = await ExtractionEngine(completer, FakeRenderer({URL: pantry_page}), use_agent=True).extract(
        URL, "FOOD_BANK"
    )
    assert result.method == "fallback"


@pytest.mark.asyncio
async def test_agent_turn_limit_falls_back(pantry_page):
    renderer = FakeRenderer({URL: pantry_page})
    completer = FakeCompleter([tool_call_reply(URL, "c1"), tool_call_reply(URL, "c2")])
    engine = ExtractionEngine(completer, renderer, use_agent=True, max_turns=2)

    result = await engine.extract(URL, "FOOD_BANK")

    assert result.method == "fallback"
    assert len(renderer.calls) == 3


@pytest.mark.asyncio
async def test_agent_disabled_or_missing_completer_uses_fallback(pantry_page):
    renderer = FakeRenderer({URL: pantry_page})
    assert (await ExtractionEngine(None, renderer, use_agent=True).extract(URL, "X")).method == "fallback"
    completer = FakeCompleter([])
    assert (await ExtractionEngine(completer, renderer, use_agent=False).extract(URL, "X")).method == "fallback"
    assert completer.requests == []


@pytest.mark.asyncio
async def test_fallback_probes_hours_links(bare_page, hours_page):
    renderer = FakeRenderer({bare_page.url: bare_page, hours_page.url: hours_page})
    result = await ExtractionEngine(None, renderer, use_agent=False).extract(bare_page.url, "SHELTER")

    assert result.record.name == "Harbor Shelter"
    assert result.record.hours_of_operation.weekday_text == ["Mon-Fri 8:00 AM - 6:00 PM"]
    assert [p.open.day for p in result.record.hours_of_operation.periods] == [1, 2, 3, 4, 5]
    assert renderer.calls == [bare_page.url, hours_page.url]


@pytest.mark.asyncio
async def test_failed_hours_probes_are_skipped(bare_page):
    renderer = FakeRenderer({bare_page.url: bare_page})
    result = await ExtractionEngine(None, renderer, use_agent=False).extract(bare_page.url, "SHELTER")

    assert result.error is None
    assert result.record.hours_of_operation.is_empty
    assert len(renderer.calls) == 3


@pytest.mark.asyncio
async def test_hours_link_limit_zero_skips_probing(bare_page):
    renderer = FakeRenderer({bare_page.url: bare_page})
    await ExtractionEngine(None, renderer, use_agent=False, hours_link_limit=0).extract(bare_page.url, "SHELTER")
    assert renderer.calls == [bare_page.url]


@pytest.mark.asyncio
async def test_unrenderable_url_yields_shell_record():
    result = await ExtractionEngine(None, FakeRenderer(), use_agent=False).extract(
        "https://gone.example.org/food", "FOOD_BANK"
    )
    assert result.method == "fallback"
    assert "HTTP 404" in result.error
    assert result.record.name == ""
    assert result.record.contact.website == "https://gone.example.org"
    assert result.record.service_category == "FOOD_BANK"


@pytest.mark.asyncio
async def test_render_timeout_yields_shell_record(pantry_page):
    renderer = FakeRenderer({URL: pantry_page}, delay_s=0.5)
    result = await ExtractionEngine(None, renderer, use_agent=False, render_timeout_s=0.01).extract(URL, "X")
    assert result.error
    assert result.record.name == ""
