import json
import time

import pytest

from fakes import FakeQueryGenerator, FakeRenderer, FakeSearcher, page
from provider_scout.agents.queries import QueryGenerationError
from provider_scout.directory.food_finder import FoodFinderCrawler
from provider_scout.extract.engine import ExtractionEngine
from provider_scout.models import RunRequest, SearchResult
from provider_scout.pipeline import Pipeline, clamp_per_query, merge_urls
from provider_scout.search import SearchError, SearchRateLimitedError, SearchServerError
from provider_scout.utils.rate_limit import RateLimiter

QUERIES = [f"food pantry Salem OR {i}" for i in range(10)]
A, B, C = "https://a.example.org/", "https://b.example.org/", "https://c.example.org/"


def _pipeline(tmp_path, searcher, renderer=None, queries=QUERIES, **kwargs):
    renderer = renderer or FakeRenderer({
        A: page(A, title="Pantry A", text="Monday 9am - 5pm"),
        B: page(B, title="Pantry B"),
    })
    engine = ExtractionEngine(None, renderer, use_agent=False, hours_link_limit=0)
    options = {"search_delay_ms": 0, "search_max_retries": 2, "search_retry_base_s": 0}
    options.update(kwargs)
    return Pipeline(FakeQueryGenerator(queries), searcher, engine, output_dir=tmp_path, **options)


def test_merge_urls_first_seen_order():
    results = [SearchResult(query="q1", urls=[A, B]), SearchResult(query="q2", urls=[B, C])]
    assert merge_urls(results, 10) == [A, B, C]
    assert merge_urls(results, 2) == [A, B]
    assert merge_urls([], 5) == []
    assert merge_urls(results, 10, seed=[C, A]) == [C, A, B]


def test_clamp_per_query():
    assert clamp_per_query(None) == 3
    assert clamp_per_query(50) == 20
    assert clamp_per_query(5) == 5


@pytest.mark.asyncio
async def test_salem_run_writes_three_artifacts(tmp_path):
    searcher = FakeSearcher(results={QUERIES[0]: [A, B], QUERIES[1]: [B, C]})
    run = await _pipeline(tmp_path, searcher).run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))

    assert run.queries == QUERIES
    assert run.candidate_urls == [A, B, C]
    assert [item.url for item in run.extracted] == [A, B, C]
    assert all(item.method == "fallback" for item in run.extracted)
    assert run.extracted[2].error
    assert run.extracted[0].record.hours_of_operation.weekday_text == ["Monday 9am - 5pm"]
    assert [q for q, _ in searcher.calls] == QUERIES
    assert all(count == 3 for _, count in searcher.calls)

    query_file = tmp_path / "Salem_FOOD_BANK_queries.txt"
    assert run.query_file == str(query_file)
    assert query_file.read_text(encoding="utf-8").split("\n") == QUERIES

    sanity = json.loads((tmp_path / "Salem_FOOD_BANK_sanity.json").read_text(encoding="utf-8"))
    assert len(sanity) == 3
    assert {doc["serviceCategory"] for doc in sanity} == {"FOOD_BANK"}
    assert sanity[0]["name"] == "Pantry A"
    assert "hoursOfOperation" in sanity[2]

    output = json.loads((tmp_path / "Salem_FOOD_BANK_pipeline.json").read_text(encoding="utf-8"))
    assert output["candidateUrls"] == [A, B, C]
    assert output["sanityFile"] == str(tmp_path / "Salem_FOOD_BANK_sanity.json")
    assert len(output["searchResults"]) == 10


@pytest.mark.asyncio
async def test_max_urls_and_per_query_are_applied(tmp_path):
    urls = [f"https://x.example.org/{i}" for i in range(30)]
    searcher = FakeSearcher(default=urls)
    run = await _pipeline(tmp_path, searcher).run(
        RunRequest(city="Salem", state="OR", category="FOOD_BANK", per_query=50, max_urls=4)
    )
    assert all(count == 20 for _, count in searcher.calls)
    assert run.candidate_urls == urls[:4]
    assert len(run.extracted) == 4


@pytest.mark.asyncio
async def test_rate_limited_search_is_retried(tmp_path):
    searcher = FakeSearcher(scripts={QUERIES[0]: [SearchRateLimitedError("429"), [A]]})
    run = await _pipeline(tmp_path, searcher).run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))

    assert [q for q, _ in searcher.calls].count(QUERIES[0]) == 2
    assert run.search_results[0].urls == [A]
    assert run.search_results[0].error is None


@pytest.mark.asyncio
async def test_exhausted_retries_record_error_and_continue(tmp_path):
    searcher = FakeSearcher(scripts={QUERIES[0]: [SearchServerError("503")]}, results={QUERIES[1]: [B]})
    run = await _pipeline(tmp_path, searcher).run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))

    assert [q for q, _ in searcher.calls].count(QUERIES[0]) == 3
    assert run.search_results[0].urls == []
    assert "503" in run.search_results[0].error
    assert run.candidate_urls == [B]


@pytest.mark.asyncio
async def test_other_search_errors_are_not_retried(tmp_path):
    searcher = FakeSearcher(scripts={QUERIES[0]: [SearchError("403 forbidden")]})
    run = await _pipeline(tmp_path, searcher).run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))

    assert [q for q, _ in searcher.calls].count(QUERIES[0]) == 1
    assert run.search_results[0].error == "403 forbidden"


@pytest.mark.asyncio
async def test_query_generation_failure_propagates(tmp_path):
    pipeline = _pipeline(tmp_path, FakeSearcher(), queries=QueryGenerationError("only 3 queries"))
    with pytest.raises(QueryGenerationError):
        await pipeline.run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))
    assert not (tmp_path / "Salem_FOOD_BANK_sanity.json").exists()


@pytest.mark.asyncio
async def test_whitespace_in_names_becomes_underscores(tmp_path):
    run = await _pipeline(tmp_path, FakeSearcher()).run(
        RunRequest(city=" Salem Keizer ", state="OR", category="FOOD BANK")
    )
    assert run.city == "Salem Keizer"
    assert (tmp_path / "Salem_Keizer_FOOD_BANK_queries.txt").exists()
    assert json.loads((tmp_path / "Salem_Keizer_FOOD_BANK_sanity.json").read_text()) == []


@pytest.mark.asyncio
async def test_rate_limiter_spaces_calls():
    limiter = RateLimiter(delay_ms=50)
    start = time.monotonic()
    await limiter.wait()
    first = time.monotonic() - start
    await limiter.wait()
    assert first < 0.04
    assert time.monotonic() - start >= 0.045


@pytest.mark.asyncio
async def test_directory_urls_seed_candidates(tmp_path):
    listing = FoodFinderCrawler(None).listing_url("Salem", "OR", "FOOD_BANK")
    location = "https://foodfinder.oregonfoodbank.org/locations/7"
    renderer = FakeRenderer({
        listing: page(listing, links=[{"href": location}]),
        location: page(location, title="Pantry D"),
        A: page(A, title="Pantry A"),
    })
    searcher = FakeSearcher(results={QUERIES[0]: [A, location]})
    pipeline = _pipeline(tmp_path, searcher, renderer, crawlers=[FoodFinderCrawler(renderer)])

    run = await pipeline.run(RunRequest(city="Salem", state="OR", category="FOOD_BANK", use_directory=True))

    assert run.directory.urls == [location]
    assert run.candidate_urls == [location, A]
    output = json.loads((tmp_path / "Salem_FOOD_BANK_pipeline.json").read_text(encoding="utf-8"))
    assert output["directory"]["providerUrls"][0]["url"] == location


@pytest.mark.asyncio
async def test_directory_is_skipped_unless_requested(tmp_path):
    renderer = FakeRenderer({A: page(A, title="Pantry A")})
    searcher = FakeSearcher(results={QUERIES[0]: [A]})
    pipeline = _pipeline(tmp_path, searcher, renderer, crawlers=[FoodFinderCrawler(renderer)])

    run = await pipeline.run(RunRequest(city="Salem", state="OR", category="FOOD_BANK"))
    assert run.directory is None
    assert renderer.calls == [A]

    run = await pipeline.run(RunRequest(city="Austin", state="TX", category="FOOD_BANK", use_directory=True))
    assert run.directory is None
