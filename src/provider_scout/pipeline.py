"""Discovery pipeline: queries → search → merge → extract → write artifacts.

One ``run()`` per (city, state, category):

1. Ask the query generator for exactly ten search queries.
2. Search each query in order, paced by the rate limiter, retrying
   throttled (429) and server (5xx) failures with exponential backoff.
   A query that still fails is recorded with its error and no URLs.
3. Merge the result lists in first-seen order, drop duplicates, cap at
   ``max_urls``. With ``use_directory``, URLs from a statewide directory
   crawler that covers the state come first.
4. Extract each URL sequentially through the extraction engine.
5. Write the query list, the sanity records and the full run to
   ``output_dir``.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Iterable, Sequence

from provider_scout.agents.queries import safe_stem, save_queries_to_file
from provider_scout.config import settings
from provider_scout.directory.base import DirectoryCrawler
from provider_scout.directory.registry import find_crawler
from provider_scout.models import DirectoryCrawlResult, ExtractedRecord, PipelineRun, RunRequest, SearchResult
from provider_scout.search import MAX_RESULTS_PER_QUERY, SearchRateLimitedError, SearchServerError
from provider_scout.utils.logging import get_logger, BOLD, DIM, GREEN, RED, RESET, YELLOW
from provider_scout.utils.rate_limit import RateLimiter

log = get_logger()

_RETRYABLE = (SearchRateLimitedError, SearchServerError)


def merge_urls(results: Iterable[SearchResult], max_urls: int, seed: Iterable[str] = ()) -> list[str]:
    """Union of ``seed`` and all result URLs in first-seen order, truncated to ``max_urls``."""
    merged: list[str] = []
    for url in seed:
        if url not in merged:
            merged.append(url)
    for result in results:
        for url in result.urls:
            if url not in merged:
                merged.append(url)
    return merged[:max_urls]


def clamp_per_query(per_query: int | None) -> int:
    value = per_query or settings.default_per_query
    return max(1, min(value, MAX_RESULTS_PER_QUERY))


class Pipeline:
    def __init__(
        self,
        query_generator,
        searcher,
        engine,
        output_dir: str | Path | None = None,
        search_delay_ms: int | None = None,
        search_max_retries: int | None = None,
        search_retry_base_s: float | None = None,
        search_timeout_s: float | None = None,
        crawlers: Sequence[DirectoryCrawler] = (),
    ):
        self._query_generator = query_generator
        self._searcher = searcher
        self._engine = engine
        self._output_dir = Path(output_dir or settings.output_dir)
        self._rate_limiter = RateLimiter(
            settings.search_delay_ms if search_delay_ms is None else search_delay_ms
        )
        self._max_retries = settings.search_max_retries if search_max_retries is None else search_max_retries
        self._retry_base_s = settings.search_retry_base_s if search_retry_base_s is None else search_retry_base_s
        self._search_timeout_s = search_timeout_s or settings.search_timeout_s
        self._crawlers = list(crawlers)

    async def run(self, request: RunRequest) -> PipelineRun:
        per_query = clamp_per_query(request.per_query)
        max_urls = request.max_urls or settings.default_max_urls
        log.info(
            f"{BOLD}Pipeline{RESET} {request.city}, {request.state} / {request.category} "
            f"{DIM}(per_query={per_query}, max_urls={max_urls}){RESET}"
        )

        queries = await self._query_generator.generate(request.city, request.state, request.category)

        search_results = []
        for i, query in enumerate(queries, 1):
            log.info(f"  [{i}/{len(queries)}] search: {query}")
            search_results.append(await self._search(query, per_query))

        directory = await self._crawl_directory(request, max_urls) if request.use_directory else None
        urls = merge_urls(search_results, max_urls, seed=directory.urls if directory else ())
        log.info(f"  {len(urls)} unique URL(s) to extract")

        extracted: list[ExtractedRecord] = []
        for i, url in enumerate(urls, 1):
            log.info(f"  [{i}/{len(urls)}] extract: {url}")
            extracted.append(await self._engine.extract(url, request.category))

        run = PipelineRun(
            city=request.city,
            state=request.state,
            category=request.category,
            queries=queries,
            search_results=search_results,
            directory=directory,
            candidate_urls=urls,
            extracted=extracted,
        )
        run = self._write_artifacts(run)

        agent_count = sum(1 for item in extracted if item.method == "agent")
        failed = sum(1 for item in extracted if item.error)
        log.info(
            f"{GREEN}Done:{RESET} {len(extracted)} record(s) "
            f"({agent_count} agent, {len(extracted) - agent_count} fallback, {failed} unrenderable)"
        )
        return run

    async def _crawl_directory(self, request: RunRequest, max_urls: int) -> DirectoryCrawlResult | None:
        crawler = find_crawler(self._crawlers, request.state, request.category)
        if crawler is None:
            log.info(f"  {DIM}no statewide directory for {request.state} / {request.category}{RESET}")
            return None
        return await crawler.crawl(request.city, request.state, request.category, max_urls=max_urls)

    async def _search(self, query: str, count: int) -> SearchResult:
        try:
            urls = await self._search_with_retry(query, count)
        except Exception as e:
            reason = str(e) or type(e).__name__
            log.warning(f"  {RED}✗{RESET} search failed for {query!r}: {reason}")
            return SearchResult(query=query, error=reason)
        return SearchResult(query=query, urls=urls)

    async def _search_with_retry(self, query: str, count: int) -> list[str]:
        """Search with exponential backoff on throttling and server errors."""
        for attempt in range(self._max_retries + 1):
            await self._rate_limiter.wait()
            try:
                return await asyncio.wait_for(
                    self._searcher.search(query, count), timeout=self._search_timeout_s
                )
            except _RETRYABLE as e:
                if attempt >= self._max_retries:
                    raise
                wait = self._retry_base_s * (2 ** attempt)
                log.warning(
                    f"  {YELLOW}↻{RESET} search {type(e).__name__}, "
                    f"retry {attempt + 1}/{self._max_retries} in {wait:.1f}s"
                )
                await asyncio.sleep(wait)
        return []

    def _write_artifacts(self, run: PipelineRun) -> PipelineRun:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        stem = safe_stem(run.city, run.category)

        query_file = save_queries_to_file(run.city, run.category, run.queries, self._output_dir)
        sanity_file = self._output_dir / f"{stem}_sanity.json"
        output_file = self._output_dir / f"{stem}_pipeline.json"

        run = run.model_copy(
            update={
                "query_file": str(query_file),
                "sanity_file": str(sanity_file),
                "output_file": str(output_file),
            }
        )
        sanity = [record.model_dump(mode="json", by_alias=True) for record in run.records]
        sanity_file.write_text(json.dumps(sanity, indent=2, ensure_ascii=False), encoding="utf-8")
        output_file.write_text(run.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

        log.info(f"  {DIM}wrote {query_file}, {sanity_file.name}, {output_file.name}{RESET}")
        return run


def build_pipeline(
    use_agent: bool | None = None,
    output_dir: str | Path | None = None,
):
    """Production wiring: OpenAI-compatible completer, Playwright renderer, Brave search,
    statewide directory crawlers sharing the renderer.

    Returns ``(pipeline, renderer)``; the caller closes the renderer when done.
    """
    from provider_scout.agents.llm import ChatCompleter
    from provider_scout.agents.queries import QueryGenerator
    from provider_scout.directory.registry import default_crawlers
    from provider_scout.extract.engine import ExtractionEngine
    from provider_scout.scraper.render import PageRenderer
    from provider_scout.search import BraveSearchClient

    renderer = PageRenderer()
    completer = ChatCompleter()
    engine = ExtractionEngine(completer, renderer, use_agent=use_agent)
    pipeline = Pipeline(
        QueryGenerator(ChatCompleter(run_name="query_generator")),
        BraveSearchClient(),
        engine,
        output_dir=output_dir,
        crawlers=default_crawlers(renderer),
    )
    return pipeline, renderer
