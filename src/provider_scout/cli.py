"""Click CLI entry point.

Usage:
    provider-scout run Salem OR FOOD_BANK --per-query 3 --max-urls 10
    provider-scout run "Portland" OR SHELTER --no-agent --output-dir out
    provider-scout run Salem OR FOOD_BANK --directory
    provider-scout queries Salem OR FOOD_BANK
    provider-scout extract https://example.org --category FOOD_BANK
    provider-scout crawl Salem OR FOOD_BANK --max-urls 10
    provider-scout score example.org https://pantry.example.org --file websites.txt
    provider-scout serve --port 3000
"""

from __future__ import annotations

import asyncio

import click

from provider_scout.config import settings
from provider_scout.utils.logging import GREEN, BOLD, DIM, RESET, get_logger

log = get_logger()


@click.group()
def cli() -> None:
    """Social-service provider discovery and extraction CLI."""
    pass


@cli.command()
@click.argument("city")
@click.argument("state")
@click.argument("category")
@click.option("--per-query", default=None, type=click.IntRange(min=1), help="Search results per query (clamped to 20)")
@click.option("--max-urls", default=None, type=click.IntRange(min=1), help="Max URLs to extract after merging")
@click.option("--output-dir", default=None, help="Directory for the query, sanity and pipeline files")
@click.option("--directory", is_flag=True, help="Also seed candidates from a statewide directory, when one covers STATE")
@click.option("--no-agent", is_flag=True, help="Skip the LLM agent and use heuristic extraction only")
def run(
    city: str,
    state: str,
    category: str,
    per_query: int | None,
    max_urls: int | None,
    output_dir: str | None,
    no_agent: bool,
    directory: bool,
) -> None:
    """Run the full pipeline once for CITY, STATE and CATEGORY."""
    asyncio.run(_run(city, state, category, per_query, max_urls, output_dir, no_agent, directory))


async def _run(
    city: str,
    state: str,
    category: str,
    per_query: int | None,
    max_urls: int | None,
    output_dir: str | None,
    no_agent: bool,
    directory: bool,
) -> None:
    from provider_scout.models import RunRequest
    from provider_scout.pipeline import build_pipeline

    request = RunRequest(
        city=city,
        state=state,
        category=category,
        per_query=per_query,
        max_urls=max_urls,
        use_directory=directory,
    )
    pipeline, renderer = build_pipeline(use_agent=False if no_agent else None, output_dir=output_dir)
    try:
        result = await pipeline.run(request)
    finally:
        await renderer.close()

    log.info(f"\n{GREEN}{BOLD}Pipeline complete{RESET}")
    log.info(f"  Queries:  {result.query_file}")
    log.info(f"  Sanity:   {result.sanity_file}")
    log.info(f"  Pipeline: {result.output_file}")


@cli.command()
@click.argument("city")
@click.argument("state")
@click.argument("category")
@click.option("--output-dir", default=None, help="Directory for the query file")
def queries(city: str, state: str, category: str, output_dir: str | None) -> None:
    """Generate and save ten search queries for CITY, STATE and CATEGORY."""
    asyncio.run(_queries(city, state, category, output_dir))


async def _queries(city: str, state: str, category: str, output_dir: str | None) -> None:
    from provider_scout.agents.llm import ChatCompleter
    from provider_scout.agents.queries import QueryGenerator, save_queries_to_file

    generated = await QueryGenerator(ChatCompleter(run_name="query_generator")).generate(city, state, category)
    for query in generated:
        click.echo(query)
    path = save_queries_to_file(city, category, generated, output_dir or settings.output_dir)
    log.info(f"{DIM}Saved to {path}{RESET}")


@cli.command()
@click.argument("url")
@click.option("--category", required=True, help="Service category to assign (e.g. FOOD_BANK)")
@click.option("--no-agent", is_flag=True, help="Skip the LLM agent and use heuristic extraction only")
def extract(url: str, category: str, no_agent: bool) -> None:
    """Extract one provider record from URL and print it as JSON."""
    asyncio.run(_extract(url, category, no_agent))


async def _extract(url: str, category: str, no_agent: bool) -> None:
    from provider_scout.extract.engine import ExtractionEngine
    from provider_scout.scraper.render import PageRenderer

    renderer = PageRenderer()
    completer = None
    if not no_agent:
        from provider_scout.agents.llm import ChatCompleter

        completer = ChatCompleter()
    try:
        result = await ExtractionEngine(completer, renderer, use_agent=not no_agent).extract(url, category)
    finally:
        await renderer.close()
    click.echo(result.model_dump_json(by_alias=True, indent=2))


@cli.command()
@click.argument("city")
@click.argument("state")
@click.argument("category")
@click.option("--max-urls", default=None, type=click.IntRange(min=1), help="Max provider URLs (clamped to 25)")
def crawl(city: str, state: str, category: str, max_urls: int | None) -> None:
    """List provider URLs from the statewide directory covering STATE."""
    asyncio.run(_crawl(city, state, category, max_urls))


async def _crawl(city: str, state: str, category: str, max_urls: int | None) -> None:
    from provider_scout.directory.registry import NoDirectoryError, default_crawlers, run_statewide_crawler
    from provider_scout.scraper.render import PageRenderer

    renderer = PageRenderer()
    try:
        result = await run_statewide_crawler(default_crawlers(renderer), city, state, category, max_urls)
    except NoDirectoryError as e:
        raise click.ClickException(str(e)) from e
    finally:
        await renderer.close()
    click.echo(result.model_dump_json(by_alias=True, indent=2))


@cli.command()
@click.argument("urls", nargs=-1)
@click.option("--file", "url_file", type=click.Path(exists=True, dir_okay=False), help="File with one URL per line")
@click.option("--limit", default=5, show_default=True, type=click.IntRange(min=1), help="Max URLs to score")
def score(urls: tuple[str, ...], url_file: str | None, limit: int) -> None:
    """Score provider websites on six quality signals (pass at 50/100)."""
    lines = list(urls)
    if url_file:
        with open(url_file, encoding="utf-8") as f:
            lines.extend(f.read().splitlines())
    asyncio.run(_score(lines, limit))


async def _score(lines: list[str], limit: int) -> None:
    from provider_scout.quality import PASS_SCORE, normalize_site_url, score_urls
    from provider_scout.scraper.render import PageRenderer

    targets = [url for url in (normalize_site_url(line) for line in lines) if url][:limit]
    if not targets:
        raise click.UsageError("No valid URLs to score")

    renderer = PageRenderer()
    try:
        results = await score_urls(renderer, targets)
    finally:
        await renderer.close()

    for result in results:
        click.echo(result.model_dump_json(by_alias=True, indent=2))
    passed = sum(1 for result in results if result.passed)
    log.info(f"{BOLD}Passed: {passed}/{len(results)}{RESET} {DIM}(pass >= {PASS_SCORE}){RESET}")


@cli.command()
@click.option("--host", default=None, help="Bind address (default from HOST)")
@click.option("--port", default=None, type=int, help="Port (default from PORT)")
def serve(host: str | None, port: int | None) -> None:
    """Run the job API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "provider_scout.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
