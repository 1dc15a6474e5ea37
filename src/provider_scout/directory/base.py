"""Statewide directory crawlers: provider URL discovery beyond web search.

A crawler covers one state's directory (usually a food-bank network) and
turns its listing page into a ranked list of provider URLs. Subclasses supply
the listing URL, the candidate filter and, optionally, the ranking.
"""

from __future__ import annotations

from provider_scout.models import (
    CrawlIssue,
    CrawlStats,
    DirectoryCrawlResult,
    DirectoryInfo,
    ProviderUrl,
    RenderedPage,
)
from provider_scout.scraper.render import RenderError
from provider_scout.utils.logging import get_logger, GREEN, RED, YELLOW, RESET

log = get_logger()

DEFAULT_DIRECTORY_URLS = 10
MAX_DIRECTORY_URLS = 25


def clamp_directory_urls(max_urls: int | None) -> int:
    return max(1, min(max_urls or DEFAULT_DIRECTORY_URLS, MAX_DIRECTORY_URLS))


class DirectoryCrawler:
    id = ""
    name = ""
    base_url = ""
    state_code = ""
    state_names: tuple[str, ...] = ()
    confidence = "medium"
    wait_for_selector: str | None = None

    def __init__(self, renderer):
        self._renderer = renderer

    def supports(self, state: str, category: str) -> bool:
        return state.strip().lower() in self.state_names and "FOOD" in category.upper()

    def listing_url(self, city: str, state: str, category: str) -> str:
        raise NotImplementedError

    def candidate_urls(self, page: RenderedPage, listing_url: str) -> list[str]:
        raise NotImplementedError

    def rank(self, urls: list[str], limit: int) -> list[str]:
        return urls[:limit]

    async def crawl(
        self, city: str, state: str, category: str, max_urls: int | None = None
    ) -> DirectoryCrawlResult:
        limit = clamp_directory_urls(max_urls)
        result = DirectoryCrawlResult(
            directory=DirectoryInfo(id=self.id, name=self.name, base_url=self.base_url, state=self.state_code),
            city=city,
            state=state,
            category=category,
        )
        listing_url = self.listing_url(city, state, category)
        log.info(f"  directory {self.name}: {listing_url}")

        try:
            page = await self._renderer.render(listing_url, wait_for_selector=self.wait_for_selector)
        except RenderError as e:
            log.warning(f"  {RED}✗{RESET} directory {self.id}: {e}")
            result.errors.append(CrawlIssue(stage="navigate", message=str(e), url=listing_url))
            return result

        candidates = self.candidate_urls(page, listing_url)
        unique = list(dict.fromkeys(candidates))
        urls = self.rank(unique, limit)

        result.provider_urls = [
            ProviderUrl(url=url, confidence=self.confidence, source="listing") for url in urls
        ]
        result.stats = CrawlStats(
            discovered=len(candidates),
            returned=len(urls),
            duplicates_removed=len(candidates) - len(unique),
            pages_visited=1,
        )
        if not urls:
            log.warning(f"  {YELLOW}⚠{RESET} directory {self.id}: no provider links on {listing_url}")
            result.errors.append(
                CrawlIssue(
                    stage="discover",
                    message="No provider-like URLs found (layout changed, results not rendered, or blocked).",
                    url=listing_url,
                )
            )
        else:
            log.info(f"  {GREEN}✓{RESET} directory {self.id}: {len(urls)} provider URL(s)")
        return result
