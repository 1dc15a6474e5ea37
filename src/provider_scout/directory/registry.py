from __future__ import annotations

from typing import Sequence

from provider_scout.directory.base import DirectoryCrawler
from provider_scout.directory.feeding_illinois import FeedingIllinoisCrawler
from provider_scout.directory.food_finder import FoodFinderCrawler
from provider_scout.models import DirectoryCrawlResult


class NoDirectoryError(LookupError):
    def __init__(self, state: str, category: str):
        super().__init__(f"No statewide crawler supports state={state}, category={category}")
        self.state = state
        self.category = category


def default_crawlers(renderer) -> list[DirectoryCrawler]:
    return [FoodFinderCrawler(renderer), FeedingIllinoisCrawler(renderer)]


def find_crawler(crawlers: Sequence[DirectoryCrawler], state: str, category: str) -> DirectoryCrawler | None:
    return next((crawler for crawler in crawlers if crawler.supports(state, category)), None)


async def run_statewide_crawler(
    crawlers: Sequence[DirectoryCrawler],
    city: str,
    state: str,
    category: str,
    max_urls: int | None = None,
) -> DirectoryCrawlResult:
    """Crawl with the first directory that covers ``(state, category)``."""
    crawler = find_crawler(crawlers, state, category)
    if crawler is None:
        raise NoDirectoryError(state, category)
    return await crawler.crawl(city, state, category, max_urls=max_urls)
