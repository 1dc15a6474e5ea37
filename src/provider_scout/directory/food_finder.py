"""Oregon Food Bank FoodFinder: provider detail pages under the finder's own site."""

from __future__ import annotations

from urllib.parse import quote

from provider_scout.directory.base import DirectoryCrawler
from provider_scout.models import RenderedPage

FOOD_FINDER_BASE = "https://foodfinder.oregonfoodbank.org/"

_NON_PROVIDER_PATHS = ("/privacy", "/terms", "/about")


def search_query(city: str, state: str, category: str) -> str:
    label = category.replace("_", " ").strip().lower() or "food pantry"
    return f"{label} {city.strip()}, {state.strip()}"


def is_provider_like(url: str, search_url: str) -> bool:
    if not url.startswith(FOOD_FINDER_BASE):
        return False
    if url in (FOOD_FINDER_BASE, search_url):
        return False
    if any(path in url for path in _NON_PROVIDER_PATHS):
        return False
    # Another search results page
    if "?campaign=" in url and "&distance=" in url and "&q=" in url:
        return False
    return True


class FoodFinderCrawler(DirectoryCrawler):
    id = "oregon_food_finder"
    name = "Oregon Food Bank Food Finder"
    base_url = FOOD_FINDER_BASE
    state_code = "OR"
    state_names = ("or", "oregon")
    confidence = "high"
    wait_for_selector = "[role='listitem'] a[href], article a[href]"

    def listing_url(self, city: str, state: str, category: str) -> str:
        q = quote(search_query(city, state, category), safe="")
        return f"{FOOD_FINDER_BASE}?campaign=0&distance=nearby&q={q}"

    def candidate_urls(self, page: RenderedPage, listing_url: str) -> list[str]:
        return [link.href for link in page.links if is_provider_like(link.href, listing_url)]
