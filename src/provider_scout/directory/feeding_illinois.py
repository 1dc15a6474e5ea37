"""Feeding Illinois member food banks: external provider sites linked from one list page.

The list links each member's own website, often several pages per site, so
the crawler keeps the most homepage-like URL per host.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from provider_scout.directory.base import DirectoryCrawler
from provider_scout.models import RenderedPage

FEEDING_IL_BASE = "https://www.feedingillinois.org/"
FEEDING_IL_LIST = "https://www.feedingillinois.org/food-banks"

_JUNK_SCHEMES = ("mailto:", "tel:", "javascript:")
_JUNK_HOSTS = (
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "youtube.com",
    "squarespace.com",
    "squarespace-cdn.com",
    "sqspcdn.com",
    "fonts.googleapis.com",
    "fonts.gstatic.com",
    "googletagmanager.com",
    "google-analytics.com",
)
_ASSET_SUFFIXES = (
    ".pdf", ".jpg", ".jpeg", ".png", ".webp", ".svg", ".ico", ".css", ".js", ".woff", ".woff2", ".ttf",
)


def looks_like_junk_link(url: str) -> bool:
    lower = url.lower()
    if lower.startswith(_JUNK_SCHEMES):
        return True
    host = (urlsplit(lower).hostname or "").removeprefix("www.")
    if any(host == junk or host.endswith("." + junk) for junk in _JUNK_HOSTS):
        return True
    return lower.endswith(_ASSET_SUFFIXES)


def score_provider_url(url: str) -> int:
    """Higher is a better representative homepage: shallow paths, no action pages, no .gov."""
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    path = parts.path.rstrip("/")

    score = 0
    if host.endswith(".gov"):
        score -= 50
    depth = len([segment for segment in path.split("/") if segment])
    score += max(0, 20 - depth * 5)
    if "donate" in path:
        score -= 5
    if "volunteer" in path:
        score -= 5
    if "give" in path:
        score -= 3
    if "help" in path:
        score -= 2
    if "map" in path or "locations" in path:
        score -= 2
    if not path:
        score += 10
    return score


def pick_best_per_domain(urls: list[str], limit: int) -> list[str]:
    best: dict[str, str] = {}
    for url in urls:
        host = (urlsplit(url).hostname or "").lower()
        if not host:
            continue
        current = best.get(host)
        if current is None or score_provider_url(url) > score_provider_url(current):
            best[host] = url
    # sorted() is stable, so equal scores keep first-seen order
    return sorted(best.values(), key=score_provider_url, reverse=True)[:limit]


class FeedingIllinoisCrawler(DirectoryCrawler):
    id = "feeding_illinois_food_banks"
    name = "Feeding Illinois Food Banks"
    base_url = FEEDING_IL_LIST
    state_code = "IL"
    state_names = ("il", "illinois")
    confidence = "medium"

    def listing_url(self, city: str, state: str, category: str) -> str:
        return FEEDING_IL_LIST

    def candidate_urls(self, page: RenderedPage, listing_url: str) -> list[str]:
        urls = []
        for link in page.links:
            href = link.href.strip()
            if not href.startswith(("http://", "https://")) or looks_like_junk_link(href):
                continue
            # The directory itself is not a provider
            if href.lower().startswith(FEEDING_IL_BASE):
                continue
            urls.append(href)
        return urls

    def rank(self, urls: list[str], limit: int) -> list[str]:
        return pick_best_per_domain(urls, limit)
