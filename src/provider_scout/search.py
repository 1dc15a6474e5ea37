"""Brave Search web API client: query -> result URLs."""

from __future__ import annotations

import re

import httpx

from provider_scout.config import settings
from provider_scout.utils.logging import get_logger, DIM, RESET

log = get_logger()

MAX_RESULTS_PER_QUERY = 20

_HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


class SearchError(Exception):
    """Search request failed and should not be retried."""


class SearchRateLimitedError(SearchError):
    """HTTP 429 from the search provider."""


class SearchServerError(SearchError):
    """HTTP 5xx from the search provider."""


def clamp_count(count: int | None) -> int:
    if not count or count <= 0:
        return 1
    return min(int(count), MAX_RESULTS_PER_QUERY)


def result_urls(data: dict) -> list[str]:
    """``web.results[].url`` (or ``link``) values that are http(s), de-duplicated in order."""
    results = ((data or {}).get("web") or {}).get("results") or []
    urls: list[str] = []
    for item in results:
        if not isinstance(item, dict):
            continue
        raw = item.get("url") or item.get("link") or ""
        if isinstance(raw, str) and _HTTP_URL_RE.match(raw) and raw not in urls:
            urls.append(raw)
    return urls


class BraveSearchClient:
    """Single-attempt search calls. Retry and pacing belong to the caller."""

    def __init__(
        self,
        api_key: str | None = None,
        endpoint: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = settings.brave_search_api_key if api_key is None else api_key
        self._endpoint = endpoint or settings.brave_search_url
        self._timeout_s = timeout_s or settings.search_timeout_s
        self._transport = transport

    async def search(self, query: str, count: int) -> list[str]:
        if not self._api_key:
            raise SearchError("Missing BRAVE_SEARCH_API_KEY in environment.")

        params = {"q": query, "count": str(clamp_count(count)), "source": "web"}
        headers = {"Accept": "application/json", "X-Subscription-Token": self._api_key}
        async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
            response = await client.get(self._endpoint, params=params, headers=headers)

        if response.status_code == 429:
            raise SearchRateLimitedError(f"Brave Search API rate limited (429): {response.text[:200]}")
        if response.status_code >= 500:
            raise SearchServerError(f"Brave Search API error {response.status_code}: {response.text[:200]}")
        if not response.is_success:
            raise SearchError(f"Brave Search API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SearchError("Failed to parse Brave Search API response JSON.") from e

        urls = result_urls(data if isinstance(data, dict) else {})
        log.debug(f"  {DIM}{len(urls)} result(s) for {query!r}{RESET}")
        return urls
