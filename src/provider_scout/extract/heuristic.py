"""Deterministic ServiceRecord extraction from a rendered page.

No network, no model. Each field is a cascade: an ordered list of small
extractors, each returning an optional value, combined with first-non-empty
semantics. Sources, most trusted first: social preview (og:*) tags, standard
meta tags, JSON-LD structured data, then the visible text.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Iterable
from urllib.parse import urldefrag, urljoin, urlsplit

from provider_scout.models import (
    Contact,
    GeoPoint,
    HoursOfOperation,
    PageLink,
    RenderedPage,
    ServiceRecord,
)
from provider_scout.text.hours import extract_hours_waterfall
from provider_scout.text.normalize import (
    clean_text_lines,
    first_non_empty,
    normalize_text,
    to_origin,
)

DESCRIPTION_MAX = 240

# Secondary pages likely to list hours, best first
HOURS_LINK_KEYWORDS: list[tuple[str, int]] = [
    ("hours", 100),
    ("ourservices", 95),
    ("services", 90),
    ("service", 85),
    ("programs", 80),
    ("program", 75),
    ("contact", 70),
    ("about", 60),
    ("locations", 55),
    ("location", 50),
]

_SENTENCE_RE = re.compile(r"^(.*?[.!?])\s")
_ADDRESS_PARTS = ("streetAddress", "addressLocality", "addressRegion", "postalCode", "addressCountry")


def collect_ld_objects(data: Any) -> list[dict[str, Any]]:
    """Flatten JSON-LD blocks into a list of objects, following ``@graph``."""
    out: list[dict[str, Any]] = []
    stack: list[Any] = list(reversed(data)) if isinstance(data, list) else [data]
    while stack:
        item = stack.pop()
        if not item:
            continue
        if isinstance(item, list):
            stack.extend(reversed(item))
            continue
        if isinstance(item, dict):
            out.append(item)
            graph = item.get("@graph")
            if graph:
                stack.append(graph)
    return out


def _cascade(extractors: Iterable[Callable[[], str | None]]) -> str:
    for extractor in extractors:
        value = first_non_empty([extractor()])
        if value:
            return value
    return ""


# --- Name / description ---


def ld_name(items: list[dict[str, Any]]) -> str | None:
    for item in items:
        name = item.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        if isinstance(name, list):
            first = first_non_empty(v for v in name if isinstance(v, str))
            if first:
                return first
    return None


def ld_description(items: list[dict[str, Any]]) -> str | None:
    for item in items:
        description = item.get("description")
        if isinstance(description, str) and description.strip():
            return description.strip()
    return None


def summarize_text(text: str, max_len: int = DESCRIPTION_MAX) -> str:
    """First sentence of the de-noised page text, else its first ``max_len`` chars."""
    cleaned = " ".join(clean_text_lines(text))
    if not cleaned:
        return ""
    m = _SENTENCE_RE.match(cleaned)
    if m:
        return m.group(1)[:max_len]
    return cleaned[:max_len]


def extract_name(page: RenderedPage, items: list[dict[str, Any]]) -> str:
    return normalize_text(
        _cascade([
            lambda: page.social_title,
            lambda: page.title,
            lambda: ld_name(items),
        ])
    )


def extract_description(page: RenderedPage, items: list[dict[str, Any]]) -> str:
    return normalize_text(
        _cascade([
            lambda: page.social_description,
            lambda: page.description,
            lambda: ld_description(items),
            lambda: summarize_text(page.text),
        ])
    )


# --- Address / geo ---


def extract_address(items: list[dict[str, Any]]) -> str:
    for item in items:
        address = item.get("address")
        if isinstance(address, str) and address.strip():
            return normalize_text(address)
        if isinstance(address, dict):
            parts = [address.get(key) for key in _ADDRESS_PARTS]
            parts = [p.strip() for p in parts if isinstance(p, str) and p.strip()]
            if parts:
                return ", ".join(parts)
    return ""


def to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _first_present(obj: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if obj.get(key) is not None:
            return obj[key]
    return None


def extract_geo(items: list[dict[str, Any]]) -> GeoPoint | None:
    for item in items:
        geo = item.get("geo")
        if not isinstance(geo, dict):
            continue
        lat = to_number(_first_present(geo, "latitude", "lat"))
        lng = to_number(_first_present(geo, "longitude", "lng", "lon"))
        if lat is not None or lng is not None:
            return GeoPoint(lat=lat, lng=lng)
    return None


# --- Contact ---


def _href_value(href: str, scheme_len: int) -> str:
    return re.split(r"[?#]", href[scheme_len:], maxsplit=1)[0].strip()


def extract_contact(links: list[PageLink], website: str) -> Contact:
    phone = ""
    email = ""
    for link in links:
        href = (link.href or "").strip()
        lower = href.lower()
        if not phone and lower.startswith("tel:"):
            phone = _href_value(href, 4)
        if not email and lower.startswith("mailto:"):
            email = _href_value(href, 7)
        if phone and email:
            break
    return Contact(phone=phone, email=email, website=website)


def page_website(page: RenderedPage, fallback_url: str = "") -> str:
    return to_origin(first_non_empty([page.final_url, page.url, fallback_url]))


# --- Hours ---


def extract_hours(page: RenderedPage) -> HoursOfOperation:
    return extract_hours_waterfall(collect_ld_objects(page.structured_data), page.text)


def hours_candidate_links(page: RenderedPage, base_url: str | None = None) -> list[str]:
    """Same-origin links likely to hold opening hours, best first.

    Links are scored by the strongest keyword found in their path+query or
    link text. The page's own URL, off-site links and duplicates are skipped.
    """
    base_url = base_url or page.final_url or page.url
    base = urlsplit(base_url)
    base_origin = (base.scheme, base.netloc)
    base_key = urldefrag(base_url)[0]

    seen: set[str] = set()
    scored: list[tuple[int, str]] = []
    for link in page.links:
        href = (link.href or "").strip()
        if not href:
            continue
        absolute = urldefrag(urljoin(base_url, href))[0]
        parts = urlsplit(absolute)
        if parts.scheme not in ("http", "https"):
            continue
        if base.netloc and (parts.scheme, parts.netloc) != base_origin:
            continue
        if absolute == base_key or absolute in seen:
            continue

        path = f"{parts.path}?{parts.query}".lower() if parts.query else parts.path.lower()
        text = (link.text or "").lower()
        score = max(
            (weight for key, weight in HOURS_LINK_KEYWORDS if key in path or key in text),
            default=0,
        )
        if score > 0:
            seen.add(absolute)
            scored.append((score, absolute))

    # sorted() is stable, so equal scores keep page order
    return [url for _, url in sorted(scored, key=lambda pair: -pair[0])]


# --- Record assembly ---


def build_service_record(
    page: RenderedPage,
    category: str,
    fallback_url: str = "",
    hours: HoursOfOperation | None = None,
) -> ServiceRecord:
    """Assemble a ServiceRecord from one rendered page.

    ``hours`` overrides the page's own hours (e.g. hours found on a linked
    "Hours" page during probing).
    """
    items = collect_ld_objects(page.structured_data)
    website = page_website(page, fallback_url)
    if hours is None:
        hours = extract_hours_waterfall(items, page.text)

    return ServiceRecord(
        name=extract_name(page, items) or website,
        description=extract_description(page, items),
        address=extract_address(items),
        location=extract_geo(items),
        service_category=category,
        hours_of_operation=hours,
        contact=extract_contact(page.links, website),
    )


def empty_service_record(url: str, category: str) -> ServiceRecord:
    """Shape-complete placeholder for a URL that could not be rendered."""
    return ServiceRecord(service_category=category, contact=Contact(website=to_origin(url)))
