"""Provider quality scoring over a rendered page.

Six weighted signals (weights sum to 100); a page passes at ``PASS_SCORE``.
Each check returns ``(points, note)``. Duplicate detection needs the pages
scored before it, so ``QualityScorer`` keeps the normalized texts it has seen.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from provider_scout.models import QualityBreakdown, QualityScore, RenderedPage
from provider_scout.scraper.render import RenderError
from provider_scout.text.normalize import normalize_whitespace
from provider_scout.utils.logging import get_logger, DIM, GREEN, RED, YELLOW, RESET

log = get_logger()

PASS_SCORE = 50

WEIGHTS = {
    "government_sources": 20,
    "clear_contact_info": 20,
    "evidence_of_service": 20,
    "freshness_signal": 15,
    "non_directory_site": 15,
    "duplicate_detection": 10,
}

_GOV_WORDS = ("government", "department", "ministry", "licensed", "licensing", "public health")
_STATE_HOST_RE = re.compile(r"\.state\.[a-z]{2}\.us$", re.IGNORECASE)

_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_PHONE_RE = re.compile(r"(\+?\d{1,2}[\s.-]?)?(\(?\d{3}\)?[\s.-]?)\d{3}[\s.-]?\d{4}")
_CONTACT_RE = re.compile(r"\bcontact\b", re.IGNORECASE)

_SERVICE_PHRASES = (
    "our services",
    "services",
    "we provide",
    "what we do",
    "appointment",
    "schedule",
    "treatment",
    "care",
    "support",
    "pricing",
    "insurance",
)

_FRESHNESS_WORDS = ("last updated", "updated on", "updated:", "posted on", "published on", "recent posts", "blog")
_ISO_DATE_RE = re.compile(r"\b20\d{2}-\d{2}-\d{2}\b")
_MONTH_DATE_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\s+\d{1,2},\s+20\d{2}\b",
    re.IGNORECASE,
)

_DIRECTORY_WORDS = (
    "directory",
    "listings",
    "browse providers",
    "find a provider",
    "search providers",
    "compare providers",
    "top rated",
    "near you",
)


def _partial(weight: int, share: float) -> int:
    return round(weight * share)


def _hrefs(page: RenderedPage) -> list[str]:
    return [link.href for link in page.links if link.href]


def _is_gov_href(href: str) -> bool:
    host = (urlsplit(href).hostname or "").lower()
    return host.endswith(".gov") or bool(_STATE_HOST_RE.search(host))


def check_government_sources(page: RenderedPage) -> tuple[int, str]:
    weight = WEIGHTS["government_sources"]
    if any(_is_gov_href(href) for href in _hrefs(page)):
        return weight, "Found .gov (or similar) link."
    text = page.text.lower()
    if any(word in text for word in _GOV_WORDS):
        return _partial(weight, 0.5), "Found government/licensing wording."
    return 0, "No government source signals."


def check_clear_contact_info(page: RenderedPage) -> tuple[int, str]:
    weight = WEIGHTS["clear_contact_info"]
    hrefs = [href.lower() for href in _hrefs(page)]
    email = bool(_EMAIL_RE.search(page.text)) or any(h.startswith("mailto:") for h in hrefs)
    phone = bool(_PHONE_RE.search(page.text)) or any(h.startswith("tel:") for h in hrefs)
    contact = bool(_CONTACT_RE.search(page.text)) or any("contact" in h for h in hrefs)

    signals = sum((email, phone, contact))
    if signals >= 2:
        return weight, "Strong contact info (email/phone/contact page)."
    if signals == 1:
        return _partial(weight, 0.6), "Some contact info found."
    return 0, "No clear contact info found."


def check_evidence_of_service(page: RenderedPage) -> tuple[int, str]:
    weight = WEIGHTS["evidence_of_service"]
    text = page.text.lower()
    hits = sum(1 for phrase in _SERVICE_PHRASES if phrase in text)
    if hits >= 3:
        return weight, "Evidence of services found (multiple signals)."
    if hits >= 1:
        return _partial(weight, 0.5), "Some service wording found."
    return 0, "No obvious evidence of services."


def check_freshness_signal(page: RenderedPage) -> tuple[int, str]:
    weight = WEIGHTS["freshness_signal"]
    text = page.text.lower()
    has_word = any(word in text for word in _FRESHNESS_WORDS)
    has_date = bool(_ISO_DATE_RE.search(page.text) or _MONTH_DATE_RE.search(page.text))
    if has_word and has_date:
        return weight, "Freshness signals (updated words + date found)."
    if has_word or has_date:
        return _partial(weight, 0.6), "Some freshness signal found."
    return 0, "No freshness signal found."


def check_non_directory_site(page: RenderedPage) -> tuple[int, str]:
    text = page.text.lower()
    if any(word in text for word in _DIRECTORY_WORDS):
        return 0, "Looks like a directory/listing site (penalized)."
    return WEIGHTS["non_directory_site"], "Does not look like a directory site."


def failed_score(url: str, reason: str = "Fetch failed or not HTML.") -> QualityScore:
    return QualityScore(url=url, notes=[reason])


class QualityScorer:
    """Scores pages in order; a page whose text matches an earlier one loses the duplicate points."""

    def __init__(self):
        self._seen: set[str] = set()

    def check_duplicate(self, page: RenderedPage) -> tuple[int, str]:
        key = normalize_whitespace(page.text).lower()
        if key in self._seen:
            return 0, "Duplicate content detected (exact match to earlier site)."
        self._seen.add(key)
        return WEIGHTS["duplicate_detection"], "Not a detected duplicate."

    def score(self, page: RenderedPage) -> QualityScore:
        checks = {
            "government_sources": check_government_sources(page),
            "clear_contact_info": check_clear_contact_info(page),
            "evidence_of_service": check_evidence_of_service(page),
            "freshness_signal": check_freshness_signal(page),
            "non_directory_site": check_non_directory_site(page),
            "duplicate_detection": self.check_duplicate(page),
        }
        breakdown = QualityBreakdown(**{name: points for name, (points, _) in checks.items()})
        total = breakdown.total
        return QualityScore(
            url=page.url,
            score=total,
            passed=total >= PASS_SCORE,
            breakdown=breakdown,
            notes=[note for _, note in checks.values()],
        )


def normalize_site_url(raw: str) -> str | None:
    """One line of a URL list → absolute http(s) URL; blanks and ``#`` comments give None."""
    value = raw.strip()
    if not value or value.startswith("#"):
        return None
    if not re.match(r"^https?://", value, re.IGNORECASE):
        value = f"https://{value}"
    return value if urlsplit(value).hostname else None


async def score_urls(renderer, urls: list[str]) -> list[QualityScore]:
    """Render and score each URL in order; unrenderable URLs score 0 and fail."""
    scorer = QualityScorer()
    results: list[QualityScore] = []
    for url in urls:
        try:
            page = await renderer.render(url)
        except RenderError as e:
            log.warning(f"  {RED}✗{RESET} {url}: {e.reason}")
            results.append(failed_score(url))
            continue
        result = scorer.score(page)
        mark = f"{GREEN}✓{RESET}" if result.passed else f"{YELLOW}✗{RESET}"
        log.info(f"  {mark} {url} {DIM}{result.score}/100{RESET}")
        results.append(result)
    return results
