from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for models that cross the JSON boundary (API bodies, output files)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageLink(CamelModel):
    href: str = ""
    text: str = ""


class RenderedPage(CamelModel):
    """One browser render of a URL. Built once by the renderer, never mutated."""

    model_config = ConfigDict(frozen=True)

    url: str
    final_url: str | None = None
    http_status: int | None = None
    fetched_at: datetime = Field(default_factory=utc_now)
    text: str = ""
    links: list[PageLink] = Field(default_factory=list)
    title: str = ""
    description: str = ""
    keywords: str = ""
    social_title: str = ""  # og:title
    social_description: str = ""  # og:description
    structured_data: list[Any] = Field(default_factory=list)  # parsed ld+json blocks
    truncated: bool = False


class GeoPoint(CamelModel):
    lat: float | None = None
    lng: float | None = None


class TimePoint(CamelModel):
    day: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    time: str = Field(pattern=r"^\d{4}$", description="24-hour HHMM")


class Period(CamelModel):
    open: TimePoint
    close: TimePoint


class HoursOfOperation(CamelModel):
    periods: list[Period] = Field(default_factory=list)
    weekday_text: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.periods and not self.weekday_text


class Contact(CamelModel):
    phone: str = ""
    email: str = ""
    website: str = ""


class ServiceRecord(CamelModel):
    """Normalized provider record ("sanity document"). Every key is always present."""

    name: str = ""
    description: str = ""
    address: str = ""
    location: GeoPoint | None = None
    service_category: str = ""
    hours_of_operation: HoursOfOperation = Field(default_factory=HoursOfOperation)
    contact: Contact = Field(default_factory=Contact)


class ExtractedRecord(CamelModel):
    url: str
    record: ServiceRecord
    method: Literal["agent", "fallback"]
    error: str | None = None  # set when the page itself could not be rendered


class SearchResult(CamelModel):
    query: str
    urls: list[str] = Field(default_factory=list)
    error: str | None = None


class DirectoryInfo(CamelModel):
    id: str
    name: str
    base_url: str
    state: str | None = None


class ProviderUrl(CamelModel):
    url: str
    confidence: Literal["high", "medium", "low"]
    source: Literal["listing", "search_result", "map_pin", "pagination"] = "listing"


class CrawlStats(CamelModel):
    discovered: int = 0
    returned: int = 0
    duplicates_removed: int = 0
    pages_visited: int = 0
    blocked_events: int = 0


class CrawlIssue(CamelModel):
    stage: Literal["navigate", "search", "parse", "paginate", "rate_limit", "discover"]
    message: str
    url: str | None = None


class DirectoryCrawlResult(CamelModel):
    """Provider URLs discovered on one statewide directory."""

    directory: DirectoryInfo
    generated_at: datetime = Field(default_factory=utc_now)
    city: str
    state: str
    category: str
    provider_urls: list[ProviderUrl] = Field(default_factory=list)
    stats: CrawlStats = Field(default_factory=CrawlStats)
    errors: list[CrawlIssue] = Field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return [item.url for item in self.provider_urls]


class QualityBreakdown(CamelModel):
    government_sources: int = 0
    clear_contact_info: int = 0
    evidence_of_service: int = 0
    freshness_signal: int = 0
    non_directory_site: int = 0
    duplicate_detection: int = 0

    @property
    def total(self) -> int:
        return (
            self.government_sources
            + self.clear_contact_info
            + self.evidence_of_service
            + self.freshness_signal
            + self.non_directory_site
            + self.duplicate_detection
        )


class QualityScore(CamelModel):
    url: str
    score: int = 0
    passed: bool = Field(default=False, alias="pass")
    breakdown: QualityBreakdown = Field(default_factory=QualityBreakdown)
    notes: list[str] = Field(default_factory=list)


class RunRequest(CamelModel):
    city: str
    state: str
    category: str
    per_query: int | None = Field(default=None, gt=0)
    max_urls: int | None = Field(default=None, gt=0)
    use_directory: bool = False  # seed candidates from a statewide directory when one covers the state

    @field_validator("city", "state", "category")
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class PipelineRun(CamelModel):
    city: str
    state: str
    category: str
    generated_at: datetime = Field(default_factory=utc_now)
    queries: list[str] = Field(default_factory=list)
    search_results: list[SearchResult] = Field(default_factory=list)
    directory: DirectoryCrawlResult | None = None
    candidate_urls: list[str] = Field(default_factory=list)
    extracted: list[ExtractedRecord] = Field(default_factory=list)
    query_file: str | None = None
    sanity_file: str | None = None
    output_file: str | None = None

    @property
    def records(self) -> list[ServiceRecord]:
        return [item.record for item in self.extracted]


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    READY_FOR_REVIEW = "ready_for_review"
    FAILED = "failed"
    APPROVED = "approved"
    DENIED = "denied"


class Job(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.QUEUED
    input: RunRequest
    output: PipelineRun | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    reviewer: str | None = None
    approved_at: datetime | None = None
    denied_at: datetime | None = None


class ReviewRequest(CamelModel):
    reviewer: str | None = None
