from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class TournamentIngestRequest(BaseModel):
    name: str
    state: str | None = None
    city: str | None = None
    source_url: str
    sport: str = Field(min_length=1)
    source: str = "manual"
    source_event_id: str | None = None
    status: str | None = None
    approximate_dates: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    venue: str | None = None
    host_org: str | None = None
    level: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    raw_fields: dict[str, Any] = Field(default_factory=dict)


class UpsertOut(BaseModel):
    tournament_id: str
    created: bool
    changed: bool


class SeriesLinkRequest(BaseModel):
    canonical_id: str


class TournamentOut(BaseModel):
    id: str
    name: str
    slug: str
    sport: str
    level: str | None = None
    state: str | None = None
    city: str | None = None
    venue: str | None = None
    address: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    summary: str | None = None
    host_org: str | None = None
    status: str
    source_url: str
    source_domain: str | None = None
    official_website_url: str | None = None
    confidence: float | None = None
    is_canonical: bool
    canonical_tournament_id: str | None = None
    source_last_seen_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UrlCandidateOut(BaseModel):
    tournament_id: str
    candidate_url: str
    score: float
    candidate_domain: str | None = None
    title: str | None = None
    snippet: str | None = None
    matched_fields: dict[str, Any] = Field(default_factory=dict)
    http_status: int | None = None
    content_type: str | None = None
    final_url: str | None = None
    auto_applied: bool = False
    applied_at: datetime | None = None


class UrlSearchRequest(BaseModel):
    host_org: str | None = None
    auto_apply: bool = False


class UrlSearchOut(BaseModel):
    candidates: list[UrlCandidateOut] = Field(default_factory=list)
    auto_apply_threshold: float
    applied: bool = False


class UrlApplyRequest(BaseModel):
    candidate_url: str


class FromUrlRequest(BaseModel):
    url: str = Field(min_length=1)
    sport: str = Field(min_length=1)
    status: str | None = None
    html: str | None = None


class FromUrlOut(BaseModel):
    tournament_id: str
    created: bool
    changed: bool
    official_url_applied: bool
    name: str | None = None
    summary: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    city: str | None = None
    state: str | None = None
    host_org: str | None = None
    image_url: str | None = None
    warnings: list[str] = Field(default_factory=list)


class EnrichmentOut(BaseModel):
    tournament_id: str
    status: str
    pages: int = 0
    inserted: dict[str, int] = Field(default_factory=dict)
    error_code: str | None = None
