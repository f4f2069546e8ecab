from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

SourceType = Literal["table_listing", "venue_calendar", "state_directory"]
SweepStatus = Literal["success", "partial", "failed"]
TournamentStatus = Literal["draft", "published", "stale", "archived"]

SOURCE_TYPES: tuple[str, ...] = ("table_listing", "venue_calendar", "state_directory")
SWEEP_STATUSES: tuple[str, ...] = ("success", "partial", "failed")
TOURNAMENT_STATUSES: tuple[str, ...] = ("draft", "published", "stale", "archived")

# Fields a re-sweep may overwrite with non-null values.
MUTABLE_TOURNAMENT_FIELDS: tuple[str, ...] = (
    "sport",
    "level",
    "venue",
    "address",
    "start_date",
    "end_date",
    "summary",
    "host_org",
    "source_url",
    "source_domain",
    "confidence",
)


@dataclass(slots=True)
class SourceRecord:
    id: str
    canonical_url: str
    host: str
    source_type: str
    sport: str
    state: str | None
    city: str | None
    notes: str | None
    is_active: bool
    last_swept_at: datetime | None
    last_sweep_status: str | None
    last_sweep_summary: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class CandidateEventRecord:
    name: str
    state: str | None
    source_url: str
    approximate_dates: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    city: str | None = None
    venue: str | None = None
    host_org: str | None = None
    website_url: str | None = None
    level: str | None = None
    raw_fields: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TournamentUpsert:
    slug: str
    name: str
    sport: str
    state: str | None
    city: str | None
    status: str
    source_url: str
    source_domain: str | None
    level: str | None = None
    venue: str | None = None
    address: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    summary: str | None = None
    host_org: str | None = None
    confidence: float | None = None


@dataclass(slots=True)
class ListingUpsert:
    source: str
    source_event_id: str
    source_url: str
    source_domain: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class UpsertOutcome:
    tournament_id: str
    created: bool
    changed: bool


@dataclass(slots=True)
class TournamentRecord:
    id: str
    name: str
    slug: str
    sport: str
    level: str | None
    state: str | None
    city: str | None
    venue: str | None
    address: str | None
    start_date: date | None
    end_date: date | None
    summary: str | None
    host_org: str | None
    status: str
    source_url: str
    source_domain: str | None
    official_website_url: str | None
    confidence: float | None
    is_canonical: bool
    canonical_tournament_id: str | None
    source_last_seen_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class UrlCandidate:
    tournament_id: str
    candidate_url: str
    score: float
    candidate_domain: str | None = None
    title: str | None = None
    snippet: str | None = None
    matched_fields: dict[str, Any] = field(default_factory=dict)
    http_status: int | None = None
    content_type: str | None = None
    final_url: str | None = None
    auto_applied: bool = False
    applied_at: datetime | None = None


@dataclass(slots=True)
class CandidateFact:
    id: str
    tournament_id: str
    kind: str
    fields: dict[str, Any]
    content_signature: str
    accepted_at: datetime | None
    rejected_at: datetime | None
    created_at: datetime


@dataclass(slots=True)
class ScoreAggregate:
    entity_id: str
    segment: str | None
    percent_score: int
    review_count: int
    summary: str


@dataclass(slots=True)
class ScoreRebuildResult:
    processed: int
    upserted: int
    deleted: int


@dataclass(slots=True)
class DeadDomainRecord:
    domain: str
    failure_count: int
    last_error: str | None
    first_failed_at: datetime
    last_checked_at: datetime
