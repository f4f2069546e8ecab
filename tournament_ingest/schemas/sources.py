from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

SourceType = Literal["table_listing", "venue_calendar", "state_directory"]


class SourceCreateRequest(BaseModel):
    url: str = Field(min_length=1)
    source_type: SourceType
    sport: str = Field(min_length=1)
    state: str | None = Field(default=None, max_length=2)
    city: str | None = None
    notes: str | None = None
    is_active: bool = True


class SourceActiveRequest(BaseModel):
    is_active: bool


class SweepRequest(BaseModel):
    html: str | None = None


class SourceOut(BaseModel):
    id: str
    canonical_url: str
    host: str
    source_type: str
    sport: str
    state: str | None = None
    city: str | None = None
    notes: str | None = None
    is_active: bool
    last_swept_at: datetime | None = None
    last_sweep_status: str | None = None
    last_sweep_summary: str | None = None
    created_at: datetime
    updated_at: datetime


class SweepOut(BaseModel):
    source_id: str
    status: str
    counts: dict[str, int] = Field(default_factory=dict)
    error_code: str | None = None
    message: str | None = None
    sample: list[str] = Field(default_factory=list)


class SourceDiscoveryRequest(BaseModel):
    queries: list[str] = Field(min_length=1)
    sport: str = Field(min_length=1)
    source_type: SourceType
    state: str | None = Field(default=None, max_length=2)
    per_query_limit: int = Field(default=10, ge=1, le=50)
    max_total: int = Field(default=100, ge=1, le=200)


class DiscoveredSourceOut(BaseModel):
    url: str
    title: str | None = None
    snippet: str | None = None
    domain: str
    query: str
    status: str
    source_id: str | None = None


class SourceDiscoveryOut(BaseModel):
    inserted: int
    skipped_existing: int
    total_found: int
    failed_queries: int = 0
    results: list[DiscoveredSourceOut] = Field(default_factory=list)
