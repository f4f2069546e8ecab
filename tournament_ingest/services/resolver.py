from __future__ import annotations

import hashlib
import logging
import re
from typing import Protocol

from tournament_ingest.core.errors import InvalidRecord
from tournament_ingest.core.urls import domain_of
from tournament_ingest.services.records import (
    TOURNAMENT_STATUSES,
    CandidateEventRecord,
    ListingUpsert,
    TournamentRecord,
    TournamentUpsert,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 120
_SLUG_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")


class TournamentRepository(Protocol):
    async def upsert_tournament(self, payload: TournamentUpsert, *, listing: ListingUpsert | None) -> UpsertOutcome: ...

    async def link_series(self, *, tournament_id: str, canonical_id: str) -> TournamentRecord: ...


def slugify(value: str) -> str:
    lowered = value.strip().lower().replace("&", "and")
    return _SLUG_SEPARATOR_RE.sub("-", lowered).strip("-")


def build_slug(name: str, city: str | None, state: str | None) -> str:
    """Deterministic natural key for a tournament occurrence."""
    parts = [part.strip() for part in (name, city or "", state or "") if part and part.strip()]
    slug = slugify("-".join(parts))
    if len(slug) > SLUG_MAX_LENGTH:
        slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug


def listing_event_id(record: CandidateEventRecord, slug: str) -> str:
    digest = hashlib.sha256(f"{record.source_url.strip()}|{slug}".encode("utf-8")).hexdigest()
    return digest[:32]


def validate_record(record: CandidateEventRecord) -> None:
    missing: list[str] = []
    if not (record.name or "").strip():
        missing.append("name")
    if not (record.state or "").strip() and not (record.city or "").strip():
        missing.append("state_or_city")
    if not (record.source_url or "").strip():
        missing.append("source_url")
    if missing:
        raise InvalidRecord(f"record missing required fields: {', '.join(missing)}", missing=missing)


def build_tournament_upsert(
    record: CandidateEventRecord,
    *,
    sport: str,
    status: str,
    confidence: float | None = None,
) -> TournamentUpsert:
    validate_record(record)
    if status not in TOURNAMENT_STATUSES:
        raise InvalidRecord(f"unsupported status: {status!r}", missing=[])

    name = record.name.strip()
    city = (record.city or "").strip() or None
    state = (record.state or "").strip().upper() or None
    slug = build_slug(name, city, state)
    if not slug:
        raise InvalidRecord(f"record name does not produce a slug: {name!r}", missing=["name"])
    raw = record.raw_fields or {}
    return TournamentUpsert(
        slug=slug,
        name=name,
        sport=sport,
        state=state,
        city=city,
        status=status,
        source_url=record.source_url.strip(),
        source_domain=domain_of(record.source_url),
        level=record.level,
        venue=(record.venue or "").strip() or None,
        address=_raw_text(raw.get("address")),
        start_date=record.start_date,
        end_date=record.end_date,
        summary=_raw_text(raw.get("summary")),
        host_org=(record.host_org or "").strip() or None,
        confidence=confidence,
    )


async def upsert_from_source(
    repository: TournamentRepository,
    record: CandidateEventRecord,
    *,
    source: str,
    sport: str,
    status: str = "draft",
    source_event_id: str | None = None,
    confidence: float | None = None,
) -> UpsertOutcome:
    """Resolve a scraped record onto its canonical tournament row by slug.

    Raises InvalidRecord before any write when required fields are missing.
    """
    payload = build_tournament_upsert(record, sport=sport, status=status, confidence=confidence)
    listing = ListingUpsert(
        source=source,
        source_event_id=source_event_id or listing_event_id(record, payload.slug),
        source_url=payload.source_url,
        source_domain=payload.source_domain,
        raw=dict(record.raw_fields or {}),
    )
    outcome = await repository.upsert_tournament(payload, listing=listing)
    logger.debug(
        "tournament upserted slug=%s id=%s created=%s changed=%s",
        payload.slug,
        outcome.tournament_id,
        outcome.created,
        outcome.changed,
    )
    return outcome


async def link_series(repository: TournamentRepository, *, tournament_id: str, canonical_id: str) -> TournamentRecord:
    if tournament_id == canonical_id:
        raise InvalidRecord("a tournament cannot be linked to itself", missing=[])
    record = await repository.link_series(tournament_id=tournament_id, canonical_id=canonical_id)
    logger.info("series linked tournament_id=%s canonical_id=%s", tournament_id, canonical_id)
    return record


def _raw_text(value: object) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
