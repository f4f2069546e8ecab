from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from tournament_ingest.services.records import (
    MUTABLE_TOURNAMENT_FIELDS,
    CandidateFact,
    DeadDomainRecord,
    ListingUpsert,
    ScoreAggregate,
    ScoreRebuildResult,
    SourceRecord,
    TournamentRecord,
    TournamentUpsert,
    UpsertOutcome,
    UrlCandidate,
)
from tournament_ingest.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from tournament_ingest.services.scores import ScoreKindConfig, aggregate_reviews


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Process-local store used when no database is configured and in tests."""

    def __init__(self) -> None:
        self.sources: dict[str, SourceRecord] = {}
        self.tournaments: dict[str, TournamentRecord] = {}
        self.listings: dict[tuple[str, str], dict[str, Any]] = {}
        self.url_candidates: dict[tuple[str, str], UrlCandidate] = {}
        self.facts: dict[str, CandidateFact] = {}
        self.reviews: dict[str, list[dict[str, Any]]] = {}
        self.scores: dict[str, dict[tuple[str, str | None], ScoreAggregate]] = {}
        self.dead_domains: dict[str, DeadDomainRecord] = {}
        self._score_locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        return None

    # sources

    async def upsert_source(
        self,
        *,
        canonical_url: str,
        host: str,
        source_type: str,
        sport: str,
        state: str | None,
        city: str | None,
        notes: str | None,
        is_active: bool,
    ) -> SourceRecord:
        now = _now()
        existing = next((row for row in self.sources.values() if row.canonical_url == canonical_url), None)
        if existing is None:
            record = SourceRecord(
                id=str(uuid4()),
                canonical_url=canonical_url,
                host=host,
                source_type=source_type,
                sport=sport,
                state=state,
                city=city,
                notes=notes,
                is_active=is_active,
                last_swept_at=None,
                last_sweep_status=None,
                last_sweep_summary=None,
                created_at=now,
                updated_at=now,
            )
        else:
            record = replace(
                existing,
                source_type=source_type,
                sport=sport,
                state=state,
                city=city,
                notes=notes,
                is_active=is_active,
                updated_at=now,
            )
        self.sources[record.id] = record
        return record

    async def get_source(self, source_id: str) -> SourceRecord | None:
        return self.sources.get(source_id)

    async def get_source_by_url(self, canonical_url: str) -> SourceRecord | None:
        return next((row for row in self.sources.values() if row.canonical_url == canonical_url), None)

    async def list_sources(
        self,
        *,
        active_only: bool = False,
        sport: str | None = None,
        state: str | None = None,
        source_type: str | None = None,
        limit: int = 100,
    ) -> list[SourceRecord]:
        # never-swept sources first, then least recently swept
        rows = sorted(
            self.sources.values(),
            key=lambda row: (row.last_swept_at is not None, row.last_swept_at or row.created_at, row.created_at),
        )
        if active_only:
            rows = [row for row in rows if row.is_active]
        if sport:
            rows = [row for row in rows if row.sport == sport]
        if state:
            rows = [row for row in rows if row.state == state]
        if source_type:
            rows = [row for row in rows if row.source_type == source_type]
        return rows[:limit]

    async def set_source_active(self, source_id: str, *, is_active: bool) -> SourceRecord:
        existing = self.sources.get(source_id)
        if existing is None:
            raise RepositoryNotFoundError("source not found")
        record = replace(existing, is_active=is_active, updated_at=_now())
        self.sources[source_id] = record
        return record

    async def record_sweep(self, source_id: str, *, status: str, summary: str | None) -> SourceRecord:
        existing = self.sources.get(source_id)
        if existing is None:
            raise RepositoryNotFoundError("source not found")
        now = _now()
        record = replace(
            existing,
            last_swept_at=now,
            last_sweep_status=status,
            last_sweep_summary=summary,
            updated_at=now,
        )
        self.sources[source_id] = record
        return record

    # tournaments

    async def upsert_tournament(self, payload: TournamentUpsert, *, listing: ListingUpsert | None) -> UpsertOutcome:
        now = _now()
        existing = next((row for row in self.tournaments.values() if row.slug == payload.slug), None)
        if existing is None:
            record = TournamentRecord(
                id=str(uuid4()),
                name=payload.name,
                slug=payload.slug,
                sport=payload.sport,
                level=payload.level,
                state=payload.state,
                city=payload.city,
                venue=payload.venue,
                address=payload.address,
                start_date=payload.start_date,
                end_date=payload.end_date,
                summary=payload.summary,
                host_org=payload.host_org,
                status=payload.status,
                source_url=payload.source_url,
                source_domain=payload.source_domain,
                official_website_url=None,
                confidence=payload.confidence,
                is_canonical=True,
                canonical_tournament_id=None,
                source_last_seen_at=now,
                created_at=now,
                updated_at=now,
            )
            created, changed = True, True
        else:
            updates: dict[str, Any] = {}
            for field_name in ("name", "state", "city", *MUTABLE_TOURNAMENT_FIELDS):
                incoming = getattr(payload, field_name)
                if incoming is not None and incoming != getattr(existing, field_name):
                    updates[field_name] = incoming
            if existing.status == "stale":
                updates["status"] = "published"
            changed = bool(updates)
            if changed:
                updates["updated_at"] = now
            record = replace(existing, source_last_seen_at=now, **updates)
            created = False
        self.tournaments[record.id] = record

        if listing is not None:
            key = (listing.source, listing.source_event_id)
            current = self.listings.get(key)
            self.listings[key] = {
                "tournament_id": record.id,
                "source": listing.source,
                "source_event_id": listing.source_event_id,
                "source_url": listing.source_url,
                "source_domain": listing.source_domain,
                "raw": dict(listing.raw),
                "source_last_seen_at": now,
                "created_at": current["created_at"] if current else now,
            }
        return UpsertOutcome(tournament_id=record.id, created=created, changed=changed)

    async def get_tournament(self, tournament_id: str) -> TournamentRecord | None:
        return self.tournaments.get(tournament_id)

    async def get_tournament_by_slug(self, slug: str) -> TournamentRecord | None:
        return next((row for row in self.tournaments.values() if row.slug == slug), None)

    async def list_tournaments_missing_url(self, *, limit: int) -> list[TournamentRecord]:
        rows = [
            row
            for row in self.tournaments.values()
            if row.official_website_url is None and row.status in {"draft", "published"}
        ]
        rows.sort(key=lambda row: row.created_at)
        return rows[:limit]

    async def list_tournaments_for_enrichment(self, *, limit: int) -> list[TournamentRecord]:
        last_proposed: dict[str, datetime] = {}
        for fact in self.facts.values():
            current = last_proposed.get(fact.tournament_id)
            if current is None or fact.created_at > current:
                last_proposed[fact.tournament_id] = fact.created_at
        rows = [
            row
            for row in self.tournaments.values()
            if row.official_website_url is not None and row.status in {"draft", "published"}
        ]
        rows.sort(key=lambda row: (row.id in last_proposed, last_proposed.get(row.id, row.created_at), row.created_at))
        return rows[:limit]

    async def link_series(self, *, tournament_id: str, canonical_id: str) -> TournamentRecord:
        child = self.tournaments.get(tournament_id)
        parent = self.tournaments.get(canonical_id)
        if child is None or parent is None:
            raise RepositoryNotFoundError("tournament not found")
        if child.id == parent.id:
            raise RepositoryValidationError("a tournament cannot be linked to itself")
        if not parent.is_canonical:
            raise RepositoryConflictError("series parent must be a canonical tournament")
        if any(row.canonical_tournament_id == child.id for row in self.tournaments.values()):
            raise RepositoryConflictError("tournament is the parent of other tournaments")
        record = replace(child, is_canonical=False, canonical_tournament_id=parent.id, updated_at=_now())
        self.tournaments[record.id] = record
        return record

    async def apply_freshness(self, *, stale_before: datetime, archive_before: datetime) -> dict[str, int]:
        counts = {"stale": 0, "archived": 0}
        now = _now()
        for record in list(self.tournaments.values()):
            seen = record.source_last_seen_at
            if seen is None or record.status not in {"published", "stale"}:
                continue
            if seen < archive_before:
                self.tournaments[record.id] = replace(record, status="archived", updated_at=now)
                counts["archived"] += 1
            elif record.status == "published" and seen < stale_before:
                self.tournaments[record.id] = replace(record, status="stale", updated_at=now)
                counts["stale"] += 1
        return counts

    # url candidates

    async def upsert_url_candidates(self, candidates: list[UrlCandidate]) -> list[UrlCandidate]:
        stored: list[UrlCandidate] = []
        for candidate in candidates:
            key = (candidate.tournament_id, candidate.candidate_url)
            current = self.url_candidates.get(key)
            if current is not None:
                candidate = replace(candidate, auto_applied=current.auto_applied, applied_at=current.applied_at)
            self.url_candidates[key] = candidate
            stored.append(candidate)
        return stored

    async def list_url_candidates(self, tournament_id: str) -> list[UrlCandidate]:
        rows = [row for (owner, _), row in self.url_candidates.items() if owner == tournament_id]
        return sorted(rows, key=lambda row: row.score, reverse=True)

    async def apply_url_candidate(self, *, tournament_id: str, candidate_url: str, auto: bool) -> bool:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise RepositoryNotFoundError("tournament not found")
        if auto and tournament.official_website_url is not None:
            return False
        now = _now()
        self.tournaments[tournament_id] = replace(tournament, official_website_url=candidate_url, updated_at=now)
        key = (tournament_id, candidate_url)
        candidate = self.url_candidates.get(key)
        if candidate is not None:
            self.url_candidates[key] = replace(candidate, auto_applied=candidate.auto_applied or auto, applied_at=now)
        return True

    # candidate facts

    async def list_fact_signatures(self, *, tournament_id: str, kind: str) -> set[str]:
        return {
            row.content_signature
            for row in self.facts.values()
            if row.tournament_id == tournament_id and row.kind == kind
        }

    async def insert_facts(
        self, *, tournament_id: str, kind: str, facts: list[tuple[dict[str, Any], str]]
    ) -> list[CandidateFact]:
        if tournament_id not in self.tournaments:
            raise RepositoryNotFoundError("tournament not found")
        inserted: list[CandidateFact] = []
        for fields, signature in facts:
            record = CandidateFact(
                id=str(uuid4()),
                tournament_id=tournament_id,
                kind=kind,
                fields=dict(fields),
                content_signature=signature,
                accepted_at=None,
                rejected_at=None,
                created_at=_now(),
            )
            self.facts[record.id] = record
            inserted.append(record)
        return inserted

    async def list_facts(self, *, tournament_id: str, kind: str | None = None) -> list[CandidateFact]:
        rows = [
            row
            for row in self.facts.values()
            if row.tournament_id == tournament_id and (kind is None or row.kind == kind)
        ]
        return sorted(rows, key=lambda row: row.created_at)

    def _fact_set_ids(self, *, kind: str, fact_id: str) -> list[str]:
        named = self.facts.get(fact_id)
        if named is None or named.kind != kind:
            raise RepositoryNotFoundError("candidate fact not found")
        ids = [
            row.id
            for row in self.facts.values()
            if row.tournament_id == named.tournament_id
            and row.kind == kind
            and row.content_signature == named.content_signature
        ]
        return ids or [fact_id]

    async def delete_fact_set(self, *, kind: str, fact_id: str) -> list[str]:
        ids = self._fact_set_ids(kind=kind, fact_id=fact_id)
        for row_id in ids:
            self.facts.pop(row_id, None)
        return ids

    async def stamp_fact_set(self, *, kind: str, fact_id: str, decision: str) -> list[str]:
        if decision not in {"accepted", "rejected"}:
            raise RepositoryValidationError(f"unsupported decision: {decision!r}")
        ids = self._fact_set_ids(kind=kind, fact_id=fact_id)
        now = _now()
        for row_id in ids:
            row = self.facts[row_id]
            if decision == "accepted":
                self.facts[row_id] = replace(row, accepted_at=now, rejected_at=None)
            else:
                self.facts[row_id] = replace(row, rejected_at=now, accepted_at=None)
        return ids

    # scores

    def add_review(self, kind: str, row: dict[str, Any]) -> None:
        self.reviews.setdefault(kind, []).append(dict(row))

    async def rebuild_score_aggregates(self, config: ScoreKindConfig) -> ScoreRebuildResult:
        lock = self._score_locks.setdefault(config.kind, asyncio.Lock())
        async with lock:
            rows = list(self.reviews.get(config.kind, []))
            aggregates = aggregate_reviews(rows, config)
            rebuilt = {(row.entity_id, row.segment): row for row in aggregates}
            previous = self.scores.get(config.kind, {})
            deleted = len([key for key in previous if key not in rebuilt])
            self.scores[config.kind] = rebuilt
            return ScoreRebuildResult(processed=len(rows), upserted=len(rebuilt), deleted=deleted)

    async def list_score_aggregates(self, config: ScoreKindConfig) -> list[ScoreAggregate]:
        return list(self.scores.get(config.kind, {}).values())

    # dead domains

    async def get_dead_domain(self, domain: str) -> DeadDomainRecord | None:
        return self.dead_domains.get(domain)

    async def record_domain_failure(self, domain: str, *, error: str | None) -> DeadDomainRecord:
        now = _now()
        current = self.dead_domains.get(domain)
        if current is None:
            record = DeadDomainRecord(
                domain=domain,
                failure_count=1,
                last_error=error,
                first_failed_at=now,
                last_checked_at=now,
            )
        else:
            record = replace(current, failure_count=current.failure_count + 1, last_error=error, last_checked_at=now)
        self.dead_domains[domain] = record
        return record

    async def clear_dead_domain(self, domain: str) -> bool:
        return self.dead_domains.pop(domain, None) is not None

    async def list_dead_domains_due(self, *, checked_before: datetime, limit: int) -> list[DeadDomainRecord]:
        rows = [row for row in self.dead_domains.values() if row.last_checked_at < checked_before]
        rows.sort(key=lambda row: row.last_checked_at)
        return rows[:limit]
