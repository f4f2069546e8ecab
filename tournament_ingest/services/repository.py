from __future__ import annotations

import asyncio
import json
from datetime import datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc  # type: ignore[import-untyped]

from tournament_ingest.core.config import get_settings
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
from tournament_ingest.services.scores import ScoreKindConfig, aggregate_reviews

if TYPE_CHECKING:
    from tournament_ingest.services.store import InMemoryRepository


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates series-link or state rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


_TOURNAMENT_COLUMNS = """
  id::text as id,
  name,
  slug,
  sport,
  level,
  state,
  city,
  venue,
  address,
  start_date,
  end_date,
  summary,
  host_org,
  status,
  source_url,
  source_domain,
  official_website_url,
  confidence,
  is_canonical,
  canonical_tournament_id::text as canonical_tournament_id,
  source_last_seen_at,
  created_at,
  updated_at
"""

_SOURCE_COLUMNS = """
  id::text as id,
  canonical_url,
  host,
  source_type,
  sport,
  state,
  city,
  notes,
  is_active,
  last_swept_at,
  last_sweep_status,
  last_sweep_summary,
  created_at,
  updated_at
"""

_URL_CANDIDATE_COLUMNS = """
  tournament_id::text as tournament_id,
  candidate_url,
  candidate_domain,
  title,
  snippet,
  score,
  matched_fields,
  http_status,
  content_type,
  final_url,
  auto_applied,
  applied_at
"""

_FACT_COLUMNS = """
  id::text as id,
  tournament_id::text as tournament_id,
  kind,
  fields,
  content_signature,
  accepted_at,
  rejected_at,
  created_at
"""

_MERGED_COLUMNS = ("name", "state", "city", *MUTABLE_TOURNAMENT_FIELDS)
_INVALID_ID_ERRORS = (pg_exc.InvalidTextRepresentationError, asyncpg.DataError)


def _build_tournament_upsert_sql() -> str:
    merged = ",\n              ".join(f"{column} = coalesce(excluded.{column}, t.{column})" for column in _MERGED_COLUMNS)
    before = ", ".join(f"t.{column}" for column in _MERGED_COLUMNS)
    after = ", ".join(f"coalesce(excluded.{column}, t.{column})" for column in _MERGED_COLUMNS)
    return f"""
            insert into tournaments as t (
              slug, name, sport, level, state, city, venue, address,
              start_date, end_date, summary, status, source_url, source_domain,
              confidence, host_org, source_last_seen_at
            )
            values (
              $1, $2, $3, $4, $5, $6, $7, $8,
              $9::date, $10::date, $11, $12, $13, $14,
              $15, $16, now()
            )
            on conflict (slug)
            do update set
              {merged},
              status = case when t.status = 'stale' then 'published' else t.status end,
              source_last_seen_at = now(),
              updated_at = case
                when t.status = 'stale' or row({before}) is distinct from row({after}) then now()
                else t.updated_at
              end
            returning id::text as id, (xmax = 0) as created, (updated_at = now()) as changed
            """


_TOURNAMENT_UPSERT_SQL = _build_tournament_upsert_sql()


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._score_locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

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
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into tournament_sources (canonical_url, host, source_type, sport, state, city, notes, is_active)
            values ($1, $2, $3, $4, $5, $6, $7, $8)
            on conflict (canonical_url)
            do update set
              source_type = excluded.source_type,
              sport = excluded.sport,
              state = excluded.state,
              city = excluded.city,
              notes = excluded.notes,
              is_active = excluded.is_active,
              updated_at = now()
            returning {_SOURCE_COLUMNS}
            """,
            canonical_url,
            host,
            source_type,
            sport,
            state,
            city,
            notes,
            is_active,
        )
        return self._source_row_to_record(row)

    async def get_source(self, source_id: str) -> SourceRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {_SOURCE_COLUMNS} from tournament_sources where id = $1::uuid",
                source_id,
            )
        except _INVALID_ID_ERRORS:
            return None
        return self._source_row_to_record(row) if row else None

    async def get_source_by_url(self, canonical_url: str) -> SourceRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {_SOURCE_COLUMNS} from tournament_sources where canonical_url = $1",
            canonical_url,
        )
        return self._source_row_to_record(row) if row else None

    async def list_sources(
        self,
        *,
        active_only: bool = False,
        sport: str | None = None,
        state: str | None = None,
        source_type: str | None = None,
        limit: int = 100,
    ) -> list[SourceRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SOURCE_COLUMNS}
            from tournament_sources
            where ($1::boolean = false or is_active = true)
              and ($2::text is null or sport = $2)
              and ($3::text is null or state = $3)
              and ($4::text is null or source_type = $4)
            order by last_swept_at asc nulls first, created_at asc
            limit $5
            """,
            active_only,
            sport,
            state,
            source_type,
            limit,
        )
        return [self._source_row_to_record(row) for row in rows]

    async def set_source_active(self, source_id: str, *, is_active: bool) -> SourceRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update tournament_sources
                set is_active = $2, updated_at = now()
                where id = $1::uuid
                returning {_SOURCE_COLUMNS}
                """,
                source_id,
                is_active,
            )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("source not found") from exc
        if row is None:
            raise RepositoryNotFoundError("source not found")
        return self._source_row_to_record(row)

    async def record_sweep(self, source_id: str, *, status: str, summary: str | None) -> SourceRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update tournament_sources
                set
                  last_swept_at = now(),
                  last_sweep_status = $2,
                  last_sweep_summary = $3,
                  updated_at = now()
                where id = $1::uuid
                returning {_SOURCE_COLUMNS}
                """,
                source_id,
                status,
                summary,
            )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("source not found") from exc
        if row is None:
            raise RepositoryNotFoundError("source not found")
        return self._source_row_to_record(row)

    async def upsert_tournament(self, payload: TournamentUpsert, *, listing: ListingUpsert | None) -> UpsertOutcome:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    _TOURNAMENT_UPSERT_SQL,
                    payload.slug,
                    payload.name,
                    payload.sport,
                    payload.level,
                    payload.state,
                    payload.city,
                    payload.venue,
                    payload.address,
                    payload.start_date,
                    payload.end_date,
                    payload.summary,
                    payload.status,
                    payload.source_url,
                    payload.source_domain,
                    payload.confidence,
                    payload.host_org,
                )
                if listing is not None:
                    await conn.execute(
                        """
                        insert into tournament_listings (
                          tournament_id, source, source_event_id, source_url, source_domain, raw, source_last_seen_at
                        )
                        values ($1::uuid, $2, $3, $4, $5, $6::jsonb, now())
                        on conflict (source, source_event_id)
                        do update set
                          tournament_id = excluded.tournament_id,
                          source_url = excluded.source_url,
                          source_domain = excluded.source_domain,
                          raw = excluded.raw,
                          source_last_seen_at = now(),
                          updated_at = now()
                        """,
                        row["id"],
                        listing.source,
                        listing.source_event_id,
                        listing.source_url,
                        listing.source_domain,
                        json.dumps(listing.raw, default=str),
                    )
        return UpsertOutcome(tournament_id=row["id"], created=bool(row["created"]), changed=bool(row["changed"]))

    async def get_tournament(self, tournament_id: str) -> TournamentRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"select {_TOURNAMENT_COLUMNS} from tournaments where id = $1::uuid",
                tournament_id,
            )
        except _INVALID_ID_ERRORS:
            return None
        return self._tournament_row_to_record(row) if row else None

    async def get_tournament_by_slug(self, slug: str) -> TournamentRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"select {_TOURNAMENT_COLUMNS} from tournaments where slug = $1", slug)
        return self._tournament_row_to_record(row) if row else None

    async def list_tournaments_missing_url(self, *, limit: int) -> list[TournamentRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_TOURNAMENT_COLUMNS}
            from tournaments
            where official_website_url is null
              and status in ('draft', 'published')
            order by created_at asc
            limit $1
            """,
            limit,
        )
        return [self._tournament_row_to_record(row) for row in rows]

    async def list_tournaments_for_enrichment(self, *, limit: int) -> list[TournamentRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_TOURNAMENT_COLUMNS}
            from tournaments
            left join lateral (
              select max(f.created_at) as last_proposed_at
              from tournament_candidate_facts f
              where f.tournament_id = tournaments.id
            ) facts on true
            where official_website_url is not null
              and status in ('draft', 'published')
            order by facts.last_proposed_at asc nulls first, created_at asc
            limit $1
            """,
            limit,
        )
        return [self._tournament_row_to_record(row) for row in rows]

    async def link_series(self, *, tournament_id: str, canonical_id: str) -> TournamentRecord:
        if tournament_id == canonical_id:
            raise RepositoryValidationError("a tournament cannot be linked to itself")
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        """
                        select id::text as id, is_canonical
                        from tournaments
                        where id = any($1::uuid[])
                        order by id
                        for update
                        """,
                        [tournament_id, canonical_id],
                    )
                    by_id = {row["id"]: row for row in rows}
                    if tournament_id not in by_id or canonical_id not in by_id:
                        raise RepositoryNotFoundError("tournament not found")
                    if not by_id[canonical_id]["is_canonical"]:
                        raise RepositoryConflictError("series parent must be a canonical tournament")
                    has_children = await conn.fetchval(
                        "select exists(select 1 from tournaments where canonical_tournament_id = $1::uuid)",
                        tournament_id,
                    )
                    if has_children:
                        raise RepositoryConflictError("tournament is the parent of other tournaments")
                    row = await conn.fetchrow(
                        f"""
                        update tournaments
                        set is_canonical = false, canonical_tournament_id = $2::uuid, updated_at = now()
                        where id = $1::uuid
                        returning {_TOURNAMENT_COLUMNS}
                        """,
                        tournament_id,
                        canonical_id,
                    )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("tournament not found") from exc
        return self._tournament_row_to_record(row)

    async def apply_freshness(self, *, stale_before: datetime, archive_before: datetime) -> dict[str, int]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            with archived as (
              update tournaments
              set status = 'archived', updated_at = now()
              where status in ('published', 'stale')
                and source_last_seen_at < $2
              returning 1
            ),
            staled as (
              update tournaments
              set status = 'stale', updated_at = now()
              where status = 'published'
                and source_last_seen_at < $1
                and source_last_seen_at >= $2
              returning 1
            )
            select
              (select count(*) from staled)::int as stale,
              (select count(*) from archived)::int as archived
            """,
            stale_before,
            archive_before,
        )
        return {"stale": int(row["stale"]), "archived": int(row["archived"])}

    async def upsert_url_candidates(self, candidates: list[UrlCandidate]) -> list[UrlCandidate]:
        if not candidates:
            return []
        pool = await self._get_pool()
        stored: list[UrlCandidate] = []
        async with pool.acquire() as conn:
            async with conn.transaction():
                for candidate in candidates:
                    row = await conn.fetchrow(
                        f"""
                        insert into tournament_url_candidates (
                          tournament_id, candidate_url, candidate_domain, title, snippet, score,
                          matched_fields, http_status, content_type, final_url
                        )
                        values ($1::uuid, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10)
                        on conflict (tournament_id, candidate_url)
                        do update set
                          candidate_domain = excluded.candidate_domain,
                          title = excluded.title,
                          snippet = excluded.snippet,
                          score = excluded.score,
                          matched_fields = excluded.matched_fields,
                          http_status = excluded.http_status,
                          content_type = excluded.content_type,
                          final_url = excluded.final_url,
                          updated_at = now()
                        returning {_URL_CANDIDATE_COLUMNS}
                        """,
                        candidate.tournament_id,
                        candidate.candidate_url,
                        candidate.candidate_domain,
                        candidate.title,
                        candidate.snippet,
                        candidate.score,
                        json.dumps(candidate.matched_fields),
                        candidate.http_status,
                        candidate.content_type,
                        candidate.final_url,
                    )
                    stored.append(self._url_candidate_row_to_record(row))
        return stored

    async def list_url_candidates(self, tournament_id: str) -> list[UrlCandidate]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_URL_CANDIDATE_COLUMNS}
                from tournament_url_candidates
                where tournament_id = $1::uuid
                order by score desc, candidate_url asc
                """,
                tournament_id,
            )
        except _INVALID_ID_ERRORS:
            return []
        return [self._url_candidate_row_to_record(row) for row in rows]

    async def apply_url_candidate(self, *, tournament_id: str, candidate_url: str, auto: bool) -> bool:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if auto:
                        applied_id = await conn.fetchval(
                            """
                            update tournaments
                            set official_website_url = $2, updated_at = now()
                            where id = $1::uuid and official_website_url is null
                            returning id
                            """,
                            tournament_id,
                            candidate_url,
                        )
                    else:
                        applied_id = await conn.fetchval(
                            """
                            update tournaments
                            set official_website_url = $2, updated_at = now()
                            where id = $1::uuid
                            returning id
                            """,
                            tournament_id,
                            candidate_url,
                        )
                    if applied_id is None:
                        exists = await conn.fetchval(
                            "select exists(select 1 from tournaments where id = $1::uuid)",
                            tournament_id,
                        )
                        if not exists:
                            raise RepositoryNotFoundError("tournament not found")
                        return False
                    await conn.execute(
                        """
                        update tournament_url_candidates
                        set auto_applied = auto_applied or $3, applied_at = now(), updated_at = now()
                        where tournament_id = $1::uuid and candidate_url = $2
                        """,
                        tournament_id,
                        candidate_url,
                        auto,
                    )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("tournament not found") from exc
        return True

    async def list_fact_signatures(self, *, tournament_id: str, kind: str) -> set[str]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select distinct content_signature
                from tournament_candidate_facts
                where tournament_id = $1::uuid and kind = $2
                """,
                tournament_id,
                kind,
            )
        except _INVALID_ID_ERRORS:
            return set()
        return {row["content_signature"] for row in rows}

    async def insert_facts(
        self, *, tournament_id: str, kind: str, facts: list[tuple[dict[str, Any], str]]
    ) -> list[CandidateFact]:
        pool = await self._get_pool()
        inserted: list[CandidateFact] = []
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "select exists(select 1 from tournaments where id = $1::uuid)",
                        tournament_id,
                    )
                    if not exists:
                        raise RepositoryNotFoundError("tournament not found")
                    for fields, signature in facts:
                        row = await conn.fetchrow(
                            f"""
                            insert into tournament_candidate_facts (tournament_id, kind, fields, content_signature)
                            select $1::uuid, $2, $3::jsonb, $4
                            where not exists (
                              select 1
                              from tournament_candidate_facts
                              where tournament_id = $1::uuid and kind = $2 and content_signature = $4
                            )
                            returning {_FACT_COLUMNS}
                            """,
                            tournament_id,
                            kind,
                            json.dumps(fields, default=str),
                            signature,
                        )
                        if row is not None:
                            inserted.append(self._fact_row_to_record(row))
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("tournament not found") from exc
        return inserted

    async def list_facts(self, *, tournament_id: str, kind: str | None = None) -> list[CandidateFact]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_FACT_COLUMNS}
                from tournament_candidate_facts
                where tournament_id = $1::uuid
                  and ($2::text is null or kind = $2)
                order by created_at asc
                """,
                tournament_id,
                kind,
            )
        except _INVALID_ID_ERRORS:
            return []
        return [self._fact_row_to_record(row) for row in rows]

    async def delete_fact_set(self, *, kind: str, fact_id: str) -> list[str]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                with named as (
                  select tournament_id, kind, content_signature
                  from tournament_candidate_facts
                  where id = $1::uuid and kind = $2
                )
                delete from tournament_candidate_facts f
                using named
                where f.tournament_id = named.tournament_id
                  and f.kind = named.kind
                  and f.content_signature = named.content_signature
                returning f.id::text as id
                """,
                fact_id,
                kind,
            )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("candidate fact not found") from exc
        if not rows:
            raise RepositoryNotFoundError("candidate fact not found")
        return [row["id"] for row in rows]

    async def stamp_fact_set(self, *, kind: str, fact_id: str, decision: str) -> list[str]:
        if decision == "accepted":
            assignment = "accepted_at = now(), rejected_at = null"
        elif decision == "rejected":
            assignment = "rejected_at = now(), accepted_at = null"
        else:
            raise RepositoryValidationError(f"unsupported decision: {decision!r}")
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                with named as (
                  select tournament_id, kind, content_signature
                  from tournament_candidate_facts
                  where id = $1::uuid and kind = $2
                )
                update tournament_candidate_facts f
                set {assignment}
                from named
                where f.tournament_id = named.tournament_id
                  and f.kind = named.kind
                  and f.content_signature = named.content_signature
                returning f.id::text as id
                """,
                fact_id,
                kind,
            )
        except _INVALID_ID_ERRORS as exc:
            raise RepositoryNotFoundError("candidate fact not found") from exc
        if not rows:
            raise RepositoryNotFoundError("candidate fact not found")
        return [row["id"] for row in rows]

    async def rebuild_score_aggregates(self, config: ScoreKindConfig) -> ScoreRebuildResult:
        lock = self._score_locks.setdefault(config.kind, asyncio.Lock())
        segment_expr = f"{config.segment_column}::text" if config.segment_column else "null::text"
        segment_alias = config.segment_column or "segment"
        pool = await self._get_pool()
        async with lock:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("select pg_advisory_xact_lock(hashtext($1))", f"scores:{config.kind}")
                    review_rows = await conn.fetch(
                        f"""
                        select
                          {config.entity_column}::text as {config.entity_column},
                          {segment_expr} as {segment_alias},
                          status,
                          overall_score
                        from {config.reviews_table}
                        """
                    )
                    aggregates = aggregate_reviews([dict(row) for row in review_rows], config)
                    if aggregates:
                        await conn.executemany(
                            f"""
                            insert into {config.scores_table} (entity_id, segment, percent_score, review_count, summary)
                            values ($1, $2, $3, $4, $5)
                            on conflict (entity_id, segment)
                            do update set
                              percent_score = excluded.percent_score,
                              review_count = excluded.review_count,
                              summary = excluded.summary,
                              updated_at = now()
                            """,
                            [
                                (row.entity_id, row.segment or "", row.percent_score, row.review_count, row.summary)
                                for row in aggregates
                            ],
                        )
                    keep = {(row.entity_id, row.segment or "") for row in aggregates}
                    existing = await conn.fetch(f"select entity_id, segment from {config.scores_table}")
                    stale = [
                        (row["entity_id"], row["segment"])
                        for row in existing
                        if (row["entity_id"], row["segment"]) not in keep
                    ]
                    if stale:
                        await conn.executemany(
                            f"delete from {config.scores_table} where entity_id = $1 and segment = $2",
                            stale,
                        )
        return ScoreRebuildResult(processed=len(review_rows), upserted=len(aggregates), deleted=len(stale))

    async def list_score_aggregates(self, config: ScoreKindConfig) -> list[ScoreAggregate]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select entity_id, segment, percent_score, review_count, summary
            from {config.scores_table}
            order by entity_id, segment
            """
        )
        return [
            ScoreAggregate(
                entity_id=row["entity_id"],
                segment=row["segment"] or None,
                percent_score=int(row["percent_score"]),
                review_count=int(row["review_count"]),
                summary=row["summary"],
            )
            for row in rows
        ]

    async def get_dead_domain(self, domain: str) -> DeadDomainRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select domain, failure_count, last_error, first_failed_at, last_checked_at
            from dead_domains
            where domain = $1
            """,
            domain,
        )
        return self._dead_domain_row_to_record(row) if row else None

    async def record_domain_failure(self, domain: str, *, error: str | None) -> DeadDomainRecord:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into dead_domains (domain, failure_count, last_error)
            values ($1, 1, $2)
            on conflict (domain)
            do update set
              failure_count = dead_domains.failure_count + 1,
              last_error = excluded.last_error,
              last_checked_at = now()
            returning domain, failure_count, last_error, first_failed_at, last_checked_at
            """,
            domain,
            error,
        )
        return self._dead_domain_row_to_record(row)

    async def clear_dead_domain(self, domain: str) -> bool:
        pool = await self._get_pool()
        deleted = await pool.fetchval("delete from dead_domains where domain = $1 returning domain", domain)
        return deleted is not None

    async def list_dead_domains_due(self, *, checked_before: datetime, limit: int) -> list[DeadDomainRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select domain, failure_count, last_error, first_failed_at, last_checked_at
            from dead_domains
            where last_checked_at < $1
            order by last_checked_at asc
            limit $2
            """,
            checked_before,
            limit,
        )
        return [self._dead_domain_row_to_record(row) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("TI_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _source_row_to_record(row: asyncpg.Record) -> SourceRecord:
        return SourceRecord(**dict(row))

    @staticmethod
    def _tournament_row_to_record(row: asyncpg.Record) -> TournamentRecord:
        return TournamentRecord(**dict(row))

    @staticmethod
    def _url_candidate_row_to_record(row: asyncpg.Record) -> UrlCandidate:
        data = dict(row)
        data["matched_fields"] = PostgresRepository._coerce_json_dict(data.get("matched_fields"))
        data["score"] = float(data["score"])
        return UrlCandidate(**data)

    @staticmethod
    def _fact_row_to_record(row: asyncpg.Record) -> CandidateFact:
        data = dict(row)
        data["fields"] = PostgresRepository._coerce_json_dict(data.get("fields"))
        return CandidateFact(**data)

    @staticmethod
    def _dead_domain_row_to_record(row: asyncpg.Record) -> DeadDomainRecord:
        return DeadDomainRecord(**dict(row))

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        return value if isinstance(value, dict) else {}


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    settings = get_settings()
    if not settings.database_url:
        from tournament_ingest.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
