from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from tournament_ingest.core.urls import normalize_source_url
from tournament_ingest.services.records import SOURCE_TYPES, SWEEP_STATUSES, SourceRecord
from tournament_ingest.services.repository import RepositoryValidationError

logger = logging.getLogger(__name__)

SUMMARY_MAX_LENGTH = 4000


class SourceRepository(Protocol):
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
    ) -> SourceRecord: ...

    async def get_source_by_url(self, canonical_url: str) -> SourceRecord | None: ...

    async def record_sweep(self, source_id: str, *, status: str, summary: str | None) -> SourceRecord: ...


async def register_source(
    repository: SourceRepository,
    *,
    url: str,
    source_type: str,
    sport: str,
    state: str | None = None,
    city: str | None = None,
    notes: str | None = None,
    is_active: bool = True,
) -> SourceRecord:
    """Create or update the registry row keyed by the URL's canonical form."""
    if source_type not in SOURCE_TYPES:
        raise RepositoryValidationError(f"unsupported source_type: {source_type!r}")
    normalized = normalize_source_url(url)
    record = await repository.upsert_source(
        canonical_url=normalized.canonical,
        host=normalized.host,
        source_type=source_type,
        sport=sport.strip().lower(),
        state=state.strip().upper() if state and state.strip() else None,
        city=city.strip() if city and city.strip() else None,
        notes=notes,
        is_active=is_active,
    )
    logger.info("source registered id=%s url=%s type=%s", record.id, record.canonical_url, record.source_type)
    return record


async def get_source_by_url(repository: SourceRepository, url: str) -> SourceRecord | None:
    return await repository.get_source_by_url(normalize_source_url(url).canonical)


def build_sweep_summary(
    *,
    status: str,
    counts: dict[str, int],
    error_code: str | None = None,
    message: str | None = None,
    diagnostics: dict[str, Any] | None = None,
) -> str:
    payload: dict[str, Any] = {"status": status, "counts": counts}
    if error_code:
        payload["error_code"] = error_code
    if message:
        payload["message"] = message
    if diagnostics:
        payload["diagnostics"] = diagnostics
    summary = json.dumps(payload, default=str, sort_keys=True)
    if len(summary) > SUMMARY_MAX_LENGTH and diagnostics:
        payload["diagnostics"] = {"truncated": True}
        summary = json.dumps(payload, default=str, sort_keys=True)
    return summary


async def record_sweep(
    repository: SourceRepository,
    source_id: str,
    *,
    status: str,
    summary: str | None,
) -> SourceRecord:
    if status not in SWEEP_STATUSES:
        raise RepositoryValidationError(f"unsupported sweep status: {status!r}")
    return await repository.record_sweep(source_id, status=status, summary=summary)
