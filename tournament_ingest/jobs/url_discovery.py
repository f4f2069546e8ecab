from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from opentelemetry import trace

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.records import TournamentRecord
from tournament_ingest.services.search import SearchProvider
from tournament_ingest.services.url_candidates import (
    CandidateSearchResult,
    TournamentUrlContext,
    find_candidates,
    pick_auto_apply,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def context_for(tournament: TournamentRecord, *, host_org: str | None = None) -> TournamentUrlContext:
    return TournamentUrlContext(
        tournament_id=tournament.id,
        name=tournament.name,
        state=tournament.state,
        city=tournament.city,
        sport=tournament.sport,
        host_org=host_org or tournament.host_org,
    )


async def discover_for_tournament(
    repository: Any,
    tournament: TournamentRecord,
    provider: SearchProvider,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    dead_domains: DeadDomainTracker | None = None,
    auto_apply: bool = True,
    host_org: str | None = None,
) -> tuple[CandidateSearchResult, bool]:
    """Persist scored candidates for one tournament; optionally auto-apply the best one."""
    with tracer.start_as_current_span("url_discovery.tournament") as span:
        span.set_attribute("tournament.id", tournament.id)
        result = await find_candidates(
            context_for(tournament, host_org=host_org),
            provider,
            client=client,
            validation_timeout_seconds=settings.validation_timeout_seconds,
            concurrency=settings.network_concurrency,
            dead_domains=dead_domains,
        )
        if result.candidates:
            await repository.upsert_url_candidates(result.candidates)

        applied = False
        best = pick_auto_apply(result) if auto_apply else None
        if best is not None:
            applied = await repository.apply_url_candidate(
                tournament_id=tournament.id,
                candidate_url=best.candidate_url,
                auto=True,
            )
            if applied:
                best.auto_applied = True
                logger.info(
                    "official url auto-applied tournament_id=%s url=%s score=%s",
                    tournament.id,
                    best.candidate_url,
                    best.score,
                )
        span.set_attribute("url_discovery.candidates", len(result.candidates))
        span.set_attribute("url_discovery.applied", applied)
    return result, applied


async def run_url_discovery(
    repository: Any,
    provider: SearchProvider,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    dead_domains: DeadDomainTracker | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Run discovery for tournaments still missing an official URL.

    ExternalProviderUnavailable aborts the batch; any other per-tournament
    failure is logged and counted.
    """
    tournaments = await repository.list_tournaments_missing_url(limit=limit or settings.discovery_batch_size)
    semaphore = asyncio.Semaphore(max(1, settings.network_concurrency))
    counts = {"processed": 0, "with_candidates": 0, "auto_applied": 0, "failed": 0}

    async def run_one(tournament: TournamentRecord) -> None:
        async with semaphore:
            try:
                result, applied = await discover_for_tournament(
                    repository,
                    tournament,
                    provider,
                    client=client,
                    settings=settings,
                    dead_domains=dead_domains,
                )
            except ExternalProviderUnavailable:
                raise
            except Exception:  # pragma: no cover - store outage mid-batch
                counts["failed"] += 1
                logger.exception("url discovery failed tournament_id=%s", tournament.id)
                return
        counts["processed"] += 1
        if result.candidates:
            counts["with_candidates"] += 1
        if applied:
            counts["auto_applied"] += 1

    tasks = [asyncio.create_task(run_one(tournament)) for tournament in tournaments]
    try:
        await asyncio.gather(*tasks)
    except ExternalProviderUnavailable:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error("url discovery batch aborted, search provider unavailable counts=%s", counts)
        raise
    logger.info("url discovery batch finished %s", counts)
    return counts
