from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import httpx
from opentelemetry import trace

from tournament_ingest.core.config import Settings
from tournament_ingest.jobs.enrichment import run_enrichment
from tournament_ingest.jobs.freshness import run_freshness_check
from tournament_ingest.jobs.sweep import run_sweeps
from tournament_ingest.jobs.url_discovery import run_url_discovery
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.scores import SCORE_KINDS, recompute
from tournament_ingest.services.search import SearchProvider, build_search_provider

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JOB_KINDS = (
    "sweep_sources",
    "discover_urls",
    "enrich_facts",
    "recompute_scores",
    "check_freshness",
    "recheck_dead_domains",
)


class UnknownJobKind(ValueError):
    pass


def build_dead_domain_tracker(repository: Any, settings: Settings) -> DeadDomainTracker:
    return DeadDomainTracker(
        repository,
        failure_threshold=settings.dead_domain_failure_threshold,
        recheck_after=timedelta(hours=settings.dead_domain_recheck_hours),
        dns_timeout_seconds=settings.dns_timeout_seconds,
        concurrency=settings.network_concurrency,
    )


async def execute_job(
    kind: str,
    repository: Any,
    settings: Settings,
    *,
    client: httpx.AsyncClient | None = None,
    provider: SearchProvider | None = None,
    dead_domains: DeadDomainTracker | None = None,
    options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Run one scheduled job to completion and return its counts."""
    if kind not in JOB_KINDS:
        raise UnknownJobKind(f"unknown job kind: {kind!r}")
    options = options or {}

    if client is not None:
        return await _dispatch(kind, repository, settings, client, provider, dead_domains, options)
    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=False) as temp_client:
        return await _dispatch(kind, repository, settings, temp_client, provider, dead_domains, options)


async def _dispatch(
    kind: str,
    repository: Any,
    settings: Settings,
    client: httpx.AsyncClient,
    provider: SearchProvider | None,
    dead_domains: DeadDomainTracker | None,
    options: dict[str, Any],
) -> dict[str, Any]:
    tracker = dead_domains or build_dead_domain_tracker(repository, settings)
    limit = _as_limit(options.get("limit"))

    with tracer.start_as_current_span(f"job.{kind}"):
        if kind == "sweep_sources":
            result = await run_sweeps(
                repository,
                client=client,
                settings=settings,
                dead_domains=tracker,
                limit=limit,
                sport=options.get("sport"),
                state=options.get("state"),
            )
        elif kind == "discover_urls":
            search = provider or build_search_provider(settings, client=client)
            result = await run_url_discovery(
                repository,
                search,
                client=client,
                settings=settings,
                dead_domains=tracker,
                limit=limit,
            )
        elif kind == "enrich_facts":
            result = await run_enrichment(
                repository,
                client=client,
                settings=settings,
                dead_domains=tracker,
                limit=limit,
            )
        elif kind == "recompute_scores":
            requested = options.get("entity_kind")
            kinds = [requested] if requested else list(SCORE_KINDS)
            result = {}
            for entity_kind in kinds:
                with tracer.start_as_current_span("scores.recompute"):
                    rebuilt = await recompute(repository, entity_kind)
                result[entity_kind] = {
                    "processed": rebuilt.processed,
                    "upserted": rebuilt.upserted,
                    "deleted": rebuilt.deleted,
                }
        elif kind == "check_freshness":
            result = await run_freshness_check(
                repository,
                stale_after_hours=settings.freshness_stale_after_hours,
                archive_after_hours=settings.freshness_archive_after_hours,
            )
        else:
            result = await tracker.recheck_due(limit=limit or 100)

    logger.info("job finished kind=%s result=%s", kind, result)
    return {"kind": kind, "result": result}


def _as_limit(value: Any) -> int | None:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
