from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from opentelemetry import trace

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import DeadDomain, InvalidRecord, SourceFetchFailed
from tournament_ingest.jobs.fetch import fetch_page
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.extractors.base import Extractor
from tournament_ingest.services.extractors.registry import get_extractor
from tournament_ingest.services.extractors.state_directory import StateDirectoryExtractor
from tournament_ingest.services.records import CandidateEventRecord, SourceRecord
from tournament_ingest.services.resolver import upsert_from_source
from tournament_ingest.services.sources import build_sweep_summary, record_sweep

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SAMPLE_SIZE = 8


@dataclass(slots=True)
class SweepOutcome:
    source_id: str
    status: str
    counts: dict[str, int]
    error_code: str | None = None
    message: str | None = None
    sample: list[str] = field(default_factory=list)
    tournament_ids: list[str] = field(default_factory=list)


async def sweep_source(
    repository: Any,
    source: SourceRecord,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    html: str | None = None,
    dead_domains: DeadDomainTracker | None = None,
    reference_year: int | None = None,
) -> SweepOutcome:
    """Fetch, extract and resolve one registered source, then stamp its sweep result.

    `html` replaces the fetch for pasted pages. Fetch and extraction failures
    end as a `failed` sweep; repository errors propagate.
    """
    counts = {"pages": 0, "found": 0, "imported": 0, "created": 0, "updated": 0, "invalid": 0, "page_errors": 0}
    diagnostics: dict[str, Any] = {}
    outcome = SweepOutcome(source_id=source.id, status="failed", counts=counts)

    with tracer.start_as_current_span("sweep.source") as span:
        span.set_attribute("source.id", source.id)
        span.set_attribute("source.type", source.source_type)
        try:
            extractor = get_extractor(source, reference_year=reference_year)
            pages = await _collect_pages(
                source,
                extractor,
                client=client,
                settings=settings,
                html=html,
                dead_domains=dead_domains,
                counts=counts,
                diagnostics=diagnostics,
            )
            records: list[CandidateEventRecord] = []
            for page_url, page_html in pages:
                records.extend(extractor.extract(page_html, page_url))
            counts["found"] = len(records)
            if not records:
                raise SourceFetchFailed(
                    "html_received_no_events",
                    "page fetched but no events were extracted",
                    diagnostics=diagnostics,
                )

            for record in records:
                try:
                    result = await upsert_from_source(
                        repository,
                        record,
                        source=source.id,
                        sport=source.sport,
                        status=settings.crawl_default_status,
                    )
                except InvalidRecord as exc:
                    counts["invalid"] += 1
                    logger.info("record skipped source_id=%s name=%s reason=%s", source.id, record.name, exc)
                    continue
                counts["imported"] += 1
                if result.created:
                    counts["created"] += 1
                elif result.changed:
                    counts["updated"] += 1
                outcome.tournament_ids.append(result.tournament_id)
                if len(outcome.sample) < SAMPLE_SIZE:
                    outcome.sample.append(record.name)

            outcome.status = "partial" if counts["invalid"] or counts["page_errors"] else "success"
        except SourceFetchFailed as exc:
            outcome.status = "failed"
            outcome.error_code = exc.code
            outcome.message = str(exc)
            diagnostics.update(exc.diagnostics)
            if exc.code == "fetch_failed" and dead_domains is not None:
                await dead_domains.check(source.host)
            logger.warning("sweep failed source_id=%s code=%s message=%s", source.id, exc.code, exc)

        span.set_attribute("sweep.status", outcome.status)

    if outcome.sample:
        diagnostics["sample"] = outcome.sample
    summary = build_sweep_summary(
        status=outcome.status,
        counts=counts,
        error_code=outcome.error_code,
        message=outcome.message,
        diagnostics=diagnostics,
    )
    await record_sweep(repository, source.id, status=outcome.status, summary=summary)
    logger.info(
        "sweep finished source_id=%s status=%s found=%s imported=%s invalid=%s",
        source.id,
        outcome.status,
        counts["found"],
        counts["imported"],
        counts["invalid"],
    )
    return outcome


async def _collect_pages(
    source: SourceRecord,
    extractor: Extractor,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    html: str | None,
    dead_domains: DeadDomainTracker | None,
    counts: dict[str, int],
    diagnostics: dict[str, Any],
) -> list[tuple[str, str]]:
    if html is None:
        if dead_domains is not None:
            try:
                await dead_domains.ensure_alive(source.host)
            except DeadDomain as exc:
                raise SourceFetchFailed("dead_domain", str(exc)) from exc
        page = await fetch_page(
            source.canonical_url,
            client=client,
            timeout_seconds=settings.fetch_timeout_seconds,
            min_html_bytes=settings.fetch_min_html_bytes,
        )
        diagnostics.update(page.diagnostics)
        html = page.html
    else:
        diagnostics["provided_html"] = True
        diagnostics["bytes"] = len(html.encode("utf-8"))
    counts["pages"] = 1

    if not isinstance(extractor, StateDirectoryExtractor):
        return [(source.canonical_url, html)]

    state_pages = extractor.discover_pages(html, source.canonical_url)
    diagnostics["states_found"] = len(state_pages)
    if not state_pages:
        return [(source.canonical_url, html)]

    semaphore = asyncio.Semaphore(max(1, settings.network_concurrency))

    async def fetch_state_page(url: str) -> tuple[str, str] | None:
        async with semaphore:
            try:
                page = await fetch_page(
                    url,
                    client=client,
                    timeout_seconds=settings.fetch_timeout_seconds,
                    min_html_bytes=settings.fetch_min_html_bytes,
                )
            except SourceFetchFailed as exc:
                counts["page_errors"] += 1
                logger.info("state page failed source_id=%s url=%s code=%s", source.id, url, exc.code)
                return None
        return url, page.html

    fetched = await asyncio.gather(*(fetch_state_page(url) for url in state_pages))
    pages = [page for page in fetched if page is not None]
    counts["pages"] += len(pages)
    diagnostics["state_pages_processed"] = len(pages)
    if not pages:
        raise SourceFetchFailed(
            "fetch_failed",
            f"none of {len(state_pages)} state pages could be fetched",
            diagnostics=diagnostics,
        )
    return pages


async def run_sweeps(
    repository: Any,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    dead_domains: DeadDomainTracker | None = None,
    limit: int | None = None,
    sport: str | None = None,
    state: str | None = None,
) -> dict[str, Any]:
    """Sweep active sources concurrently; one source's failure never stops the batch.

    Sources on a dead domain count as skipped rather than failed.
    """
    sources = await repository.list_sources(
        active_only=True,
        sport=sport,
        state=state,
        limit=limit or settings.sweep_batch_size,
    )
    semaphore = asyncio.Semaphore(max(1, settings.network_concurrency))

    async def run_one(source: SourceRecord) -> str:
        async with semaphore:
            try:
                outcome = await sweep_source(
                    repository,
                    source,
                    client=client,
                    settings=settings,
                    dead_domains=dead_domains,
                )
            except Exception:  # pragma: no cover - store outage mid-batch
                logger.exception("sweep crashed source_id=%s", source.id)
                return "failed"
        if outcome.error_code == "dead_domain":
            return "skipped"
        return outcome.status

    statuses = await asyncio.gather(*(run_one(source) for source in sources))
    summary = {
        "processed": len(statuses),
        "succeeded": statuses.count("success"),
        "partial": statuses.count("partial"),
        "skipped": statuses.count("skipped"),
        "failed": statuses.count("failed"),
    }
    logger.info("sweep batch finished %s", summary)
    return summary
