from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import httpx
from opentelemetry import trace

from tournament_ingest.core.config import Settings
from tournament_ingest.core.errors import DeadDomain, SourceFetchFailed
from tournament_ingest.core.urls import domain_of
from tournament_ingest.jobs.fetch import fetch_page
from tournament_ingest.services.candidate_facts import FactKind, propose_facts
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.extractors.facts import extract_page_facts
from tournament_ingest.services.records import TournamentRecord

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_PAGE_BYTES = 1_000_000
PRIORITY_LINKS = 2
_PRIORITY_LINK_RE = re.compile(r"contact|questions|referee|officials|assignor|director|staff", re.I)


@dataclass(slots=True)
class EnrichmentOutcome:
    tournament_id: str
    status: str
    pages: int = 0
    inserted: dict[str, int] = field(default_factory=dict)
    error_code: str | None = None


async def crawl_site(
    start_url: str,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    max_pages: int,
) -> tuple[int, dict[FactKind, list[dict[str, Any]]]]:
    """Breadth-first crawl of one tournament site, contact-like pages first."""
    queue: deque[str] = deque([start_url])
    queued = {start_url}
    pages = 0
    collected: dict[FactKind, list[dict[str, Any]]] = {}

    while queue and pages < max_pages:
        url = queue.popleft()
        try:
            page = await fetch_page(
                url,
                client=client,
                timeout_seconds=settings.fetch_timeout_seconds,
                min_html_bytes=0,
            )
        except SourceFetchFailed as exc:
            if pages == 0:
                raise
            logger.info("enrichment page skipped url=%s code=%s", url, exc.code)
            continue
        pages += 1
        queued.add(page.final_url)
        html = page.html if len(page.html) <= MAX_PAGE_BYTES else page.html[:MAX_PAGE_BYTES]
        result = extract_page_facts(html, page.final_url)
        for kind, facts in result.facts.items():
            collected.setdefault(kind, []).extend(facts)

        fresh = [link for link in result.links if link not in queued]
        priority = [link for link in fresh if _PRIORITY_LINK_RE.search(link)][:PRIORITY_LINKS]
        for link in reversed(priority):
            queue.appendleft(link)
            queued.add(link)
        for link in fresh:
            if link not in queued:
                queue.append(link)
                queued.add(link)
    return pages, collected


async def enrich_tournament(
    repository: Any,
    tournament: TournamentRecord,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    dead_domains: DeadDomainTracker | None = None,
    max_pages: int | None = None,
) -> EnrichmentOutcome:
    """Crawl a tournament's official site and propose the facts found there for review."""
    outcome = EnrichmentOutcome(tournament_id=tournament.id, status="skipped")
    start_url = tournament.official_website_url
    if not start_url:
        outcome.error_code = "no_official_url"
        return outcome

    domain = domain_of(start_url)
    with tracer.start_as_current_span("enrichment.tournament") as span:
        span.set_attribute("tournament.id", tournament.id)
        if dead_domains is not None:
            try:
                await dead_domains.ensure_alive(domain)
            except DeadDomain:
                outcome.error_code = "dead_domain"
                logger.info("enrichment skipped, dead domain tournament_id=%s url=%s", tournament.id, start_url)
                return outcome

        try:
            outcome.pages, collected = await crawl_site(
                start_url,
                client=client,
                settings=settings,
                max_pages=max_pages or settings.enrichment_max_pages,
            )
        except SourceFetchFailed as exc:
            outcome.status = "failed"
            outcome.error_code = exc.code
            if exc.code == "fetch_failed" and dead_domains is not None and domain:
                await dead_domains.check(domain)
            logger.warning("enrichment failed tournament_id=%s code=%s", tournament.id, exc.code)
            return outcome

        for kind in FactKind:
            facts = collected.get(kind)
            if not facts:
                continue
            proposed = await propose_facts(repository, tournament_id=tournament.id, kind=kind, facts=facts)
            outcome.inserted[kind.value] = len(proposed.inserted)
        outcome.status = "success"
        span.set_attribute("enrichment.pages", outcome.pages)
        span.set_attribute("enrichment.inserted", sum(outcome.inserted.values()))

    logger.info(
        "enrichment finished tournament_id=%s pages=%s inserted=%s",
        tournament.id,
        outcome.pages,
        outcome.inserted,
    )
    return outcome


async def run_enrichment(
    repository: Any,
    *,
    client: httpx.AsyncClient,
    settings: Settings,
    dead_domains: DeadDomainTracker | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Enrich tournaments that have an official URL, least recently proposed first."""
    tournaments = await repository.list_tournaments_for_enrichment(limit=limit or settings.enrichment_batch_size)
    semaphore = asyncio.Semaphore(max(1, settings.network_concurrency))

    async def run_one(tournament: TournamentRecord) -> EnrichmentOutcome | None:
        async with semaphore:
            try:
                return await enrich_tournament(
                    repository,
                    tournament,
                    client=client,
                    settings=settings,
                    dead_domains=dead_domains,
                )
            except Exception:  # pragma: no cover - store outage mid-batch
                logger.exception("enrichment crashed tournament_id=%s", tournament.id)
                return None

    outcomes = await asyncio.gather(*(run_one(tournament) for tournament in tournaments))
    summary = {
        "processed": len(outcomes),
        "succeeded": sum(1 for item in outcomes if item is not None and item.status == "success"),
        "skipped": sum(1 for item in outcomes if item is not None and item.status == "skipped"),
        "failed": sum(1 for item in outcomes if item is None or item.status == "failed"),
        "pages": sum(item.pages for item in outcomes if item is not None),
        "facts_inserted": sum(sum(item.inserted.values()) for item in outcomes if item is not None),
    }
    logger.info("enrichment batch finished %s", summary)
    return summary
