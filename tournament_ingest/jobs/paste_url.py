from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from opentelemetry import trace

from tournament_ingest.core.config import Settings
from tournament_ingest.core.urls import normalize_source_url
from tournament_ingest.jobs.fetch import fetch_page
from tournament_ingest.services.extractors.metadata import PageMetadata, parse_page_metadata
from tournament_ingest.services.records import CandidateEventRecord, UpsertOutcome
from tournament_ingest.services.resolver import upsert_from_source

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PASTE_URL_SOURCE = "external_crawl"


@dataclass(slots=True)
class PasteUrlResult:
    outcome: UpsertOutcome
    metadata: PageMetadata
    official_url_applied: bool


async def create_tournament_from_url(
    repository: Any,
    url: str,
    *,
    sport: str,
    client: httpx.AsyncClient,
    settings: Settings,
    status: str | None = None,
    html: str | None = None,
) -> PasteUrlResult:
    """Create or refresh a tournament from its own event page.

    The page URL becomes the listing key and, when the tournament has none
    yet, its official website. InvalidUrl, SourceFetchFailed and
    InvalidRecord propagate before any write.
    """
    normalized = normalize_source_url(url, tracking_keys=settings.tracking_keys())
    with tracer.start_as_current_span("paste_url.create") as span:
        span.set_attribute("paste_url.host", normalized.host)
        if html is None:
            page = await fetch_page(
                normalized.canonical,
                client=client,
                timeout_seconds=settings.fetch_timeout_seconds,
                min_html_bytes=0,
            )
            html = page.html
        metadata = parse_page_metadata(html)

        record = CandidateEventRecord(
            name=metadata.name or normalized.host,
            state=metadata.state,
            city=metadata.city,
            source_url=normalized.canonical,
            start_date=metadata.start_date,
            end_date=metadata.end_date,
            host_org=metadata.host_org,
            website_url=normalized.canonical,
            raw_fields={
                "summary": metadata.summary,
                "image_url": metadata.image_url,
                "warnings": list(metadata.warnings),
            },
        )
        outcome = await upsert_from_source(
            repository,
            record,
            source=PASTE_URL_SOURCE,
            sport=sport.strip().lower(),
            status=status or settings.crawl_default_status,
            source_event_id=normalized.canonical,
        )
        applied = await repository.apply_url_candidate(
            tournament_id=outcome.tournament_id,
            candidate_url=normalized.canonical,
            auto=True,
        )
        span.set_attribute("paste_url.created", outcome.created)

    logger.info(
        "tournament created from url tournament_id=%s url=%s created=%s warnings=%s",
        outcome.tournament_id,
        normalized.canonical,
        outcome.created,
        metadata.warnings,
    )
    return PasteUrlResult(outcome=outcome, metadata=metadata, official_url_applied=applied)
