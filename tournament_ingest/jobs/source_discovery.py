from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from opentelemetry import trace

from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.core.urls import try_normalize_source_url
from tournament_ingest.services.records import SOURCE_TYPES
from tournament_ingest.services.repository import RepositoryValidationError
from tournament_ingest.services.search import SearchProvider
from tournament_ingest.services.sources import get_source_by_url, register_source

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_PER_QUERY_LIMIT = 10
MAX_PER_QUERY_LIMIT = 50
DEFAULT_MAX_TOTAL = 100
MAX_TOTAL_LIMIT = 200
DISCOVERY_NOTE = "discovered via search"


@dataclass(slots=True)
class DiscoveredSource:
    url: str
    title: str | None
    snippet: str | None
    domain: str
    query: str
    status: str
    source_id: str | None = None


def _clamp(value: int | None, *, default: int, ceiling: int) -> int:
    if value is None:
        return default
    return min(ceiling, max(1, int(value)))


async def discover_sources(
    repository: Any,
    provider: SearchProvider,
    *,
    queries: list[str],
    sport: str,
    source_type: str,
    state: str | None = None,
    per_query_limit: int | None = None,
    max_total: int | None = None,
) -> dict[str, Any]:
    """Search for listing pages and register unseen hits as inactive sources.

    Hits already in the registry are reported but left untouched. New rows
    stay inactive until an operator reviews and activates them.
    """
    cleaned_queries = [query.strip() for query in queries if query and query.strip()]
    if not cleaned_queries:
        raise RepositoryValidationError("at least one search query is required")
    if source_type not in SOURCE_TYPES:
        raise RepositoryValidationError(f"unsupported source_type: {source_type!r}")
    per_query = _clamp(per_query_limit, default=DEFAULT_PER_QUERY_LIMIT, ceiling=MAX_PER_QUERY_LIMIT)
    total_cap = _clamp(max_total, default=DEFAULT_MAX_TOTAL, ceiling=MAX_TOTAL_LIMIT)

    found: dict[str, DiscoveredSource] = {}
    failed_queries = 0
    with tracer.start_as_current_span("source_discovery.search") as span:
        span.set_attribute("source_discovery.queries", len(cleaned_queries))
        for query in cleaned_queries:
            if len(found) >= total_cap:
                break
            try:
                hits = await provider.search(query, per_query)
            except ExternalProviderUnavailable:
                raise
            except Exception:
                failed_queries += 1
                logger.warning("source discovery query failed query=%s", query, exc_info=True)
                continue
            for hit in hits[:per_query]:
                normalized = try_normalize_source_url(hit.url)
                if normalized is None or normalized.canonical in found:
                    continue
                found[normalized.canonical] = DiscoveredSource(
                    url=normalized.canonical,
                    title=hit.title,
                    snippet=hit.snippet,
                    domain=normalized.host,
                    query=query,
                    status="pending",
                )
                if len(found) >= total_cap:
                    break

        inserted = 0
        skipped_existing = 0
        for item in found.values():
            existing = await get_source_by_url(repository, item.url)
            if existing is not None:
                item.status = "existing"
                item.source_id = existing.id
                skipped_existing += 1
                continue
            record = await register_source(
                repository,
                url=item.url,
                source_type=source_type,
                sport=sport,
                state=state,
                notes=f"{DISCOVERY_NOTE}: {item.query}",
                is_active=False,
            )
            item.status = "inserted"
            item.source_id = record.id
            inserted += 1
        span.set_attribute("source_discovery.inserted", inserted)

    logger.info(
        "source discovery finished queries=%s found=%s inserted=%s existing=%s failed_queries=%s",
        len(cleaned_queries),
        len(found),
        inserted,
        skipped_existing,
        failed_queries,
    )
    return {
        "inserted": inserted,
        "skipped_existing": skipped_existing,
        "total_found": len(found),
        "failed_queries": failed_queries,
        "results": [asdict(item) for item in found.values()],
    }
