from collections.abc import AsyncIterator

import httpx
from fastapi import Depends, HTTPException, status

from tournament_ingest.core.config import Settings, get_settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.jobs.runner import build_dead_domain_tracker
from tournament_ingest.services.dead_domains import DeadDomainTracker
from tournament_ingest.services.repository import get_repository
from tournament_ingest.services.search import SearchProvider, build_search_provider


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=False) as client:
        yield client


def get_dead_domain_tracker(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> DeadDomainTracker:
    return build_dead_domain_tracker(repository, settings)


def get_search_provider(
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> SearchProvider:
    try:
        return build_search_provider(settings, client=client)
    except ExternalProviderUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
