import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, status

from tournament_ingest.api.deps import get_http_client
from tournament_ingest.core.config import Settings, get_settings
from tournament_ingest.core.errors import ExternalProviderUnavailable
from tournament_ingest.core.security import get_scheduler_principal
from tournament_ingest.jobs.runner import UnknownJobKind, execute_job
from tournament_ingest.schemas.jobs import JobRunOut, JobRunRequest
from tournament_ingest.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.post("/{job_kind}", response_model=JobRunOut)
async def run_cron_job(
    job_kind: str,
    payload: JobRunRequest | None = Body(default=None),
    principal=Depends(get_scheduler_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> JobRunOut:
    try:
        principal.require_scopes({"jobs:run"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    options = payload.model_dump(exclude_none=True) if payload else {}
    try:
        outcome = await execute_job(job_kind, repository, settings, client=client, options=options)
    except UnknownJobKind as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except ExternalProviderUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobRunOut(**outcome)
