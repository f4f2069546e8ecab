from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from tournament_ingest.core.security import get_admin_principal
from tournament_ingest.schemas.scores import ScoreAggregateOut
from tournament_ingest.services.repository import RepositoryUnavailableError, get_repository
from tournament_ingest.services.scores import get_score_kind

router = APIRouter()


@router.get("/{kind}", response_model=list[ScoreAggregateOut])
async def list_score_aggregates(
    kind: str,
    principal=Depends(get_admin_principal),
    repository=Depends(get_repository),
) -> list[ScoreAggregateOut]:
    try:
        principal.require_scopes({"scores:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        config = get_score_kind(kind)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    try:
        rows = await repository.list_score_aggregates(config)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [ScoreAggregateOut(**asdict(row)) for row in rows]
