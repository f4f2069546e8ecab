import hashlib
import hmac

from fastapi import Depends, Header, HTTPException, Query, status

from tournament_ingest.core.auth import ADMIN_SCOPES, SCHEDULER_SCOPES, Principal, PrincipalType
from tournament_ingest.core.config import Settings, get_settings


def _matches(presented: str, expected: str) -> bool:
    presented_hash = hashlib.sha256(presented.encode("utf-8")).hexdigest()
    expected_hash = hashlib.sha256(expected.encode("utf-8")).hexdigest()
    return hmac.compare_digest(presented_hash, expected_hash)


async def get_admin_principal(
    settings: Settings = Depends(get_settings),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Principal:
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="TI_ADMIN_API_KEY is not configured",
        )
    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="admin auth requires X-API-Key")
    if not _matches(x_api_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin credentials")
    return Principal(principal_type=PrincipalType.ADMIN, subject="admin", scopes=set(ADMIN_SCOPES))


async def get_scheduler_principal(
    settings: Settings = Depends(get_settings),
    token: str | None = Query(default=None),
    x_cron_token: str | None = Header(default=None, alias="X-Cron-Token"),
) -> Principal:
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="TI_CRON_SECRET is not configured",
        )
    presented = x_cron_token or token
    if not presented or not _matches(presented, settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid cron token")
    return Principal(principal_type=PrincipalType.SCHEDULER, subject="cron", scopes=set(SCHEDULER_SCOPES))
