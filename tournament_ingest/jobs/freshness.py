from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)


def freshness_cutoffs(
    *,
    now: datetime | None = None,
    stale_after_hours: int,
    archive_after_hours: int,
) -> tuple[datetime, datetime]:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    stale_after_hours = max(1, int(stale_after_hours))
    archive_after_hours = max(stale_after_hours, int(archive_after_hours))
    return current - timedelta(hours=stale_after_hours), current - timedelta(hours=archive_after_hours)


async def run_freshness_check(
    repository: Any,
    *,
    stale_after_hours: int,
    archive_after_hours: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Move tournaments no sweep has seen recently from published to stale, then to archived."""
    stale_before, archive_before = freshness_cutoffs(
        now=now,
        stale_after_hours=stale_after_hours,
        archive_after_hours=archive_after_hours,
    )
    counts = await repository.apply_freshness(stale_before=stale_before, archive_before=archive_before)
    logger.info("freshness check stale=%s archived=%s", counts.get("stale", 0), counts.get("archived", 0))
    return {
        "stale": counts.get("stale", 0),
        "archived": counts.get("archived", 0),
        "stale_before": stale_before.isoformat(),
        "archive_before": archive_before.isoformat(),
    }
