from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from tournament_ingest.services.records import ScoreAggregate, ScoreRebuildResult

logger = logging.getLogger(__name__)

MIN_SCORE = 1.0
MAX_SCORE = 5.0


@dataclass(frozen=True, slots=True)
class ScoreKindConfig:
    kind: str
    reviews_table: str
    scores_table: str
    entity_column: str
    segment_column: str | None = None


SCORE_KINDS: dict[str, ScoreKindConfig] = {
    "tournament": ScoreKindConfig(
        kind="tournament",
        reviews_table="tournament_reviews",
        scores_table="tournament_review_scores",
        entity_column="tournament_id",
        segment_column="sport",
    ),
    "school": ScoreKindConfig(
        kind="school",
        reviews_table="school_reviews",
        scores_table="school_review_scores",
        entity_column="school_id",
    ),
}


class ScoreRepository(Protocol):
    async def rebuild_score_aggregates(self, config: ScoreKindConfig) -> ScoreRebuildResult: ...


def get_score_kind(kind: str) -> ScoreKindConfig:
    config = SCORE_KINDS.get(kind)
    if config is None:
        raise ValueError(f"unsupported score kind: {kind!r}")
    return config


def score_to_percent(average: float) -> int:
    # round half up
    return int(math.floor(average / MAX_SCORE * 100.0 + 0.5))


def build_summary(review_count: int) -> str:
    noun = "review" if review_count == 1 else "reviews"
    return f"Based on {review_count} verified {noun}."


def _qualifying_score(row: dict[str, Any]) -> float | None:
    if row.get("status") != "approved":
        return None
    raw = row.get("overall_score")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score) or score < MIN_SCORE or score > MAX_SCORE:
        return None
    return score


def aggregate_reviews(rows: Iterable[dict[str, Any]], config: ScoreKindConfig) -> list[ScoreAggregate]:
    """Group approved 1-5 reviews by entity (and segment) into aggregate rows."""
    totals: dict[tuple[str, str | None], list[float]] = {}
    for row in rows:
        score = _qualifying_score(row)
        if score is None:
            continue
        entity_id = row.get(config.entity_column)
        if not entity_id:
            continue
        segment: str | None = None
        if config.segment_column:
            raw_segment = row.get(config.segment_column)
            segment = str(raw_segment).strip().lower() if raw_segment else None
        totals.setdefault((str(entity_id), segment), []).append(score)

    aggregates: list[ScoreAggregate] = []
    for (entity_id, segment), scores in sorted(totals.items(), key=lambda item: (item[0][0], item[0][1] or "")):
        count = len(scores)
        aggregates.append(
            ScoreAggregate(
                entity_id=entity_id,
                segment=segment,
                percent_score=score_to_percent(sum(scores) / count),
                review_count=count,
                summary=build_summary(count),
            )
        )
    return aggregates


async def recompute(repository: ScoreRepository, kind: str) -> ScoreRebuildResult:
    config = get_score_kind(kind)
    result = await repository.rebuild_score_aggregates(config)
    logger.info(
        "score aggregates rebuilt kind=%s processed=%s upserted=%s deleted=%s",
        kind,
        result.processed,
        result.upserted,
        result.deleted,
    )
    return result
