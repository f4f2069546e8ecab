from pydantic import BaseModel


class ScoreAggregateOut(BaseModel):
    entity_id: str
    segment: str | None = None
    percent_score: int
    review_count: int
    summary: str
