from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class RecommendationOptions(BaseModel):
    """Knobs for a single ranking request."""

    limit: int = Field(20, ge=1, le=100, description="Number of recommendations to return")
    include_following: bool = True
    include_topics: bool = True
    include_trending: bool = True
    include_similar: bool = True
    include_explore: bool = True
    diversity_factor: float = Field(
        0.3, ge=0.0, le=1.0,
        description="How strongly repeated creators/topics are penalized (0 disables)",
    )


class RankedRecommendation(BaseModel):
    """A persisted recommendation row for one user and one content item."""

    user_id: str
    content_id: str
    final_score: float
    reason: str
    source: str
    is_viewed: bool = False
    is_clicked: bool = False
    created_at: datetime
    viewed_at: datetime | None = None
    clicked_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
