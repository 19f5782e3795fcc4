"""Interest profile builder.

Derives a per-user interest profile from explicit topic preferences and the
recent watch history in the behavioral log:

1. Read explicit ``(topic_id, weight)`` preferences.
2. Read VIEW records from the lookback window (default 30 days).
3. Resolve the viewed content through the catalog to learn its topics.
4. Weight each topic by completion-based contributions and normalize so the
   implicit weights sum to 1.
5. Summarize viewing patterns and engagement ratios.

Building a profile never fails the pipeline: any error yields the empty
profile, which every generator handles as "no topic preferences".
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from ..config import Settings
from . import weights
from .behavior_log import COMMENT, LIKE, SHARE, VIEW, ViewRecord, count_behaviors, fetch_recent_views
from .catalog import fetch_content_by_ids
from .elasticsearch import iter_sources

logger = logging.getLogger(__name__)

TIME_OF_DAY_BUCKETS = ("morning", "afternoon", "evening", "night")


class TopicWeight(BaseModel):
    topic_id: str
    weight: float = Field(..., ge=0.0)


class ViewingPatterns(BaseModel):
    average_duration: float = 0.0
    completion_rate: float = 0.0
    time_of_day: dict[str, int] = Field(default_factory=dict)
    categories: dict[str, int] = Field(default_factory=dict)


class EngagementMetrics(BaseModel):
    like_ratio: float = 0.0
    comment_ratio: float = 0.0
    share_ratio: float = 0.0


class InterestProfile(BaseModel):
    explicit_interests: list[TopicWeight] = Field(default_factory=list)
    implicit_interests: list[TopicWeight] = Field(default_factory=list)
    viewing_patterns: ViewingPatterns = Field(default_factory=ViewingPatterns)
    engagement_metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)

    @classmethod
    def empty(cls) -> "InterestProfile":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.explicit_interests and not self.implicit_interests

    def combined_topic_weights(self) -> dict[str, float]:
        """Sum explicit and implicit weights per topic."""
        combined: dict[str, float] = defaultdict(float)
        for interest in (*self.explicit_interests, *self.implicit_interests):
            combined[interest.topic_id] += interest.weight
        return dict(combined)

    def summary(self) -> dict:
        """JSON-ready summary sent to the external relevance scorer."""
        return self.model_dump(mode="json")


def completion_contribution(completion_rate: float) -> float:
    """Contribution of one view to each of its topics."""
    for threshold, contribution in weights.COMPLETION_CONTRIBUTIONS:
        if completion_rate >= threshold:
            return contribution
    return weights.COMPLETION_CONTRIBUTION_FLOOR


def implicit_interests_from_views(
    views: list[ViewRecord],
    topics_by_content: dict[str, list[str]],
) -> list[TopicWeight]:
    """Normalize completion contributions per topic so the weights sum to 1.

    Returns an empty list when there is no contribution mass.
    """
    mass: dict[str, float] = defaultdict(float)
    total = 0.0
    for view in views:
        contribution = completion_contribution(view.completion_rate)
        for topic_id in topics_by_content.get(view.content_id, []):
            mass[topic_id] += contribution
            total += contribution

    if total <= 0:
        return []
    interests = [TopicWeight(topic_id=t, weight=m / total) for t, m in mass.items()]
    interests.sort(key=lambda i: (-i.weight, i.topic_id))
    return interests


def _time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def viewing_patterns_from_views(
    views: list[ViewRecord],
    topics_by_content: dict[str, list[str]],
) -> ViewingPatterns:
    histogram = {bucket: 0 for bucket in TIME_OF_DAY_BUCKETS}
    categories: dict[str, int] = defaultdict(int)
    total_duration = 0.0
    total_completion = 0.0

    for view in views:
        histogram[_time_of_day(view.created_at.hour)] += 1
        for topic_id in topics_by_content.get(view.content_id, []):
            categories[topic_id] += 1
        total_duration += view.duration
        total_completion += view.completion_rate

    n = len(views)
    return ViewingPatterns(
        average_duration=total_duration / n if n else 0.0,
        completion_rate=total_completion / n if n else 0.0,
        time_of_day=histogram,
        categories=dict(categories),
    )


def engagement_metrics_from_counts(counts: dict[str, int]) -> EngagementMetrics:
    views = counts.get(VIEW, 0)
    if views <= 0:
        return EngagementMetrics()
    return EngagementMetrics(
        like_ratio=counts.get(LIKE, 0) / views,
        comment_ratio=counts.get(COMMENT, 0) / views,
        share_ratio=counts.get(SHARE, 0) / views,
    )


async def fetch_explicit_interests(es, index: str, user_id: str) -> list[TopicWeight]:
    resp = await es.search(
        index=index,
        query={"bool": {"filter": [{"term": {"user_id": user_id}}]}},
        size=500,
    )
    interests: list[TopicWeight] = []
    for src in iter_sources(resp):
        topic_id = src.get("topic_id")
        if not topic_id:
            continue
        weight = min(1.0, max(0.0, float(src.get("weight") or 0.0)))
        interests.append(TopicWeight(topic_id=str(topic_id), weight=weight))
    return interests


async def build_interest_profile(
    es,
    user_id: str,
    settings: Settings,
    now: datetime | None = None,
) -> InterestProfile:
    """Build the interest profile for ``user_id``; never raises."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=settings.profile_lookback_days)
    indices = settings.indices
    try:
        explicit = await fetch_explicit_interests(es, indices.interests, user_id)
        views = await fetch_recent_views(
            es, indices.behaviors, user_id, since=since, limit=weights.PROFILE_RECENT_VIEWS,
        )
        content = await fetch_content_by_ids(es, indices.content, [v.content_id for v in views])
        topics_by_content = {cid: item.topic_ids for cid, item in content.items()}
        counts = await count_behaviors(es, indices.behaviors, user_id, since=since)
    except Exception:
        logger.exception("Building interest profile for %s failed; using empty profile", user_id)
        return InterestProfile.empty()

    return InterestProfile(
        explicit_interests=explicit,
        implicit_interests=implicit_interests_from_views(views, topics_by_content),
        viewing_patterns=viewing_patterns_from_views(views, topics_by_content),
        engagement_metrics=engagement_metrics_from_counts(counts),
    )
