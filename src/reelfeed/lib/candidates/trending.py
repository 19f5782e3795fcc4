"""Trending candidate generator.

Returns content from the trending window (default 7 days) ranked by
engagement velocity:

    velocity = (likes*1.5 + comments*2 + shares*3 + views*0.1) / hours_old

mapped onto ``[40, 85]`` as ``40 + velocity * 0.5``.  The requesting user's
own content is never proposed.  The profile is not used, so a brand new user
still gets trending candidates.
"""

import logging
from datetime import datetime, timedelta

from .. import weights
from ..catalog import ContentItem, search_content
from .base import CandidateGenerator, CandidateRequest, CandidateResult, CandidateSource, GeneratorContext

logger = logging.getLogger(__name__)


def engagement_velocity(item: ContentItem, now: datetime) -> float:
    weighted = (
        item.like_count * weights.TRENDING_LIKE_WEIGHT
        + item.comment_count * weights.TRENDING_COMMENT_WEIGHT
        + item.share_count * weights.TRENDING_SHARE_WEIGHT
        + item.view_count * weights.TRENDING_VIEW_WEIGHT
    )
    return weighted / item.hours_since_creation(now)


def score_trending(item: ContentItem, now: datetime) -> CandidateResult:
    velocity = engagement_velocity(item, now)
    raw = weights.TRENDING_BASE_SCORE + velocity * weights.TRENDING_VELOCITY_MULTIPLIER
    score = min(weights.TRENDING_MAX_SCORE, max(weights.TRENDING_MIN_SCORE, raw))
    return CandidateResult(
        content_id=item.content_id,
        score=score,
        reason="Trending now",
        source=CandidateSource.TRENDING,
        creator_id=item.creator_id,
        topics=item.topic_ids,
        metadata={
            "engagement_per_hour": velocity,
            "hours_old": item.hours_since_creation(now),
        },
    )


class TrendingCandidateGenerator(CandidateGenerator):
    """Fast-rising content across the platform.

    The profile is accepted for interface consistency but is not used.
    """

    @property
    def name(self) -> str:
        return "trending"

    @property
    def source(self) -> CandidateSource:
        return CandidateSource.TRENDING

    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        since = request.now - timedelta(days=ctx.settings.trending_window_days)
        items = await search_content(
            ctx.es,
            ctx.settings.indices.content,
            size=weights.TRENDING_POOL_SIZE,
            sort=[{"like_count": "desc"}, {"view_count": "desc"}],
            since=since,
            exclude_ids=sorted(request.exclude_ids),
            exclude_creator_id=request.user_id,
        )
        return [score_trending(item, request.now) for item in items]
