"""Following candidate generator.

Proposes recent published content from creators the user follows.  These
candidates get a high base score so they usually lead the feed:

    score = 90 + (1 / days_since_creation) * 10 + engagement

where ``days_since_creation`` is floored to whole days (minimum 1) and
``engagement`` is a small weighted sum of like/comment/share counts.
"""

import logging
from datetime import datetime

from .. import weights
from ..catalog import ContentItem, fetch_followed_creator_ids, search_content
from .base import CandidateGenerator, CandidateRequest, CandidateResult, CandidateSource, GeneratorContext

logger = logging.getLogger(__name__)


def following_engagement_score(item: ContentItem) -> float:
    return (
        item.like_count * weights.FOLLOWING_LIKE_WEIGHT
        + item.comment_count * weights.FOLLOWING_COMMENT_WEIGHT
        + item.share_count * weights.FOLLOWING_SHARE_WEIGHT
    )


def score_following(item: ContentItem, now: datetime) -> CandidateResult:
    days = item.days_since_creation(now)
    recency = 1 / days
    engagement = following_engagement_score(item)
    score = (
        weights.FOLLOWING_BASE_SCORE
        + recency * weights.FOLLOWING_RECENCY_WEIGHT
        + engagement
    )
    creator = item.creator_name or "someone you follow"
    return CandidateResult(
        content_id=item.content_id,
        score=score,
        reason=f"New from {creator}",
        source=CandidateSource.FOLLOWING,
        creator_id=item.creator_id,
        topics=item.topic_ids,
        metadata={
            "days_since_creation": days,
            "recency_score": recency,
            "engagement_score": engagement,
        },
    )


class FollowingCandidateGenerator(CandidateGenerator):
    """Recent content from followed creators."""

    @property
    def name(self) -> str:
        return "following"

    @property
    def source(self) -> CandidateSource:
        return CandidateSource.FOLLOWING

    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        indices = ctx.settings.indices
        creator_ids = await fetch_followed_creator_ids(ctx.es, indices.follows, request.user_id)
        if not creator_ids:
            logger.info("User %s follows nobody", request.user_id)
            return []

        items = await search_content(
            ctx.es,
            indices.content,
            size=weights.FOLLOWING_POOL_SIZE,
            sort=[{"created_at": "desc"}],
            creator_ids=creator_ids,
            exclude_ids=sorted(request.exclude_ids),
        )
        return [score_following(item, request.now) for item in items]
