"""Topic-affinity candidate generator.

Proposes content tagged with topics from the user's combined (explicit +
implicit) interest set.  The score has three capped parts:

* topic match (0–50): summed weights of matched topics, scaled by 10
* engagement (0–30): likes, views, comments and shares
* recency (0–20): ``20 / days_since_creation``
"""

import logging
from datetime import datetime

from .. import weights
from ..catalog import ContentItem, search_content
from .base import CandidateGenerator, CandidateRequest, CandidateResult, CandidateSource, GeneratorContext

logger = logging.getLogger(__name__)


def score_topic_affinity(
    item: ContentItem,
    topic_weights: dict[str, float],
    now: datetime,
) -> CandidateResult:
    matched = [t for t in item.topics if topic_weights.get(t.id, 0) > 0]
    matched_weight = sum(topic_weights[t.id] for t in matched)

    topic_match = min(weights.TOPIC_MATCH_CAP, matched_weight * weights.TOPIC_MATCH_MULTIPLIER)
    engagement = min(
        weights.TOPIC_ENGAGEMENT_CAP,
        item.like_count * weights.TOPIC_LIKE_WEIGHT
        + item.view_count * weights.TOPIC_VIEW_WEIGHT
        + item.comment_count * weights.TOPIC_COMMENT_WEIGHT
        + item.share_count * weights.TOPIC_SHARE_WEIGHT,
    )
    recency = min(weights.TOPIC_RECENCY_CAP, weights.TOPIC_RECENCY_CAP / item.days_since_creation(now))

    labels = [t.label for t in matched]
    if labels:
        reason = f"Based on your interest in {' and '.join(labels[:2])}"
    else:
        reason = "Based on your interests"

    return CandidateResult(
        content_id=item.content_id,
        score=topic_match + engagement + recency,
        reason=reason,
        source=CandidateSource.TOPIC,
        creator_id=item.creator_id,
        topics=item.topic_ids,
        metadata={
            "matched_topics": labels,
            "topic_match_score": topic_match,
            "engagement_score": engagement,
            "recency_score": recency,
        },
    )


class TopicAffinityCandidateGenerator(CandidateGenerator):
    """Content matching the user's interest topics."""

    @property
    def name(self) -> str:
        return "topic"

    @property
    def source(self) -> CandidateSource:
        return CandidateSource.TOPIC

    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        topic_weights = {
            t: w for t, w in request.profile.combined_topic_weights().items() if w > 0
        }
        if not topic_weights:
            logger.info("No topic interests for user %s", request.user_id)
            return []

        items = await search_content(
            ctx.es,
            ctx.settings.indices.content,
            size=weights.TOPIC_POOL_SIZE,
            sort=[{"like_count": "desc"}, {"created_at": "desc"}],
            topic_ids=sorted(topic_weights),
            exclude_ids=sorted(request.exclude_ids),
        )
        return [score_topic_affinity(item, topic_weights, request.now) for item in items]
