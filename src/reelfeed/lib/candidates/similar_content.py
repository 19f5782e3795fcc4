"""Similar-content candidate generator.

Generates candidates that resemble what the user recently watched to the end:

1. Read the user's most recent views with completion >= 0.7.
2. Resolve those items to collect their topics and creators.
3. Fetch published content sharing a topic or a creator with them.
4. Score by topic overlap, creator overlap, quality and recency.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from .. import weights
from ..behavior_log import fetch_recent_views
from ..catalog import ContentItem, fetch_content_by_ids, search_content
from .base import CandidateGenerator, CandidateRequest, CandidateResult, CandidateSource, GeneratorContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilaritySeeds:
    content_ids: frozenset[str]
    topic_ids: frozenset[str]
    creator_ids: frozenset[str]


def seeds_from_items(items: list[ContentItem]) -> SimilaritySeeds:
    return SimilaritySeeds(
        content_ids=frozenset(i.content_id for i in items),
        topic_ids=frozenset(t for i in items for t in i.topic_ids),
        creator_ids=frozenset(i.creator_id for i in items if i.creator_id),
    )


def score_similar(item: ContentItem, seeds: SimilaritySeeds, now: datetime) -> CandidateResult:
    overlapping = [t for t in item.topics if t.id in seeds.topic_ids]
    topic_overlap = min(
        weights.SIMILAR_TOPIC_OVERLAP_CAP,
        len(overlapping) * weights.SIMILAR_TOPIC_OVERLAP_WEIGHT,
    )
    same_creator = item.creator_id is not None and item.creator_id in seeds.creator_ids
    creator_overlap = weights.SIMILAR_CREATOR_SCORE if same_creator else 0.0
    quality = min(
        weights.SIMILAR_QUALITY_CAP,
        item.like_count * weights.SIMILAR_LIKE_WEIGHT + item.view_count * weights.SIMILAR_VIEW_WEIGHT,
    )
    recency = min(weights.SIMILAR_RECENCY_CAP, weights.SIMILAR_RECENCY_CAP / item.days_since_creation(now))

    if same_creator:
        reason = f"More from {item.creator_name or 'a creator you have watched'}"
    elif overlapping:
        reason = f"Similar content about {' and '.join(t.label for t in overlapping[:2])}"
    else:
        reason = "Similar to content you've enjoyed"

    return CandidateResult(
        content_id=item.content_id,
        score=topic_overlap + creator_overlap + quality + recency,
        reason=reason,
        source=CandidateSource.SIMILAR,
        creator_id=item.creator_id,
        topics=item.topic_ids,
        metadata={
            "overlapping_topics": [t.label for t in overlapping],
            "topic_overlap_score": topic_overlap,
            "creator_overlap_score": creator_overlap,
            "quality_score": quality,
            "recency_score": recency,
        },
    )


class SimilarContentCandidateGenerator(CandidateGenerator):
    """Content similar to the user's well-watched recent views.

    Pipeline:
        user_id → completed views → seed items → topic/creator lookup
    """

    @property
    def name(self) -> str:
        return "similar"

    @property
    def source(self) -> CandidateSource:
        return CandidateSource.SIMILAR

    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        indices = ctx.settings.indices

        # 1. Well-watched recent views
        views = await fetch_recent_views(
            ctx.es,
            indices.behaviors,
            request.user_id,
            min_completion=weights.SIMILAR_MIN_COMPLETION,
            limit=weights.SIMILAR_SEED_VIEWS,
        )
        if not views:
            logger.info("No completed views for user %s", request.user_id)
            return []

        # 2. Seed topics and creators
        seed_items = await fetch_content_by_ids(ctx.es, indices.content, [v.content_id for v in views])
        seeds = seeds_from_items(list(seed_items.values()))
        if not seeds.topic_ids and not seeds.creator_ids:
            logger.info("Viewed content of user %s has no topics or creators", request.user_id)
            return []

        # 3. Content sharing a topic or a creator
        items = await search_content(
            ctx.es,
            indices.content,
            size=weights.SIMILAR_POOL_SIZE,
            sort=[{"created_at": "desc"}, {"like_count": "desc"}],
            creator_ids=sorted(seeds.creator_ids),
            topic_ids=sorted(seeds.topic_ids),
            creator_or_topic=True,
            exclude_ids=sorted(request.exclude_ids | seeds.content_ids),
        )

        # 4. Score
        return [score_similar(item, seeds, request.now) for item in items]
