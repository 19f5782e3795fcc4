"""Explore candidate generator.

Broadens the feed with topics the user has not shown interest in yet:

1. Pick the most active catalog topics outside the user's interest set.
2. Fetch a pool of popular content tagged with those topics.
3. Ask the external relevance scorer to select and score 5–10 of them.
4. Map each raw score in ``[0, 1]`` to ``55 + raw * 20``.

If the scorer is unavailable or answers unusably, the pool order is used
instead with a deterministic decreasing raw score, so exploration never
fails the request.
"""

import logging

from .. import weights
from ..catalog import ContentItem, fetch_active_topic_ids, search_content
from ..errors import ScorerError
from ..scorer import ScoredContent
from .base import CandidateGenerator, CandidateRequest, CandidateResult, CandidateSource, GeneratorContext

logger = logging.getLogger(__name__)


def explore_score(raw: float) -> float:
    return weights.EXPLORE_BASE_SCORE + raw * weights.EXPLORE_SCORE_RANGE


def candidate_summary(item: ContentItem) -> dict:
    return {
        "content_id": item.content_id,
        "topics": [t.label for t in item.topics],
        "like_count": item.like_count,
        "view_count": item.view_count,
        "comment_count": item.comment_count,
        "share_count": item.share_count,
        "created_at": item.created_at.isoformat(),
    }


def from_selection(selection: list[ScoredContent], pool: list[ContentItem]) -> list[CandidateResult]:
    by_id = {item.content_id: item for item in pool}
    results = []
    for chosen in selection:
        item = by_id[chosen.content_id]
        results.append(
            CandidateResult(
                content_id=item.content_id,
                score=explore_score(chosen.score),
                reason=chosen.reason,
                source=CandidateSource.EXPLORE,
                creator_id=item.creator_id,
                topics=item.topic_ids,
                metadata={**chosen.metadata, "raw_score": chosen.score, "scored_externally": True},
            )
        )
    return results


def fallback_candidates(pool: list[ContentItem]) -> list[CandidateResult]:
    """Deterministic exploration scores by pool order."""
    results = []
    for index, item in enumerate(pool[: weights.EXPLORE_MAX_SELECTION]):
        raw = weights.EXPLORE_FALLBACK_START - index * weights.EXPLORE_FALLBACK_STEP
        labels = [t.label for t in item.topics[:2]]
        if labels:
            reason = f"Discover content about {' and '.join(labels)}"
        else:
            reason = "Explore something new"
        results.append(
            CandidateResult(
                content_id=item.content_id,
                score=explore_score(raw),
                reason=reason,
                source=CandidateSource.EXPLORE,
                creator_id=item.creator_id,
                topics=item.topic_ids,
                metadata={"raw_score": raw, "fallback": True},
            )
        )
    return results


class ExploreCandidateGenerator(CandidateGenerator):
    """Novel topics, selected by the external relevance scorer."""

    @property
    def name(self) -> str:
        return "explore"

    @property
    def source(self) -> CandidateSource:
        return CandidateSource.EXPLORE

    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        content_index = ctx.settings.indices.content
        known_topics = sorted(request.profile.combined_topic_weights())

        topic_ids = await fetch_active_topic_ids(
            ctx.es,
            content_index,
            exclude_topic_ids=known_topics,
            limit=weights.EXPLORE_TOPIC_COUNT,
        )
        if not topic_ids:
            logger.info("No unexplored topics for user %s", request.user_id)
            return []

        pool = await search_content(
            ctx.es,
            content_index,
            size=weights.EXPLORE_POOL_SIZE,
            sort=[{"like_count": "desc"}, {"view_count": "desc"}],
            topic_ids=topic_ids,
            exclude_ids=sorted(request.exclude_ids),
        )
        if not pool:
            return []

        return await self._score_pool(ctx, request, pool)

    async def _score_pool(
        self,
        ctx: GeneratorContext,
        request: CandidateRequest,
        pool: list[ContentItem],
    ) -> list[CandidateResult]:
        if ctx.scorer is None:
            return fallback_candidates(pool)
        try:
            selection = await ctx.scorer.score(
                request.profile.summary(),
                [candidate_summary(item) for item in pool],
            )
        except ScorerError as exc:
            logger.warning("Relevance scorer unusable for user %s (%s); using fallback", request.user_id, exc)
            return fallback_candidates(pool)
        except Exception:
            logger.exception("Relevance scorer crashed for user %s; using fallback", request.user_id)
            return fallback_candidates(pool)

        pool_ids = {item.content_id for item in pool}
        if not selection or any(s.content_id not in pool_ids for s in selection):
            logger.warning("Relevance scorer selection outside the pool for user %s; using fallback", request.user_id)
            return fallback_candidates(pool)
        return from_selection(selection, pool)
