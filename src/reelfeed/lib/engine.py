"""Recommendation engine – the single entry point used by the API layer.

Pipeline for ``get_recommendations``:

1. Reuse fresh, unviewed rows from the store when there are enough.
2. Otherwise build the interest profile and the already-viewed exclusion set.
3. Fan out to every enabled generator concurrently, each bounded by its own
   timeout; a generator that fails or times out contributes nothing.
4. Aggregate (deduplicate), rerank for diversity, persist, return the top N.

Failures are absorbed at the narrowest boundary.  When the data store is
unreachable the call returns an empty list rather than raising.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from elastic_transport import TransportError
from elasticsearch import ApiError

from ..config import Settings
from ..models import RankedRecommendation, RecommendationOptions
from .aggregator import aggregate_candidates
from .behavior_log import fetch_viewed_content_ids
from .candidates import (
    CandidateGenerator,
    CandidateRequest,
    CandidateResult,
    CandidateSource,
    ExploreCandidateGenerator,
    FollowingCandidateGenerator,
    GeneratorContext,
    SimilarContentCandidateGenerator,
    TopicAffinityCandidateGenerator,
    TrendingCandidateGenerator,
)
from .errors import ReelFeedError
from .profile import build_interest_profile
from .reranker import rerank
from .store import RecommendationStore

logger = logging.getLogger(__name__)


def default_generators() -> list[CandidateGenerator]:
    return [
        FollowingCandidateGenerator(),
        TopicAffinityCandidateGenerator(),
        TrendingCandidateGenerator(),
        SimilarContentCandidateGenerator(),
        ExploreCandidateGenerator(),
    ]


def enabled_sources(options: RecommendationOptions) -> set[CandidateSource]:
    toggles = {
        CandidateSource.FOLLOWING: options.include_following,
        CandidateSource.TOPIC: options.include_topics,
        CandidateSource.TRENDING: options.include_trending,
        CandidateSource.SIMILAR: options.include_similar,
        CandidateSource.EXPLORE: options.include_explore,
    }
    return {source for source, enabled in toggles.items() if enabled}


def to_ranked(
    user_id: str,
    candidates: Iterable[CandidateResult],
    now: datetime,
) -> list[RankedRecommendation]:
    return [
        RankedRecommendation(
            user_id=user_id,
            content_id=c.content_id,
            final_score=c.score,
            reason=c.reason,
            source=c.source.value,
            created_at=now,
            metadata={**c.metadata, "creator_id": c.creator_id, "topics": c.topics},
        )
        for c in candidates
    ]


class RecommendationEngine:
    """Builds, caches and records feedback on per-user recommendations."""

    def __init__(
        self,
        es,
        store: RecommendationStore,
        settings: Settings,
        *,
        scorer=None,
        generators: list[CandidateGenerator] | None = None,
    ):
        self.es = es
        self.store = store
        self.settings = settings
        self.scorer = scorer
        self.generators = generators if generators is not None else default_generators()
        self._background: set[asyncio.Task] = set()

    # ---------- Public API ----------

    async def get_recommendations(
        self,
        user_id: str,
        options: RecommendationOptions | None = None,
        now: datetime | None = None,
    ) -> list[RankedRecommendation]:
        """Return up to ``options.limit`` recommendations, best first.

        Never raises for storage or domain failures; returns ``[]`` instead.
        Cancelling the caller abandons in-flight generators.
        """
        options = options or RecommendationOptions()
        now = now or datetime.now(timezone.utc)
        try:
            fresh = await self._fresh(user_id, options.limit, now)
            if len(fresh) >= options.limit:
                return fresh[: options.limit]

            ranked = await self._rank(user_id, options, now)
            await self.store.persist(user_id, ranked)
            return ranked
        except (ApiError, TransportError, ReelFeedError):
            logger.exception("Generating recommendations for %s failed", user_id)
            return []

    async def record_view(
        self,
        user_id: str,
        content_id: str,
        completion_rate: float,
        watch_duration: float,
        *,
        event_id: str | None = None,
    ) -> bool:
        return await self.store.record_view(
            user_id, content_id, completion_rate, watch_duration, event_id=event_id,
        )

    async def mark_viewed(self, user_id: str, content_ids: list[str]) -> int:
        return await self.store.mark_viewed(user_id, content_ids)

    async def wait_background(self) -> None:
        """Wait for cache-warming writes started by cancelled requests."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ---------- Pipeline ----------

    async def _fresh(self, user_id: str, limit: int, now: datetime) -> list[RankedRecommendation]:
        try:
            return await self.store.get_fresh_recommendations(user_id, limit, now=now)
        except Exception:
            logger.exception("Reading fresh recommendations for %s failed; re-ranking", user_id)
            return []

    async def _exclusions(self, user_id: str, now: datetime) -> frozenset[str]:
        try:
            ids = await fetch_viewed_content_ids(
                self.es,
                self.settings.indices.behaviors,
                user_id,
                days=self.settings.viewed_exclusion_days,
                now=now,
            )
        except Exception:
            logger.exception("Reading viewed content for %s failed; excluding nothing", user_id)
            return frozenset()
        return frozenset(ids)

    async def _rank(
        self,
        user_id: str,
        options: RecommendationOptions,
        now: datetime,
    ) -> list[RankedRecommendation]:
        profile = await build_interest_profile(self.es, user_id, self.settings, now=now)
        request = CandidateRequest(
            user_id=user_id,
            profile=profile,
            now=now,
            exclude_ids=await self._exclusions(user_id, now),
        )
        sources = enabled_sources(options)
        generators = [g for g in self.generators if g.source in sources]

        candidates = await self._fan_out(generators, request, options)
        merged = aggregate_candidates(candidates)
        top = rerank(merged, options.diversity_factor, options.limit)
        return to_ranked(user_id, top, now)

    async def _run_generator(self, gen: CandidateGenerator, request: CandidateRequest) -> list[CandidateResult]:
        ctx = GeneratorContext(es=self.es, settings=self.settings, scorer=self.scorer)
        try:
            return await asyncio.wait_for(
                gen.generate(ctx, request),
                timeout=self.settings.provider_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Candidate generator '%s' timed out after %.1fs",
                gen.name,
                self.settings.provider_timeout_seconds,
            )
        except Exception:
            logger.exception("Candidate generator '%s' failed", gen.name)
        return []

    async def _fan_out(
        self,
        generators: list[CandidateGenerator],
        request: CandidateRequest,
        options: RecommendationOptions,
    ) -> list[CandidateResult]:
        tasks = [
            asyncio.create_task(self._run_generator(gen, request), name=f"candidates:{gen.name}")
            for gen in generators
        ]
        if not tasks:
            return []
        try:
            results = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            self._warm_after_cancel(tasks, request, options)
            raise
        return [c for result in results for c in result]

    def _warm_after_cancel(
        self,
        tasks: list[asyncio.Task],
        request: CandidateRequest,
        options: RecommendationOptions,
    ) -> None:
        """Persist what finished before cancellation so the next call is warm."""
        for task in tasks:
            if not task.done():
                task.cancel()
        finished = [
            c
            for task in tasks
            if task.done() and not task.cancelled() and task.exception() is None
            for c in task.result()
        ]
        if not finished:
            return
        top = rerank(aggregate_candidates(finished), options.diversity_factor, options.limit)
        ranked = to_ranked(request.user_id, top, request.now)
        logger.info(
            "Request for %s cancelled; persisting %d partial recommendations",
            request.user_id,
            len(ranked),
        )
        warm = asyncio.get_running_loop().create_task(self.store.persist(request.user_id, ranked))
        self._background.add(warm)
        warm.add_done_callback(self._background.discard)
