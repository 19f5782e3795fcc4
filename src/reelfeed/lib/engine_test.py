"""Tests for the recommendation engine."""

import asyncio
from datetime import timedelta

import pytest

from ..config import Settings
from ..models import RankedRecommendation, RecommendationOptions
from .candidates import CandidateGenerator, CandidateResult, CandidateSource
from .engine import RecommendationEngine, enabled_sources
from .store import RecommendationStore


class StaticGenerator(CandidateGenerator):
    """Returns a fixed candidate list, optionally after a delay or with an error."""

    def __init__(self, source, candidates=(), *, delay=0.0, error=None, started=None):
        self._source = source
        self._candidates = list(candidates)
        self._delay = delay
        self._error = error
        self._started = started
        self.requests = []

    @property
    def name(self) -> str:
        return self._source.value

    @property
    def source(self) -> CandidateSource:
        return self._source

    async def generate(self, ctx, request):
        self.requests.append(request)
        if self._started is not None:
            self._started.set()
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return list(self._candidates)


def _candidate(content_id, score, source, creator=None):
    return CandidateResult(
        content_id=content_id,
        score=score,
        reason=f"{source.value} pick",
        source=source,
        creator_id=creator or f"creator-{content_id}",
    )


@pytest.fixture
def settings():
    return Settings(provider_timeout_seconds=0.2)


def _engine(memory_es, settings, generators):
    return RecommendationEngine(
        memory_es,
        RecommendationStore(memory_es, settings),
        settings,
        generators=generators,
    )


class TestEnabledSources:
    def test_toggles(self):
        options = RecommendationOptions(include_following=False, include_explore=False)
        assert enabled_sources(options) == {
            CandidateSource.TOPIC,
            CandidateSource.TRENDING,
            CandidateSource.SIMILAR,
        }


class TestGetRecommendations:
    @pytest.mark.asyncio
    async def test_ranks_merges_and_persists(self, memory_es, settings, now):
        engine = _engine(memory_es, settings, [
            StaticGenerator(CandidateSource.FOLLOWING, [_candidate("a", 95, CandidateSource.FOLLOWING)]),
            StaticGenerator(CandidateSource.TRENDING, [
                _candidate("a", 60, CandidateSource.TRENDING),
                _candidate("b", 70, CandidateSource.TRENDING),
            ]),
        ])

        recs = await engine.get_recommendations("u1", RecommendationOptions(limit=5), now=now)

        assert [(r.content_id, r.source) for r in recs] == [("a", "following"), ("b", "trending")]
        assert all(isinstance(r, RankedRecommendation) for r in recs)
        assert recs[0].metadata["creator_id"] == "creator-a"
        assert {d["content_id"] for d in memory_es.all("recommendations")} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_reuses_fresh_rows(self, memory_es, settings, now):
        gen = StaticGenerator(CandidateSource.TRENDING, [_candidate("new", 50, CandidateSource.TRENDING)])
        engine = _engine(memory_es, settings, [gen])
        store = engine.store
        await store.persist("u1", [
            RankedRecommendation(
                user_id="u1", content_id=f"old{i}", final_score=80 - i,
                reason="cached", source="topic", created_at=now - timedelta(hours=1),
            )
            for i in range(3)
        ])

        recs = await engine.get_recommendations("u1", RecommendationOptions(limit=2), now=now)

        assert [r.content_id for r in recs] == ["old0", "old1"]
        assert gen.requests == []

    @pytest.mark.asyncio
    async def test_too_few_fresh_rows_reranks(self, memory_es, settings, now):
        gen = StaticGenerator(CandidateSource.TRENDING, [_candidate("new", 50, CandidateSource.TRENDING)])
        engine = _engine(memory_es, settings, [gen])
        await engine.store.persist("u1", [
            RankedRecommendation(
                user_id="u1", content_id="old", final_score=80,
                reason="cached", source="topic", created_at=now,
            )
        ])

        recs = await engine.get_recommendations("u1", RecommendationOptions(limit=5), now=now)

        assert [r.content_id for r in recs] == ["new"]
        assert len(gen.requests) == 1

    @pytest.mark.asyncio
    async def test_disabled_sources_are_not_called(self, memory_es, settings, now):
        following = StaticGenerator(CandidateSource.FOLLOWING, [_candidate("a", 90, CandidateSource.FOLLOWING)])
        trending = StaticGenerator(CandidateSource.TRENDING, [_candidate("b", 50, CandidateSource.TRENDING)])
        engine = _engine(memory_es, settings, [following, trending])

        recs = await engine.get_recommendations(
            "u1", RecommendationOptions(include_following=False), now=now,
        )

        assert [r.content_id for r in recs] == ["b"]
        assert following.requests == []

    @pytest.mark.asyncio
    async def test_slow_and_failing_generators_contribute_nothing(self, memory_es, settings, now):
        engine = _engine(memory_es, settings, [
            StaticGenerator(CandidateSource.FOLLOWING, [_candidate("slow", 99, CandidateSource.FOLLOWING)], delay=5),
            StaticGenerator(CandidateSource.TOPIC, error=RuntimeError("boom")),
            StaticGenerator(CandidateSource.TRENDING, [_candidate("ok", 50, CandidateSource.TRENDING)]),
        ])

        recs = await engine.get_recommendations("u1", now=now)

        assert [r.content_id for r in recs] == ["ok"]

    @pytest.mark.asyncio
    async def test_viewed_content_is_excluded_from_requests(self, memory_es, settings, now):
        memory_es.add("behavior_logs", {
            "user_id": "u1",
            "behavior_type": "VIEW",
            "content_id": "seen",
            "content_type": "REEL",
            "duration": 3,
            "metadata": {"completion_rate": 0.2},
            "created_at": (now - timedelta(days=2)).isoformat(),
        })
        gen = StaticGenerator(CandidateSource.TRENDING)
        engine = _engine(memory_es, settings, [gen])

        await engine.get_recommendations("u1", now=now)

        assert gen.requests[0].exclude_ids == frozenset({"seen"})

    @pytest.mark.asyncio
    async def test_new_user_gets_trending_and_explore(self, memory_es, settings, now, make_content):
        memory_es.add("reels", make_content("hot", creator_id="c1", topics=[("dance", "Dance")], likes=30))
        memory_es.add("reels", make_content("cool", creator_id="c2", topics=[("art", "Art")], likes=3))
        engine = RecommendationEngine(memory_es, RecommendationStore(memory_es, settings), settings)

        recs = await engine.get_recommendations("brand-new", now=now)

        assert recs
        assert {r.source for r in recs} <= {"trending", "explore"}
        assert len({r.content_id for r in recs}) == len(recs)

    @pytest.mark.asyncio
    async def test_nothing_to_recommend(self, memory_es, settings, now):
        engine = _engine(memory_es, settings, [StaticGenerator(CandidateSource.TRENDING)])
        assert await engine.get_recommendations("u1", now=now) == []

    @pytest.mark.asyncio
    async def test_catalog_unavailable_returns_empty(self, memory_es, settings, now):
        memory_es.failing_indices = {"reels", "follows", "behavior_logs"}
        engine = RecommendationEngine(memory_es, RecommendationStore(memory_es, settings), settings)

        recs = await engine.get_recommendations("u1", now=now)

        assert recs == []
        assert memory_es.all("recommendations") == []

    @pytest.mark.asyncio
    async def test_store_outage_returns_results_without_persisting(self, memory_es, settings, now):
        memory_es.failing_indices.add("recommendations")
        engine = _engine(memory_es, settings, [
            StaticGenerator(CandidateSource.TRENDING, [_candidate("a", 50, CandidateSource.TRENDING)]),
        ])

        recs = await engine.get_recommendations("u1", now=now)

        assert [r.content_id for r in recs] == ["a"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_finished_candidates_warm_the_store(self, memory_es, settings, now):
        settings = settings.model_copy(update={"provider_timeout_seconds": 30.0})
        started = asyncio.Event()
        engine = _engine(memory_es, settings, [
            StaticGenerator(CandidateSource.TRENDING, [_candidate("quick", 50, CandidateSource.TRENDING)]),
            StaticGenerator(CandidateSource.TOPIC, [_candidate("late", 60, CandidateSource.TOPIC)],
                            delay=30, started=started),
        ])

        task = asyncio.create_task(engine.get_recommendations("u1", now=now))
        await started.wait()
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await engine.wait_background()

        stored = {d["content_id"] for d in memory_es.all("recommendations")}
        assert stored == {"quick"}


class TestFeedback:
    @pytest.mark.asyncio
    async def test_record_view_and_mark_viewed_delegate_to_store(self, memory_es, settings, now):
        engine = _engine(memory_es, settings, [])
        await engine.store.persist("u1", [
            RankedRecommendation(
                user_id="u1", content_id="a", final_score=1, reason="r", source="topic", created_at=now,
            )
        ])

        assert await engine.mark_viewed("u1", ["a"]) == 1
        assert await engine.record_view("u1", "a", 0.9, 8.0) is True
        assert len(memory_es.all("behavior_logs")) == 1
