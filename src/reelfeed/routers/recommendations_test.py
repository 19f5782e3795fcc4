"""Tests for the recommendations router."""

import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from ..main import app
from ..models import RankedRecommendation


class FakeEngine:
    """Records calls and serves canned recommendations."""

    def __init__(self, recommendations=()):
        self.recommendations = list(recommendations)
        self.calls: list[tuple] = []

    async def get_recommendations(self, user_id, options=None, now=None):
        self.calls.append(("get", user_id, options))
        return self.recommendations[: options.limit]

    async def record_view(self, user_id, content_id, completion_rate, watch_duration, *, event_id=None):
        self.calls.append(("view", user_id, content_id, completion_rate, watch_duration, event_id))
        return True

    async def mark_viewed(self, user_id, content_ids):
        self.calls.append(("viewed", user_id, list(content_ids)))
        return len(content_ids)


def _rec(content_id, score):
    return RankedRecommendation(
        user_id="u1",
        content_id=content_id,
        final_score=score,
        reason="Trending now",
        source="trending",
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def fake_engine():
    """Install a fake engine and API key for every test, then clean up."""
    prev = os.environ.get("API_KEY")
    os.environ["API_KEY"] = "testkey"

    engine = FakeEngine([_rec("a", 90), _rec("b", 80), _rec("c", 70)])
    app.state.engine = engine
    yield engine
    try:
        delattr(app.state, "engine")
    except (AttributeError, KeyError):
        pass
    if prev is None:
        del os.environ["API_KEY"]
    else:
        os.environ["API_KEY"] = prev


HEADERS = {"X-API-Key": "testkey"}


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_requires_api_key():
    client = TestClient(app)
    resp = client.post("/recommendations", json={"user_id": "u1"})
    assert resp.status_code == 401


def test_list_sources():
    client = TestClient(app, headers=HEADERS)
    resp = client.get("/recommendations/sources")
    assert resp.status_code == 200
    assert set(resp.json()["sources"]) == {"following", "topic", "trending", "similar", "explore"}


def test_get_recommendations_marks_surfaced(fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "u1", "limit": 2, "diversity_factor": 0.5})

    assert resp.status_code == 200
    data = resp.json()["recommendations"]
    assert [r["content_id"] for r in data] == ["a", "b"]
    assert data[0]["final_score"] == 90
    assert data[0]["is_viewed"] is False

    _, user_id, options = fake_engine.calls[0]
    assert user_id == "u1"
    assert options.limit == 2
    assert options.diversity_factor == 0.5
    assert fake_engine.calls[1] == ("viewed", "u1", ["a", "b"])


def test_get_recommendations_without_marking(fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "u1", "mark_surfaced": False})

    assert resp.status_code == 200
    assert [c[0] for c in fake_engine.calls] == ["get"]


def test_empty_result_is_valid(fake_engine):
    fake_engine.recommendations = []
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json={"user_id": "u1"})

    assert resp.status_code == 200
    assert resp.json() == {"recommendations": []}
    assert [c[0] for c in fake_engine.calls] == ["get"]


@pytest.mark.parametrize(
    "body",
    [
        {"user_id": "u1", "limit": 0},
        {"user_id": "u1", "limit": 101},
        {"user_id": "u1", "diversity_factor": 1.5},
        {"user_id": ""},
        {},
    ],
)
def test_invalid_request_rejected(body, fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations", json=body)
    assert resp.status_code == 422
    assert fake_engine.calls == []


def test_record_view(fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post(
        "/recommendations/views",
        json={
            "user_id": "u1",
            "content_id": "a",
            "completion_rate": 0.75,
            "watch_duration": 12.5,
            "event_id": "evt-1",
        },
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    assert fake_engine.calls == [("view", "u1", "a", 0.75, 12.5, "evt-1")]


def test_record_view_rejects_bad_completion(fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post(
        "/recommendations/views",
        json={"user_id": "u1", "content_id": "a", "completion_rate": 1.2, "watch_duration": 3},
    )
    assert resp.status_code == 422


def test_mark_viewed(fake_engine):
    client = TestClient(app, headers=HEADERS)
    resp = client.post("/recommendations/viewed", json={"user_id": "u1", "content_ids": ["a", "c"]})

    assert resp.status_code == 200
    assert fake_engine.calls == [("viewed", "u1", ["a", "c"])]
