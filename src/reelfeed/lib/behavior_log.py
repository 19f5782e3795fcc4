"""Append-only behavioral log.

Every watch event is appended here regardless of whether it came from a
recommendation; the interest profile builder reads it back on the next
ranking run.  Records look like::

    {
        "user_id": "...",
        "behavior_type": "VIEW",
        "content_id": "...",
        "content_type": "REEL",
        "duration": 30,
        "metadata": {"completion_rate": 0.95, "from_recommendation": false},
        "created_at": "..."
    }
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from elasticsearch import ConflictError

from .elasticsearch import iter_sources, parse_es_time, terms_buckets, to_es_time

logger = logging.getLogger(__name__)

VIEW = "VIEW"
LIKE = "LIKE"
COMMENT = "COMMENT"
SHARE = "SHARE"

CONTENT_TYPE = "REEL"

MAX_VIEWED_IDS = 1000


@dataclass(frozen=True)
class ViewRecord:
    content_id: str
    completion_rate: float
    duration: float
    created_at: datetime


def _view_from_source(src: dict) -> ViewRecord | None:
    content_id = src.get("content_id")
    created_at = parse_es_time(src.get("created_at"))
    if not content_id or created_at is None:
        return None
    meta = src.get("metadata") or {}
    return ViewRecord(
        content_id=str(content_id),
        completion_rate=float(meta.get("completion_rate") or 0.0),
        duration=float(src.get("duration") or 0.0),
        created_at=created_at,
    )


async def append_behavior(
    es,
    index: str,
    *,
    user_id: str,
    behavior_type: str,
    content_id: str,
    duration: float = 0,
    metadata: dict[str, Any] | None = None,
    event_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Append one behavior record.

    When ``event_id`` is given it becomes the document id and the write is
    create-only, so replaying the same event does not append twice.  Returns
    ``False`` for such a replay.
    """
    now = now or datetime.now(timezone.utc)
    document = {
        "user_id": user_id,
        "behavior_type": behavior_type,
        "content_id": content_id,
        "content_type": CONTENT_TYPE,
        "duration": round(duration),
        "metadata": metadata or {},
        "created_at": to_es_time(now),
    }
    if event_id is None:
        await es.index(index=index, document=document)
        return True
    try:
        await es.create(index=index, id=event_id, document=document)
    except ConflictError:
        logger.info("Behavior event %s already recorded; skipping replay", event_id)
        return False
    return True


async def fetch_recent_views(
    es,
    index: str,
    user_id: str,
    *,
    since: datetime | None = None,
    min_completion: float | None = None,
    limit: int = 100,
) -> list[ViewRecord]:
    """Return the user's most recent VIEW records, newest first."""
    filters: list[dict] = [
        {"term": {"user_id": user_id}},
        {"term": {"behavior_type": VIEW}},
    ]
    if since is not None:
        filters.append({"range": {"created_at": {"gte": to_es_time(since)}}})
    if min_completion is not None:
        filters.append({"range": {"metadata.completion_rate": {"gte": min_completion}}})

    resp = await es.search(
        index=index,
        query={"bool": {"filter": filters}},
        size=limit,
        sort=[{"created_at": "desc"}],
    )
    views = [_view_from_source(src) for src in iter_sources(resp)]
    return [v for v in views if v is not None]


async def count_behaviors(es, index: str, user_id: str, *, since: datetime) -> dict[str, int]:
    """Count the user's behaviors by type since ``since``."""
    resp = await es.search(
        index=index,
        query={
            "bool": {
                "filter": [
                    {"term": {"user_id": user_id}},
                    {"term": {"content_type": CONTENT_TYPE}},
                    {"range": {"created_at": {"gte": to_es_time(since)}}},
                ]
            }
        },
        size=0,
        aggs={"by_type": {"terms": {"field": "behavior_type", "size": 20}}},
    )
    return {str(b["key"]): int(b.get("doc_count", 0)) for b in terms_buckets(resp, "by_type")}


async def fetch_viewed_content_ids(
    es,
    index: str,
    user_id: str,
    *,
    days: int,
    now: datetime | None = None,
) -> list[str]:
    """Return ids of content the user viewed in the last ``days`` days."""
    now = now or datetime.now(timezone.utc)
    views = await fetch_recent_views(
        es, index, user_id, since=now - timedelta(days=days), limit=MAX_VIEWED_IDS,
    )
    return list(dict.fromkeys(v.content_id for v in views))
