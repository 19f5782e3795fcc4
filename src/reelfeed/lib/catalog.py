"""Read-only access to the content catalog.

The catalog is owned by the surrounding application; this module only reads
it.  Each published short video lives in the content index as::

    {
        "content_id": "...",
        "creator_id": "...",
        "creator_name": "...",
        "topics": [{"id": "...", "name": "..."}],
        "like_count": 0, "view_count": 0, "comment_count": 0, "share_count": 0,
        "created_at": "2024-01-01T00:00:00+00:00",
        "is_published": true
    }

Follow edges live in their own index as ``{follower_id, following_id}``.
"""

import logging
import math
from datetime import datetime

from pydantic import BaseModel, Field

from .elasticsearch import iter_sources, parse_es_time, terms_buckets, to_es_time

logger = logging.getLogger(__name__)

MAX_FOLLOWED_CREATORS = 1000


class Topic(BaseModel):
    id: str
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id


class ContentItem(BaseModel):
    """A published short video with its engagement counters."""

    content_id: str
    creator_id: str | None = None
    creator_name: str | None = None
    topics: list[Topic] = Field(default_factory=list)
    like_count: int = 0
    view_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    created_at: datetime
    is_published: bool = True

    @classmethod
    def from_source(cls, src: dict) -> "ContentItem":
        topics = []
        for t in src.get("topics") or []:
            if isinstance(t, dict) and t.get("id") is not None:
                topics.append(Topic(id=str(t["id"]), name=t.get("name")))
            elif isinstance(t, str):
                topics.append(Topic(id=t))
        return cls(
            content_id=str(src.get("content_id") or src.get("_id")),
            creator_id=src.get("creator_id"),
            creator_name=src.get("creator_name"),
            topics=topics,
            like_count=src.get("like_count") or 0,
            view_count=src.get("view_count") or 0,
            comment_count=src.get("comment_count") or 0,
            share_count=src.get("share_count") or 0,
            created_at=parse_es_time(src.get("created_at")),
            is_published=src.get("is_published", True),
        )

    @property
    def topic_ids(self) -> list[str]:
        return [t.id for t in self.topics]

    def days_since_creation(self, now: datetime) -> int:
        """Whole days since creation, never less than 1."""
        days = math.floor((now - self.created_at).total_seconds() / 86400)
        return max(1, days)

    def hours_since_creation(self, now: datetime) -> float:
        """Fractional hours since creation, never less than 1."""
        return max(1.0, (now - self.created_at).total_seconds() / 3600)


def items_from_response(resp) -> list[ContentItem]:
    """Parse catalog hits, skipping documents that do not validate."""
    items: list[ContentItem] = []
    for src in iter_sources(resp):
        try:
            items.append(ContentItem.from_source(src))
        except ValueError as exc:
            # pydantic ValidationError is a ValueError; so are bad timestamps
            logger.warning(
                "Skipping malformed catalog document %s: %s",
                src.get("content_id") or src.get("_id"),
                exc.__class__.__name__,
            )
    return items


def build_content_query(
    *,
    exclude_ids: list[str] | None = None,
    creator_ids: list[str] | None = None,
    topic_ids: list[str] | None = None,
    creator_or_topic: bool = False,
    since: datetime | None = None,
    exclude_creator_id: str | None = None,
) -> dict:
    """Build the bool query used by every content lookup.

    Creator and topic filters are ANDed unless ``creator_or_topic`` is set,
    in which case content matching either is accepted.
    """
    filters: list[dict] = [{"term": {"is_published": True}}]
    must_not: list[dict] = []

    creator_clause = {"terms": {"creator_id": creator_ids}} if creator_ids else None
    topic_clause = {"terms": {"topics.id": topic_ids}} if topic_ids else None

    if creator_or_topic and creator_clause and topic_clause:
        filters.append({
            "bool": {"should": [creator_clause, topic_clause], "minimum_should_match": 1}
        })
    else:
        filters.extend(c for c in (creator_clause, topic_clause) if c is not None)

    if since is not None:
        filters.append({"range": {"created_at": {"gte": to_es_time(since)}}})
    if exclude_ids:
        must_not.append({"terms": {"content_id": list(exclude_ids)}})
    if exclude_creator_id:
        must_not.append({"term": {"creator_id": exclude_creator_id}})

    query: dict = {"bool": {"filter": filters}}
    if must_not:
        query["bool"]["must_not"] = must_not
    return query


async def search_content(
    es,
    index: str,
    *,
    size: int,
    sort: list[dict] | None = None,
    **filters,
) -> list[ContentItem]:
    """Return published content matching ``filters`` (see ``build_content_query``)."""
    query = build_content_query(**filters)
    resp = await es.search(index=index, query=query, size=size, sort=sort)
    return items_from_response(resp)


async def fetch_content_by_ids(es, index: str, content_ids: list[str]) -> dict[str, ContentItem]:
    """Fetch catalog items by id.  Unknown ids are silently absent."""
    ids = list(dict.fromkeys(content_ids))
    if not ids:
        return {}
    resp = await es.search(
        index=index,
        query={"terms": {"content_id": ids}},
        size=len(ids),
    )
    return {item.content_id: item for item in items_from_response(resp)}


async def fetch_followed_creator_ids(es, index: str, user_id: str) -> list[str]:
    resp = await es.search(
        index=index,
        query={"bool": {"filter": [{"term": {"follower_id": user_id}}]}},
        size=MAX_FOLLOWED_CREATORS,
        _source=["following_id"],
    )
    ids = [src.get("following_id") for src in iter_sources(resp)]
    return [i for i in ids if i]


async def fetch_active_topic_ids(
    es,
    index: str,
    *,
    exclude_topic_ids: list[str],
    limit: int,
) -> list[str]:
    """Return the most active topics in the catalog, skipping ``exclude_topic_ids``.

    Activity is the number of published items tagged with the topic; topics
    with no tagged content never appear.
    """
    terms: dict = {"field": "topics.id", "size": limit}
    if exclude_topic_ids:
        terms["exclude"] = list(exclude_topic_ids)
    resp = await es.search(
        index=index,
        query={"bool": {"filter": [{"term": {"is_published": True}}]}},
        size=0,
        aggs={"active_topics": {"terms": terms}},
    )
    return [
        str(b["key"])
        for b in terms_buckets(resp, "active_topics")
        if b.get("doc_count", 0) > 0
    ]
