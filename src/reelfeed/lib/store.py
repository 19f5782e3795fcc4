"""Recommendation store.

Persists ranked recommendations and records feedback on them.  Rows are kept
in the recommendations index under the document id ``"{user_id}:{content_id}"``
so a user never holds two rows for the same content.  A row stays reusable
("fresh") until it is viewed or the freshness window elapses; older rows
remain for analytics.

Write failures never abort a request: they are logged per row and skipped,
and the next ranking pass regenerates whatever is missing.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from elasticsearch import ConflictError

from ..config import Settings
from ..models import RankedRecommendation
from .behavior_log import VIEW, append_behavior
from .elasticsearch import iter_sources, to_es_time, unwrap_es_response

logger = logging.getLogger(__name__)

RECOMMENDATIONS_MAPPING = {
    "properties": {
        "user_id": {"type": "keyword"},
        "content_id": {"type": "keyword"},
        "final_score": {"type": "float"},
        "reason": {"type": "text"},
        "source": {"type": "keyword"},
        "is_viewed": {"type": "boolean"},
        "is_clicked": {"type": "boolean"},
        "created_at": {"type": "date"},
        "viewed_at": {"type": "date"},
        "clicked_at": {"type": "date"},
        "metadata": {"type": "object", "enabled": False},
    }
}

BEHAVIOR_LOGS_MAPPING = {
    "properties": {
        "user_id": {"type": "keyword"},
        "behavior_type": {"type": "keyword"},
        "content_id": {"type": "keyword"},
        "content_type": {"type": "keyword"},
        "duration": {"type": "integer"},
        "metadata": {
            "properties": {
                "completion_rate": {"type": "float"},
                "from_recommendation": {"type": "boolean"},
            }
        },
        "created_at": {"type": "date"},
    }
}


async def ensure_indices(es, settings: Settings) -> None:
    """Create the indices this service owns if they do not exist yet."""
    owned = (
        (settings.indices.recommendations, RECOMMENDATIONS_MAPPING),
        (settings.indices.behaviors, BEHAVIOR_LOGS_MAPPING),
    )
    for index, mapping in owned:
        if await es.indices.exists(index=index):
            continue
        logger.info("Creating index %s", index)
        await es.indices.create(index=index, mappings=mapping)


def document_id(user_id: str, content_id: str) -> str:
    return f"{user_id}:{content_id}"


class RecommendationStore:
    """Owns the persisted ``RankedRecommendation`` rows."""

    def __init__(self, es, settings: Settings):
        self.es = es
        self.settings = settings

    @property
    def index(self) -> str:
        return self.settings.indices.recommendations

    # ---------- Reads ----------

    async def get_fresh_recommendations(
        self,
        user_id: str,
        limit: int,
        now: datetime | None = None,
    ) -> list[RankedRecommendation]:
        """Return up to ``limit`` unviewed rows created inside the freshness window."""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=self.settings.freshness_window_hours)
        resp = await self.es.search(
            index=self.index,
            query={
                "bool": {
                    "filter": [
                        {"term": {"user_id": user_id}},
                        {"term": {"is_viewed": False}},
                        {"range": {"created_at": {"gte": to_es_time(since)}}},
                    ]
                }
            },
            size=limit,
            sort=[{"final_score": "desc"}, {"content_id": "asc"}],
        )
        return [RankedRecommendation.model_validate(src) for src in iter_sources(resp)]

    # ---------- Writes ----------

    async def persist(self, user_id: str, ranked: list[RankedRecommendation]) -> int:
        """Create a row per recommendation, skipping rows that already exist.

        Returns the number of rows written.
        """
        if not ranked:
            return 0
        written = await asyncio.gather(*(self._create_row(user_id, row) for row in ranked))
        count = sum(1 for ok in written if ok)
        if count:
            try:
                await self.es.indices.refresh(index=self.index)
            except Exception:
                logger.exception("Refreshing %s after persisting failed", self.index)
        return count

    async def _create_row(self, user_id: str, row: RankedRecommendation) -> bool:
        try:
            await self.es.create(
                index=self.index,
                id=document_id(user_id, row.content_id),
                document=row.model_dump(mode="json"),
            )
        except ConflictError:
            logger.debug("Recommendation %s already stored for %s", row.content_id, user_id)
            return False
        except Exception:
            logger.exception("Persisting recommendation %s for %s failed; skipping", row.content_id, user_id)
            return False
        return True

    async def record_view(
        self,
        user_id: str,
        content_id: str,
        completion_rate: float,
        watch_duration: float,
        *,
        event_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Record a watch event; never raises.

        Marks the most recent unclicked recommendation for the content as
        clicked (and viewed) with the outcome in its metadata, then appends a
        VIEW record to the behavioral log whether or not such a
        recommendation existed.  Returns whether the view came from a
        recommendation.
        """
        now = now or datetime.now(timezone.utc)
        from_recommendation = False
        try:
            from_recommendation = await self._mark_clicked(user_id, content_id, completion_rate, watch_duration, now)
        except Exception:
            logger.exception("Updating recommendation %s for %s failed", content_id, user_id)

        try:
            await append_behavior(
                self.es,
                self.settings.indices.behaviors,
                user_id=user_id,
                behavior_type=VIEW,
                content_id=content_id,
                duration=watch_duration,
                metadata={
                    "completion_rate": completion_rate,
                    "from_recommendation": from_recommendation,
                },
                event_id=event_id,
                now=now,
            )
        except Exception:
            logger.exception("Appending view of %s by %s to the behavior log failed", content_id, user_id)
        return from_recommendation

    async def _mark_clicked(
        self,
        user_id: str,
        content_id: str,
        completion_rate: float,
        watch_duration: float,
        now: datetime,
    ) -> bool:
        resp = await self.es.search(
            index=self.index,
            query={
                "bool": {
                    "filter": [
                        {"term": {"user_id": user_id}},
                        {"term": {"content_id": content_id}},
                        {"term": {"is_clicked": False}},
                    ]
                }
            },
            size=1,
            sort=[{"created_at": "desc"}],
        )
        rows = iter_sources(resp)
        if not rows:
            return False

        row = rows[0]
        stamp = to_es_time(now)
        update = {
            "is_viewed": True,
            "is_clicked": True,
            "clicked_at": stamp,
            "metadata": {
                **(row.get("metadata") or {}),
                "completion_rate": completion_rate,
                "watch_duration": watch_duration,
            },
        }
        if not row.get("viewed_at"):
            update["viewed_at"] = stamp
        await self.es.update(
            index=self.index,
            id=row.get("_id") or document_id(user_id, content_id),
            doc=update,
        )
        return True

    async def mark_viewed(
        self,
        user_id: str,
        content_ids: list[str],
        now: datetime | None = None,
    ) -> int:
        """Flag rows as surfaced to the user; never raises.

        Returns the number of rows updated.
        """
        if not content_ids:
            return 0
        now = now or datetime.now(timezone.utc)
        try:
            resp = await self.es.update_by_query(
                index=self.index,
                query={
                    "bool": {
                        "filter": [
                            {"term": {"user_id": user_id}},
                            {"terms": {"content_id": list(content_ids)}},
                            {"term": {"is_viewed": False}},
                        ]
                    }
                },
                script={
                    "source": "ctx._source.is_viewed = true; ctx._source.viewed_at = params.now",
                    "params": {"now": to_es_time(now)},
                },
                conflicts="proceed",
                refresh=True,
            )
        except Exception:
            logger.exception("Marking %d recommendations viewed for %s failed", len(content_ids), user_id)
            return 0
        return int(unwrap_es_response(resp).get("updated", 0))
