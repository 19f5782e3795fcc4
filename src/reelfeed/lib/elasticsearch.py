"""Shared Elasticsearch utilities.

Helpers for working with Elasticsearch responses that are used across the
catalog, behavior log and recommendation store.
"""

import logging
from datetime import datetime, timezone

from elastic_transport import ObjectApiResponse
from elasticsearch import AsyncElasticsearch

from ..config import Settings
from .errors import CatalogError

logger = logging.getLogger(__name__)


def create_es_client(settings: Settings) -> AsyncElasticsearch:
    """Create the application-scoped async client."""
    if settings.es_api_key:
        return AsyncElasticsearch(settings.es_url, api_key=settings.es_api_key)
    return AsyncElasticsearch(settings.es_url)


def unwrap_es_response(resp) -> dict:
    """Unwrap an Elasticsearch response, handling both ObjectApiResponse and dict.

    Raises ``CatalogError`` if the response type is unexpected.
    """
    if isinstance(resp, ObjectApiResponse):
        return resp.body
    elif isinstance(resp, dict):
        return resp
    else:
        logger.error("Unexpected Elasticsearch response type: %s", type(resp))
        raise CatalogError("Invalid Elasticsearch response")


def iter_sources(resp) -> list[dict]:
    """Return the ``_source`` of every hit, with the document id under ``_id``."""
    data = unwrap_es_response(resp)
    sources: list[dict] = []
    for hit in data.get("hits", {}).get("hits", []):
        src = dict(hit.get("_source") or {})
        if hit.get("_id") is not None:
            src.setdefault("_id", hit["_id"])
        sources.append(src)
    return sources


def terms_buckets(resp, name: str) -> list[dict]:
    """Return the buckets of the named terms aggregation (empty if absent)."""
    data = unwrap_es_response(resp)
    agg = (data.get("aggregations") or {}).get(name) or {}
    return list(agg.get("buckets") or [])


def to_es_time(value: datetime) -> str:
    """Format a datetime as the ISO-8601 UTC string stored in documents."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_es_time(value) -> datetime | None:
    """Parse a stored timestamp back to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
