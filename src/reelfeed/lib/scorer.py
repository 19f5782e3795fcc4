"""Client for the external content-relevance scorer.

The scorer receives a JSON profile summary plus candidate summaries and picks
the items most worth exploring, each with a relevance score in ``[0, 1]``.
It may be slow, unavailable or answer with malformed output, so every
response is validated strictly; any violation raises :class:`ScorerError`
and callers fall back to deterministic scoring instead of trusting part of
the payload.

Accepted response bodies::

    [{"content_id": "...", "score": 0.7, "reason": "...", "metadata": {...}}]
    {"recommendations": [...same items...]}
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..config import Settings
from . import weights
from .errors import ScorerError

logger = logging.getLogger(__name__)


class ScoredContent(BaseModel):
    """One validated selection returned by the scorer."""

    model_config = ConfigDict(extra="ignore")

    content_id: str = Field(..., min_length=1)
    score: float = Field(..., ge=0.0, le=1.0)
    reason: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


_selection_adapter = TypeAdapter(list[ScoredContent])


def parse_scorer_response(payload: Any, allowed_ids: set[str]) -> list[ScoredContent]:
    """Validate a decoded scorer response.

    Raises ``ScorerError`` unless the payload is a list of valid selections
    that all reference ``allowed_ids`` and name at least
    ``EXPLORE_MIN_SELECTION`` distinct items (or every allowed item when
    fewer are on offer).  Longer selections are cut to the first
    ``EXPLORE_MAX_SELECTION`` items.
    """
    if isinstance(payload, dict) and "recommendations" in payload:
        payload = payload["recommendations"]
    if not isinstance(payload, list):
        raise ScorerError(f"Scorer response is not a list: {type(payload).__name__}")

    try:
        selections = _selection_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ScorerError(f"Scorer response failed validation: {exc.error_count()} errors") from exc

    if not selections:
        raise ScorerError("Scorer selected nothing")

    unknown = [s.content_id for s in selections if s.content_id not in allowed_ids]
    if unknown:
        raise ScorerError(f"Scorer referenced unknown content: {unknown[:3]}")

    seen: set[str] = set()
    unique: list[ScoredContent] = []
    for s in selections:
        if s.content_id in seen:
            continue
        seen.add(s.content_id)
        unique.append(s)
    required = min(weights.EXPLORE_MIN_SELECTION, len(allowed_ids))
    if len(unique) < required:
        raise ScorerError(f"Scorer selected {len(unique)} items, expected at least {required}")
    return unique[: weights.EXPLORE_MAX_SELECTION]


class ContentRelevanceScorer:
    """Async HTTP client for the relevance scorer.

    ``client`` may be supplied to share a connection pool or for tests;
    otherwise one is created and owned by this instance.
    """

    def __init__(
        self,
        url: str | None,
        *,
        api_key: str | None = None,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContentRelevanceScorer":
        return cls(
            settings.scorer_url,
            api_key=settings.scorer_api_key,
            timeout=settings.scorer_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def score(
        self,
        profile_summary: dict[str, Any],
        candidates: list[dict[str, Any]],
    ) -> list[ScoredContent]:
        """Ask the scorer to select and score a subset of ``candidates``.

        Each candidate summary must carry a ``content_id``.
        """
        if not self.configured:
            raise ScorerError("Relevance scorer is not configured")

        body = {
            "profile": profile_summary,
            "candidates": candidates,
            "min_items": weights.EXPLORE_MIN_SELECTION,
            "max_items": weights.EXPLORE_MAX_SELECTION,
        }
        try:
            response = await self._client.post(self.url, json=body, headers=self._headers())
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ScorerError(f"Relevance scorer request failed: {exc}") from exc
        except ValueError as exc:
            raise ScorerError("Relevance scorer returned invalid JSON") from exc

        allowed = {str(c["content_id"]) for c in candidates}
        return parse_scorer_response(payload, allowed)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
