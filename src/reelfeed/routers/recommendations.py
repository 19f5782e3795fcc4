"""Recommendations router – exposes the engine via HTTP.

GET /recommendations/sources
    List the registered candidate generators.

POST /recommendations
    Return ranked recommendations for a user.

POST /recommendations/views
    Record a watch event (feeds future interest profiles).

POST /recommendations/viewed
    Mark recommendations as surfaced to the user.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..lib.candidates import list_generators
from ..models import RankedRecommendation, RecommendationOptions
from ..security import verify_api_key

router = APIRouter(tags=["recommendations"], dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class RecommendationRequest(RecommendationOptions):
    """Request body for the recommendations endpoint."""

    user_id: str = Field(..., min_length=1, description="Id of the requesting user")
    mark_surfaced: bool = Field(
        True,
        description="Mark the returned items as viewed (surfaced) once served",
    )

    def options(self) -> RecommendationOptions:
        return RecommendationOptions.model_validate(
            self.model_dump(include=set(RecommendationOptions.model_fields))
        )


class RecommendationResponse(BaseModel):
    recommendations: list[RankedRecommendation]


class RecordViewRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    content_id: str = Field(..., min_length=1)
    completion_rate: float = Field(..., ge=0.0, le=1.0)
    watch_duration: float = Field(..., ge=0.0, description="Seconds watched")
    event_id: str | None = Field(
        None, description="Client event id; replays with the same id are recorded once"
    )


class MarkViewedRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    content_ids: list[str] = Field(default_factory=list)


class SuccessResponse(BaseModel):
    success: bool


class SourceListResponse(BaseModel):
    sources: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/recommendations/sources", response_model=SourceListResponse)
async def recommendation_sources() -> SourceListResponse:
    """Return the names of all registered candidate generators."""
    return SourceListResponse(sources=list_generators())


@router.post("/recommendations", response_model=RecommendationResponse)
async def recommendations_get(
    request: Request,
    payload: RecommendationRequest,
) -> RecommendationResponse:
    """Return up to ``limit`` recommendations, best first.

    An empty list is a valid answer (e.g. when the catalog is unreachable).
    """
    engine = request.app.state.engine
    recommendations = await engine.get_recommendations(payload.user_id, payload.options())

    if payload.mark_surfaced and recommendations:
        await engine.mark_viewed(payload.user_id, [r.content_id for r in recommendations])

    return RecommendationResponse(recommendations=recommendations)


@router.post("/recommendations/views", response_model=SuccessResponse)
async def recommendations_record_view(request: Request, payload: RecordViewRequest) -> SuccessResponse:
    engine = request.app.state.engine
    await engine.record_view(
        payload.user_id,
        payload.content_id,
        payload.completion_rate,
        payload.watch_duration,
        event_id=payload.event_id,
    )
    return SuccessResponse(success=True)


@router.post("/recommendations/viewed", response_model=SuccessResponse)
async def recommendations_mark_viewed(request: Request, payload: MarkViewedRequest) -> SuccessResponse:
    engine = request.app.state.engine
    await engine.mark_viewed(payload.user_id, payload.content_ids)
    return SuccessResponse(success=True)
