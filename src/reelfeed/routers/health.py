import logging

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

router = APIRouter(tags=["health"])

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=HealthResponse, status_code=200)
async def healthcheck():
    return {"status": "ok"}


@router.get("/health/ready", response_model=HealthResponse)
async def readiness(request: Request, response: Response):
    """Report whether the Elasticsearch backend answers."""
    es = getattr(request.app.state, "es", None)
    try:
        reachable = es is not None and bool(await es.ping())
    except Exception:
        logger.exception("Elasticsearch ping failed")
        reachable = False
    if not reachable:
        response.status_code = 503
        return {"status": "unavailable"}
    return {"status": "ok"}
