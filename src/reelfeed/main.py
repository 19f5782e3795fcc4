import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import get_settings
from .lib.elasticsearch import create_es_client
from .lib.engine import RecommendationEngine
from .lib.scorer import ContentRelevanceScorer
from .lib.store import RecommendationStore, ensure_indices
from .routers import health, recommendations

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the Elasticsearch client, scorer and engine for the app's lifetime."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    es = create_es_client(settings)
    scorer = ContentRelevanceScorer.from_settings(settings)
    if not scorer.configured:
        logger.warning("SCORER_URL not set; explore recommendations use fallback scoring")

    try:
        await ensure_indices(es, settings)
    except Exception:
        logger.exception("Could not ensure Elasticsearch indices at startup")

    app.state.settings = settings
    app.state.es = es
    app.state.engine = RecommendationEngine(
        es,
        RecommendationStore(es, settings),
        settings,
        scorer=scorer if scorer.configured else None,
    )
    try:
        yield
    finally:
        await app.state.engine.wait_background()
        await scorer.aclose()
        await es.close()


app = FastAPI(
    title="ReelFeed API",
    description="An API server for personalized short-video recommendation requests",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(recommendations.router)


@app.get("/")
async def root():
    return {"message": "ReelFeed API"}
