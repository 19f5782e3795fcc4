"""Runtime settings read from the environment.

Every field maps to the upper-cased environment variable of the same name
(``ES_URL``, ``CONTENT_INDEX``, ``PROVIDER_TIMEOUT_SECONDS`` ...), populated
from ``.env`` by the package ``__init__``.  ``get_settings()`` builds a fresh
:class:`Settings` on each call so tests can patch the environment and pick up
new values.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IndexNames(BaseModel):
    """Elasticsearch index names used by the service."""

    content: str
    follows: str
    interests: str
    behaviors: str
    recommendations: str


class Settings(BaseSettings):
    es_url: str = Field("http://localhost:9200", description="Elasticsearch endpoint")
    es_api_key: str | None = Field(None, description="Elasticsearch API key")

    # Index names
    content_index: str = "reels"
    follows_index: str = "follows"
    interests_index: str = "user_interests"
    behavior_index: str = "behavior_logs"
    recommendations_index: str = "recommendations"

    # Fan-out
    provider_timeout_seconds: float = Field(2.0, gt=0)

    # Windows
    freshness_window_hours: float = Field(24.0, gt=0)
    profile_lookback_days: int = Field(30, ge=1)
    viewed_exclusion_days: int = Field(14, ge=0)
    trending_window_days: int = Field(7, ge=1)

    # External content-relevance scorer
    scorer_url: str | None = Field(None, description="Endpoint of the relevance scorer")
    scorer_api_key: str | None = None
    scorer_timeout_seconds: float = Field(3.0, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(extra="ignore", env_ignore_empty=True)

    @property
    def indices(self) -> IndexNames:
        return IndexNames(
            content=self.content_index,
            follows=self.follows_index,
            interests=self.interests_index,
            behaviors=self.behavior_index,
            recommendations=self.recommendations_index,
        )


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
