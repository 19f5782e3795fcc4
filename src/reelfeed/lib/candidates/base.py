"""Base abstraction for candidate generators.

Each generator has a unique name, the candidate source it reports, and an
async `generate` method that returns scored `CandidateResult`s for one
ranking request.  Generators are registered in a global registry so the
engine and the API layer can look them up by name.

Scores are provider-local: they only become comparable across sources once
the aggregator and reranker have processed them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ...config import Settings
from ..profile import InterestProfile


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class CandidateSource(str, Enum):
    FOLLOWING = "following"
    TOPIC = "topic"
    TRENDING = "trending"
    SIMILAR = "similar"
    EXPLORE = "explore"

    @property
    def priority(self) -> int:
        """Tie-break rank among duplicates; lower wins."""
        return SOURCE_PRIORITY.index(self)


SOURCE_PRIORITY = (
    CandidateSource.FOLLOWING,
    CandidateSource.SIMILAR,
    CandidateSource.TOPIC,
    CandidateSource.TRENDING,
    CandidateSource.EXPLORE,
)


class CandidateResult(BaseModel):
    """A single content item proposed by one generator."""

    content_id: str = Field(..., description="Id of the proposed content item")
    score: float = Field(..., description="Provider-local score")
    reason: str = Field(..., description="Human-readable explanation")
    source: CandidateSource
    creator_id: str | None = Field(None, description="Creator of the content, used for diversity")
    topics: list[str] = Field(default_factory=list, description="Topic ids of the content")
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class CandidateRequest:
    """Everything a generator needs to produce candidates for one user."""

    user_id: str
    profile: InterestProfile
    now: datetime
    exclude_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class GeneratorContext:
    """Shared, read-only collaborators handed to every generator."""

    es: Any
    settings: Settings
    scorer: Any = None


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class CandidateGenerator(ABC):
    """Abstract base class for named candidate generators.

    Subclasses must implement `name`, `source` and `generate`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name identifying this generator (e.g. ``following``)."""
        ...

    @property
    @abstractmethod
    def source(self) -> CandidateSource:
        ...

    @abstractmethod
    async def generate(self, ctx: GeneratorContext, request: CandidateRequest) -> list[CandidateResult]:
        """Produce candidates for the given request.

        Parameters
        ----------
        ctx:
            The ``AsyncElasticsearch`` client, settings and (for exploration)
            the external relevance scorer.
        request:
            The user, profile, clock and exclusion set for this run.

        Returns
        -------
        list[CandidateResult]
        """
        ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_generators: dict[str, CandidateGenerator] = {}


def register_generator(gen: CandidateGenerator) -> None:
    """Register a generator instance by its name."""
    _generators[gen.name] = gen


def get_generator(name: str) -> CandidateGenerator | None:
    """Look up a registered generator by name.  Returns ``None`` if not found."""
    return _generators.get(name)


def list_generators() -> list[str]:
    """Return the names of all registered generators."""
    return list(_generators.keys())
