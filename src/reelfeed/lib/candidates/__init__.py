"""Candidate generation framework for the recommendation engine.

Provides the five built-in named candidate generators and a registry so they
can be run by the engine (as a parallel fan-out) or listed via the API.
"""

from .base import (
    SOURCE_PRIORITY,
    CandidateGenerator,
    CandidateRequest,
    CandidateResult,
    CandidateSource,
    GeneratorContext,
    get_generator,
    list_generators,
    register_generator,
)
from .explore import ExploreCandidateGenerator
from .following import FollowingCandidateGenerator
from .similar_content import SimilarContentCandidateGenerator
from .topic_affinity import TopicAffinityCandidateGenerator
from .trending import TrendingCandidateGenerator

# Register built-in generators
register_generator(FollowingCandidateGenerator())
register_generator(TopicAffinityCandidateGenerator())
register_generator(TrendingCandidateGenerator())
register_generator(SimilarContentCandidateGenerator())
register_generator(ExploreCandidateGenerator())

__all__ = [
    "SOURCE_PRIORITY",
    "CandidateGenerator",
    "CandidateRequest",
    "CandidateResult",
    "CandidateSource",
    "GeneratorContext",
    "get_generator",
    "list_generators",
    "register_generator",
    "ExploreCandidateGenerator",
    "FollowingCandidateGenerator",
    "SimilarContentCandidateGenerator",
    "TopicAffinityCandidateGenerator",
    "TrendingCandidateGenerator",
]
