"""Diversity reranker.

A single deterministic pass over candidates in descending score order:

* the top ``DIVERSITY_PROTECTED_TOP`` candidates keep their scores and do
  not enter the "seen" sets;
* every later candidate loses ``f * 10`` if its creator was already seen
  among later candidates and ``f * 15 * overlap / total_topics`` if any of
  its topics were;
* explore candidates gain ``f * 5``;
* the candidate's creator and topics are then added to the seen sets.

The result is re-sorted by adjusted score and truncated.  This is an
order-dependent approximation, not a global optimum, but the same input
always produces the same output.
"""

from . import weights
from .candidates import CandidateResult, CandidateSource


def _order_key(candidate: CandidateResult) -> tuple:
    return (-candidate.score, candidate.source.priority, candidate.content_id)


def diversity_adjustment(
    candidate: CandidateResult,
    diversity_factor: float,
    seen_creators: set[str],
    seen_topics: set[str],
) -> float:
    adjustment = 0.0
    if candidate.creator_id and candidate.creator_id in seen_creators:
        adjustment -= diversity_factor * weights.DIVERSITY_CREATOR_PENALTY

    topics = list(dict.fromkeys(candidate.topics))
    if topics:
        overlap = sum(1 for t in topics if t in seen_topics)
        if overlap:
            adjustment -= diversity_factor * weights.DIVERSITY_TOPIC_PENALTY * (overlap / len(topics))

    if candidate.source is CandidateSource.EXPLORE:
        adjustment += diversity_factor * weights.DIVERSITY_EXPLORE_BOOST
    return adjustment


def rerank(
    candidates: list[CandidateResult],
    diversity_factor: float,
    limit: int,
) -> list[CandidateResult]:
    """Apply the diversity pass (when enabled) and return the top ``limit``.

    The input list and its candidates are left untouched.
    """
    ordered = sorted(candidates, key=_order_key)
    if diversity_factor <= 0 or len(ordered) <= 1:
        return ordered[:limit]

    seen_creators: set[str] = set()
    seen_topics: set[str] = set()
    adjusted: list[CandidateResult] = []

    for index, candidate in enumerate(ordered):
        if index >= weights.DIVERSITY_PROTECTED_TOP:
            delta = diversity_adjustment(candidate, diversity_factor, seen_creators, seen_topics)
            candidate = candidate.model_copy(
                update={
                    "score": candidate.score + delta,
                    "metadata": {**candidate.metadata, "diversity_adjustment": delta},
                }
            )
            if candidate.creator_id:
                seen_creators.add(candidate.creator_id)
            seen_topics.update(candidate.topics)
        adjusted.append(candidate)

    adjusted.sort(key=_order_key)
    return adjusted[:limit]
