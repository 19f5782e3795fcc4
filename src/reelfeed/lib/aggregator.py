"""Deduplicating aggregator.

Merges the output of every generator into one candidate per content item,
keeping the highest-scored instance.  Exact score ties go to the source with
the better priority (Following > Similar > Topic > Trending > Explore).
"""

from collections.abc import Iterable

from .candidates import CandidateResult


def _rank_key(candidate: CandidateResult) -> tuple:
    return (-candidate.score, candidate.source.priority, candidate.content_id)


def aggregate_candidates(candidates: Iterable[CandidateResult]) -> list[CandidateResult]:
    """Return one candidate per ``content_id``, sorted by descending score."""
    best: dict[str, CandidateResult] = {}
    for candidate in candidates:
        current = best.get(candidate.content_id)
        if current is None or _rank_key(candidate) < _rank_key(current):
            best[candidate.content_id] = candidate
    return sorted(best.values(), key=_rank_key)
