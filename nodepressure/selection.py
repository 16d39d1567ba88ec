"""
Eviction candidate selection.

Responsibilities:
- Build a candidate set from a pod snapshot and run every scoring pass.
- Rank candidates by score, keeping snapshot order among ties.
- Report the ranking through a sink and pick the best non-negative
  candidate.

Non-Responsibilities:
- No API access and no eviction.
- No state kept between calls.

Invariant:
Given identical pods, minimum age and clock, the ranking and the
selection are identical. "No candidate" is a normal result, not an error.

The selected pod is the one most likely to be safe to move: not critical,
not unowned, not tied to this node by its controller, and old enough to
be presumed a good neighbour.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from .candidates import candidates_from_pods
from .logger import get_logger
from .models import PodCandidate, PodDescriptor
from .scoring import (
    score_by_age,
    score_by_criticality,
    score_by_owner_type,
    score_by_qos_class,
)

# sink(candidate, rank); rank starts at 1
CandidateSink = Callable[[PodCandidate, int], None]


def log_candidate(candidate: PodCandidate, rank: int) -> None:
    """Default sink: one log line per ranked candidate."""
    get_logger().info(
        f"eviction candidate: {candidate.pod.key} (score of {candidate.score})",
        rank=rank,
        reasons=candidate.reasons,
    )


def rank_candidates(
    pods: Iterable[PodDescriptor],
    min_pod_age: timedelta,
    now: Optional[datetime] = None,
) -> List[PodCandidate]:
    """
    Score every pod and return the candidates best-first.

    Args:
        pods: Snapshot of the pods running on the node
        min_pod_age: Pods younger than this are never eligible
        now: Reference time for age scoring (default: current UTC time)

    Returns:
        All candidates, sorted by descending score. Ties keep snapshot order.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    candidates = candidates_from_pods(pods)
    score_by_age(candidates, min_pod_age, now)
    score_by_qos_class(candidates)
    score_by_owner_type(candidates)
    score_by_criticality(candidates)

    # sorted() is stable, so equal scores keep snapshot order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def select_candidate_for_eviction(
    pods: Iterable[PodDescriptor],
    min_pod_age: timedelta,
    now: Optional[datetime] = None,
    sink: Optional[CandidateSink] = None,
) -> Optional[PodCandidate]:
    """
    Select the candidate that is safest to evict.

    Args:
        pods: Snapshot of the pods running on the node
        min_pod_age: Pods younger than this are never eligible
        now: Reference time for age scoring (default: current UTC time)
        sink: Receives every ranked candidate (default: log_candidate)

    Returns:
        The highest-ranked candidate with a non-negative score, or None if
        every candidate is vetoed.
    """
    if sink is None:
        sink = log_candidate

    ranked = rank_candidates(pods, min_pod_age, now)

    for rank, candidate in enumerate(ranked, start=1):
        try:
            sink(candidate, rank)
        except Exception:
            # diagnostics must never decide the outcome
            continue

    for candidate in ranked:
        if candidate.vetoed:
            continue
        _report_selected(candidate)
        return candidate

    return None


def select_pod_for_eviction(
    pods: Iterable[PodDescriptor],
    min_pod_age: timedelta,
    now: Optional[datetime] = None,
    sink: Optional[CandidateSink] = None,
) -> Optional[PodDescriptor]:
    """Like select_candidate_for_eviction, but return the pod itself."""
    candidate = select_candidate_for_eviction(pods, min_pod_age, now=now, sink=sink)
    return candidate.pod if candidate is not None else None


def _report_selected(candidate: PodCandidate) -> None:
    try:
        get_logger().info(f"selected candidate: {candidate.pod.key} (score of {candidate.score})")
    except Exception:
        pass
