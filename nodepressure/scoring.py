"""
Scoring passes for eviction candidates.

Responsibilities:
- Adjust each candidate's score from one pod attribute per pass
  (age, QoS class, owner kind, criticality).
- Record a short reason next to every adjustment.

Non-Responsibilities:
- No sorting or selection.
- No I/O.

Invariant:
Every pass only adds to the score, so the passes commute. A VETO is large
enough that no sum of bonuses brings the candidate back to zero.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import List

from .models import OwnerKind, PodCandidate, QoSClass

VETO = -10000
NO_OWNER_PENALTY = -1000
QOS_BONUS = 100
REPLICA_SET_BONUS = 100

SYSTEM_NAMESPACE = "kube-system"
CRITICAL_PRIORITY_CLASSES = frozenset({"system-cluster-critical", "system-node-critical"})
CRITICAL_POD_ANNOTATION = "scheduler.alpha.kubernetes.io/critical-pod"

EVICTABLE_QOS_CLASSES = frozenset({QoSClass.BEST_EFFORT, QoSClass.BURSTABLE})
VETOING_OWNER_KINDS = frozenset({OwnerKind.STATEFUL_SET, OwnerKind.DAEMON_SET})


def age_bonus(age: timedelta) -> int:
    """
    Sub-linear bonus for a pod that has been running for `age`.

    Longer-running pods are assumed to be better neighbours and therefore
    safer to move; young pods are left alone so they do not bounce between
    nodes.
    """
    seconds = max(int(age.total_seconds()), 1)
    return int(math.floor(math.log1p(seconds)))


def _as_utc(ts: datetime) -> datetime:
    # naive timestamps are taken to be UTC, like the API server reports them
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def score_by_age(candidates: List[PodCandidate], min_pod_age: timedelta, now: datetime) -> None:
    now = _as_utc(now)
    for c in candidates:
        start_time = c.pod.start_time
        if start_time is None:
            c.adjust(VETO, "no start time")
            continue
        age = now - _as_utc(start_time)
        if age < min_pod_age:
            c.adjust(VETO, f"younger than minimum age ({int(age.total_seconds())}s)")
            continue
        c.adjust(age_bonus(age), "age")


def score_by_qos_class(candidates: List[PodCandidate]) -> None:
    for c in candidates:
        if c.pod.qos_class in EVICTABLE_QOS_CLASSES:
            c.adjust(QOS_BONUS, f"qos {c.pod.qos_class.value}")


def score_by_owner_type(candidates: List[PodCandidate]) -> None:
    for c in candidates:
        # unowned pods are not rescheduled after eviction
        if not c.pod.owner_references:
            c.adjust(NO_OWNER_PENALTY, "no owner")

        for owner in c.pod.owner_references:
            if owner.kind is OwnerKind.REPLICA_SET:
                c.adjust(REPLICA_SET_BONUS, f"owned by {owner.kind.value}")
            elif owner.kind in VETOING_OWNER_KINDS:
                c.adjust(VETO, f"owned by {owner.kind.value}")


def score_by_criticality(candidates: List[PodCandidate]) -> None:
    for c in candidates:
        pod = c.pod
        if pod.namespace == SYSTEM_NAMESPACE:
            c.adjust(VETO, f"namespace {SYSTEM_NAMESPACE}")
        if pod.priority_class_name in CRITICAL_PRIORITY_CLASSES:
            c.adjust(VETO, f"priority class {pod.priority_class_name}")
        if CRITICAL_POD_ANNOTATION in pod.annotations:
            c.adjust(VETO, "critical-pod annotation")
