"""
Domain types for eviction candidate selection.

A PodDescriptor is the read-only view of a pod taken from a node snapshot.
A PodCandidate wraps one descriptor with a score that the scoring passes
accumulate into.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class QoSClass(Enum):
    """Kubernetes pod QoS tier."""

    GUARANTEED = "Guaranteed"
    BURSTABLE = "Burstable"
    BEST_EFFORT = "BestEffort"


class OwnerKind(Enum):
    """Controller kinds the scoring passes know about."""

    REPLICA_SET = "ReplicaSet"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"
    JOB = "Job"
    REPLICATION_CONTROLLER = "ReplicationController"
    OTHER = "Other"

    @classmethod
    def from_kind(cls, kind: Optional[str]) -> "OwnerKind":
        for member in cls:
            if member is not cls.OTHER and member.value == kind:
                return member
        return cls.OTHER


@dataclass(frozen=True)
class OwnerReference:
    kind: OwnerKind
    name: str = ""
    controller: bool = False


@dataclass(frozen=True)
class PodDescriptor:
    """Snapshot of the pod fields that eviction scoring reads."""

    namespace: str
    name: str
    qos_class: Optional[QoSClass] = None
    start_time: Optional[datetime] = None  # timezone-aware; None if not started
    owner_references: Tuple[OwnerReference, ...] = ()
    priority_class_name: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)
    node_name: Optional[str] = None
    uid: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class PodCandidate:
    """A pod under consideration for eviction, plus its running score."""

    pod: PodDescriptor
    score: int = 0
    reasons: List[str] = field(default_factory=list)

    def adjust(self, delta: int, reason: str) -> None:
        self.score += delta
        self.reasons.append(f"{delta:+d} {reason}")

    @property
    def vetoed(self) -> bool:
        return self.score < 0
