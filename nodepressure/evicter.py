"""
Eviction executor.

Takes the candidate chosen by selection and asks the API server to evict
it, at most once per backoff window per node. Every attempt lands in the
eviction ledger. Failures are returned as results so the control loop
keeps running.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import DEFAULT_EVICTION_BACKOFF
from .kube import EvictionBlockedError, KubeAPIError, KubeClient, PodNotFoundError
from .logger import get_logger
from .models import PodCandidate
from .retry import CircuitBreaker, CircuitOpenError, RetryError
from .storage import last_eviction_at, record_eviction

EVICTED = "evicted"
DRY_RUN = "dry_run"
BACKOFF = "backoff"
BLOCKED = "blocked"
NOT_FOUND = "not_found"
FAILED = "failed"

# ledger statuses that start a new backoff window
BACKOFF_STATUSES = (EVICTED, DRY_RUN)


def _naive_utc(ts: datetime) -> datetime:
    return ts.astimezone(timezone.utc).replace(tzinfo=None) if ts.tzinfo else ts


@dataclass(frozen=True)
class EvictionResult:
    candidate: PodCandidate
    status: str
    message: str = ""

    @property
    def evicted(self) -> bool:
        return self.status in BACKOFF_STATUSES


class Evicter:
    def __init__(
        self,
        client: KubeClient,
        node_name: str,
        db_path: Path,
        backoff: timedelta = DEFAULT_EVICTION_BACKOFF,
        dry_run: bool = False,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.client = client
        self.node_name = node_name
        self.db_path = Path(db_path)
        self.backoff = backoff
        self.dry_run = dry_run
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            expected_exception=(KubeAPIError, RetryError),
        )
        # last backoff-starting eviction, kept in memory in case the ledger write fails
        self._last_evicted_at: Optional[datetime] = None

    def can_evict(self, now: Optional[datetime] = None) -> bool:
        """
        True if no eviction was recorded for this node within the backoff.

        An unreadable ledger counts as a recent eviction.
        """
        try:
            last = last_eviction_at(self.db_path, self.node_name, BACKOFF_STATUSES)
        except (SQLAlchemyError, OSError) as e:
            logger = get_logger()
            logger.record_error(type(e).__name__)
            logger.error("eviction ledger unreadable, holding evictions", db=self.db_path, error=str(e))
            return False
        if self._last_evicted_at is not None and (last is None or self._last_evicted_at > last):
            last = self._last_evicted_at
        if last is None:
            return True
        now = _naive_utc(now or datetime.now(timezone.utc))
        return now - last >= self.backoff

    def evict(self, candidate: PodCandidate, now: Optional[datetime] = None) -> EvictionResult:
        pod = candidate.pod
        logger = get_logger()

        if not self.can_evict(now):
            logger.info("eviction skipped, backoff active", pod=pod.key, backoff=str(self.backoff))
            return EvictionResult(candidate, BACKOFF, f"backoff of {self.backoff} active")

        if self.dry_run:
            logger.info(f"dry run: would evict {pod.key}", score=candidate.score)
            return self._finish(candidate, DRY_RUN, "dry run", now)

        logger.record_eviction_attempt()
        try:
            refusal = self.breaker.call(self._request_eviction, pod.namespace, pod.name)
        except (KubeAPIError, RetryError, CircuitOpenError) as e:
            logger.record_eviction_failure(type(e).__name__)
            logger.error(f"eviction of {pod.key} failed", error=str(e))
            return self._finish(candidate, FAILED, str(e), now)

        if isinstance(refusal, EvictionBlockedError):
            logger.record_eviction_failure("EvictionBlocked")
            logger.warning(f"eviction of {pod.key} blocked", reason=refusal.message)
            return self._finish(candidate, BLOCKED, refusal.message, now)
        if isinstance(refusal, PodNotFoundError):
            logger.record_eviction_failure("PodNotFound")
            logger.warning(f"pod {pod.key} vanished before eviction")
            return self._finish(candidate, NOT_FOUND, refusal.message, now)

        logger.record_eviction_success()
        logger.info(f"evicted {pod.key}", score=candidate.score, node=self.node_name)
        return self._finish(candidate, EVICTED, "", now)

    def _request_eviction(self, namespace: str, name: str) -> Optional[KubeAPIError]:
        # refusals come back as values so they never trip the breaker
        try:
            self.client.evict_pod(namespace, name)
        except (EvictionBlockedError, PodNotFoundError) as e:
            return e
        return None

    def _finish(
        self,
        candidate: PodCandidate,
        status: str,
        message: str,
        now: Optional[datetime],
    ) -> EvictionResult:
        if status in BACKOFF_STATUSES:
            self._last_evicted_at = _naive_utc(now or datetime.now(timezone.utc))
        try:
            record_eviction(self.db_path, self.node_name, candidate, status, message, created_at=now)
        except (SQLAlchemyError, OSError) as e:
            logger = get_logger()
            logger.record_error(type(e).__name__)
            logger.error(
                f"recording {status} of {candidate.pod.key} failed",
                db=self.db_path,
                error=str(e),
            )
        return EvictionResult(candidate, status, message)
