from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .database import EvictionRecord, get_session, init_database, utcnow
from .models import PodCandidate


def _naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def record_eviction(
    db_path: Path,
    node_name: str,
    candidate: PodCandidate,
    status: str,
    message: str = "",
    created_at: Optional[datetime] = None,
) -> None:
    init_database(db_path)
    session = get_session(db_path)
    try:
        session.add(EvictionRecord(
            node_name=node_name,
            namespace=candidate.pod.namespace,
            pod_name=candidate.pod.name,
            score=candidate.score,
            status=status,
            message=message,
            created_at=_naive_utc(created_at) if created_at else utcnow(),
        ))
        session.commit()
    finally:
        session.close()


def last_eviction_at(
    db_path: Path,
    node_name: str,
    statuses: Iterable[str] = ("evicted",),
) -> Optional[datetime]:
    """Time of the newest ledger entry for the node (naive UTC), or None."""
    if not db_path.exists():
        return None
    session = get_session(db_path)
    try:
        row = (
            session.query(EvictionRecord)
            .filter(EvictionRecord.node_name == node_name)
            .filter(EvictionRecord.status.in_(list(statuses)))
            .order_by(EvictionRecord.created_at.desc())
            .first()
        )
        return row.created_at if row else None
    finally:
        session.close()


def list_evictions(
    db_path: Path,
    node_name: Optional[str] = None,
    limit: int = 50,
) -> List[EvictionRecord]:
    """Newest-first ledger entries, optionally for one node."""
    if not db_path.exists():
        return []
    session = get_session(db_path)
    try:
        query = session.query(EvictionRecord)
        if node_name:
            query = query.filter(EvictionRecord.node_name == node_name)
        rows = query.order_by(EvictionRecord.created_at.desc(), EvictionRecord.id.desc()).limit(limit).all()
        session.expunge_all()
        return rows
    finally:
        session.close()


def delete_stale_evictions(days: int, db_path: Path) -> Tuple[int, int]:
    """
    Delete ledger entries older than `days`.

    Returns:
        Tuple of (entries_before, entries_after)
    """
    if not db_path.exists():
        return (0, 0)
    session = get_session(db_path)
    try:
        before = session.query(EvictionRecord).count()
        cutoff = utcnow() - timedelta(days=days)
        session.query(EvictionRecord).filter(EvictionRecord.created_at < cutoff).delete(
            synchronize_session=False
        )
        session.commit()
        after = session.query(EvictionRecord).count()
        return (before, after)
    finally:
        session.close()
