"""
Cleanup module for pruning the eviction ledger.

Entries older than a given number of days (default: 30) no longer affect
eviction backoff and only grow the database.
"""

from pathlib import Path
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError

from .storage import delete_stale_evictions
from .logger import get_logger


def cleanup_eviction_history(db_path: Path, days: int = 30) -> Tuple[int, int]:
    """
    Remove ledger entries older than the specified number of days.

    Args:
        db_path: Path to the SQLite ledger
        days: Number of days to keep entries (default: 30)

    Returns:
        Tuple of (entries_before, entries_after); (0, 0) if cleanup failed
    """
    logger = get_logger()
    try:
        before, after = delete_stale_evictions(days=days, db_path=db_path)
    except SQLAlchemyError as e:
        logger.error(f"Cleanup failed: {e}", error=str(e), days=days)
        return (0, 0)

    logger.info(
        f"Cleanup complete: {before - after} removed, {after} remaining",
        entries_before=before,
        entries_removed=before - after,
        entries_after=after,
        days_threshold=days,
    )
    return (before, after)
