"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the eviction ledger.
"""

from datetime import datetime, timezone
from pathlib import Path
from sqlalchemy import create_engine, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def utcnow() -> datetime:
    # SQLite drops tzinfo, so the ledger stores naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EvictionRecord(Base):
    """One eviction attempt against a pod."""

    __tablename__ = "evictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    node_name = Column(String, nullable=False, index=True)
    namespace = Column(String, nullable=False)
    pod_name = Column(String, nullable=False)
    score = Column(Integer, nullable=False)
    status = Column(String, nullable=False)  # evicted, dry_run, blocked, not_found, failed
    message = Column(String, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
