"""
store.py - Snapshot Store

Where collected snapshots go and where the alert check and the
forecaster read them back from. The core only depends on the
SnapshotStore protocol; SqlSnapshotStore is what the application runs
with, InMemorySnapshotStore is handy for tests and embedding.

history() and window() always return snapshots oldest-first, which is
the order the forecaster expects.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from hostwatch.models import MetricsSnapshotRecord
from hostwatch.schemas import MetricSnapshot
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class SnapshotStore(Protocol):
    def save(self, snapshot: MetricSnapshot) -> int: ...

    def latest(self) -> Optional[MetricSnapshot]: ...

    def history(self, limit: int = 100, offset: int = 0) -> List[MetricSnapshot]: ...

    def window(self, since: datetime) -> List[MetricSnapshot]: ...


class SqlSnapshotStore:
    """Snapshot store backed by the metrics_snapshots table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def save(self, snapshot: MetricSnapshot) -> int:
        db = self._session_factory()
        try:
            record = MetricsSnapshotRecord.from_snapshot(snapshot)
            db.add(record)
            db.commit()
            db.refresh(record)
            return record.id
        except SQLAlchemyError:
            db.rollback()
            logger.error("Failed to save snapshot", captured_at=snapshot.captured_at.isoformat())
            raise
        finally:
            db.close()

    def latest(self) -> Optional[MetricSnapshot]:
        with self._session_factory() as db:
            record = (
                db.query(MetricsSnapshotRecord)
                .order_by(MetricsSnapshotRecord.captured_at.desc(), MetricsSnapshotRecord.id.desc())
                .first()
            )
            return record.to_snapshot() if record else None

    def history(self, limit: int = 100, offset: int = 0) -> List[MetricSnapshot]:
        """
        The `limit` most recent snapshots after skipping the `offset`
        most recent ones, returned oldest-first.
        """
        with self._session_factory() as db:
            records = (
                db.query(MetricsSnapshotRecord)
                .order_by(MetricsSnapshotRecord.captured_at.desc(), MetricsSnapshotRecord.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [r.to_snapshot() for r in reversed(records)]

    def window(self, since: datetime) -> List[MetricSnapshot]:
        """Every snapshot captured at or after `since`, oldest-first."""
        with self._session_factory() as db:
            records = (
                db.query(MetricsSnapshotRecord)
                .filter(MetricsSnapshotRecord.captured_at >= since)
                .order_by(MetricsSnapshotRecord.captured_at.asc(), MetricsSnapshotRecord.id.asc())
                .all()
            )
            return [r.to_snapshot() for r in records]


class InMemorySnapshotStore:
    """List-backed store. Snapshots are kept in insertion order."""

    def __init__(self) -> None:
        self._snapshots: List[MetricSnapshot] = []
        self._lock = threading.Lock()

    def save(self, snapshot: MetricSnapshot) -> int:
        with self._lock:
            self._snapshots.append(snapshot)
            return len(self._snapshots)

    def latest(self) -> Optional[MetricSnapshot]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def history(self, limit: int = 100, offset: int = 0) -> List[MetricSnapshot]:
        with self._lock:
            end = len(self._snapshots) - offset
            if end <= 0 or limit <= 0:
                return []
            return list(self._snapshots[max(0, end - limit):end])

    def window(self, since: datetime) -> List[MetricSnapshot]:
        with self._lock:
            return [s for s in self._snapshots if s.captured_at >= since]
