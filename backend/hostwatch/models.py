"""
models.py - Database Models (Tables)

Only snapshots are persisted. Alerts live in the in-memory ring and
forecasts are recomputed on demand.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Float, Integer

from hostwatch.database import Base
from hostwatch.schemas import MetricSnapshot


class MetricsSnapshotRecord(Base):
    """
    One row per collected MetricSnapshot.

    Usage percentages are not stored; they are derived from used/total
    whenever the row is turned back into a MetricSnapshot.

    Table name: metrics_snapshots
    """

    __tablename__ = "metrics_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # index=True makes the time-window queries fast
    captured_at = Column(DateTime, default=datetime.now, index=True, nullable=False)

    cpu_usage_pct = Column(Float, nullable=False)
    cpu_temperature_c = Column(Float, nullable=True)

    memory_total_bytes = Column(BigInteger, nullable=False)
    memory_used_bytes = Column(BigInteger, nullable=False)

    disk_total_bytes = Column(BigInteger, nullable=False)
    disk_used_bytes = Column(BigInteger, nullable=False)

    # bytes per second over the sampling interval
    network_bytes_in = Column(Float, nullable=False, default=0)
    network_bytes_out = Column(Float, nullable=False, default=0)

    @classmethod
    def from_snapshot(cls, snapshot: MetricSnapshot) -> "MetricsSnapshotRecord":
        return cls(
            captured_at=snapshot.captured_at,
            cpu_usage_pct=snapshot.cpu_usage_pct,
            cpu_temperature_c=snapshot.cpu_temperature_c,
            memory_total_bytes=snapshot.memory_total_bytes,
            memory_used_bytes=snapshot.memory_used_bytes,
            disk_total_bytes=snapshot.disk_total_bytes,
            disk_used_bytes=snapshot.disk_used_bytes,
            network_bytes_in=snapshot.network_bytes_in,
            network_bytes_out=snapshot.network_bytes_out,
        )

    def to_snapshot(self) -> MetricSnapshot:
        """Rows re-enter the domain through MetricSnapshot validation."""
        return MetricSnapshot(
            captured_at=self.captured_at,
            cpu_usage_pct=self.cpu_usage_pct,
            cpu_temperature_c=self.cpu_temperature_c,
            memory_total_bytes=self.memory_total_bytes,
            memory_used_bytes=self.memory_used_bytes,
            disk_total_bytes=self.disk_total_bytes,
            disk_used_bytes=self.disk_used_bytes,
            network_bytes_in=self.network_bytes_in or 0,
            network_bytes_out=self.network_bytes_out or 0,
        )
