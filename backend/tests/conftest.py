"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import pytest

from hostwatch.alerts import AlertRing, AlertService, ThresholdEvaluator
from hostwatch.database import build_engine, build_session_factory, init_db
from hostwatch.schemas import AlertSeverity, MetricSnapshot
from hostwatch.store import InMemorySnapshotStore, SqlSnapshotStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


def make_snapshot(
    cpu: float = 20.0,
    temperature: Optional[float] = 45.0,
    memory_used: int = 4_000,
    memory_total: int = 10_000,
    disk_used: int = 100,
    disk_total: int = 1_000,
    bytes_in: float = 0.0,
    bytes_out: float = 0.0,
    captured_at: Optional[datetime] = None,
) -> MetricSnapshot:
    return MetricSnapshot(
        cpu_usage_pct=cpu,
        cpu_temperature_c=temperature,
        memory_used_bytes=memory_used,
        memory_total_bytes=memory_total,
        disk_used_bytes=disk_used,
        disk_total_bytes=disk_total,
        network_bytes_in=bytes_in,
        network_bytes_out=bytes_out,
        captured_at=captured_at or BASE_TIME,
    )


def hourly_history(cpu_values: List[float], start: datetime = BASE_TIME) -> List[MetricSnapshot]:
    return [
        make_snapshot(cpu=cpu, captured_at=start + timedelta(hours=i))
        for i, cpu in enumerate(cpu_values)
    ]


class RecordingNotifier:
    """Notifier double that remembers every call."""

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[Tuple[AlertSeverity, str, str, List[str]]] = []

    async def send(self, severity, subject, body, recipients) -> bool:
        self.calls.append((severity, subject, body, recipients))
        if self.error is not None:
            raise self.error
        return self.result


class FakeSampler:
    """Sampler double returning a fixed snapshot."""

    def __init__(self, snapshot: Optional[MetricSnapshot] = None):
        self.snapshot = snapshot or make_snapshot()
        self.samples = 0

    def sample(self) -> MetricSnapshot:
        self.samples += 1
        return self.snapshot.model_copy(update={"captured_at": datetime.now()})


@pytest.fixture
def memory_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield SqlSnapshotStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request, memory_store, sql_store):
    return memory_store if request.param == "memory" else sql_store


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def alert_service(notifier, memory_store) -> AlertService:
    return AlertService(
        evaluator=ThresholdEvaluator(),
        ring=AlertRing(100),
        notifier=notifier,
        recipients=["ops@example.com"],
        store=memory_store,
    )
