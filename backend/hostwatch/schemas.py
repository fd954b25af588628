"""
schemas.py - Domain records

These are the shapes that flow between the sampler, the alerting code,
the forecaster and the API. All of them are immutable once built.

MetricSnapshot is also the validation boundary for data coming from
outside (the sampler, the database, API callers): negative counters and
out-of-range CPU readings are rejected here.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

MIB = 1024 ** 2


def usage_percent(used: float, total: float) -> float:
    """used/total as a percentage in [0, 100]; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return max(0.0, min(100.0, used / total * 100))


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AnomalyImpact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MetricSnapshot(BaseModel):
    """
    One timestamped reading of every tracked resource metric.

    network_bytes_in/out are rates (bytes per second over the sampling
    interval). cpu_temperature_c is None on hosts without a readable sensor.
    """
    model_config = ConfigDict(frozen=True)

    cpu_usage_pct: float = Field(ge=0, le=100)
    cpu_temperature_c: Optional[float] = None
    memory_total_bytes: int = Field(ge=0)
    memory_used_bytes: int = Field(ge=0)
    disk_total_bytes: int = Field(ge=0)
    disk_used_bytes: int = Field(ge=0)
    network_bytes_in: float = Field(default=0, ge=0)
    network_bytes_out: float = Field(default=0, ge=0)
    captured_at: datetime = Field(default_factory=datetime.now)

    @computed_field
    @property
    def memory_usage_pct(self) -> float:
        return usage_percent(self.memory_used_bytes, self.memory_total_bytes)

    @computed_field
    @property
    def disk_usage_pct(self) -> float:
        return usage_percent(self.disk_used_bytes, self.disk_total_bytes)

    @computed_field
    @property
    def network_traffic_mb(self) -> float:
        """Combined in+out traffic in MiB/s."""
        return (self.network_bytes_in + self.network_bytes_out) / MIB


class Alert(BaseModel):
    """A threshold crossing raised from a single snapshot."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    severity: AlertSeverity
    source: str
    metric: str
    value: float
    threshold: float
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _value_reaches_threshold(self) -> "Alert":
        if self.value < self.threshold:
            raise ValueError(f"alert value {self.value} is below its threshold {self.threshold}")
        return self


class ForecastPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    cpu_usage_pct: float
    memory_usage_pct: float
    disk_usage_pct: float
    network_traffic_units: float


class Anomaly(BaseModel):
    """A forecast point that reaches a sensitivity-adjusted threshold."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    metric: str
    value: float
    threshold: float
    probability: float = Field(ge=0, le=1)
    impact: AnomalyImpact

    @model_validator(mode="after")
    def _value_reaches_threshold(self) -> "Anomaly":
        if self.value < self.threshold:
            raise ValueError(f"anomaly value {self.value} is below its threshold {self.threshold}")
        return self


class Solution(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric: str
    suggestions: List[str]
    automated_actions: List[str]


class ForecastReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    horizon_hours: int
    sensitivity: float
    confidence: float
    history_size: int
    predicted: List[ForecastPoint]
    anomalies: List[Anomaly]
    solutions: List[Solution]


class TaskState(BaseModel):
    """Point-in-time view of a scheduled task, as reported to callers."""
    id: str
    name: str
    description: str
    recurrence_expression: str
    enabled: bool
    exclusive: bool
    running: int
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
