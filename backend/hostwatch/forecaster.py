"""
forecaster.py - Resource forecasting and anomaly detection

Projects the next N hours of CPU, memory, disk and network usage from a
window of snapshots, flags projected values that reach a
sensitivity-adjusted threshold, and suggests what to do about them.

The projection is deliberately simple: the last snapshot is the anchor,
each metric drifts along the straight line between the first and last
snapshot, and a bounded wave plus bounded jitter is layered on top:

    value_i = clamp(anchor + trend * i + wave(i) + jitter(i))

The jitter comes from an injectable rng so tests can pin it down.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence

from hostwatch.errors import InsufficientDataError
from hostwatch.schemas import Anomaly, AnomalyImpact, ForecastPoint, MetricSnapshot, Solution
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

METRICS = ("cpu", "memory", "disk", "network")


@dataclass(frozen=True)
class MetricProfile:
    """How one metric is projected."""
    amplitude: float
    wave: Callable[[float], float]
    period: float
    noise_span: float
    upper: Optional[float] = 100.0

    def periodic(self, i: int) -> float:
        return self.amplitude * self.wave(i / self.period)

    def clamp(self, value: float) -> float:
        value = max(0.0, value)
        if self.upper is not None:
            value = min(self.upper, value)
        return value


PROFILES: Dict[str, MetricProfile] = {
    "cpu": MetricProfile(amplitude=8, wave=math.sin, period=3, noise_span=10),
    "memory": MetricProfile(amplitude=5, wave=math.cos, period=4, noise_span=7),
    "disk": MetricProfile(amplitude=2, wave=math.sin, period=10, noise_span=3),
    "network": MetricProfile(amplitude=15, wave=math.cos, period=6, noise_span=20, upper=None),
}


@dataclass(frozen=True)
class AnomalyRule:
    """
    Detection threshold for one metric.

    The threshold drops from `base` by up to `spread` as sensitivity goes
    from 0 to 1. Impact is banded on how far a value sits above it.
    """
    base: float
    spread: float
    normalizer: float
    medium_margin: float
    high_margin: float

    def threshold(self, sensitivity: float) -> float:
        return self.base - sensitivity * self.spread

    def probability(self, value: float, threshold: float) -> float:
        return max(0.0, min(1.0, 0.5 + (value - threshold) / self.normalizer))

    def impact(self, value: float, threshold: float) -> AnomalyImpact:
        excess = value - threshold
        if excess >= self.high_margin:
            return AnomalyImpact.HIGH
        if excess >= self.medium_margin:
            return AnomalyImpact.MEDIUM
        return AnomalyImpact.LOW


ANOMALY_RULES: Dict[str, AnomalyRule] = {
    "cpu": AnomalyRule(base=80, spread=10, normalizer=40, medium_margin=5, high_margin=10),
    "memory": AnomalyRule(base=75, spread=15, normalizer=50, medium_margin=5, high_margin=10),
    "disk": AnomalyRule(base=90, spread=10, normalizer=20, medium_margin=2, high_margin=5),
    "network": AnomalyRule(base=100, spread=30, normalizer=200, medium_margin=20, high_margin=50),
}

SOLUTION_CATALOGUE: Dict[str, Solution] = {
    "cpu": Solution(
        metric="cpu",
        suggestions=[
            "Identify CPU-intensive processes and optimise or limit their resource usage",
            "Evaluate whether compute capacity needs to grow to meet demand",
            "Reschedule batch jobs so compute-heavy tasks do not run at the same time",
        ],
        automated_actions=[
            "Throttle CPU usage of non-critical processes",
            "Scale out compute resources where supported",
            "Temporarily lower the priority of non-core services",
        ],
    ),
    "memory": Solution(
        metric="memory",
        suggestions=[
            "Check for memory leaks and reduce application memory usage",
            "Add physical memory or enable swap space",
            "Tune application cache sizes and garbage collection settings",
        ],
        automated_actions=[
            "Restart services with excessive memory usage",
            "Drop system page caches",
            "Start a memory profiler to locate the problem",
        ],
    ),
    "disk": Solution(
        metric="disk",
        suggestions=[
            "Clean up temporary files and old logs",
            "Expand disk capacity",
            "Configure log rotation and automatic cleanup",
        ],
        automated_actions=[
            "Delete log files older than 30 days",
            "Compress large files",
            "Analyse disk space usage by directory",
        ],
    ),
    "network": Solution(
        metric="network",
        suggestions=[
            "Reduce unnecessary data transfer between services",
            "Introduce traffic shaping and request rate limiting",
            "Review network architecture and bandwidth requirements",
        ],
        automated_actions=[
            "Limit bandwidth for non-critical services",
            "Enable compression for network traffic",
            "Capture and analyse traffic patterns",
        ],
    ),
}


def metric_values(snapshot: MetricSnapshot) -> Dict[str, float]:
    """The four forecast series as read from one snapshot."""
    return {
        "cpu": snapshot.cpu_usage_pct,
        "memory": snapshot.memory_usage_pct,
        "disk": snapshot.disk_usage_pct,
        "network": snapshot.network_traffic_mb,
    }


def point_values(point: ForecastPoint) -> Dict[str, float]:
    return {
        "cpu": point.cpu_usage_pct,
        "memory": point.memory_usage_pct,
        "disk": point.disk_usage_pct,
        "network": point.network_traffic_units,
    }


class Forecaster:
    """
    Trend-plus-noise projection of host metrics.

    `rng` must return floats in [0, 1); jitter for a metric is
    (rng() - 0.5) * noise_span. A stub returning 0.5 gives a noise-free
    projection.
    """

    def __init__(self, rng: Callable[[], float] = random.random):
        self._rng = rng

    def trends(self, history: Sequence[MetricSnapshot]) -> Dict[str, float]:
        """Per-metric drift per hour: (last - first) / len(history)."""
        if not history:
            raise InsufficientDataError("at least one snapshot is needed to compute a trend")
        first, last = metric_values(history[0]), metric_values(history[-1])
        return {m: (last[m] - first[m]) / len(history) for m in METRICS}

    def forecast(self, history: Sequence[MetricSnapshot], horizon_hours: int) -> List[ForecastPoint]:
        if not history:
            raise InsufficientDataError("cannot forecast without historical snapshots")
        if horizon_hours < 1:
            raise ValueError(f"horizon must be at least one hour, got {horizon_hours}")

        anchor = history[-1]
        base = metric_values(anchor)
        trend = self.trends(history)

        points = []
        for i in range(1, horizon_hours + 1):
            values = {}
            for metric in METRICS:
                profile = PROFILES[metric]
                jitter = (self._rng() - 0.5) * profile.noise_span
                values[metric] = profile.clamp(base[metric] + trend[metric] * i + profile.periodic(i) + jitter)

            points.append(ForecastPoint(
                timestamp=anchor.captured_at + timedelta(hours=i),
                cpu_usage_pct=round(values["cpu"], 2),
                memory_usage_pct=round(values["memory"], 2),
                disk_usage_pct=round(values["disk"], 2),
                network_traffic_units=round(values["network"], 2),
            ))

        logger.debug("Forecast computed", history_size=len(history), horizon_hours=horizon_hours)
        return points


def anomaly_thresholds(sensitivity: float) -> Dict[str, float]:
    """Detection threshold per metric for a given sensitivity."""
    if not 0.0 <= sensitivity <= 1.0:
        raise ValueError(f"sensitivity must be between 0 and 1, got {sensitivity}")
    return {metric: ANOMALY_RULES[metric].threshold(sensitivity) for metric in METRICS}


def detect_anomalies(forecast: Sequence[ForecastPoint], sensitivity: float) -> List[Anomaly]:
    """
    One Anomaly for every forecast value at or above its metric's
    threshold, ordered by point and then cpu, memory, disk, network.
    Higher sensitivity means lower thresholds, so never fewer anomalies.
    """
    thresholds = anomaly_thresholds(sensitivity)

    anomalies = []
    for point in forecast:
        values = point_values(point)
        for metric in METRICS:
            value, threshold = values[metric], thresholds[metric]
            if value < threshold:
                continue
            rule = ANOMALY_RULES[metric]
            anomalies.append(Anomaly(
                timestamp=point.timestamp,
                metric=metric,
                value=value,
                threshold=threshold,
                probability=round(rule.probability(value, threshold), 4),
                impact=rule.impact(value, threshold),
            ))
    return anomalies


def generate_solutions(anomalies: Sequence[Anomaly]) -> List[Solution]:
    """One catalogue Solution per metric that has anomalies, in catalogue order."""
    affected = {a.metric for a in anomalies}
    return [SOLUTION_CATALOGUE[metric] for metric in METRICS if metric in affected]
