"""
alerts.py - Alert Detection and Management

Checks a snapshot against the warning/critical threshold table and
raises alerts when limits are reached.

Thresholds (defaults, see config.ThresholdTable):
- CPU usage:        warning 70%,  critical 90%
- CPU temperature:  warning 70°C, critical 85°C
- Memory usage:     warning 75%,  critical 90%
- Disk usage:       warning 80%,  critical 95%

A value equal to a threshold counts as crossing it. When both levels
are reached only the critical alert is raised.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from typing import Collection, Deque, List, Optional, Set, Tuple

from hostwatch.config import ThresholdLevels, ThresholdTable
from hostwatch.errors import NotificationFailure
from hostwatch.notifier import Notifier
from hostwatch.schemas import Alert, AlertSeverity, MetricSnapshot
from hostwatch.store import SnapshotStore
from hostwatch.utils.formatters import format_percentage, format_temperature
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

METRIC_NAMES = {
    ("cpu", "usage"): "CPU usage",
    ("cpu", "temperature"): "CPU temperature",
    ("memory", "usage"): "Memory usage",
    ("disk", "usage"): "Disk usage",
}

NOTIFY_SEVERITIES = (AlertSeverity.WARNING, AlertSeverity.CRITICAL)


def format_metric_value(metric: str, value: float) -> str:
    if metric == "temperature":
        return format_temperature(value)
    return format_percentage(value)


def generate_alert_message(
    source: str, metric: str, value: float, threshold: float, severity: AlertSeverity
) -> str:
    """
    Creates a human-readable alert message.
    """
    metric_name = METRIC_NAMES.get((source, metric), f"{source} {metric}")
    return (
        f"{metric_name} at {format_metric_value(metric, value)} exceeds "
        f"{severity.value} threshold {format_metric_value(metric, threshold)}"
    )


def check_metric(
    source: str, metric: str, value: Optional[float], levels: ThresholdLevels
) -> Optional[Alert]:
    """
    Checks a single metric against its thresholds.

    Returns an Alert if a threshold was reached, None otherwise
    (including when there is no reading at all).
    """
    if value is None:
        return None

    if value >= levels.critical:
        severity, threshold = AlertSeverity.CRITICAL, levels.critical
    elif value >= levels.warning:
        severity, threshold = AlertSeverity.WARNING, levels.warning
    else:
        return None

    return Alert(
        severity=severity,
        source=source,
        metric=metric,
        value=value,
        threshold=threshold,
        message=generate_alert_message(source, metric, value, threshold, severity),
    )


class ThresholdEvaluator:
    """Maps a snapshot to the alerts it raises. Holds no state beyond the table."""

    def __init__(self, thresholds: Optional[ThresholdTable] = None):
        self.thresholds = thresholds or ThresholdTable()

    def evaluate(self, snapshot: MetricSnapshot) -> List[Alert]:
        """
        Alerts for one snapshot, always in the order
        cpu usage, cpu temperature, memory, disk.
        """
        checks = (
            ("cpu", "usage", snapshot.cpu_usage_pct, self.thresholds.cpu_usage),
            ("cpu", "temperature", snapshot.cpu_temperature_c, self.thresholds.cpu_temperature),
            ("memory", "usage", snapshot.memory_usage_pct, self.thresholds.memory_usage),
            ("disk", "usage", snapshot.disk_usage_pct, self.thresholds.disk_usage),
        )
        alerts = []
        for source, metric, value, levels in checks:
            alert = check_metric(source, metric, value, levels)
            if alert:
                alerts.append(alert)
        return alerts


class AlertRing:
    """The most recent `capacity` alerts. Oldest entries are evicted first."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("alert ring capacity must be at least 1")
        self.capacity = capacity
        self._alerts: Deque[Alert] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def extend(self, alerts: List[Alert]) -> None:
        with self._lock:
            self._alerts.extend(alerts)

    def recent(self) -> List[Alert]:
        """Newest first."""
        with self._lock:
            return list(reversed(self._alerts))

    def clear(self) -> None:
        with self._lock:
            self._alerts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)


class AlertService:
    """
    Runs the evaluator, records alerts in the ring and notifies.

    Notifications are fired as background tasks so a slow or broken mail
    server never holds up the check. drain() waits for the ones still
    in flight.
    """

    def __init__(
        self,
        evaluator: ThresholdEvaluator,
        ring: AlertRing,
        notifier: Notifier,
        recipients: Optional[List[str]] = None,
        store: Optional[SnapshotStore] = None,
    ):
        self.evaluator = evaluator
        self.ring = ring
        self.notifier = notifier
        self.recipients = list(recipients or [])
        self.store = store
        self._pending: Set[asyncio.Task] = set()

    async def check(self, snapshot: MetricSnapshot) -> List[Alert]:
        alerts = self.evaluator.evaluate(snapshot)
        self.ring.extend(alerts)

        for alert in alerts:
            logger.info(
                "Alert raised",
                severity=alert.severity.value,
                source=alert.source,
                metric=alert.metric,
                value=round(alert.value, 2),
                threshold=alert.threshold,
            )
            if alert.severity in NOTIFY_SEVERITIES:
                task = asyncio.create_task(self._notify(alert))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        return alerts

    async def check_latest(self) -> List[Alert]:
        """Evaluates the newest stored snapshot. Store trouble yields no alerts."""
        if self.store is None:
            return []
        try:
            snapshot = await asyncio.to_thread(self.store.latest)
        except Exception:
            logger.exception("Could not read latest snapshot for alert check")
            return []
        if snapshot is None:
            logger.info("No snapshots stored yet, skipping alert check")
            return []
        return await self.check(snapshot)

    async def drain(self) -> None:
        """Waits for every notification still being delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_notifications(self) -> int:
        return len(self._pending)

    def alerts(
        self,
        severities: Optional[Collection[str]] = None,
        sources: Optional[Collection[str]] = None,
        metrics: Optional[Collection[str]] = None,
    ) -> List[Alert]:
        """Alerts in the ring, newest first, optionally filtered."""
        alerts = self.ring.recent()
        if severities:
            alerts = [a for a in alerts if a.severity.value in severities]
        if sources:
            alerts = [a for a in alerts if a.source in sources]
        if metrics:
            alerts = [a for a in alerts if a.metric in metrics]
        return alerts

    def clear(self) -> None:
        self.ring.clear()

    async def _notify(self, alert: Alert) -> bool:
        subject, body = render_notification(alert)
        try:
            delivered = await self.notifier.send(alert.severity, subject, body, self.recipients)
            if not delivered:
                raise NotificationFailure("notifier reported the alert as undelivered")
        except Exception as e:
            logger.error(
                "Alert notification failed",
                alert_id=alert.id,
                severity=alert.severity.value,
                error=str(e),
            )
            return False
        return True


def render_notification(alert: Alert) -> Tuple[str, str]:
    """Subject and plain-text body for one alert."""
    label = "CRITICAL" if alert.severity == AlertSeverity.CRITICAL else "WARNING"
    subject = f"[{label}] {alert.source.upper()} {alert.metric} exceeded threshold"
    body = (
        f"Time: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"Source: {alert.source.upper()}\n"
        f"Metric: {alert.metric}\n"
        f"Current value: {format_metric_value(alert.metric, alert.value)}\n"
        f"Threshold: {format_metric_value(alert.metric, alert.threshold)}\n"
        f"Message: {alert.message}\n"
    )
    return subject, body
