"""
scheduler.py - Background Task Scheduler

A registry of named, cron-scheduled async jobs on top of APScheduler.
Each task owns one APScheduler job while it is enabled; stopping a task
removes its job, starting it adds a fresh one. Control operations only
touch the job store, so they return straight away even while a handler
is running.

The built-in tasks are registered by register_builtin_tasks():
- system-metrics-collection: sample the host and store the snapshot
- system-alerts-check: evaluate the latest snapshot and notify
- resource-forecast: refresh the predictive report (off by default)
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from hostwatch.alerts import AlertService
from hostwatch.collector import MetricSampler
from hostwatch.config import Settings
from hostwatch.errors import (
    InsufficientDataError,
    InvalidRecurrenceError,
    TaskAlreadyRegisteredError,
    UnknownTaskError,
)
from hostwatch.predictive import PredictiveAnalyzer
from hostwatch.schemas import TaskState
from hostwatch.store import SnapshotStore
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[], Awaitable[None]]

METRICS_TASK_ID = "system-metrics-collection"
ALERTS_TASK_ID = "system-alerts-check"
FORECAST_TASK_ID = "resource-forecast"

# Runs of the same task may overlap unless the task is exclusive
UNBOUNDED_INSTANCES = sys.maxsize


def parse_recurrence(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Standard five-field crontab line -> CronTrigger."""
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    except ValueError as e:
        raise InvalidRecurrenceError(f"Invalid recurrence expression {expression!r}: {e}") from e


@dataclass
class ScheduledTask:
    id: str
    name: str
    description: str
    recurrence_expression: str
    enabled: bool
    handler: Handler
    trigger: CronTrigger
    exclusive: bool = False
    last_run_at: Optional[datetime] = None
    running: int = 0


class TaskScheduler:
    """
    Named periodic jobs: register, start, stop, reschedule, trigger.

    Lookups of an unknown id never raise out of this class; they return
    False (or None for get()).
    """

    def __init__(self, scheduler: Optional[BaseScheduler] = None, timezone: str = "UTC"):
        self.timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._tasks: Dict[str, ScheduledTask] = {}

    def register(
        self,
        task_id: str,
        name: str,
        recurrence_expression: str,
        handler: Handler,
        enabled: bool = True,
        description: str = "",
        exclusive: bool = False,
    ) -> TaskState:
        """
        Adds a task. Enabled tasks get their timer immediately.

        Raises TaskAlreadyRegisteredError for a duplicate id and
        InvalidRecurrenceError for a bad expression.
        """
        if task_id in self._tasks:
            raise TaskAlreadyRegisteredError(task_id)

        task = ScheduledTask(
            id=task_id,
            name=name,
            description=description,
            recurrence_expression=recurrence_expression,
            enabled=enabled,
            handler=handler,
            trigger=parse_recurrence(recurrence_expression, self.timezone),
            exclusive=exclusive,
        )
        self._tasks[task_id] = task

        if enabled:
            self._add_job(task)
            logger.info("Task registered and started", task_id=task_id, schedule=recurrence_expression)
        else:
            logger.info("Task registered but not started", task_id=task_id, schedule=recurrence_expression)
        return self._state(task)

    def start(self, task_id: str) -> bool:
        """True if the task went from stopped to running."""
        task = self._lookup(task_id)
        if task is None or task.enabled:
            return False
        self._add_job(task)
        task.enabled = True
        logger.info("Task started", task_id=task_id)
        return True

    def stop(self, task_id: str) -> bool:
        """
        True if the task went from running to stopped. Only future fires
        are prevented; a run already in progress finishes.
        """
        task = self._lookup(task_id)
        if task is None or not task.enabled:
            return False
        self._remove_job(task)
        task.enabled = False
        logger.info("Task stopped", task_id=task_id)
        return True

    def reschedule(self, task_id: str, recurrence_expression: str) -> bool:
        """
        Replaces the recurrence, keeping enabled/disabled state and
        last_run_at. A bad expression raises InvalidRecurrenceError and
        leaves the task untouched.
        """
        task = self._lookup(task_id)
        if task is None:
            return False
        trigger = parse_recurrence(recurrence_expression, self.timezone)

        if task.enabled:
            self._remove_job(task)
        task.trigger = trigger
        task.recurrence_expression = recurrence_expression
        if task.enabled:
            self._add_job(task)

        logger.info("Task rescheduled", task_id=task_id, schedule=recurrence_expression)
        return True

    async def trigger(self, task_id: str) -> bool:
        """
        Runs the handler now, outside the schedule. False for an unknown
        task or when an exclusive task is already running.
        """
        task = self._lookup(task_id)
        if task is None:
            return False
        logger.info("Task triggered manually", task_id=task_id)
        return await self._run(task)

    def get(self, task_id: str) -> Optional[TaskState]:
        task = self._tasks.get(task_id)
        return self._state(task) if task else None

    def tasks(self) -> List[TaskState]:
        return [self._state(task) for task in self._tasks.values()]

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def launch(self) -> None:
        """Starts the underlying timer loop. Needs a running event loop."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started", tasks=len(self._tasks))

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

    def _require(self, task_id: str) -> ScheduledTask:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise UnknownTaskError(task_id) from None

    def _lookup(self, task_id: str) -> Optional[ScheduledTask]:
        try:
            return self._require(task_id)
        except UnknownTaskError as e:
            logger.warning("Operation on unknown task", task_id=e.task_id)
            return None

    def _add_job(self, task: ScheduledTask) -> None:
        self._scheduler.add_job(
            self._fire,
            trigger=task.trigger,
            args=[task.id],
            id=task.id,
            name=task.name,
            replace_existing=True,
            max_instances=UNBOUNDED_INSTANCES,
            coalesce=True,
            misfire_grace_time=60,
        )

    def _remove_job(self, task: ScheduledTask) -> None:
        try:
            self._scheduler.remove_job(task.id)
        except JobLookupError:
            logger.debug("Job already gone", task_id=task.id)

    async def _fire(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            await self._run(task)

    async def _run(self, task: ScheduledTask) -> bool:
        if task.exclusive and task.running:
            logger.warning("Task still running, skipping this run", task_id=task.id)
            return False

        task.running += 1
        task.last_run_at = datetime.now()
        try:
            await task.handler()
        except Exception:
            logger.exception("Task handler failed", task_id=task.id, task_name=task.name)
        finally:
            task.running -= 1
        return True

    def _next_run_at(self, task: ScheduledTask) -> Optional[datetime]:
        if not task.enabled:
            return None
        job = self._scheduler.get_job(task.id)
        # Jobs added before the scheduler starts have no next_run_time yet
        next_run = getattr(job, "next_run_time", None) if job else None
        if next_run is None:
            next_run = task.trigger.get_next_fire_time(None, datetime.now(task.trigger.timezone))
        return next_run

    def _state(self, task: ScheduledTask) -> TaskState:
        return TaskState(
            id=task.id,
            name=task.name,
            description=task.description,
            recurrence_expression=task.recurrence_expression,
            enabled=task.enabled,
            exclusive=task.exclusive,
            running=task.running,
            last_run_at=task.last_run_at,
            next_run_at=self._next_run_at(task),
        )


def register_builtin_tasks(
    scheduler: TaskScheduler,
    settings: Settings,
    sampler: MetricSampler,
    store: SnapshotStore,
    alert_service: AlertService,
    analyzer: PredictiveAnalyzer,
) -> None:
    """Registers the metric collection, alert check and forecast tasks."""

    async def collect_and_save_metrics() -> None:
        snapshot = sampler.sample()
        snapshot_id = await asyncio.to_thread(store.save, snapshot)
        logger.info(
            "Saved snapshot",
            snapshot_id=snapshot_id,
            cpu=snapshot.cpu_usage_pct,
            memory=round(snapshot.memory_usage_pct, 1),
            disk=round(snapshot.disk_usage_pct, 1),
        )

    async def check_alerts() -> None:
        alerts = await alert_service.check_latest()
        if alerts:
            logger.info("New alerts detected", count=len(alerts))

    async def refresh_forecast() -> None:
        try:
            await asyncio.to_thread(analyzer.analyze)
        except InsufficientDataError as e:
            logger.info("Forecast skipped", reason=str(e))

    cfg = settings.scheduler
    scheduler.register(
        METRICS_TASK_ID,
        name="System metrics collection",
        description="Periodically samples host metrics and stores the snapshot",
        recurrence_expression=cfg.metrics_cron,
        handler=collect_and_save_metrics,
        enabled=True,
    )
    scheduler.register(
        ALERTS_TASK_ID,
        name="System alerts check",
        description="Periodically checks the latest snapshot against alert thresholds",
        recurrence_expression=cfg.alerts_cron,
        handler=check_alerts,
        enabled=True,
    )
    scheduler.register(
        FORECAST_TASK_ID,
        name="Resource forecast",
        description="Refreshes the resource usage forecast and anomaly report",
        recurrence_expression=cfg.forecast_cron,
        handler=refresh_forecast,
        enabled=cfg.forecast_enabled,
    )
