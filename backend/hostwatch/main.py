"""
main.py - FastAPI Application Entry Point

Wires the monitor together and exposes it over HTTP:
1. Builds the store, sampler, alert service, forecaster and scheduler
2. Registers the built-in scheduled tasks
3. Starts/stops the scheduler with the application lifespan
4. Maps every operation to a JSON endpoint returning {"success": ...}

Run with:  uvicorn hostwatch.main:app
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hostwatch import __version__
from hostwatch.alerts import AlertRing, AlertService, ThresholdEvaluator
from hostwatch.collector import MetricSampler
from hostwatch.config import Settings, get_settings
from hostwatch.database import build_engine, build_session_factory, init_db
from hostwatch.errors import InsufficientDataError, InvalidRecurrenceError
from hostwatch.forecaster import Forecaster
from hostwatch.notifier import Notifier, build_notifier
from hostwatch.predictive import PredictiveAnalyzer
from hostwatch.scheduler import TaskScheduler, register_builtin_tasks
from hostwatch.store import SnapshotStore, SqlSnapshotStore
from hostwatch.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

router = APIRouter()


class CronUpdate(BaseModel):
    cron_expression: str = Field(min_length=9, max_length=100)


class ForecastRequest(BaseModel):
    horizon: Optional[Union[int, str]] = None
    window: Optional[Union[int, str]] = None
    sensitivity: Optional[float] = Field(default=None, ge=0.0, le=1.0)


def failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def _split(value: Optional[str]) -> Optional[List[str]]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else None


def get_scheduler(request: Request) -> TaskScheduler:
    return request.app.state.scheduler


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_sampler(request: Request) -> MetricSampler:
    return request.app.state.sampler


def get_analyzer(request: Request) -> PredictiveAnalyzer:
    return request.app.state.analyzer


@router.get("/")
def root():
    """Root endpoint - welcome message and available endpoints."""
    return {
        "message": "Welcome to the hostwatch API",
        "docs_url": "/docs",
        "endpoints": {
            "current_metrics": "/metrics/current",
            "save_snapshot": "/metrics/snapshot (POST)",
            "history": "/metrics/history?limit=100",
            "alerts": "/alerts",
            "schedules": "/schedules",
            "forecast": "/forecast (POST)",
        },
    }


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/metrics/current")
def current_metrics(sampler: MetricSampler = Depends(get_sampler)):
    """Takes a fresh reading without storing it."""
    return {"success": True, "snapshot": sampler.sample()}


@router.post("/metrics/snapshot")
def save_snapshot(
    sampler: MetricSampler = Depends(get_sampler),
    store: SnapshotStore = Depends(get_store),
):
    """
    Collects current metrics and saves them.

    The scheduler does this on its own; this endpoint is for on-demand saves.
    """
    snapshot = sampler.sample()
    snapshot_id = store.save(snapshot)
    return {"success": True, "snapshot_id": snapshot_id, "snapshot": snapshot}


@router.get("/metrics/history")
def get_history(
    limit: int = Query(default=100, ge=1, le=10000),
    offset: int = Query(default=0, ge=0),
    hours: Optional[int] = Query(default=None, ge=1, le=168, description="Use a time window instead of limit/offset"),
    store: SnapshotStore = Depends(get_store),
):
    """Stored snapshots, oldest first."""
    if hours is not None:
        snapshots = store.window(datetime.now() - timedelta(hours=hours))
    else:
        snapshots = store.history(limit=limit, offset=offset)
    return {"success": True, "count": len(snapshots), "snapshots": snapshots}


@router.get("/alerts")
def list_alerts(
    severity: Optional[str] = None,
    source: Optional[str] = None,
    metric: Optional[str] = None,
    alert_service: AlertService = Depends(get_alert_service),
):
    """Recent alerts, newest first. Filters take comma-separated values."""
    alerts = alert_service.alerts(_split(severity), _split(source), _split(metric))
    return {"success": True, "count": len(alerts), "alerts": alerts}


@router.delete("/alerts")
def clear_alerts(alert_service: AlertService = Depends(get_alert_service)):
    alert_service.clear()
    return {"success": True, "message": "All alerts cleared"}


@router.post("/alerts/check")
async def check_alerts(alert_service: AlertService = Depends(get_alert_service)):
    """Runs the alert check against the latest snapshot right now."""
    alerts = await alert_service.check_latest()
    return {"success": True, "alerts_generated": len(alerts), "alerts": alerts}


@router.get("/alerts/thresholds")
def get_thresholds(alert_service: AlertService = Depends(get_alert_service)):
    return alert_service.evaluator.thresholds


@router.get("/schedules")
def list_schedules(scheduler: TaskScheduler = Depends(get_scheduler)):
    tasks = scheduler.tasks()
    return {"success": True, "count": len(tasks), "tasks": tasks}


@router.get("/schedules/{task_id}")
def get_schedule(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    task = scheduler.get(task_id)
    if task is None:
        return failure(f"Task {task_id} does not exist", 404)
    return {"success": True, "task": task}


@router.post("/schedules/{task_id}/start")
def start_schedule(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    if task_id not in scheduler:
        return failure(f"Task {task_id} does not exist", 404)
    if not scheduler.start(task_id):
        return failure(f"Task {task_id} is already running", 400)
    return {"success": True, "message": "Task started", "task": scheduler.get(task_id)}


@router.post("/schedules/{task_id}/stop")
def stop_schedule(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    if task_id not in scheduler:
        return failure(f"Task {task_id} does not exist", 404)
    if not scheduler.stop(task_id):
        return failure(f"Task {task_id} is already stopped", 400)
    return {"success": True, "message": "Task stopped", "task": scheduler.get(task_id)}


@router.post("/schedules/{task_id}/trigger")
async def trigger_schedule(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    if task_id not in scheduler:
        return failure(f"Task {task_id} does not exist", 404)
    if not await scheduler.trigger(task_id):
        return failure(f"Task {task_id} is still running", 400)
    return {"success": True, "message": "Task triggered", "task": scheduler.get(task_id)}


@router.put("/schedules/{task_id}/cron")
def update_schedule(task_id: str, body: CronUpdate, scheduler: TaskScheduler = Depends(get_scheduler)):
    if not scheduler.reschedule(task_id, body.cron_expression):
        return failure(f"Task {task_id} does not exist", 404)
    return {
        "success": True,
        "message": f"Task schedule updated to {body.cron_expression}",
        "task": scheduler.get(task_id),
    }


@router.post("/forecast")
def run_forecast(body: ForecastRequest, analyzer: PredictiveAnalyzer = Depends(get_analyzer)):
    try:
        report = analyzer.analyze(horizon=body.horizon, window=body.window, sensitivity=body.sensitivity)
    except ValueError as e:
        return failure(str(e), 422)
    return {"success": True, "report": report}


@router.get("/forecast/latest")
def latest_forecast(analyzer: PredictiveAnalyzer = Depends(get_analyzer)):
    if analyzer.latest_report is None:
        return failure("No forecast has been generated yet", 404)
    return {"success": True, "report": analyzer.latest_report}


async def insufficient_data_handler(request: Request, exc: InsufficientDataError) -> JSONResponse:
    return failure(str(exc), 422)


async def invalid_recurrence_handler(request: Request, exc: InvalidRecurrenceError) -> JSONResponse:
    return failure(str(exc), 400)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SnapshotStore] = None,
    sampler: Optional[MetricSampler] = None,
    notifier: Optional[Notifier] = None,
    forecaster: Optional[Forecaster] = None,
) -> FastAPI:
    """
    Builds the application. Every collaborator can be swapped, which is
    how the tests run without a real database, mail server or host probe.
    """
    settings = settings or get_settings()

    engine = None
    if store is None:
        engine = build_engine(settings.database_url, echo=settings.debug)
        store = SqlSnapshotStore(build_session_factory(engine))

    sampler = sampler or MetricSampler(disk_path=settings.disk_path)
    alert_service = AlertService(
        evaluator=ThresholdEvaluator(settings.thresholds),
        ring=AlertRing(settings.alert_history_size),
        notifier=notifier or build_notifier(settings),
        recipients=settings.alert_recipients,
        store=store,
    )
    analyzer = PredictiveAnalyzer(
        store,
        forecaster=forecaster,
        sensitivity=settings.forecast.sensitivity,
        horizon=settings.forecast.horizon,
        window=settings.forecast.window,
    )
    scheduler = TaskScheduler(timezone=settings.scheduler.timezone)
    register_builtin_tasks(scheduler, settings, sampler, store, alert_service, analyzer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=settings.logging.level,
            format_type=settings.logging.format,
            file_path=Path(settings.logging.file_path) if settings.logging.file_path else None,
        )
        if engine is not None:
            init_db(engine)
        scheduler.launch()
        yield
        scheduler.shutdown()
        await alert_service.drain()
        if engine is not None:
            engine.dispose()

    app = FastAPI(
        title="hostwatch API",
        description="Host resource monitoring with threshold alerts and usage forecasts",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(InsufficientDataError, insufficient_data_handler)
    app.add_exception_handler(InvalidRecurrenceError, invalid_recurrence_handler)

    app.state.settings = settings
    app.state.store = store
    app.state.sampler = sampler
    app.state.alert_service = alert_service
    app.state.analyzer = analyzer
    app.state.scheduler = scheduler

    app.include_router(router)
    return app


app = create_app()
