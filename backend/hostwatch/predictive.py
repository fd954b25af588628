"""
predictive.py - Predictive analysis over stored history

Loads a window of snapshots from the store and runs forecast, anomaly
detection and solution generation as a single report. The newest report
is kept so the scheduled forecast task and the API can share it.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional, Union

from hostwatch.forecaster import Forecaster, detect_anomalies, generate_solutions
from hostwatch.schemas import ForecastReport
from hostwatch.store import SnapshotStore
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HOURS = 24
# Fixed confidence reported alongside every projection
FORECAST_CONFIDENCE = 0.85

_DURATION = re.compile(r"^\s*(\d+)\s*([a-zA-Z]*)\s*$")


def parse_horizon(value: Union[str, int]) -> int:
    """
    Turns "24h", "3d" or a plain number of hours into hours.

    An unknown unit falls back to 24 hours. Zero or unparseable input is
    a ValueError.
    """
    if isinstance(value, int):
        hours = value
    else:
        match = _DURATION.match(value)
        if not match:
            raise ValueError(f"cannot parse duration {value!r}")
        amount, unit = int(match.group(1)), match.group(2).lower()
        if unit in ("", "h"):
            hours = amount
        elif unit == "d":
            hours = amount * 24
        else:
            logger.warning("Unknown duration unit, using default", value=value, default_hours=DEFAULT_HOURS)
            hours = DEFAULT_HOURS
    if hours < 1:
        raise ValueError(f"duration must be at least one hour, got {value!r}")
    return hours


class PredictiveAnalyzer:
    def __init__(
        self,
        store: SnapshotStore,
        forecaster: Optional[Forecaster] = None,
        sensitivity: float = 0.7,
        horizon: Union[str, int] = "24h",
        window: Union[str, int] = "24h",
    ):
        self.store = store
        self.forecaster = forecaster or Forecaster()
        self.sensitivity = sensitivity
        self.horizon = horizon
        self.window = window
        self.latest_report: Optional[ForecastReport] = None

    def analyze(
        self,
        horizon: Union[str, int, None] = None,
        window: Union[str, int, None] = None,
        sensitivity: Optional[float] = None,
    ) -> ForecastReport:
        """
        Raises InsufficientDataError when the window holds no snapshots.
        """
        horizon_hours = parse_horizon(horizon if horizon is not None else self.horizon)
        window_hours = parse_horizon(window if window is not None else self.window)
        sensitivity = self.sensitivity if sensitivity is None else sensitivity

        history = self.store.window(datetime.now() - timedelta(hours=window_hours))
        predicted = self.forecaster.forecast(history, horizon_hours)
        anomalies = detect_anomalies(predicted, sensitivity)
        solutions = generate_solutions(anomalies)

        report = ForecastReport(
            generated_at=datetime.now(),
            horizon_hours=horizon_hours,
            sensitivity=sensitivity,
            confidence=FORECAST_CONFIDENCE,
            history_size=len(history),
            predicted=predicted,
            anomalies=anomalies,
            solutions=solutions,
        )
        self.latest_report = report

        logger.info(
            "Forecast report generated",
            history_size=len(history),
            horizon_hours=horizon_hours,
            anomalies=len(anomalies),
            solutions=[s.metric for s in solutions],
        )
        return report
