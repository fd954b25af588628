"""Tests for settings loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from hostwatch.config import Settings, ThresholdLevels


def test_defaults() -> None:
    settings = Settings()

    assert settings.alert_history_size == 100
    assert settings.thresholds.cpu_usage == ThresholdLevels(warning=70, critical=90)
    assert settings.thresholds.cpu_temperature == ThresholdLevels(warning=70, critical=85)
    assert settings.thresholds.memory_usage == ThresholdLevels(warning=75, critical=90)
    assert settings.thresholds.disk_usage == ThresholdLevels(warning=80, critical=95)
    assert settings.scheduler.metrics_cron == "*/5 * * * *"
    assert settings.scheduler.alerts_cron == "*/10 * * * *"
    assert settings.forecast.sensitivity == 0.7
    assert settings.smtp.enabled is False


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("HOSTWATCH_THRESHOLDS__CPU_USAGE__WARNING", "60")
    monkeypatch.setenv("HOSTWATCH_THRESHOLDS__CPU_USAGE__CRITICAL", "80")
    monkeypatch.setenv("HOSTWATCH_SCHEDULER__METRICS_CRON", "*/1 * * * *")
    monkeypatch.setenv("HOSTWATCH_ALERT_HISTORY_SIZE", "5")

    settings = Settings()

    assert settings.thresholds.cpu_usage == ThresholdLevels(warning=60, critical=80)
    assert settings.thresholds.disk_usage.critical == 95
    assert settings.scheduler.metrics_cron == "*/1 * * * *"
    assert settings.alert_history_size == 5


def test_warning_above_critical_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ThresholdLevels(warning=95, critical=90)


def test_equal_levels_are_allowed() -> None:
    assert ThresholdLevels(warning=90, critical=90).critical == 90


@pytest.mark.parametrize("sensitivity", [-0.5, 1.5])
def test_forecast_sensitivity_bounds(sensitivity) -> None:
    with pytest.raises(ValidationError):
        Settings(forecast={"sensitivity": sensitivity})


def test_history_size_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(alert_history_size=0)
