"""Tests for forecasting, anomaly detection and solutions."""

from __future__ import annotations

import math
import random
from datetime import timedelta

import pytest

from hostwatch.errors import InsufficientDataError
from hostwatch.forecaster import (
    SOLUTION_CATALOGUE,
    Forecaster,
    anomaly_thresholds,
    detect_anomalies,
    generate_solutions,
)
from hostwatch.schemas import Anomaly, AnomalyImpact, ForecastPoint

from conftest import BASE_TIME, hourly_history, make_snapshot


def no_noise() -> float:
    return 0.5


def point(cpu=10.0, memory=10.0, disk=10.0, network=0.0, hour=1) -> ForecastPoint:
    return ForecastPoint(
        timestamp=BASE_TIME + timedelta(hours=hour),
        cpu_usage_pct=cpu,
        memory_usage_pct=memory,
        disk_usage_pct=disk,
        network_traffic_units=network,
    )


def anomaly(metric: str) -> Anomaly:
    return Anomaly(
        timestamp=BASE_TIME, metric=metric, value=99, threshold=90, probability=0.9, impact=AnomalyImpact.HIGH
    )


def test_empty_history_is_an_error() -> None:
    with pytest.raises(InsufficientDataError):
        Forecaster().forecast([], 24)


def test_horizon_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Forecaster().forecast([make_snapshot()], 0)


def test_trend_is_spread_over_history_length() -> None:
    trends = Forecaster().trends(hourly_history([40, 45, 55, 60]))
    assert trends["cpu"] == pytest.approx(5.0)
    assert trends["memory"] == pytest.approx(0.0)


def test_forecast_without_noise_follows_trend_and_wave() -> None:
    history = hourly_history([40, 50])

    points = Forecaster(rng=no_noise).forecast(history, 3)

    assert len(points) == 3
    for i, p in enumerate(points, start=1):
        assert p.timestamp == history[-1].captured_at + timedelta(hours=i)
        assert p.cpu_usage_pct == pytest.approx(50 + 5 * i + 8 * math.sin(i / 3), abs=0.01)
        assert p.memory_usage_pct == pytest.approx(40 + 5 * math.cos(i / 4), abs=0.01)
        assert p.disk_usage_pct == pytest.approx(10 + 2 * math.sin(i / 10), abs=0.01)
        assert p.network_traffic_units == pytest.approx(max(0.0, 15 * math.cos(i / 6)), abs=0.01)


def test_forecast_is_reproducible_with_fixed_rng() -> None:
    history = hourly_history([30, 35, 42, 47])

    first = Forecaster(rng=random.Random(42).random).forecast(history, 12)
    second = Forecaster(rng=random.Random(42).random).forecast(history, 12)

    assert first == second


@pytest.mark.parametrize("rng_value", [0.0, 0.999999])
@pytest.mark.parametrize("cpu_values", [[0, 100], [100, 0], [99, 100, 100], [1, 0]])
def test_percentages_stay_bounded(cpu_values, rng_value) -> None:
    history = [
        make_snapshot(cpu=cpu, memory_used=int(cpu * 100), disk_used=int(cpu * 10),
                      captured_at=BASE_TIME + timedelta(hours=i))
        for i, cpu in enumerate(cpu_values)
    ]

    points = Forecaster(rng=lambda: rng_value).forecast(history, 72)

    for p in points:
        assert 0 <= p.cpu_usage_pct <= 100
        assert 0 <= p.memory_usage_pct <= 100
        assert 0 <= p.disk_usage_pct <= 100
        assert p.network_traffic_units >= 0


def test_history_is_not_mutated() -> None:
    history = hourly_history([20, 30, 40])
    before = list(history)

    Forecaster().forecast(history, 6)

    assert history == before


def test_sensitivity_lowers_thresholds() -> None:
    assert anomaly_thresholds(0.0)["cpu"] == pytest.approx(80)
    assert anomaly_thresholds(1.0)["cpu"] == pytest.approx(70)
    assert anomaly_thresholds(1.0)["memory"] == pytest.approx(60)
    assert anomaly_thresholds(0.5)["network"] == pytest.approx(85)


@pytest.mark.parametrize("sensitivity", [-0.1, 1.5])
def test_sensitivity_out_of_range(sensitivity) -> None:
    with pytest.raises(ValueError):
        detect_anomalies([point()], sensitivity)


def test_anomaly_fields() -> None:
    anomalies = detect_anomalies([point(cpu=95)], sensitivity=0.0)

    assert len(anomalies) == 1
    a = anomalies[0]
    assert (a.metric, a.value, a.threshold) == ("cpu", 95, 80)
    assert a.probability == pytest.approx(0.875)
    assert a.impact == AnomalyImpact.HIGH


def test_value_on_threshold_is_low_impact_anomaly() -> None:
    anomalies = detect_anomalies([point(disk=90)], sensitivity=0.0)

    assert [(a.metric, a.impact, a.probability) for a in anomalies] == [("disk", AnomalyImpact.LOW, 0.5)]


def test_impact_bands() -> None:
    impacts = [detect_anomalies([point(memory=v)], 0.0)[0].impact for v in (76, 80, 85)]
    assert impacts == [AnomalyImpact.LOW, AnomalyImpact.MEDIUM, AnomalyImpact.HIGH]


def test_probability_is_clamped() -> None:
    (a,) = detect_anomalies([point(network=1_000)], sensitivity=0.0)
    assert a.probability == 1.0


def test_anomaly_order_by_point_then_metric() -> None:
    forecast = [point(cpu=99, disk=99, hour=1), point(memory=99, network=500, hour=2)]

    anomalies = detect_anomalies(forecast, 0.5)

    assert [a.metric for a in anomalies] == ["cpu", "disk", "memory", "network"]


def test_more_sensitivity_never_fewer_anomalies() -> None:
    history = hourly_history([55, 60, 68, 72, 75])
    forecast = Forecaster(rng=random.Random(7).random).forecast(history, 48)

    low = detect_anomalies(forecast, 0.3)
    high = detect_anomalies(forecast, 0.9)

    assert len(high) >= len(low)


def test_every_anomaly_reaches_its_threshold() -> None:
    forecast = Forecaster(rng=random.Random(3).random).forecast(hourly_history([70, 90]), 24)
    for a in detect_anomalies(forecast, 1.0):
        assert a.value >= a.threshold
        assert 0 <= a.probability <= 1


def test_one_solution_per_affected_metric() -> None:
    solutions = generate_solutions([anomaly("disk"), anomaly("cpu"), anomaly("disk")])

    assert [s.metric for s in solutions] == ["cpu", "disk"]
    assert solutions[1] == SOLUTION_CATALOGUE["disk"]
    assert len(solutions[0].suggestions) == 3
    assert len(solutions[0].automated_actions) == 3


def test_no_anomalies_no_solutions() -> None:
    assert generate_solutions([]) == []


def test_solution_exists_iff_metric_has_anomaly() -> None:
    forecast = Forecaster(rng=random.Random(11).random).forecast(hourly_history([60, 85]), 24)
    anomalies = detect_anomalies(forecast, 0.7)

    solved = {s.metric for s in generate_solutions(anomalies)}

    assert solved == {a.metric for a in anomalies}
