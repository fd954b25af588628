"""
collector.py - Metric Sampler

Reads the host counters hostwatch tracks and turns them into a
MetricSnapshot:
- CPU: usage from the busy/total tick delta between two readings, and
  package temperature where the host exposes a sensor
- Memory: total and used bytes
- Disk: total and used bytes for one mount point
- Network: bytes in/out per second since the previous sample

The sampler never persists anything; the caller hands the snapshot to
a SnapshotStore.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Callable, Optional, Tuple

import psutil

from hostwatch.errors import TransientSamplingError
from hostwatch.schemas import MetricSnapshot
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

# Sensor chips checked in order for a CPU temperature
CPU_SENSOR_NAMES = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "acpitz")


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


class MetricSampler:
    """
    Produces MetricSnapshots from psutil.

    CPU and network figures are deltas, so the sampler keeps the previous
    readings between calls. The very first sample measures against the
    readings taken when the sampler was created.

    One sampler is shared by the scheduled task and the HTTP endpoints,
    so sample() holds a lock while it swaps the previous readings.
    """

    def __init__(self, disk_path: str = "/", clock: Callable[[], float] = time.monotonic):
        self.disk_path = disk_path
        self._clock = clock
        self._lock = threading.Lock()
        self._last_cpu_times = psutil.cpu_times()
        # None until one network read succeeds
        self._last_net: Optional[Tuple[int, int]] = None
        self._last_net_at = self._clock()
        try:
            self._last_net = self._read_network_counters()
        except TransientSamplingError as e:
            logger.warning("Network counters unavailable at startup", error=str(e))

    def sample(self) -> MetricSnapshot:
        """Takes one reading of every metric."""
        mem = psutil.virtual_memory()
        disk = psutil.disk_usage(self.disk_path)
        with self._lock:
            bytes_in, bytes_out = self._network_rates()
            cpu_usage = self._cpu_usage()

        return MetricSnapshot(
            cpu_usage_pct=cpu_usage,
            cpu_temperature_c=self._cpu_temperature(),
            memory_total_bytes=mem.total,
            memory_used_bytes=mem.used,
            disk_total_bytes=disk.total,
            disk_used_bytes=disk.used,
            network_bytes_in=bytes_in,
            network_bytes_out=bytes_out,
            captured_at=datetime.now(),
        )

    def _cpu_usage(self) -> float:
        current = psutil.cpu_times()
        previous, self._last_cpu_times = self._last_cpu_times, current

        total_delta = _total_ticks(current) - _total_ticks(previous)
        idle_delta = _idle_ticks(current) - _idle_ticks(previous)
        if total_delta <= 0:
            # Two readings inside the same tick, use the OS gauge instead
            return _clamp_percent(psutil.cpu_percent(interval=None))

        return round(_clamp_percent((1 - idle_delta / total_delta) * 100), 2)

    def _cpu_temperature(self) -> Optional[float]:
        try:
            return self._read_cpu_temperature()
        except TransientSamplingError as e:
            logger.debug("CPU temperature unavailable", error=str(e))
            return None

    def _read_cpu_temperature(self) -> Optional[float]:
        # Not available on macOS or Windows
        reader = getattr(psutil, "sensors_temperatures", None)
        if reader is None:
            return None
        try:
            sensors = reader()
        except (OSError, RuntimeError) as e:
            raise TransientSamplingError(f"sensors_temperatures failed: {e}") from e

        for name in CPU_SENSOR_NAMES:
            entries = sensors.get(name)
            if entries:
                return round(max(entry.current for entry in entries), 1)
        return None

    def _read_network_counters(self) -> Tuple[int, int]:
        try:
            net = psutil.net_io_counters()
        except (OSError, RuntimeError) as e:
            raise TransientSamplingError(f"net_io_counters failed: {e}") from e
        if net is None:
            raise TransientSamplingError("net_io_counters returned no data")
        return net.bytes_recv, net.bytes_sent

    def _network_rates(self) -> Tuple[float, float]:
        """
        Bytes per second in and out since the previous good reading.

        A failed read reports no traffic and keeps the old baseline, so the
        next good read averages over the whole gap. The first good read
        only sets the baseline.
        """
        now = self._clock()
        try:
            counters = self._read_network_counters()
        except TransientSamplingError as e:
            logger.warning("Network counters unreadable, reporting no traffic", error=str(e))
            return 0.0, 0.0

        previous, elapsed = self._last_net, now - self._last_net_at
        self._last_net, self._last_net_at = counters, now

        if previous is None or elapsed <= 0:
            return 0.0, 0.0
        # A negative delta means the counters were reset or wrapped
        rate_in = max(0, counters[0] - previous[0]) / elapsed
        rate_out = max(0, counters[1] - previous[1]) / elapsed
        return round(rate_in, 2), round(rate_out, 2)


def _total_ticks(times) -> float:
    # guest time is already counted in user/nice on Linux
    return sum(times) - getattr(times, "guest", 0.0) - getattr(times, "guest_nice", 0.0)


def _idle_ticks(times) -> float:
    return times.idle + getattr(times, "iowait", 0.0)


# For testing
if __name__ == "__main__":
    sampler = MetricSampler()
    time.sleep(1)
    print(sampler.sample().model_dump_json(indent=2))
