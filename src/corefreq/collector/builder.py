"""Build immutable snapshots, carrying running min/max forward."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime

from ..models import (
    CoreMetric,
    FrequencySummary,
    PackageMetric,
    SensorSample,
    Snapshot,
    SystemIdentity,
    TopologySnapshot,
)
from .frequency import DEFAULT_BASE_CLOCK_MHZ, is_valid_reading
from .reconciler import Reconciliation, fallback_core_temperatures


@dataclass(frozen=True)
class CycleReadings:
    """Everything gathered from the provider during one collection cycle."""

    reconciliation: Reconciliation = field(default_factory=Reconciliation)
    core_frequencies: dict[int, float] = field(default_factory=dict)
    frequency: FrequencySummary = field(default_factory=FrequencySummary)
    system: SystemIdentity = field(default_factory=SystemIdentity)
    topology: TopologySnapshot = field(default_factory=TopologySnapshot)
    sensors: tuple[SensorSample, ...] = ()
    timestamp: datetime | None = None


def widen_min(current_min: float | None, value: float | None) -> float | None:
    if value is None:
        return current_min
    if current_min is None:
        return value
    return min(current_min, value)


def widen_max(current_max: float | None, value: float | None) -> float | None:
    if value is None:
        return current_max
    if current_max is None:
        return value
    return max(current_max, value)


def determine_core_count(readings: CycleReadings) -> int:
    """Largest per-core reading count, else the reported physical core count."""
    recon = readings.reconciliation
    count = max(
        len(readings.core_frequencies),
        len(recon.core_temperatures),
        len(recon.core_utilization),
    )
    if count == 0:
        count = readings.system.physical_cores or readings.topology.physical_cores
    return count


def _valid(value: float | None) -> float | None:
    return value if is_valid_reading(value) else None


def build_snapshot(previous: Snapshot | None, readings: CycleReadings) -> Snapshot:
    """Combine fresh readings with the previous snapshot's statistics.

    Min/max values start from the previous core with the same id and are
    only ever widened by a present reading. Cores without a predecessor
    start unset. Never fails: anything missing stays absent.
    """
    recon = readings.reconciliation
    core_count = determine_core_count(readings)
    package_temp = _valid(recon.package_temperature)
    temperatures = fallback_core_temperatures(recon.core_temperatures, package_temp, core_count)
    base_clock = readings.frequency.base_clock or DEFAULT_BASE_CLOCK_MHZ

    prev_cores: dict[int, CoreMetric] = {}
    if previous is not None:
        prev_cores = {c.core_id: c for c in previous.package.cores}

    cores: list[CoreMetric] = []
    for core_id in range(core_count):
        freq = _valid(readings.core_frequencies.get(core_id))
        temp = _valid(temperatures.get(core_id))
        util = recon.core_utilization.get(core_id)
        prev = prev_cores.get(core_id)

        cores.append(CoreMetric(
            core_id=core_id,
            frequency=freq,
            temperature=temp,
            utilization=util,
            power=_valid(recon.core_power.get(core_id)),
            voltage=_valid(recon.core_voltages.get(core_id)),
            multiplier=(freq / base_clock) if freq is not None else None,
            min_frequency=widen_min(prev.min_frequency if prev else None, freq),
            max_frequency=widen_max(prev.max_frequency if prev else None, freq),
            min_temperature=widen_min(prev.min_temperature if prev else None, temp),
            max_temperature=widen_max(prev.max_temperature if prev else None, temp),
            is_active=any(v is not None for v in (freq, temp, util)),
        ))

    prev_package = previous.package if previous is not None else None
    package = PackageMetric(
        package_id=0,
        temperature=package_temp,
        min_temperature=widen_min(prev_package.min_temperature if prev_package else None, package_temp),
        max_temperature=widen_max(prev_package.max_temperature if prev_package else None, package_temp),
        power=_valid(recon.package_power),
        voltage=_valid(recon.package_voltage),
        total_utilization=recon.total_utilization,
        cores=tuple(cores),
    )

    return Snapshot(
        timestamp=readings.timestamp or datetime.now().astimezone(),
        system=readings.system,
        package=package,
        frequency=readings.frequency,
        topology=readings.topology,
        sensors=tuple(readings.sensors),
    )


def clear_min_max(snapshot: Snapshot) -> Snapshot:
    """Return a copy of *snapshot* with every running min/max unset."""
    cores = tuple(
        dataclasses.replace(
            core,
            min_frequency=None,
            max_frequency=None,
            min_temperature=None,
            max_temperature=None,
        )
        for core in snapshot.package.cores
    )
    package = dataclasses.replace(
        snapshot.package,
        min_temperature=None,
        max_temperature=None,
        cores=cores,
    )
    return dataclasses.replace(snapshot, package=package)
