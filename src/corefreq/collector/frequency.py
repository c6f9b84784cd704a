"""Map physical-core clock readings onto every logical core."""

from __future__ import annotations

import math
from typing import Iterable, Mapping

from ..models import FrequencySummary, SensorKind, SensorSample
from .naming import label_contains, resolve_core_id

DEFAULT_BASE_CLOCK_MHZ = 100.0


def is_valid_reading(value: float | None) -> bool:
    """True for a present, finite, strictly positive reading."""
    return value is not None and math.isfinite(value) and value > 0


def physical_core_frequencies(sensors: Iterable[SensorSample]) -> dict[int, float]:
    """Collect per-physical-core clocks keyed by the id in the sensor label."""
    frequencies: dict[int, float] = {}
    for sensor in sensors:
        if sensor.kind is not SensorKind.CLOCK or not is_valid_reading(sensor.value):
            continue
        core_id = resolve_core_id(sensor.name)
        if core_id is not None:
            frequencies[core_id] = float(sensor.value)  # type: ignore[arg-type]
    return frequencies


def logical_core_count(
    sensors: Iterable[SensorSample],
    core_terms: Iterable[str] = ("core",),
) -> int:
    """Count the load sensors that reference a core."""
    terms = tuple(core_terms)
    return sum(
        1
        for s in sensors
        if s.kind is SensorKind.LOAD and any(label_contains(s.name, t) for t in terms)
    )


def map_core_frequencies(
    physical: Mapping[int, float],
    logical_count: int,
    thread_to_core: Mapping[int, int] | None = None,
) -> dict[int, float]:
    """Produce a frequency for every logical core that can be given one.

    Without affinity data, logical cores ``0..P-1`` are taken to be the
    physical cores themselves and logical core ``i >= P`` is treated as the
    SMT sibling of physical core ``i - P``. When *thread_to_core* is given
    it takes precedence for every logical core it covers.
    """
    physical_count = len(physical)
    mapped: dict[int, float] = {}
    for logical in range(logical_count):
        if thread_to_core is not None and logical in thread_to_core:
            physical_id = thread_to_core[logical]
        elif logical < physical_count:
            physical_id = logical
        else:
            physical_id = logical - physical_count
        freq = physical.get(physical_id)
        if freq is not None:
            mapped[logical] = freq
    return mapped


def summarize_frequencies(
    frequencies: Mapping[int, float],
    base_clock: float = DEFAULT_BASE_CLOCK_MHZ,
) -> FrequencySummary:
    """Derive multipliers and the cycle's min/max clock."""
    if not frequencies:
        return FrequencySummary(base_clock=base_clock, bus_speed=base_clock)
    values = list(frequencies.values())
    return FrequencySummary(
        base_clock=base_clock,
        bus_speed=base_clock,
        multipliers={core: freq / base_clock for core, freq in frequencies.items()},
        min_frequency=min(values),
        max_frequency=max(values),
        max_turbo_frequency=max(values),
    )
