"""Reduce raw provider sensors to canonical per-core and package values.

Package-level sensors are classified by label matching. Each semantic role
(package temperature, package power, core voltage) owns an ordered tuple of
:class:`SensorRule` objects. Rules are tried in priority order; within a
rule the first sensor, in provider order, that matches any of its
:class:`LabelMatcher` terms and carries a valid value wins. There is no
averaging.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from ..models import SensorKind, SensorSample
from .frequency import is_valid_reading
from .naming import label_contains, resolve_core_id


@dataclass(frozen=True)
class LabelMatcher:
    """Matches labels containing *contains* but none of *unless*."""

    contains: str
    unless: tuple[str, ...] = ()

    def matches(self, label: str) -> bool:
        if not label_contains(label, self.contains):
            return False
        return not any(label_contains(label, term) for term in self.unless)


@dataclass(frozen=True)
class SensorRule:
    matchers: tuple[LabelMatcher, ...]

    def matches(self, label: str) -> bool:
        return any(m.matches(label) for m in self.matchers)

    @classmethod
    def of(cls, *terms: str | LabelMatcher) -> SensorRule:
        return cls(tuple(t if isinstance(t, LabelMatcher) else LabelMatcher(t) for t in terms))


@dataclass(frozen=True)
class SensorRules:
    """Ordered matching rules per semantic role."""

    package_temperature: tuple[SensorRule, ...] = (
        SensorRule.of("package", "tctl", "tdie", LabelMatcher("cpu", unless=("core",))),
    )
    package_power: tuple[SensorRule, ...] = (SensorRule.of("package", "cpu"),)
    vcore_voltage: tuple[SensorRule, ...] = (
        SensorRule.of("vcore", "core (svi2", "cpu core"),
    )
    # Terms that mark a sensor as per-core (and a load sensor as a logical core).
    core_label: tuple[str, ...] = ("core",)


def select_sensor(
    sensors: Sequence[SensorSample],
    kind: SensorKind,
    rules: Iterable[SensorRule],
) -> SensorSample | None:
    """Return the first valid sensor of *kind* matched by the highest-priority rule."""
    candidates = [s for s in sensors if s.kind is kind and is_valid_reading(s.value)]
    for rule in rules:
        for sensor in candidates:
            if rule.matches(sensor.name):
                return sensor
    return None


def clamp_percent(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return max(0.0, min(100.0, float(value)))


def fallback_core_temperatures(
    core_temperatures: Mapping[int, float],
    package_temperature: float | None,
    core_count: int,
) -> dict[int, float]:
    """Give every core the package temperature when no per-core sensor exists.

    Evaluated per cycle; hardware exposing only a die-level sensor gets the
    package value on each core, anything with real per-core sensors is
    returned unchanged.
    """
    if core_temperatures or not is_valid_reading(package_temperature):
        return dict(core_temperatures)
    return {core_id: float(package_temperature) for core_id in range(core_count)}  # type: ignore[arg-type]


@dataclass(frozen=True)
class Reconciliation:
    """Canonical values for one polling cycle."""

    package_temperature: float | None = None
    package_power: float | None = None
    package_voltage: float | None = None
    core_temperatures: dict[int, float] = field(default_factory=dict)
    core_power: dict[int, float] = field(default_factory=dict)
    core_voltages: dict[int, float] = field(default_factory=dict)
    core_utilization: dict[int, float] = field(default_factory=dict)
    total_utilization: float = 0.0


class SensorReconciler:
    """Applies :class:`SensorRules` to one cycle of provider data."""

    def __init__(self, rules: SensorRules | None = None) -> None:
        self._rules = rules or SensorRules()

    @property
    def rules(self) -> SensorRules:
        return self._rules

    def is_core_sensor(self, sensor: SensorSample) -> bool:
        return any(label_contains(sensor.name, t) for t in self._rules.core_label)

    def per_core(
        self,
        sensors: Sequence[SensorSample],
        kind: SensorKind,
        exclude: SensorSample | None = None,
    ) -> dict[int, float]:
        """Per-core readings of *kind*.

        Package-temperature matches and the *exclude* sensor (the one already
        chosen as the package-level value) never count as per-core.
        """
        values: dict[int, float] = {}
        for sensor in sensors:
            if sensor.kind is not kind or not is_valid_reading(sensor.value):
                continue
            if sensor is exclude or not self.is_core_sensor(sensor):
                continue
            if any(rule.matches(sensor.name) for rule in self._rules.package_temperature):
                continue
            core_id = resolve_core_id(sensor.name)
            if core_id is not None:
                values[core_id] = float(sensor.value)  # type: ignore[arg-type]
        return values

    def reconcile(
        self,
        sensors: Sequence[SensorSample],
        core_utilization: Mapping[int, float] | None = None,
        total_utilization: float | None = None,
    ) -> Reconciliation:
        package_temp = select_sensor(sensors, SensorKind.TEMPERATURE, self._rules.package_temperature)
        package_power = select_sensor(sensors, SensorKind.POWER, self._rules.package_power)
        vcore = select_sensor(sensors, SensorKind.VOLTAGE, self._rules.vcore_voltage)

        utilization: dict[int, float] = {}
        for core_id, value in (core_utilization or {}).items():
            clamped = clamp_percent(value)
            if clamped is not None:
                utilization[core_id] = clamped

        return Reconciliation(
            package_temperature=package_temp.value if package_temp else None,
            package_power=package_power.value if package_power else None,
            package_voltage=vcore.value if vcore else None,
            core_temperatures=self.per_core(sensors, SensorKind.TEMPERATURE, exclude=package_temp),
            core_power=self.per_core(sensors, SensorKind.POWER, exclude=package_power),
            core_voltages=self.per_core(sensors, SensorKind.VOLTAGE, exclude=vcore),
            core_utilization=utilization,
            total_utilization=clamp_percent(total_utilization) or 0.0,
        )
