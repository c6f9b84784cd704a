"""Shared fixtures: a scriptable in-memory sensor provider."""

from __future__ import annotations

import pytest

from corefreq.models import (
    CpuIdentity,
    SensorKind,
    SensorSample,
    SystemIdentity,
    TopologySnapshot,
)
from corefreq.provider.base import SensorProvider


def clock(name: str, value: float | None) -> SensorSample:
    return SensorSample(name=name, kind=SensorKind.CLOCK, value=value, hardware="cpu")


def temp(name: str, value: float | None) -> SensorSample:
    return SensorSample(name=name, kind=SensorKind.TEMPERATURE, value=value, hardware="cpu")


def load(name: str, value: float | None) -> SensorSample:
    return SensorSample(name=name, kind=SensorKind.LOAD, value=value, hardware="cpu")


def power(name: str, value: float | None) -> SensorSample:
    return SensorSample(name=name, kind=SensorKind.POWER, value=value, hardware="cpu")


def voltage(name: str, value: float | None) -> SensorSample:
    return SensorSample(name=name, kind=SensorKind.VOLTAGE, value=value, hardware="cpu")


def core_loads(count: int, value: float = 10.0) -> list[SensorSample]:
    return [load(f"CPU Core #{i}", value) for i in range(count)]


class FakeProvider(SensorProvider):
    """Provider whose readings are set directly by the test.

    Assign ``fail`` a set of method names to make those calls raise.
    """

    def __init__(
        self,
        sensors: list[SensorSample] | None = None,
        per_core: dict[int, float] | None = None,
        total: float | None = 25.0,
        physical_cores: int = 2,
        logical_cores: int = 4,
    ) -> None:
        self.next_sensors = list(sensors or [])
        self.per_core = dict(per_core or {})
        self.total = total
        self.physical_cores = physical_cores
        self.logical_cores = logical_cores
        self.cpu_present = True
        self.topology_snapshot: TopologySnapshot | None = None
        self.fail: set[str] = set()
        self.refresh_count = 0
        self.opened = False
        self.closed = False
        self._sensors: list[SensorSample] = []

    @property
    def name(self) -> str:
        return "fake"

    def _check(self, method: str) -> None:
        if method in self.fail:
            raise RuntimeError(f"{method} failed")

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def refresh(self) -> None:
        self._check("refresh")
        self.refresh_count += 1
        self._sensors = list(self.next_sensors)

    def has_cpu(self) -> bool:
        self._check("has_cpu")
        return self.cpu_present

    def sensors(self) -> list[SensorSample]:
        self._check("sensors")
        return list(self._sensors)

    def utilization(self) -> tuple[dict[int, float], float | None]:
        self._check("utilization")
        return dict(self.per_core), self.total

    def system_identity(self) -> SystemIdentity:
        self._check("system_identity")
        return SystemIdentity(
            cpu=CpuIdentity(vendor="GenuineTest", brand="Test CPU 9000"),
            architecture="x86_64",
            physical_cores=self.physical_cores,
            logical_cores=self.logical_cores,
            total_memory=16 * 1024**3,
            os_name="Linux",
            os_version="6.0",
        )

    def topology(self) -> TopologySnapshot:
        self._check("topology")
        if self.topology_snapshot is not None:
            return self.topology_snapshot
        return TopologySnapshot(
            physical_cores=self.physical_cores,
            logical_cores=self.logical_cores,
            has_smt=self.logical_cores > self.physical_cores,
        )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(
        sensors=[
            clock("Core #0", 3200.0),
            clock("Core #1", 3400.0),
            temp("CPU Package", 55.0),
            temp("CPU Core #0", 50.0),
            temp("CPU Core #1", 52.0),
            temp("CPU Core #2", 51.0),
            temp("CPU Core #3", 53.0),
            power("CPU Package", 45.0),
            voltage("CPU Core", 1.25),
            *core_loads(4),
        ],
        per_core={0: 10.0, 1: 20.0, 2: 30.0, 3: 40.0},
        total=25.0,
    )
