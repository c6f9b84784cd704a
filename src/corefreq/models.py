"""Typed telemetry models shared by the collector, exporters and UI."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping


class SensorKind(str, enum.Enum):
    """Kind of a provider-reported sensor."""

    TEMPERATURE = "temperature"
    VOLTAGE = "voltage"
    POWER = "power"
    CLOCK = "clock"
    LOAD = "load"
    FAN = "fan"
    FLOW = "flow"
    CONTROL = "control"
    LEVEL = "level"
    FACTOR = "factor"
    DATA = "data"
    THROUGHPUT = "throughput"
    ENERGY = "energy"
    UNKNOWN = "unknown"


_UNITS = {
    SensorKind.TEMPERATURE: "C",
    SensorKind.VOLTAGE: "V",
    SensorKind.POWER: "W",
    SensorKind.CLOCK: "MHz",
    SensorKind.LOAD: "%",
    SensorKind.FAN: "RPM",
    SensorKind.ENERGY: "J",
}


@dataclass(frozen=True)
class SensorSample:
    """A single raw sensor reading as reported by a provider."""

    name: str
    kind: SensorKind
    value: float | None = None
    min: float | None = None
    max: float | None = None
    hardware: str = ""
    identifier: str = ""

    @property
    def unit(self) -> str:
        return _UNITS.get(self.kind, "")


@dataclass(frozen=True)
class CoreMetric:
    """Reconciled metrics for one logical core."""

    core_id: int
    frequency: float | None = None  # MHz
    temperature: float | None = None  # Celsius
    utilization: float | None = None  # percent, 0-100
    power: float | None = None  # Watts
    voltage: float | None = None  # Volts
    multiplier: float | None = None
    min_frequency: float | None = None
    max_frequency: float | None = None
    min_temperature: float | None = None
    max_temperature: float | None = None
    is_active: bool = False


@dataclass(frozen=True)
class PackageMetric:
    """Package-level aggregate plus the ordered per-core metrics."""

    package_id: int = 0
    temperature: float | None = None
    min_temperature: float | None = None
    max_temperature: float | None = None
    power: float | None = None
    max_power: float | None = None
    voltage: float | None = None
    total_utilization: float = 0.0
    cores: tuple[CoreMetric, ...] = ()

    def core(self, core_id: int) -> CoreMetric | None:
        for core in self.cores:
            if core.core_id == core_id:
                return core
        return None


@dataclass(frozen=True)
class CoreTopology:
    core_id: int
    thread_id: int
    package_id: int = 0
    node_id: int = 0
    is_smt: bool = False


@dataclass(frozen=True)
class CacheInfo:
    level: int
    size: int  # bytes
    associativity: int = 0
    line_size: int = 0  # bytes
    cache_type: str = ""


@dataclass(frozen=True)
class TopologySnapshot:
    """Core, package and cache layout reported by the provider."""

    physical_cores: int = 0
    logical_cores: int = 0
    packages: int = 1
    numa_nodes: int = 1
    has_smt: bool = False
    cores: tuple[CoreTopology, ...] = ()
    caches: tuple[CacheInfo, ...] = ()
    # True when ``cores`` comes from real thread-to-core affinity data
    # rather than the contiguous enumeration assumption.
    affinity_known: bool = False

    def thread_to_core(self) -> dict[int, int]:
        """Map each logical thread to a dense physical core index.

        Physical cores are numbered in order of first appearance so the
        result lines up with per-physical-core sensor numbering.
        """
        dense: dict[tuple[int, int], int] = {}
        mapping: dict[int, int] = {}
        for entry in sorted(self.cores, key=lambda c: c.thread_id):
            key = (entry.package_id, entry.core_id)
            if key not in dense:
                dense[key] = len(dense)
            mapping[entry.thread_id] = dense[key]
        return mapping


@dataclass(frozen=True)
class CpuIdentity:
    vendor: str = ""
    brand: str = ""
    family: str = ""
    model: str = ""
    stepping: str = ""
    features: tuple[str, ...] = ()


@dataclass(frozen=True)
class BoardIdentity:
    manufacturer: str = ""
    product: str = ""
    version: str = ""
    serial_number: str = ""
    bios_vendor: str = ""
    bios_version: str = ""
    bios_date: str = ""


@dataclass(frozen=True)
class SystemIdentity:
    cpu: CpuIdentity = field(default_factory=CpuIdentity)
    board: BoardIdentity = field(default_factory=BoardIdentity)
    architecture: str = ""
    physical_cores: int = 0
    logical_cores: int = 0
    total_memory: int = 0  # bytes
    os_name: str = ""
    os_version: str = ""


@dataclass(frozen=True)
class FrequencySummary:
    """Clock facts derived from the current cycle's core frequencies."""

    base_clock: float = 100.0
    bus_speed: float = 100.0
    multipliers: Mapping[int, float] = field(default_factory=dict)
    min_frequency: float | None = None
    max_frequency: float | None = None
    max_turbo_frequency: float | None = None

    def __post_init__(self) -> None:
        # read-only view over a private copy
        object.__setattr__(self, "multipliers", MappingProxyType(dict(self.multipliers)))


@dataclass(frozen=True)
class Snapshot:
    """One immutable, fully reconciled point-in-time reading."""

    timestamp: datetime
    system: SystemIdentity = field(default_factory=SystemIdentity)
    package: PackageMetric = field(default_factory=PackageMetric)
    frequency: FrequencySummary = field(default_factory=FrequencySummary)
    topology: TopologySnapshot = field(default_factory=TopologySnapshot)
    sensors: tuple[SensorSample, ...] = ()

    @classmethod
    def empty(cls) -> Snapshot:
        return cls(timestamp=datetime.now().astimezone())

    @property
    def cores(self) -> tuple[CoreMetric, ...]:
        return self.package.cores


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def snapshot_to_dict(snapshot: Snapshot, include_sensors: bool = True) -> dict[str, Any]:
    """Serialize a snapshot to plain JSON-compatible data."""
    data = _jsonable(snapshot)
    if not include_sensors:
        data.pop("sensors", None)
    return data
