"""Sensor provider backed by psutil with Linux sysfs/procfs enrichment."""

from __future__ import annotations

import logging
import platform
import re
import time
from pathlib import Path

import psutil

from ..models import (
    BoardIdentity,
    CacheInfo,
    CoreTopology,
    CpuIdentity,
    SensorKind,
    SensorSample,
    SystemIdentity,
    TopologySnapshot,
)
from .base import ProviderUnavailableError, SensorProvider

logger = logging.getLogger(__name__)

_CORETEMP_LABEL_RE = re.compile(r"^Core\s+(\d+)$", re.IGNORECASE)
_CACHE_SIZE_RE = re.compile(r"^(\d+)\s*([KMG]?)", re.IGNORECASE)
_SIZE_FACTORS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None


def _read_int(path: Path) -> int | None:
    text = _read_text(path)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def parse_cache_size(text: str | None) -> int:
    """Parse sysfs cache sizes such as ``32K`` or ``16384K`` into bytes."""
    if not text:
        return 0
    match = _CACHE_SIZE_RE.match(text.strip())
    if match is None:
        return 0
    return int(match.group(1)) * _SIZE_FACTORS[match.group(2).upper()]


def parse_cpuinfo(text: str) -> CpuIdentity:
    """Read the first processor block of ``/proc/cpuinfo``."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            if fields:
                break
            continue
        key, sep, value = line.partition(":")
        if sep:
            fields.setdefault(key.strip(), value.strip())
    return CpuIdentity(
        vendor=fields.get("vendor_id", ""),
        brand=fields.get("model name", ""),
        family=fields.get("cpu family", ""),
        model=fields.get("model", ""),
        stepping=fields.get("stepping", ""),
        features=tuple(fields.get("flags", "").split()),
    )


def temperature_sensor_name(chip: str, label: str, index: int) -> str:
    """Normalize a psutil temperature label into a provider sensor name."""
    match = _CORETEMP_LABEL_RE.match(label.strip())
    if match:
        return f"CPU Core #{match.group(1)}"
    if label.strip():
        return label.strip()
    return f"{chip} #{index}"


class _RaplMeter:
    """Package power from the RAPL cumulative energy counter."""

    def __init__(self, zone: Path) -> None:
        self._energy_path = zone / "energy_uj"
        self._max_range = _read_int(zone / "max_energy_range_uj")
        self._prev: tuple[float, int] | None = None

    def read_watts(self) -> float | None:
        energy = _read_int(self._energy_path)
        now = time.monotonic()
        if energy is None:
            self._prev = None
            return None
        prev, self._prev = self._prev, (now, energy)
        if prev is None:
            return None
        elapsed = now - prev[0]
        if elapsed <= 0:
            return None
        delta = energy - prev[1]
        if delta < 0:
            if not self._max_range:
                return None
            delta += self._max_range
        return delta / 1_000_000 / elapsed


class PsutilSensorProvider(SensorProvider):
    """Collects clocks, temperatures, load and RAPL power on the local host.

    Reads psutil for the portable parts and sysfs/procfs for what psutil does
    not expose (topology, caches, board identity, package energy). Every read
    that fails simply yields no sensor.
    """

    def __init__(self, sysfs_root: str | Path = "/sys", procfs_root: str | Path = "/proc") -> None:
        self._sys = Path(sysfs_root)
        self._proc = Path(procfs_root)
        self._logical = 0
        self._physical = 0
        self._cpu_identity = CpuIdentity()
        self._board = BoardIdentity()
        self._rapl = _RaplMeter(self._sys / "class" / "powercap" / "intel-rapl:0")
        self._sensors: list[SensorSample] = []
        self._per_core_load: dict[int, float] = {}
        self._total_load: float | None = None

    @property
    def name(self) -> str:
        return "psutil"

    def open(self) -> None:
        try:
            logical = psutil.cpu_count(logical=True)
            physical = psutil.cpu_count(logical=False)
            psutil.cpu_percent(interval=None)
            psutil.cpu_percent(interval=None, percpu=True)
        except Exception as exc:
            raise ProviderUnavailableError(f"psutil failed to query the CPU: {exc}") from exc
        if not logical:
            raise ProviderUnavailableError("psutil could not determine the CPU count")
        self._logical = logical
        self._physical = physical or logical
        self._cpu_identity = self._read_cpu_identity()
        self._board = self._read_board_identity()
        logger.info(
            "PsutilSensorProvider opened (%d physical / %d logical cores)",
            self._physical,
            self._logical,
        )

    def has_cpu(self) -> bool:
        return self._logical > 0

    # -- polling ---------------------------------------------------------

    def refresh(self) -> None:
        sensors: list[SensorSample] = []
        sensors.extend(self._clock_sensors())
        sensors.extend(self._temperature_sensors())

        per_cpu = psutil.cpu_percent(interval=None, percpu=True)
        total = psutil.cpu_percent(interval=None)
        self._per_core_load = {idx: float(pct) for idx, pct in enumerate(per_cpu)}
        self._total_load = float(total)
        for idx, pct in self._per_core_load.items():
            sensors.append(SensorSample(
                name=f"CPU Core #{idx}",
                kind=SensorKind.LOAD,
                value=pct,
                hardware="cpu",
                identifier=f"/psutil/load/{idx}",
            ))
        sensors.append(SensorSample(
            name="CPU Total",
            kind=SensorKind.LOAD,
            value=self._total_load,
            hardware="cpu",
            identifier="/psutil/load/total",
        ))

        watts = self._rapl.read_watts()
        if watts is not None:
            sensors.append(SensorSample(
                name="CPU Package",
                kind=SensorKind.POWER,
                value=watts,
                hardware="intel-rapl:0",
                identifier="/rapl/package/power",
            ))
        self._sensors = sensors

    def _clock_sensors(self) -> list[SensorSample]:
        cpu_freq = getattr(psutil, "cpu_freq", None)
        if cpu_freq is None:
            return []
        try:
            freqs = cpu_freq(percpu=True) or []
        except (NotImplementedError, OSError):
            logger.debug("Per-CPU frequency not available", exc_info=True)
            return []

        if len(freqs) == 1 and freqs[0] is not None and self._logical > 1:
            # Only an aggregate clock; report it for every physical core.
            freqs = list(freqs) * self._physical
        samples: list[SensorSample] = []
        for idx, freq in enumerate(freqs):
            if freq is None:
                continue
            samples.append(SensorSample(
                name=f"Core #{idx}",
                kind=SensorKind.CLOCK,
                value=float(freq.current),
                hardware="cpu",
                identifier=f"/psutil/clock/{idx}",
            ))
        return samples

    def _temperature_sensors(self) -> list[SensorSample]:
        read_temps = getattr(psutil, "sensors_temperatures", None)
        if read_temps is None:
            return []
        try:
            temps = read_temps() or {}
        except (NotImplementedError, OSError):
            logger.debug("Temperature sensors not available", exc_info=True)
            return []

        samples: list[SensorSample] = []
        for chip, entries in temps.items():
            for idx, entry in enumerate(entries):
                samples.append(SensorSample(
                    name=temperature_sensor_name(chip, entry.label or "", idx),
                    kind=SensorKind.TEMPERATURE,
                    value=float(entry.current) if entry.current is not None else None,
                    max=float(entry.high) if entry.high else None,
                    hardware=chip,
                    identifier=f"/{chip}/temperature/{idx}",
                ))
        return samples

    def sensors(self) -> list[SensorSample]:
        return list(self._sensors)

    def utilization(self) -> tuple[dict[int, float], float | None]:
        return dict(self._per_core_load), self._total_load

    # -- identity --------------------------------------------------------

    def _read_cpu_identity(self) -> CpuIdentity:
        text = _read_text(self._proc / "cpuinfo")
        identity = parse_cpuinfo(text) if text else CpuIdentity()
        if not identity.brand:
            identity = CpuIdentity(
                vendor=identity.vendor,
                brand=platform.processor(),
                family=identity.family,
                model=identity.model,
                stepping=identity.stepping,
                features=identity.features,
            )
        return identity

    def _read_board_identity(self) -> BoardIdentity:
        dmi = self._sys / "class" / "dmi" / "id"

        def field(name: str) -> str:
            return _read_text(dmi / name) or ""

        return BoardIdentity(
            manufacturer=field("board_vendor"),
            product=field("board_name"),
            version=field("board_version"),
            serial_number=field("board_serial"),
            bios_vendor=field("bios_vendor"),
            bios_version=field("bios_version"),
            bios_date=field("bios_date"),
        )

    def system_identity(self) -> SystemIdentity:
        return SystemIdentity(
            cpu=self._cpu_identity,
            board=self._board,
            architecture=platform.machine(),
            physical_cores=self._physical,
            logical_cores=self._logical,
            total_memory=int(psutil.virtual_memory().total),
            os_name=platform.system(),
            os_version=platform.release(),
        )

    # -- topology --------------------------------------------------------

    def topology(self) -> TopologySnapshot:
        cpu_root = self._sys / "devices" / "system" / "cpu"
        entries: list[CoreTopology] = []
        seen: set[tuple[int, int]] = set()
        affinity_known = self._logical > 0
        for thread in range(self._logical):
            topo = cpu_root / f"cpu{thread}" / "topology"
            core_id = _read_int(topo / "core_id")
            package_id = _read_int(topo / "physical_package_id")
            if core_id is None or package_id is None:
                affinity_known = False
                break
            key = (package_id, core_id)
            entries.append(CoreTopology(
                core_id=core_id,
                thread_id=thread,
                package_id=package_id,
                node_id=self._numa_node(cpu_root / f"cpu{thread}"),
                is_smt=key in seen,
            ))
            seen.add(key)

        if not affinity_known:
            physical = max(self._physical, 1)
            entries = [
                CoreTopology(core_id=i % physical, thread_id=i, is_smt=i >= physical)
                for i in range(self._logical)
            ]

        node_root = self._sys / "devices" / "system" / "node"
        nodes = list(node_root.glob("node[0-9]*")) if node_root.is_dir() else []
        packages = {e.package_id for e in entries} or {0}
        return TopologySnapshot(
            physical_cores=self._physical,
            logical_cores=self._logical,
            packages=len(packages),
            numa_nodes=len(nodes) or 1,
            has_smt=self._logical > self._physical,
            cores=tuple(entries),
            caches=self._caches(cpu_root / "cpu0" / "cache"),
            affinity_known=affinity_known,
        )

    @staticmethod
    def _numa_node(cpu_dir: Path) -> int:
        if cpu_dir.is_dir():
            for child in cpu_dir.iterdir():
                suffix = child.name[4:]
                if child.name.startswith("node") and suffix.isdigit():
                    return int(suffix)
        return 0

    @staticmethod
    def _caches(cache_root: Path) -> tuple[CacheInfo, ...]:
        if not cache_root.is_dir():
            return ()
        caches: list[CacheInfo] = []
        for index in sorted(cache_root.glob("index[0-9]*")):
            level = _read_int(index / "level")
            if level is None:
                continue
            caches.append(CacheInfo(
                level=level,
                size=parse_cache_size(_read_text(index / "size")),
                associativity=_read_int(index / "ways_of_associativity") or 0,
                line_size=_read_int(index / "coherency_line_size") or 0,
                cache_type=_read_text(index / "type") or "",
            ))
        return tuple(sorted(caches, key=lambda c: (c.level, c.cache_type)))
