"""Rich terminal rendering of snapshots and raw sensors."""

from __future__ import annotations

from rich.console import Group
from rich.table import Table
from rich.text import Text

from ..config import DisplayConfig
from ..models import SensorKind, SensorSample, Snapshot
from .keys import KEY_HELP
from .units import (
    format_bytes,
    format_frequency,
    format_percent,
    format_power,
    format_temperature,
    format_voltage,
    temperature_style,
    utilization_style,
)


def system_table(snapshot: Snapshot) -> Table:
    system = snapshot.system
    table = Table(title="System Information", title_style="cyan")
    table.add_column("Property", style="white")
    table.add_column("Value")
    table.add_row("CPU", system.cpu.brand or "N/A")
    table.add_row("Vendor", system.cpu.vendor or "N/A")
    table.add_row("Physical Cores", str(system.physical_cores))
    table.add_row("Logical Cores", str(system.logical_cores))
    table.add_row("Architecture", system.architecture or "N/A")
    table.add_row("Memory", format_bytes(system.total_memory))
    table.add_row("OS", f"{system.os_name} {system.os_version}".strip() or "N/A")
    if system.board.product:
        table.add_row("Board", f"{system.board.manufacturer} {system.board.product}".strip())
    return table


def cores_table(snapshot: Snapshot, display: DisplayConfig | None = None) -> Table:
    display = display or DisplayConfig()
    freq_unit = display.frequency_unit
    temp_unit = display.temperature_unit

    table = Table(title="CPU Cores", title_style="cyan")
    table.add_column("Core", justify="right", style="white")
    table.add_column("Frequency", justify="right")
    table.add_column("Min", justify="right", style="grey70")
    table.add_column("Max", justify="right", style="grey70")
    table.add_column("Temperature", justify="right")
    table.add_column("Min", justify="right", style="grey70")
    table.add_column("Max", justify="right", style="grey70")
    table.add_column("Utilization", justify="right")

    for core in sorted(snapshot.package.cores, key=lambda c: c.core_id):
        table.add_row(
            str(core.core_id),
            format_frequency(core.frequency, freq_unit),
            format_frequency(core.min_frequency, freq_unit),
            format_frequency(core.max_frequency, freq_unit),
            Text(format_temperature(core.temperature, temp_unit), style=temperature_style(core.temperature)),
            format_temperature(core.min_temperature, temp_unit),
            format_temperature(core.max_temperature, temp_unit),
            Text(format_percent(core.utilization), style=utilization_style(core.utilization)),
        )
    return table


def package_table(snapshot: Snapshot, display: DisplayConfig | None = None) -> Table:
    display = display or DisplayConfig()
    package = snapshot.package
    table = Table(title="Package", title_style="cyan")
    table.add_column("Property", style="white")
    table.add_column("Value", justify="right")
    table.add_row(
        "Temperature",
        Text(format_temperature(package.temperature, display.temperature_unit),
             style=temperature_style(package.temperature)),
    )
    table.add_row("Min Temperature", format_temperature(package.min_temperature, display.temperature_unit))
    table.add_row("Max Temperature", format_temperature(package.max_temperature, display.temperature_unit))
    table.add_row("Power", format_power(package.power))
    table.add_row("Voltage", format_voltage(package.voltage))
    table.add_row(
        "Total Utilization",
        Text(format_percent(package.total_utilization), style=utilization_style(package.total_utilization)),
    )
    return table


def topology_table(snapshot: Snapshot) -> Table:
    """Thread-to-core mapping, one row per logical CPU."""
    topology = snapshot.topology
    source = "sysfs" if topology.affinity_known else "assumed"
    table = Table(
        title=f"Topology ({topology.physical_cores} cores / {topology.logical_cores} threads, "
              f"{topology.packages} package(s), {topology.numa_nodes} NUMA node(s), {source})",
        title_style="cyan",
    )
    table.add_column("Thread", justify="right", style="white")
    table.add_column("Core", justify="right")
    table.add_column("Package", justify="right")
    table.add_column("Node", justify="right")
    table.add_column("SMT", justify="center")
    for entry in sorted(topology.cores, key=lambda c: c.thread_id):
        table.add_row(
            str(entry.thread_id),
            str(entry.core_id),
            str(entry.package_id),
            str(entry.node_id),
            "yes" if entry.is_smt else "",
        )
    return table


def cache_table(snapshot: Snapshot) -> Table:
    table = Table(title="Caches", title_style="cyan")
    table.add_column("Level", justify="right", style="white")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Ways", justify="right")
    table.add_column("Line", justify="right")
    for cache in snapshot.topology.caches:
        table.add_row(
            f"L{cache.level}",
            cache.cache_type or "N/A",
            format_bytes(cache.size),
            str(cache.associativity or "N/A"),
            f"{cache.line_size} B" if cache.line_size else "N/A",
        )
    return table


def render_dashboard(
    snapshot: Snapshot,
    display: DisplayConfig | None = None,
    show_topology: bool = False,
    interval_seconds: float | None = None,
) -> Group:
    """Compose the full dashboard for one snapshot."""
    status = f"Updated {snapshot.timestamp:%H:%M:%S}"
    if interval_seconds is not None:
        status += f"  ·  every {interval_seconds:.1f}s"
    footer = Text(f"{status}  ·  {KEY_HELP}", style="grey50")
    parts = [
        system_table(snapshot),
        cores_table(snapshot, display),
        package_table(snapshot, display),
    ]
    if show_topology:
        parts += [topology_table(snapshot), cache_table(snapshot)]
    return Group(*parts, footer)


def _fmt_value(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def sensors_table(sensors: list[SensorSample], title: str = "Sensors") -> Table:
    """List sensors ordered by kind, then name."""
    table = Table(title=title, title_style="cyan")
    table.add_column("Type", style="magenta", width=12)
    table.add_column("Name", style="green")
    table.add_column("Value", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Hardware", style="grey70")
    table.add_column("Identifier", style="grey50")
    for sensor in sorted(sensors, key=lambda s: (s.kind.value, s.name)):
        value = _fmt_value(sensor.value)
        if sensor.value is not None and sensor.unit:
            value = f"{value} {sensor.unit}"
        table.add_row(
            sensor.kind.value,
            sensor.name,
            value,
            _fmt_value(sensor.min),
            _fmt_value(sensor.max),
            sensor.hardware,
            sensor.identifier,
        )
    return table


def sensors_of_kind(sensors: list[SensorSample], kind: SensorKind) -> list[SensorSample]:
    return [s for s in sensors if s.kind is kind]
