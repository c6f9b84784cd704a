"""CLI interface for corefreq."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import logging.handlers
import re
import signal
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable

from . import __version__
from .config import (
    CoreFreqConfig,
    DisplayConfig,
    LoggingConfig,
    clamp_interval_ms,
    expand_date,
    load_config,
)
from .exporter.base import BaseExporter
from .provider.base import ProviderUnavailableError, SensorProvider

logger = logging.getLogger(__name__)

PROVIDER_GUIDANCE = (
    "Failed to initialize hardware monitoring.\n"
    "Make sure the process can read CPU sensors: run with sufficient privileges "
    "(root or membership in the groups owning /sys/class/hwmon and "
    "/sys/class/powercap) and check that the hwmon drivers for your CPU "
    "(coretemp, k10temp, zenpower) are loaded."
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _dated_namer(template: str):
    """Name rolled-over files after the day they cover, using the ``{date}`` template."""

    def namer(default_name: str) -> str:
        stamp = default_name.rsplit(".", 1)[-1]
        try:
            day = datetime.strptime(stamp, "%Y-%m-%d")
        except ValueError:
            return default_name
        return str(Path(expand_date(template, day)))

    return namer


def _file_log_handler(cfg: LoggingConfig) -> logging.handlers.TimedRotatingFileHandler:
    """Application log file that rolls over at local midnight.

    The active file is the configured path without its ``{date}`` part;
    each finished day is renamed to the path with that day's date.
    """
    active = Path(re.sub(r"[-_.]?\{date\}", "", cfg.file_path))
    active.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(active),
        when="midnight",
        encoding="utf-8",
    )
    if "{date}" in cfg.file_path:
        handler.namer = _dated_namer(cfg.file_path)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _configure_logging(cfg: CoreFreqConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level, logging.INFO),
        format=LOG_FORMAT,
    )
    if cfg.logging.file_enabled:
        logging.getLogger().addHandler(_file_log_handler(cfg.logging))


def _load(args: argparse.Namespace) -> CoreFreqConfig:
    cfg = load_config(args.config)
    if args.interval is not None:
        cfg.collector.interval_ms = clamp_interval_ms(args.interval)
    return cfg


def _open_provider() -> SensorProvider:
    from .provider.psutil_provider import PsutilSensorProvider

    provider = PsutilSensorProvider()
    try:
        provider.open()
    except ProviderUnavailableError as exc:
        logger.error("Sensor provider unavailable: %s", exc)
        print(f"{PROVIDER_GUIDANCE}\n\nDetails: {exc}", file=sys.stderr)
        sys.exit(1)
    return provider


def _build_service(cfg: CoreFreqConfig, provider: SensorProvider):
    from .collector.manager import AggregationService

    return AggregationService(
        provider,
        rules=cfg.sensor_rules,
        interval_seconds=cfg.collector.interval_seconds,
        use_topology_affinity=cfg.collector.use_topology_affinity,
    )


def _build_exporters(cfg: CoreFreqConfig) -> list[BaseExporter]:
    exporters: list[BaseExporter] = []

    if cfg.data_logging.enabled:
        from .exporter.csv_logger import CsvSnapshotLogger
        exporters.append(CsvSnapshotLogger(cfg.data_logging))

    if cfg.local_exporter.enabled:
        from .exporter.local import LocalSnapshotExporter
        exporters.append(LocalSnapshotExporter(cfg.local_exporter))

    if cfg.otel.enabled:
        from .exporter.otel import OtelSnapshotExporter
        exporters.append(OtelSnapshotExporter(cfg.otel))

    return exporters


def _drive_dashboard(
    service,
    live,
    read_key: Callable[[float], str | None],
    display: DisplayConfig,
    poll_seconds: float = 0.1,
) -> None:
    """Redraw *live* every interval and apply key presses until quit."""
    from .ui.dashboard import render_dashboard
    from .ui.keys import DashboardState, apply_key_action, map_key

    state = DashboardState()
    next_draw = 0.0
    while state.running:
        redraw = apply_key_action(map_key(read_key(poll_seconds)), service, state)
        if not state.running:
            break
        if redraw or time.monotonic() >= next_draw:
            live.update(render_dashboard(
                service.get_snapshot(),
                display,
                show_topology=state.show_topology,
                interval_seconds=service.interval_seconds,
            ))
            next_draw = time.monotonic() + service.interval_seconds


def _cmd_monitor(args: argparse.Namespace) -> None:
    """Run the live terminal dashboard."""
    cfg = _load(args)
    if args.log:
        cfg.data_logging.enabled = True
        cfg.data_logging.path = args.log
    _configure_logging(cfg)

    from rich.console import Console
    from rich.live import Live

    from .ui.dashboard import render_dashboard
    from .ui.keys import KeyReader

    provider = _open_provider()
    service = _build_service(cfg, provider)
    exporters = _build_exporters(cfg)
    for exp in exporters:
        service.add_sink(exp.export)

    service.collect_once()
    service.start()
    console = Console()
    try:
        with KeyReader() as keys, Live(
            render_dashboard(service.get_snapshot(), cfg.display, interval_seconds=service.interval_seconds),
            console=console,
            refresh_per_second=4,
            screen=False,
        ) as live:
            _drive_dashboard(service, live, keys.read_key, cfg.display)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
        for exp in exporters:
            exp.shutdown()
        provider.close()


def _cmd_collect(args: argparse.Namespace) -> None:
    """Run headless collection with the configured exporters."""
    cfg = _load(args)
    _configure_logging(cfg)

    exporters = _build_exporters(cfg)
    if not exporters:
        logger.warning("No exporters enabled; snapshots will only be kept in memory")

    provider = _open_provider()
    service = _build_service(cfg, provider)
    for exp in exporters:
        service.add_sink(exp.export)

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    service.start()
    print(f"corefreq collector running (interval={service.interval_seconds}s)")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        service.stop()
        for exp in exporters:
            exp.shutdown()
        provider.close()
    print("\nCollection stopped.")


def _cmd_system_info(args: argparse.Namespace) -> None:
    """Print system identification as JSON."""
    cfg = _load(args)
    _configure_logging(cfg)
    provider = _open_provider()
    try:
        snapshot = _build_service(cfg, provider).collect_once()
    finally:
        provider.close()
    print(json.dumps(dataclasses.asdict(snapshot.system), indent=2))


def _cmd_debug_sensors(args: argparse.Namespace) -> None:
    """List every sensor the provider reports."""
    cfg = _load(args)
    _configure_logging(cfg)

    from rich.console import Console

    from .models import SensorKind
    from .ui.dashboard import sensors_of_kind, sensors_table

    provider = _open_provider()
    try:
        provider.refresh()
        # Second refresh so rate-based sensors (utilization, RAPL power) have a delta.
        time.sleep(0.2)
        provider.refresh()
        sensors = provider.sensors()
    finally:
        provider.close()

    console = Console()
    if not provider.has_cpu():
        console.print("No CPU hardware found.")
        return
    console.print(sensors_table(sensors, title=f"All Sensors ({len(sensors)} total)"))

    for kind, label in ((SensorKind.CLOCK, "Clock Sensors (Frequencies)"),
                        (SensorKind.TEMPERATURE, "Temperature Sensors")):
        subset = sensors_of_kind(sensors, kind)
        console.print(f"\n[bold]{label}:[/bold]")
        if not subset:
            console.print(f"  No {kind.value} sensors found!")
        for sensor in subset:
            value = "N/A" if sensor.value is None else f"{sensor.value:.2f} {sensor.unit}"
            console.print(f"  {sensor.name}: {value}")


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"corefreq {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the corefreq CLI."""
    parser = argparse.ArgumentParser(
        prog="corefreq",
        description="Per-core CPU frequency, temperature and utilization monitor",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to corefreq.yaml")
    parser.add_argument("--interval", "-i", type=int, default=None,
                        help="Update interval in milliseconds (100-10000)")
    sub = parser.add_subparsers(dest="command")

    # monitor
    mon_p = sub.add_parser("monitor", help="Live terminal dashboard (q quit, c clear min/max, +/- interval, t topology)")
    mon_p.add_argument("--log", "-l", default=None, help="Also log data to this CSV path ({date} allowed)")
    mon_p.set_defaults(func=_cmd_monitor)

    # collect
    collect_p = sub.add_parser("collect", help="Headless collection with configured exporters")
    collect_p.set_defaults(func=_cmd_collect)

    # system-info
    sys_p = sub.add_parser("system-info", help="Print system info as JSON and exit")
    sys_p.set_defaults(func=_cmd_system_info)

    # debug-sensors
    dbg_p = sub.add_parser("debug-sensors", help="List all available sensors and exit")
    dbg_p.set_defaults(func=_cmd_debug_sensors)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
