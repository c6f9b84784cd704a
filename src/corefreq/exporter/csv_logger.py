"""CSV data logger – one package row plus one row per core for each snapshot."""

from __future__ import annotations

import csv
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable

from ..config import DataLoggingConfig, expand_date
from ..models import Snapshot
from .base import BaseExporter

logger = logging.getLogger(__name__)

HEADER = [
    "Timestamp",
    "CPU Model",
    "Physical Cores",
    "Logical Cores",
    "Package Temp (C)",
    "Package Power (W)",
    "Package Voltage (V)",
    "Total Utilization (%)",
    "Core ID",
    "Core Frequency (MHz)",
    "Core Temperature (C)",
    "Core Utilization (%)",
    "Core Power (W)",
    "Core Voltage (V)",
]

_PACKAGE_COLUMNS = 7
_CORE_COLUMNS = 6


def _fmt(value: float | None, decimals: int = 2) -> str:
    return "" if value is None else f"{value:.{decimals}f}"


def snapshot_rows(snapshot: Snapshot) -> list[list[str]]:
    """Render a snapshot as CSV rows; absent values become empty cells."""
    timestamp = snapshot.timestamp.strftime("%Y-%m-%d %H:%M:%S.") + f"{snapshot.timestamp.microsecond // 1000:03d}"
    package = snapshot.package
    rows = [[
        timestamp,
        snapshot.system.cpu.brand,
        str(snapshot.system.physical_cores),
        str(snapshot.system.logical_cores),
        _fmt(package.temperature),
        _fmt(package.power),
        _fmt(package.voltage, 3),
        _fmt(package.total_utilization),
    ] + [""] * _CORE_COLUMNS]
    for core in sorted(package.cores, key=lambda c: c.core_id):
        rows.append([timestamp] + [""] * _PACKAGE_COLUMNS + [
            str(core.core_id),
            _fmt(core.frequency),
            _fmt(core.temperature),
            _fmt(core.utilization),
            _fmt(core.power),
            _fmt(core.voltage, 3),
        ])
    return rows


class CsvSnapshotLogger(BaseExporter):
    """Appends snapshots to a CSV file whose name carries the local date.

    The ``{date}`` placeholder in the configured path is re-expanded on
    every write; when the calendar date changes the current file is closed
    and a new one (with header) is started. Writes closer together than
    *interval_seconds* are skipped.
    """

    def __init__(
        self,
        config: DataLoggingConfig,
        interval_seconds: float | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._template = config.path
        self._interval = config.interval_seconds if interval_seconds is None else interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._fh = None
        self._writer = None
        self._current_path: Path | None = None
        self._last_write: float | None = None

    @property
    def current_path(self) -> Path | None:
        return self._current_path

    def _open(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        is_new = not path.exists() or path.stat().st_size == 0
        self._fh = open(path, "a", encoding="utf-8", newline="")  # noqa: SIM115
        self._writer = csv.writer(self._fh)
        if is_new:
            self._writer.writerow(HEADER)
            self._fh.flush()
        self._current_path = path
        logger.info("CSV data log → %s", path)

    def _ensure_file(self) -> None:
        path = Path(expand_date(self._template, self._clock()))
        if path != self._current_path or self._fh is None:
            self._close()
            self._open(path)

    def _close(self) -> None:
        if self._fh is not None:
            self._fh.flush()
            self._fh.close()
        self._fh = None
        self._writer = None

    def export(self, snapshot: Snapshot) -> None:
        now = time.monotonic()
        with self._lock:
            if self._last_write is not None and now - self._last_write < self._interval:
                return
            try:
                self._ensure_file()
                assert self._writer is not None and self._fh is not None
                self._writer.writerows(snapshot_rows(snapshot))
                self._fh.flush()
                self._last_write = now
            except OSError:
                logger.exception("Failed to write CSV data log")

    def shutdown(self) -> None:
        with self._lock:
            self._close()
            self._current_path = None
        logger.info("CsvSnapshotLogger shut down")
