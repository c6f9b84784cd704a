"""Local file exporter – writes snapshots to JSONL files."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..config import LocalExporterConfig
from ..models import Snapshot, snapshot_to_dict
from .base import BaseExporter

logger = logging.getLogger(__name__)


class LocalSnapshotExporter(BaseExporter):
    """Appends one JSON object per snapshot to a daily JSONL file.

    One file per UTC day is created inside the configured *output_dir*.
    Raw sensor lists are left out unless *include_sensors* is set.
    """

    def __init__(self, config: LocalExporterConfig, include_sensors: bool = False) -> None:
        self._config = config
        self._include_sensors = include_sensors
        self._output_dir = Path(config.output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._fh = None
        self._current_date: str | None = None
        logger.info("LocalSnapshotExporter initialized → %s", self._output_dir)

    def _ensure_file(self) -> None:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        if self._current_date != today or self._fh is None:
            if self._fh is not None:
                self._fh.close()
            filepath = self._output_dir / f"snapshots-{today}.jsonl"
            self._fh = open(filepath, "a", encoding="utf-8")  # noqa: SIM115
            self._current_date = today

    def export(self, snapshot: Snapshot) -> None:
        self._ensure_file()
        assert self._fh is not None
        record = snapshot_to_dict(snapshot, include_sensors=self._include_sensors)
        self._fh.write(json.dumps(record) + "\n")
        self._fh.flush()

    def shutdown(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        logger.info("LocalSnapshotExporter shut down")
