"""OpenTelemetry exporter – pushes snapshot gauges via OTLP/HTTP."""

from __future__ import annotations

import logging
from typing import Any

from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource, SERVICE_NAME

from ..config import OtelExporterConfig
from ..models import Snapshot
from .base import BaseExporter

logger = logging.getLogger(__name__)

# name, unit, description
_CORE_GAUGES = {
    "frequency": ("cpu.core.frequency", "MHz", "Current core clock"),
    "temperature": ("cpu.core.temperature", "Cel", "Current core temperature"),
    "utilization": ("cpu.core.utilization", "%", "Current core utilization"),
}
_PACKAGE_GAUGES = {
    "temperature": ("cpu.package.temperature", "Cel", "Package temperature"),
    "power": ("cpu.package.power", "W", "Package power draw"),
    "voltage": ("cpu.package.voltage", "V", "CPU core voltage"),
    "total_utilization": ("cpu.package.utilization", "%", "Total CPU utilization"),
}


class OtelSnapshotExporter(BaseExporter):
    """Exports snapshot values as OpenTelemetry gauges.

    Each call to :meth:`export` records gauge observations via the OTel SDK;
    the SDK's ``PeriodicExportingMetricReader`` flushes them to the configured
    OTLP/HTTP endpoint. Absent readings are simply not recorded.
    """

    def __init__(self, config: OtelExporterConfig, reader: MetricReader | None = None) -> None:
        self._config = config
        resource = Resource.create({SERVICE_NAME: config.service_name})

        if reader is None:
            exporter_kwargs: dict[str, Any] = {
                "endpoint": f"{config.endpoint.rstrip('/')}/v1/metrics",
            }
            if config.headers:
                exporter_kwargs["headers"] = config.headers
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(**exporter_kwargs),
                export_interval_millis=config.export_interval_ms,
            )
        self._provider = MeterProvider(resource=resource, metric_readers=[reader])
        self._meter = self._provider.get_meter("corefreq.snapshot")
        self._gauges: dict[str, Any] = {}

        logger.info(
            "OtelSnapshotExporter initialized → %s (service=%s)",
            config.endpoint,
            config.service_name,
        )

    def _get_gauge(self, name: str, unit: str, description: str) -> Any:
        if name not in self._gauges:
            self._gauges[name] = self._meter.create_gauge(
                name=name,
                unit=unit,
                description=description,
            )
        return self._gauges[name]

    def export(self, snapshot: Snapshot) -> None:
        for attr, (name, unit, description) in _PACKAGE_GAUGES.items():
            value = getattr(snapshot.package, attr)
            if value is not None:
                self._get_gauge(name, unit, description).set(value)
        for core in snapshot.package.cores:
            for attr, (name, unit, description) in _CORE_GAUGES.items():
                value = getattr(core, attr)
                if value is not None:
                    self._get_gauge(name, unit, description).set(
                        value, attributes={"core": str(core.core_id)}
                    )

    def shutdown(self) -> None:
        self._provider.shutdown()
        logger.info("OtelSnapshotExporter shut down")
