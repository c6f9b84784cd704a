"""Configuration loading and validation for corefreq."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .collector.reconciler import LabelMatcher, SensorRule, SensorRules

MIN_INTERVAL_MS = 100
MAX_INTERVAL_MS = 10000
DEFAULT_INTERVAL_MS = 1000


def clamp_interval_ms(value: float) -> int:
    """Clamp an update interval to the supported range."""
    return int(max(MIN_INTERVAL_MS, min(MAX_INTERVAL_MS, value)))


def expand_date(template: str, when: datetime | None = None) -> str:
    """Replace the ``{date}`` placeholder with a ``YYYYMMDD`` local date."""
    when = when or datetime.now()
    return template.replace("{date}", when.strftime("%Y%m%d"))


@dataclass
class CollectorConfig:
    """Polling settings."""

    interval_ms: int = DEFAULT_INTERVAL_MS
    use_topology_affinity: bool = False

    @property
    def interval_seconds(self) -> float:
        return clamp_interval_ms(self.interval_ms) / 1000.0


@dataclass
class DataLoggingConfig:
    """CSV sensor data logging."""

    enabled: bool = False
    path: str = "data/sensors-{date}.csv"
    interval_ms: int = DEFAULT_INTERVAL_MS

    @property
    def interval_seconds(self) -> float:
        return clamp_interval_ms(self.interval_ms) / 1000.0


@dataclass
class LocalExporterConfig:
    """JSONL snapshot exporter settings."""

    enabled: bool = False
    output_dir: str = "./corefreq_data"


@dataclass
class OtelExporterConfig:
    """OpenTelemetry exporter settings."""

    enabled: bool = False
    endpoint: str = "http://localhost:4318"
    service_name: str = "corefreq"
    headers: dict[str, str] = field(default_factory=dict)
    export_interval_ms: int = 10000


@dataclass
class LoggingConfig:
    """Application log settings."""

    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = "logs/corefreq-{date}.log"


@dataclass
class DisplayConfig:
    """Units used by the terminal dashboard."""

    temperature_unit: str = "C"
    frequency_unit: str = "GHz"


@dataclass
class CoreFreqConfig:
    """Top-level corefreq configuration."""

    collector: CollectorConfig = field(default_factory=CollectorConfig)
    data_logging: DataLoggingConfig = field(default_factory=DataLoggingConfig)
    local_exporter: LocalExporterConfig = field(default_factory=LocalExporterConfig)
    otel: OtelExporterConfig = field(default_factory=OtelExporterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    sensor_rules: SensorRules = field(default_factory=SensorRules)


_BOOL_TRUE = {"1", "true", "yes", "on"}


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using COREFREQ_ prefix."""
    env_map = {
        "COREFREQ_INTERVAL_MS": ("collector", "interval_ms"),
        "COREFREQ_DATA_LOG_ENABLED": ("data_logging", "enabled"),
        "COREFREQ_DATA_LOG_PATH": ("data_logging", "path"),
        "COREFREQ_LOG_LEVEL": ("logging", "level"),
        "COREFREQ_OTEL_ENDPOINT": ("otel", "endpoint"),
        "COREFREQ_TEMPERATURE_UNIT": ("display", "temperature_unit"),
    }
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is not None:
            obj = data
            for part in path[:-1]:
                obj = obj.setdefault(part, {})
            final_key = path[-1]
            # coerce numeric and boolean values
            if final_key == "interval_ms":
                obj[final_key] = int(float(value))
            elif final_key == "enabled":
                obj[final_key] = value.strip().lower() in _BOOL_TRUE
            else:
                obj[final_key] = value
    return data


def _section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        data = {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _parse_matcher(raw: Any) -> LabelMatcher:
    if isinstance(raw, dict):
        if "contains" not in raw:
            raise ValueError("sensor rule matcher needs 'contains'")
        unless = raw.get("unless") or ()
        if isinstance(unless, str):
            unless = (unless,)
        return LabelMatcher(contains=str(raw["contains"]), unless=tuple(str(u) for u in unless))
    return LabelMatcher(contains=str(raw))


def _parse_rules(raw: Any) -> tuple[SensorRule, ...]:
    """Parse a role's rule list.

    Each rule is a list of matchers; a matcher is a bare string or a
    ``{contains: ..., unless: [...]}`` mapping. A bare string rule is a
    single-matcher rule.
    """
    if not isinstance(raw, list):
        raise ValueError("sensor rule sets must be lists")
    rules: list[SensorRule] = []
    for rule in raw:
        terms = rule if isinstance(rule, list) else [rule]
        rules.append(SensorRule(tuple(_parse_matcher(t) for t in terms)))
    return tuple(rules)


def _sensor_rules(data: Any) -> SensorRules:
    defaults = SensorRules()
    if not isinstance(data, dict):
        return defaults
    core_label = data.get("core_label", defaults.core_label)
    if isinstance(core_label, str):
        core_label = (core_label,)
    return SensorRules(
        package_temperature=(
            _parse_rules(data["package_temperature"])
            if "package_temperature" in data else defaults.package_temperature
        ),
        package_power=(
            _parse_rules(data["package_power"])
            if "package_power" in data else defaults.package_power
        ),
        vcore_voltage=(
            _parse_rules(data["vcore_voltage"])
            if "vcore_voltage" in data else defaults.vcore_voltage
        ),
        core_label=tuple(str(t) for t in core_label),
    )


def _dict_to_config(data: dict[str, Any]) -> CoreFreqConfig:
    """Convert a raw dictionary to a CoreFreqConfig dataclass."""
    cfg = CoreFreqConfig(
        collector=_section(CollectorConfig, data.get("collector")),
        data_logging=_section(DataLoggingConfig, data.get("data_logging")),
        local_exporter=_section(LocalExporterConfig, data.get("local_exporter")),
        otel=_section(OtelExporterConfig, data.get("otel")),
        logging=_section(LoggingConfig, data.get("logging")),
        display=_section(DisplayConfig, data.get("display")),
        sensor_rules=_sensor_rules(data.get("sensor_rules")),
    )

    cfg.collector.interval_ms = clamp_interval_ms(cfg.collector.interval_ms)
    cfg.data_logging.interval_ms = clamp_interval_ms(cfg.data_logging.interval_ms)
    cfg.logging.level = str(cfg.logging.level).upper()
    if cfg.display.temperature_unit.upper() not in ("C", "F"):
        cfg.display.temperature_unit = "C"
    else:
        cfg.display.temperature_unit = cfg.display.temperature_unit.upper()
    if cfg.display.frequency_unit.upper() not in ("GHZ", "MHZ"):
        cfg.display.frequency_unit = "GHz"
    return cfg


def load_config(path: str | Path | None = None) -> CoreFreqConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``corefreq.yaml`` in the current directory if *path* is None.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("corefreq.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
