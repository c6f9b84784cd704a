"""Tests for the configuration module."""

import os
import tempfile
from datetime import datetime

import pytest
import yaml

from corefreq.collector.reconciler import SensorRules
from corefreq.config import (
    CoreFreqConfig,
    clamp_interval_ms,
    expand_date,
    load_config,
)


def _write_yaml(data) -> str:
    with tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False) as fh:
        yaml.dump(data, fh)
        return fh.name


def test_load_config_defaults():
    """Loading from a non-existent file returns defaults."""
    cfg = load_config("/tmp/nonexistent_corefreq.yaml")
    assert isinstance(cfg, CoreFreqConfig)
    assert cfg.collector.interval_ms == 1000
    assert cfg.collector.interval_seconds == 1.0
    assert cfg.collector.use_topology_affinity is False
    assert cfg.data_logging.enabled is False
    assert cfg.data_logging.path == "data/sensors-{date}.csv"
    assert cfg.logging.level == "INFO"
    assert cfg.display.temperature_unit == "C"
    assert cfg.display.frequency_unit == "GHz"
    assert cfg.otel.endpoint == "http://localhost:4318"
    assert cfg.sensor_rules == SensorRules()


def test_load_config_from_yaml():
    """Loading from a YAML file populates values."""
    path = _write_yaml({
        "collector": {"interval_ms": 500, "use_topology_affinity": True},
        "data_logging": {"enabled": True, "path": "/var/log/cf-{date}.csv"},
        "logging": {"level": "debug"},
        "display": {"temperature_unit": "f", "frequency_unit": "MHz"},
        "otel": {"enabled": True, "service_name": "rig-7"},
        "unknown_section": {"x": 1},
    })
    try:
        cfg = load_config(path)
        assert cfg.collector.interval_seconds == 0.5
        assert cfg.collector.use_topology_affinity is True
        assert cfg.data_logging.enabled is True
        assert cfg.data_logging.path == "/var/log/cf-{date}.csv"
        assert cfg.logging.level == "DEBUG"
        assert cfg.display.temperature_unit == "F"
        assert cfg.display.frequency_unit == "MHz"
        assert cfg.otel.service_name == "rig-7"
    finally:
        os.unlink(path)


def test_unknown_keys_are_ignored():
    path = _write_yaml({"collector": {"interval_ms": 2000, "bogus": True}})
    try:
        assert load_config(path).collector.interval_ms == 2000
    finally:
        os.unlink(path)


def test_intervals_are_clamped():
    path = _write_yaml({"collector": {"interval_ms": 5}, "data_logging": {"interval_ms": 60000}})
    try:
        cfg = load_config(path)
        assert cfg.collector.interval_ms == 100
        assert cfg.data_logging.interval_ms == 10000
    finally:
        os.unlink(path)


def test_invalid_units_fall_back():
    path = _write_yaml({"display": {"temperature_unit": "K", "frequency_unit": "Hz"}})
    try:
        cfg = load_config(path)
        assert cfg.display.temperature_unit == "C"
        assert cfg.display.frequency_unit == "GHz"
    finally:
        os.unlink(path)


def test_env_override(monkeypatch):
    """Environment variables override YAML values."""
    path = _write_yaml({"collector": {"interval_ms": 500}, "logging": {"level": "INFO"}})
    monkeypatch.setenv("COREFREQ_INTERVAL_MS", "250")
    monkeypatch.setenv("COREFREQ_DATA_LOG_ENABLED", "yes")
    monkeypatch.setenv("COREFREQ_DATA_LOG_PATH", "/tmp/x-{date}.csv")
    monkeypatch.setenv("COREFREQ_LOG_LEVEL", "warning")
    monkeypatch.setenv("COREFREQ_OTEL_ENDPOINT", "http://collector:4318")
    monkeypatch.setenv("COREFREQ_TEMPERATURE_UNIT", "F")
    try:
        cfg = load_config(path)
        assert cfg.collector.interval_ms == 250
        assert cfg.data_logging.enabled is True
        assert cfg.data_logging.path == "/tmp/x-{date}.csv"
        assert cfg.logging.level == "WARNING"
        assert cfg.otel.endpoint == "http://collector:4318"
        assert cfg.display.temperature_unit == "F"
    finally:
        os.unlink(path)


def test_env_bool_false(monkeypatch):
    monkeypatch.setenv("COREFREQ_DATA_LOG_ENABLED", "0")
    assert load_config("/tmp/nonexistent_corefreq.yaml").data_logging.enabled is False


class TestSensorRules:
    def test_custom_rules(self):
        path = _write_yaml({
            "sensor_rules": {
                "package_temperature": [
                    ["tdie"],
                    "tctl",
                    [{"contains": "cpu", "unless": ["core", "ccd"]}],
                ],
                "core_label": "ccd",
            }
        })
        try:
            rules = load_config(path).sensor_rules
        finally:
            os.unlink(path)
        assert len(rules.package_temperature) == 3
        assert rules.package_temperature[0].matches("Tdie")
        assert rules.package_temperature[1].matches("Tctl")
        third = rules.package_temperature[2]
        assert third.matches("CPU")
        assert not third.matches("CPU CCD1")
        assert rules.core_label == ("ccd",)
        assert rules.package_power == SensorRules().package_power

    def test_scalar_unless(self):
        path = _write_yaml({"sensor_rules": {"package_power": [[{"contains": "cpu", "unless": "core"}]]}})
        try:
            rule = load_config(path).sensor_rules.package_power[0]
        finally:
            os.unlink(path)
        assert rule.matches("CPU Package")
        assert not rule.matches("CPU Core #0")

    def test_non_list_rule_set_rejected(self):
        path = _write_yaml({"sensor_rules": {"vcore_voltage": "vcore"}})
        try:
            with pytest.raises(ValueError):
                load_config(path)
        finally:
            os.unlink(path)


def test_clamp_interval_ms():
    assert clamp_interval_ms(50) == 100
    assert clamp_interval_ms(1500.7) == 1500
    assert clamp_interval_ms(99999) == 10000


def test_expand_date():
    assert expand_date("data/sensors-{date}.csv", datetime(2024, 3, 9)) == "data/sensors-20240309.csv"
    assert expand_date("plain.csv") == "plain.csv"


def test_matcher_without_contains_rejected():
    path = _write_yaml({"sensor_rules": {"package_power": [[{"unless": ["core"]}]]}})
    try:
        with pytest.raises(ValueError, match="contains"):
            load_config(path)
    finally:
        os.unlink(path)
