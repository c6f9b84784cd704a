"""Tests for the command-line entry point."""

import argparse
import json
import logging.handlers

import pytest

from corefreq import __version__, cli
from corefreq.collector.manager import AggregationService
from corefreq.config import DisplayConfig, LoggingConfig
from corefreq.provider.base import ProviderUnavailableError

from conftest import FakeProvider


@pytest.fixture
def no_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_version(capsys):
    cli.main(["version"])
    assert capsys.readouterr().out.strip() == f"corefreq {__version__}"


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 1
    assert "usage" in capsys.readouterr().out


def test_system_info(monkeypatch, capsys, no_config, fake_provider):
    monkeypatch.setattr(cli, "_open_provider", lambda: fake_provider)
    cli.main(["system-info"])
    data = json.loads(capsys.readouterr().out)
    assert data["cpu"]["brand"] == "Test CPU 9000"
    assert data["physical_cores"] == 2
    assert data["logical_cores"] == 4
    assert fake_provider.closed


def test_debug_sensors(monkeypatch, capsys, no_config, fake_provider):
    monkeypatch.setattr(cli, "_open_provider", lambda: fake_provider)
    monkeypatch.setattr(cli.time, "sleep", lambda _s: None)
    cli.main(["debug-sensors"])
    out = capsys.readouterr().out
    assert "Clock Sensors" in out
    assert "Core #1: 3400.00 MHz" in out
    assert fake_provider.refresh_count == 2


def test_unavailable_provider_exits_with_guidance(monkeypatch, capsys, no_config):
    class BrokenProvider(FakeProvider):
        def open(self):
            raise ProviderUnavailableError("no sensors")

    monkeypatch.setattr("corefreq.provider.psutil_provider.PsutilSensorProvider", BrokenProvider)
    with pytest.raises(SystemExit) as exc:
        cli.main(["system-info"])
    assert exc.value.code == 1
    err = capsys.readouterr().err
    assert "Failed to initialize hardware monitoring" in err
    assert "no sensors" in err


def test_interval_flag_is_clamped(no_config):
    args = argparse.Namespace(config=None, interval=5)
    assert cli._load(args).collector.interval_ms == 100


def test_build_exporters(no_config, tmp_path):
    cfg = cli._load(argparse.Namespace(config=None, interval=None))
    assert cli._build_exporters(cfg) == []

    cfg.data_logging.enabled = True
    cfg.data_logging.path = str(tmp_path / "s-{date}.csv")
    cfg.local_exporter.enabled = True
    cfg.local_exporter.output_dir = str(tmp_path / "out")
    exporters = cli._build_exporters(cfg)
    assert [type(e).__name__ for e in exporters] == ["CsvSnapshotLogger", "LocalSnapshotExporter"]
    for exporter in exporters:
        exporter.shutdown()


class _RecordingLive:
    def __init__(self):
        self.updates = []

    def update(self, renderable):
        self.updates.append(renderable)


def test_dashboard_keys_reach_the_service(fake_provider):
    service = AggregationService(fake_provider, interval_seconds=1.0)
    service.collect_once()
    pressed = iter(["c", None, "+", "t"])
    live = _RecordingLive()

    cli._drive_dashboard(service, live, lambda _timeout: next(pressed, "q"), DisplayConfig(), poll_seconds=0)

    core0 = service.get_snapshot().package.core(0)
    assert core0.min_frequency is None
    assert core0.max_frequency is None
    assert service.interval_seconds == 2.0
    # one redraw per handled key; the idle poll falls inside the interval
    assert len(live.updates) == 3


def test_dashboard_quit_before_first_draw(fake_provider):
    live = _RecordingLive()
    cli._drive_dashboard(AggregationService(fake_provider), live, lambda _timeout: "q", DisplayConfig())
    assert live.updates == []


def test_file_log_rolls_over_at_midnight(tmp_path):
    cfg = LoggingConfig(file_enabled=True, file_path=str(tmp_path / "logs" / "corefreq-{date}.log"))
    handler = cli._file_log_handler(cfg)
    try:
        assert isinstance(handler, logging.handlers.TimedRotatingFileHandler)
        assert handler.when == "MIDNIGHT"
        assert handler.baseFilename == str(tmp_path / "logs" / "corefreq.log")
        rolled = handler.namer(str(tmp_path / "logs" / "corefreq.log") + ".2024-05-01")
        assert rolled == str(tmp_path / "logs" / "corefreq-20240501.log")
    finally:
        handler.close()


def test_file_log_without_date_keeps_default_names(tmp_path):
    handler = cli._file_log_handler(LoggingConfig(file_path=str(tmp_path / "app.log")))
    try:
        assert handler.baseFilename == str(tmp_path / "app.log")
        assert handler.namer is None
    finally:
        handler.close()
