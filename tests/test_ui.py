"""Tests for display formatting and dashboard rendering."""

import dataclasses
import io

from rich.console import Console

from corefreq.collector.manager import AggregationService
from corefreq.config import DisplayConfig
from corefreq.models import CacheInfo, CoreTopology, Snapshot, TopologySnapshot
from corefreq.ui.dashboard import cache_table, render_dashboard, sensors_table, topology_table
from corefreq.ui.keys import (
    DashboardState,
    KeyAction,
    KeyReader,
    apply_key_action,
    map_key,
    step_interval,
)
from corefreq.ui.units import (
    NA,
    format_bytes,
    format_frequency,
    format_percent,
    format_temperature,
    format_voltage,
    temperature_style,
)


def _render(renderable) -> str:
    console = Console(record=True, width=160)
    console.print(renderable)
    return console.export_text()


def test_absent_values_render_as_na():
    assert format_frequency(None) == NA
    assert format_temperature(None) == NA
    assert format_voltage(None) == NA
    assert format_percent(None) == NA


def test_frequency_units():
    assert format_frequency(3450.0) == "3.45 GHz"
    assert format_frequency(3450.0, "MHz") == "3450 MHz"


def test_temperature_units():
    assert format_temperature(50.0) == "50.0 °C"
    assert format_temperature(50.0, "F") == "122.0 °F"


def test_format_bytes():
    assert format_bytes(512) == "512.00 B"
    assert format_bytes(16 * 1024**3) == "16.00 GB"


def test_temperature_style():
    assert temperature_style(85.0) == "red"
    assert temperature_style(30.0) == "blue"
    assert temperature_style(None) == "grey50"


def test_dashboard_renders_snapshot(fake_provider):
    snapshot = AggregationService(fake_provider).collect_once()
    text = _render(render_dashboard(snapshot, DisplayConfig(frequency_unit="MHz")))
    assert "Test CPU 9000" in text
    assert "3400 MHz" in text
    assert "55.0 °C" in text
    assert "45.00 W" in text


def test_dashboard_renders_empty_snapshot():
    text = _render(render_dashboard(Snapshot.empty()))
    assert "CPU Cores" in text
    assert NA in text


def test_sensors_table(fake_provider):
    fake_provider.refresh()
    text = _render(sensors_table(fake_provider.sensors(), title="All Sensors"))
    assert "CPU Package" in text
    assert "3200.00 MHz" in text


def _topology_snapshot() -> Snapshot:
    return dataclasses.replace(
        Snapshot.empty(),
        topology=TopologySnapshot(
            physical_cores=2,
            logical_cores=4,
            has_smt=True,
            affinity_known=True,
            cores=(
                CoreTopology(core_id=0, thread_id=0),
                CoreTopology(core_id=0, thread_id=1, is_smt=True),
                CoreTopology(core_id=1, thread_id=2),
                CoreTopology(core_id=1, thread_id=3, is_smt=True),
            ),
            caches=(
                CacheInfo(level=1, size=32 * 1024, associativity=8, line_size=64, cache_type="Data"),
                CacheInfo(level=3, size=12 * 1024**2, associativity=16, line_size=64, cache_type="Unified"),
            ),
        ),
    )


def test_topology_and_cache_tables():
    snapshot = _topology_snapshot()
    table = topology_table(snapshot)
    assert "2 cores / 4 threads" in table.title
    assert table.title.endswith("sysfs)")
    assert _render(table).count("yes") == 2
    caches = _render(cache_table(snapshot))
    assert "L1" in caches
    assert "L3" in caches
    assert "12.00 MB" in caches
    assert "64 B" in caches


def test_dashboard_topology_view_is_toggled():
    snapshot = _topology_snapshot()
    hidden = _render(render_dashboard(snapshot, interval_seconds=2.0))
    assert "Caches" not in hidden
    assert "every 2.0s" in hidden
    assert "c clear min/max" in hidden
    shown = _render(render_dashboard(snapshot, show_topology=True))
    assert "Topology" in shown
    assert "Caches" in shown


class TestKeys:
    def test_map_key(self):
        assert map_key("q") is KeyAction.QUIT
        assert map_key("Q") is KeyAction.QUIT
        assert map_key("c") is KeyAction.CLEAR_MIN_MAX
        assert map_key("+") is KeyAction.INCREASE_INTERVAL
        assert map_key("=") is KeyAction.INCREASE_INTERVAL
        assert map_key("-") is KeyAction.DECREASE_INTERVAL
        assert map_key("t") is KeyAction.TOGGLE_TOPOLOGY
        assert map_key("x") is KeyAction.NONE
        assert map_key(None) is KeyAction.NONE

    def test_step_interval(self):
        assert step_interval(1.0, 1) == 2.0
        assert step_interval(1.0, -1) == 0.9
        assert step_interval(0.9, 1) == 1.0
        assert step_interval(0.1, -1) == 0.1
        assert step_interval(10.0, 1) == 10.0
        assert step_interval(3.0, -1) == 2.0

    def test_clear_key_resets_service_min_max(self, fake_provider):
        service = AggregationService(fake_provider)
        service.collect_once()
        state = DashboardState()
        assert apply_key_action(KeyAction.CLEAR_MIN_MAX, service, state)
        core0 = service.get_snapshot().package.core(0)
        assert core0.min_frequency is None
        assert core0.max_frequency is None
        assert core0.frequency == 3200.0

    def test_interval_keys_adjust_service(self, fake_provider):
        service = AggregationService(fake_provider, interval_seconds=1.0)
        state = DashboardState()
        apply_key_action(KeyAction.INCREASE_INTERVAL, service, state)
        assert service.interval_seconds == 2.0
        apply_key_action(KeyAction.DECREASE_INTERVAL, service, state)
        apply_key_action(KeyAction.DECREASE_INTERVAL, service, state)
        assert service.interval_seconds == 0.9

    def test_quit_and_toggle(self, fake_provider):
        service = AggregationService(fake_provider)
        state = DashboardState()
        assert not apply_key_action(KeyAction.NONE, service, state)
        apply_key_action(KeyAction.TOGGLE_TOPOLOGY, service, state)
        assert state.show_topology
        apply_key_action(KeyAction.QUIT, service, state)
        assert not state.running

    def test_reader_without_terminal_times_out(self):
        with KeyReader(io.StringIO("q")) as keys:
            assert keys.read_key(0) is None
