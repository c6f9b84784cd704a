"""Aggregation service that polls a provider and publishes snapshots."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, TypeVar

from ..models import Snapshot, SystemIdentity, TopologySnapshot
from ..provider.base import SensorProvider
from .builder import CycleReadings, build_snapshot, clear_min_max
from .frequency import (
    logical_core_count,
    map_core_frequencies,
    physical_core_frequencies,
    summarize_frequencies,
)
from .reconciler import SensorReconciler, SensorRules

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_INTERVAL_SECONDS = 0.1
MAX_INTERVAL_SECONDS = 10.0


class AggregationService:
    """Polls a :class:`SensorProvider` and publishes immutable snapshots.

    One writer runs :meth:`collect_once` (overlapping calls are serialized
    internally); any number of readers call :meth:`get_snapshot`, which only
    holds the publication lock long enough to copy out the reference.

    Register consumers via :meth:`add_sink` and drive polling yourself or
    with :meth:`start` / :meth:`stop`.
    """

    def __init__(
        self,
        provider: SensorProvider,
        rules: SensorRules | None = None,
        interval_seconds: float = 1.0,
        use_topology_affinity: bool = False,
    ) -> None:
        self._provider = provider
        self._reconciler = SensorReconciler(rules)
        self._interval = self._clamp_interval(interval_seconds)
        self._use_affinity = use_topology_affinity
        self._affinity_hint_logged = False

        self._snapshot = Snapshot.empty()
        self._publish_lock = threading.Lock()
        self._collect_lock = threading.Lock()
        self._reset_generation = 0

        self._sinks: list[Callable[[Snapshot], None]] = []
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @staticmethod
    def _clamp_interval(seconds: float) -> float:
        return max(MIN_INTERVAL_SECONDS, min(MAX_INTERVAL_SECONDS, float(seconds)))

    @property
    def interval_seconds(self) -> float:
        return self._interval

    def set_interval(self, seconds: float) -> None:
        self._interval = self._clamp_interval(seconds)

    @property
    def provider(self) -> SensorProvider:
        return self._provider

    def add_sink(self, sink: Callable[[Snapshot], None]) -> None:
        """Register a callback to receive every published snapshot."""
        self._sinks.append(sink)

    # -- reads -----------------------------------------------------------

    def get_snapshot(self) -> Snapshot:
        """Return the most recently published snapshot."""
        with self._publish_lock:
            return self._snapshot

    # -- writes ----------------------------------------------------------

    def _query(self, what: str, call: Callable[[], T], default: T) -> T:
        try:
            return call()
        except Exception:
            logger.exception("Provider %s failed to report %s", self._provider.name, what)
            return default

    def _gather(self) -> CycleReadings:
        provider = self._provider
        self._query("a refresh", provider.refresh, None)

        has_cpu = self._query("CPU presence", provider.has_cpu, False)
        sensors = self._query("sensors", provider.sensors, []) if has_cpu else []
        per_core, total = self._query("utilization", provider.utilization, ({}, None))
        system = self._query("system identity", provider.system_identity, SystemIdentity())
        topology = self._query("topology", provider.topology, TopologySnapshot())

        thread_to_core = None
        if topology.affinity_known:
            if self._use_affinity:
                thread_to_core = topology.thread_to_core()
            elif not self._affinity_hint_logged:
                logger.info(
                    "Provider reports thread-to-core affinity; SMT frequency mapping "
                    "still uses contiguous enumeration (enable use_topology_affinity to switch)"
                )
                self._affinity_hint_logged = True

        physical = physical_core_frequencies(sensors)
        frequencies = map_core_frequencies(
            physical,
            logical_core_count(sensors, self._reconciler.rules.core_label),
            thread_to_core,
        )
        return CycleReadings(
            reconciliation=self._reconciler.reconcile(sensors, per_core, total),
            core_frequencies=frequencies,
            frequency=summarize_frequencies(frequencies),
            system=system,
            topology=topology,
            sensors=tuple(sensors),
            timestamp=datetime.now().astimezone(),
        )

    def collect_once(self) -> Snapshot:
        """Run one poll-reconcile-build-publish cycle and return the new snapshot.

        Sinks run before the collect lock is released, so they see snapshots
        one at a time and in publication order.
        """
        with self._collect_lock:
            with self._publish_lock:
                previous = self._snapshot
                generation = self._reset_generation

            readings = self._gather()
            snapshot = build_snapshot(previous, readings)

            with self._publish_lock:
                if self._reset_generation != generation:
                    # min/max were cleared while this cycle ran
                    snapshot = build_snapshot(self._snapshot, readings)
                self._snapshot = snapshot

            for sink in self._sinks:
                try:
                    sink(snapshot)
                except Exception:
                    logger.exception("Sink failed")
        return snapshot

    def clear_min_max(self) -> Snapshot:
        """Publish a copy of the current snapshot with all min/max statistics unset."""
        with self._publish_lock:
            self._snapshot = clear_min_max(self._snapshot)
            self._reset_generation += 1
            snapshot = self._snapshot
        logger.info("Min/max statistics cleared")
        return snapshot

    # -- background polling ----------------------------------------------

    def _run(self) -> None:
        """Background thread loop."""
        while not self._stop_event.is_set():
            self.collect_once()
            self._stop_event.wait(self._interval)

    def start(self) -> None:
        """Start polling in the background."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="corefreq-collector", daemon=True)
        self._thread.start()
        logger.info("AggregationService started (interval=%.1fs)", self._interval)

    def stop(self) -> None:
        """Stop background polling."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("AggregationService stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None
