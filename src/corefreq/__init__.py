"""corefreq – per-core CPU telemetry aggregation."""

__version__ = "1.0.0"
