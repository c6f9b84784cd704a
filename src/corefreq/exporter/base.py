"""Base interface for snapshot exporters."""

from __future__ import annotations

import abc

from ..models import Snapshot


class BaseExporter(abc.ABC):
    """Abstract base for exporters that receive published snapshots."""

    @abc.abstractmethod
    def export(self, snapshot: Snapshot) -> None:
        """Export one snapshot."""

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Flush and release resources."""
