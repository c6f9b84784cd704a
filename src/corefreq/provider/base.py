"""Base interface for hardware sensor providers."""

from __future__ import annotations

import abc
from types import TracebackType

from ..models import SensorSample, SystemIdentity, TopologySnapshot


class ProviderUnavailableError(RuntimeError):
    """The sensor provider could not be initialized (drivers, privileges)."""


class SensorProvider(abc.ABC):
    """Abstract source of raw hardware telemetry.

    :meth:`refresh` is called once at the start of every collection cycle;
    the remaining query methods report what that refresh observed.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Provider name used in logs and diagnostics."""

    def open(self) -> None:
        """Acquire provider resources. Raise :class:`ProviderUnavailableError` on failure."""

    def close(self) -> None:
        """Release provider resources."""

    @abc.abstractmethod
    def refresh(self) -> None:
        """Update the provider's readings."""

    def has_cpu(self) -> bool:
        return True

    @abc.abstractmethod
    def sensors(self) -> list[SensorSample]:
        """All named sensors from the last refresh."""

    @abc.abstractmethod
    def utilization(self) -> tuple[dict[int, float], float | None]:
        """Per-logical-core and total utilization, in percent."""

    @abc.abstractmethod
    def system_identity(self) -> SystemIdentity:
        """CPU, board, memory and OS identification."""

    @abc.abstractmethod
    def topology(self) -> TopologySnapshot:
        """Core, NUMA and cache layout."""

    def __enter__(self) -> SensorProvider:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
