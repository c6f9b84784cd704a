"""Hardware sensor providers."""

from .base import ProviderUnavailableError, SensorProvider

__all__ = ["ProviderUnavailableError", "SensorProvider"]
