"""Exceptions raised by the health monitor core."""


class GpuHealthError(Exception):
    """Base class for monitor errors."""


class UnknownDevice(GpuHealthError, KeyError):
    """A device id was used before any session existed for it."""

    def __init__(self, device: int):
        self.device = device
        super().__init__(f"No session for device {device}")

    def __str__(self) -> str:
        return f"No session for device {self.device}"


class InvalidThresholds(GpuHealthError, ValueError):
    """A threshold update was rejected."""
