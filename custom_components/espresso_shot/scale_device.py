"""Weight-device contract shared by physical and virtual scales."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from .helpers import Signal

_LOGGER = logging.getLogger(__name__)


class WeightDevice(ABC):
    """A source of weight and flow-rate readings.

    Subclasses publish readings through ``weight_changed(weight, flow_rate)``,
    link state through ``connected_changed(connected)`` and problems through
    ``error_occurred(message)``.
    """

    def __init__(self) -> None:
        """Initialize common device state."""
        self._weight: float = 0.0
        self._flow_rate: float = 0.0
        self._connected: bool = False
        self.weight_changed = Signal("weight_changed")
        self.connected_changed = Signal("connected_changed")
        self.error_occurred = Signal("error_occurred")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a display name for the device."""

    @property
    @abstractmethod
    def scale_type(self) -> str:
        """Return the device type key."""

    @property
    def weight(self) -> float:
        """Return the latest weight in grams."""
        return self._weight

    @property
    def flow_rate(self) -> float:
        """Return the latest flow-rate estimate."""
        return self._flow_rate

    @property
    def is_connected(self) -> bool:
        """Return True once the device is delivering readings."""
        return self._connected

    @abstractmethod
    async def async_connect(self, device_ref: Any = None) -> bool:
        """Connect to the device."""

    @abstractmethod
    async def async_disconnect(self) -> None:
        """Disconnect from the device."""

    @abstractmethod
    async def async_tare(self) -> bool:
        """Zero the current reading. Safe to call in any state."""

    async def async_start_timer(self) -> bool:
        """Start the device's onboard timer, if it has one."""
        return False

    async def async_stop_timer(self) -> bool:
        """Stop the device's onboard timer, if it has one."""
        return False

    async def async_reset_timer(self) -> bool:
        """Reset the device's onboard timer, if it has one."""
        return False

    def add_flow_sample(self, flow_rate: float, delta_time: float) -> None:
        """Receive machine flow; only virtual devices use it."""

    def reset(self) -> None:
        """Prepare for a new shot."""

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        _LOGGER.debug("%s: connected=%s", self.name, connected)
        self.connected_changed.emit(connected)

    def _set_reading(self, weight: float, flow_rate: float | None = None) -> None:
        self._weight = weight
        if flow_rate is not None:
            self._flow_rate = flow_rate
        self.weight_changed.emit(self._weight, self._flow_rate)
