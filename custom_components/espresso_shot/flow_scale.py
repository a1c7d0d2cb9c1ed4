"""Virtual scale that estimates weight from machine flow."""
from __future__ import annotations

import logging
from typing import Any

from .const import MAX_FLOW_SAMPLE_DELTA_SECONDS, SCALE_TYPE_FLOW
from .scale_device import WeightDevice

_LOGGER = logging.getLogger(__name__)


class FlowScale(WeightDevice):
    """Fallback scale used when no physical scale is present.

    Integrates the machine's flow rate (mL/s) over time, assuming a density
    of 1 g/mL. It has no link to manage and always reports itself connected.
    """

    def __init__(self) -> None:
        """Initialize the flow scale."""
        super().__init__()
        self._accumulated_weight = 0.0
        self._set_connected(True)

    @property
    def name(self) -> str:
        """Return the display name."""
        return "Flow Scale"

    @property
    def scale_type(self) -> str:
        """Return the device type key."""
        return SCALE_TYPE_FLOW

    async def async_connect(self, device_ref: Any = None) -> bool:
        """Nothing to connect to."""
        return True

    async def async_disconnect(self) -> None:
        """Nothing to disconnect from."""

    async def async_tare(self) -> bool:
        """Zero the accumulated weight mid-shot."""
        _LOGGER.debug(
            "FlowScale: Tare (resetting accumulated weight from %.2f to 0)",
            self._accumulated_weight,
        )
        self._zero()
        return True

    def reset(self) -> None:
        """Zero the accumulated weight for a new shot."""
        self._zero()

    def add_flow_sample(self, flow_rate: float, delta_time: float) -> None:
        """Integrate one flow sample; stalled or jumped clocks are ignored."""
        if not 0 < delta_time < MAX_FLOW_SAMPLE_DELTA_SECONDS:
            _LOGGER.debug("FlowScale: Ignoring flow sample with dt=%.3f", delta_time)
            return
        self._accumulated_weight += flow_rate * delta_time
        self._set_reading(self._accumulated_weight, flow_rate)

    def _zero(self) -> None:
        self._accumulated_weight = 0.0
        self._set_reading(0.0, 0.0)
