"""Coordinator for the Espresso Shot integration.

Owns the weight device and the shot timing controller of one config entry,
keeps a physical scale connected, and republishes controller output as
Home Assistant bus events.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from homeassistant.components import bluetooth
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .bookoo_scale import BookooScale
from .const import (
    ATTR_CONFIG_ENTRY_ID,
    DOMAIN,
    ENTITY_UPDATE_INTERVAL_SECONDS,
    EVENT_FRAME_WEIGHT_REACHED,
    EVENT_SAMPLE,
    EVENT_SCALE_ERROR,
    EVENT_STOP_AT_WEIGHT,
    EVENT_WEIGHT_SAMPLE,
    SCAN_INTERVAL_SECONDS,
    ShotConfig,
)
from .controller import ShotTimingController
from .models import DeviceConnectionState, UnifiedSample, WeightSampleEvent
from .scale_device import WeightDevice

_LOGGER = logging.getLogger(__name__)

SCAN_INTERVAL = timedelta(seconds=SCAN_INTERVAL_SECONDS)

_RECONNECT_STATES = (DeviceConnectionState.DISCONNECTED, DeviceConnectionState.FAILED)


class EspressoShotCoordinator(DataUpdateCoordinator[None]):
    """Bridge between the shot controller and Home Assistant."""

    config_entry: ConfigEntry

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        scale: WeightDevice,
        controller: ShotTimingController,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_{entry.entry_id}",
            update_interval=SCAN_INTERVAL,
            config_entry=entry,
        )
        self.shot_config = ShotConfig.from_config_entry(entry)
        self.scale = scale
        self.controller = controller
        self.last_error: str | None = None
        self._last_entity_update: float | None = None
        self._entity_update_handle: asyncio.TimerHandle | None = None

        self._unsubscribers: list[Callable[[], None]] = [
            controller.sample_ready.connect(self._on_sample_ready),
            controller.weight_sample_ready.connect(self._on_weight_sample_ready),
            controller.stop_at_weight_reached.connect(self._on_stop_at_weight),
            controller.per_frame_weight_reached.connect(self._on_frame_weight_reached),
            controller.shot_time_changed.connect(self._on_reading_changed),
            controller.weight_changed.connect(self._on_reading_changed),
            controller.tare_complete_changed.connect(self._on_state_changed),
            scale.connected_changed.connect(self._on_state_changed),
            scale.error_occurred.connect(self._on_scale_error),
        ]
        if isinstance(scale, BookooScale):
            self._unsubscribers.append(scale.state_changed.connect(self._on_state_changed))

    @property
    def scale_state(self) -> DeviceConnectionState:
        """Return the scale connection state."""
        if isinstance(self.scale, BookooScale):
            return self.scale.state
        if self.scale.is_connected:
            return DeviceConnectionState.CONNECTED
        return DeviceConnectionState.DISCONNECTED

    async def _async_update_data(self) -> None:
        """Reconnect a physical scale that dropped or failed."""
        if isinstance(self.scale, BookooScale) and self.scale.state in _RECONNECT_STATES:
            await self.async_connect_scale()
        return None

    async def async_connect_scale(self) -> bool:
        """Look up the scale through the Bluetooth manager and connect to it."""
        address = self.shot_config.address
        if not address:
            return await self.scale.async_connect()

        ble_device = bluetooth.async_ble_device_from_address(
            self.hass, address, connectable=True
        )
        if ble_device is None:
            _LOGGER.debug("Device %s not found by Bluetooth manager", address)
            return False

        _LOGGER.debug("Attempting to connect to %s", address)
        return await self.scale.async_connect(ble_device)

    async def async_shutdown(self) -> None:
        """Stop polling, cancel controller timers and disconnect the scale."""
        await super().async_shutdown()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._cancel_entity_update()
        self.controller.shutdown()
        await self.scale.async_disconnect()
        if isinstance(self.scale, BookooScale):
            self.scale.close()

    # --- Controller and scale signals ---
    def _fire(self, event_type: str, data: dict[str, Any]) -> None:
        self.hass.bus.async_fire(
            event_type, {ATTR_CONFIG_ENTRY_ID: self.config_entry.entry_id, **data}
        )

    @callback
    def _on_sample_ready(self, sample: UnifiedSample) -> None:
        self._fire(EVENT_SAMPLE, sample.as_dict())

    @callback
    def _on_weight_sample_ready(self, event: WeightSampleEvent) -> None:
        self._fire(EVENT_WEIGHT_SAMPLE, event.as_dict())

    @callback
    def _on_stop_at_weight(self) -> None:
        self._fire(
            EVENT_STOP_AT_WEIGHT,
            {
                "time": self.controller.shot_time,
                "weight": self.controller.current_weight,
                "target_weight": self.controller.target_weight,
            },
        )
        self.async_update_entities()

    @callback
    def _on_frame_weight_reached(self, frame: int) -> None:
        self._fire(
            EVENT_FRAME_WEIGHT_REACHED,
            {
                "frame": frame,
                "time": self.controller.shot_time,
                "weight": self.controller.current_weight,
            },
        )

    @callback
    def _on_scale_error(self, message: str) -> None:
        self.last_error = message
        self._fire(EVENT_SCALE_ERROR, {"message": message})
        self.async_update_entities()

    @callback
    def _on_state_changed(self, *_: Any) -> None:
        self.async_update_entities()

    # --- Entity updates ---
    @callback
    def async_update_entities(self) -> None:
        """Refresh entities now, dropping any pending throttled refresh."""
        self._cancel_entity_update()
        self._last_entity_update = time.monotonic()
        self.async_update_listeners()

    @callback
    def _on_reading_changed(self, *_: Any) -> None:
        """Refresh entities for streaming values at most once per interval."""
        if self._entity_update_handle is not None:
            return
        if self._last_entity_update is None:
            self.async_update_entities()
            return
        wait = self._last_entity_update + ENTITY_UPDATE_INTERVAL_SECONDS - time.monotonic()
        if wait <= 0:
            self.async_update_entities()
            return
        self._entity_update_handle = self.hass.loop.call_later(
            wait, self._on_entity_update_due
        )

    @callback
    def _on_entity_update_due(self) -> None:
        self._entity_update_handle = None
        self.async_update_entities()

    def _cancel_entity_update(self) -> None:
        if self._entity_update_handle is not None:
            self._entity_update_handle.cancel()
            self._entity_update_handle = None
