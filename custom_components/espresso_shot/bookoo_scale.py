"""Bookoo BLE scale driver."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .const import (
    CHAR_COMMAND_UUID,
    CHAR_STATUS_UUID,
    CMD_RESET_TIMER,
    CMD_START_TIMER,
    CMD_STOP_TIMER,
    CMD_TARE,
    CMD_TARE_AND_START_TIMER,
    MAX_NOTIFICATION_RETRIES,
    SCALE_TYPE_BOOKOO,
    SERVICE_UUID,
    SUBSCRIBE_DELAY_SECONDS,
    WATCHDOG_INTERVAL_SECONDS,
)
from .exceptions import EspressoShotError
from .helpers import Signal
from .models import DeviceConnectionState
from .parser import parse_status_frame
from .scale_device import WeightDevice
from .transport import ScaleBleTransport

_LOGGER = logging.getLogger(__name__)

_STREAMING_STATES = (
    DeviceConnectionState.SUBSCRIBING_NOTIFICATIONS,
    DeviceConnectionState.AWAITING_FIRST_DATA,
    DeviceConnectionState.CONNECTED,
)


class BookooScale(WeightDevice):
    """Bookoo scale reached through a ScaleBleTransport.

    The connection walks Connecting, DiscoveringServices,
    DiscoveringCharacteristics, SubscribingNotifications and
    AwaitingFirstData, and only becomes Connected once the first decodable
    status frame arrives. A watchdog re-issues the subscription while the
    scale stays silent, up to ``max_notification_retries`` times, then
    reports the scale as not responding without dropping the link.
    """

    def __init__(
        self,
        transport: ScaleBleTransport,
        name: str = "Bookoo Scale",
        *,
        subscribe_delay: float = SUBSCRIBE_DELAY_SECONDS,
        watchdog_interval: float = WATCHDOG_INTERVAL_SECONDS,
        max_notification_retries: int = MAX_NOTIFICATION_RETRIES,
    ) -> None:
        """Initialize the Bookoo scale."""
        super().__init__()
        self._transport = transport
        self._name = name
        self._subscribe_delay = subscribe_delay
        self._watchdog_interval = watchdog_interval
        self._max_notification_retries = max_notification_retries

        self.state_changed = Signal("state_changed")
        self._state = DeviceConnectionState.DISCONNECTED
        # Bumped on every connect/disconnect; stale continuations compare against it
        self._session = 0
        self._subscribe_handle: Optional[asyncio.TimerHandle] = None
        self._subscribe_task: Optional[asyncio.Task] = None
        self._watchdog_handle: Optional[asyncio.TimerHandle] = None
        self._notification_retries = 0
        self._received_data = False
        self._has_command_char = False

        self.not_responding = False
        self.battery_level: Optional[int] = None
        self.timer_ms: Optional[int] = None

        self._unsubscribers = [
            transport.notification.connect(self._handle_notification),
            transport.disconnected.connect(self._handle_link_lost),
        ]

    @property
    def name(self) -> str:
        """Return the display name."""
        return self._name

    @property
    def scale_type(self) -> str:
        """Return the device type key."""
        return SCALE_TYPE_BOOKOO

    @property
    def state(self) -> DeviceConnectionState:
        """Return the connection state."""
        return self._state

    @property
    def notification_retries(self) -> int:
        """Return how many subscription retries the watchdog has issued."""
        return self._notification_retries

    async def async_connect(self, device_ref: Any = None) -> bool:
        """Connect, discover and schedule the notification subscription.

        Returns True when the link is up and the subscription has been
        scheduled; the scale reports connected only when data arrives.
        """
        if self._state != DeviceConnectionState.DISCONNECTED:
            await self.async_disconnect()

        self._session += 1
        session = self._session
        self._set_state(DeviceConnectionState.CONNECTING)

        try:
            await self._transport.connect(device_ref)
            if session != self._session:
                return False

            _LOGGER.debug("%s: Link established, starting service discovery", self._name)
            self._set_state(DeviceConnectionState.DISCOVERING_SERVICES)
            services = await self._transport.discover_services()
            if session != self._session:
                return False

            if SERVICE_UUID not in services:
                _LOGGER.error(
                    "%s: Service %s not found! Available services: %s",
                    self._name,
                    SERVICE_UUID,
                    ", ".join(services) or "none",
                )
                self._fail("Bookoo service not found")
                return False

            self._set_state(DeviceConnectionState.DISCOVERING_CHARACTERISTICS)
            characteristics = await self._transport.discover_characteristics(
                SERVICE_UUID
            )
            if session != self._session:
                return False
        except EspressoShotError as err:
            if session == self._session:
                self._fail(f"Bookoo scale connection error: {err}")
            return False

        uuids = {char.uuid for char in characteristics}
        if CHAR_STATUS_UUID not in uuids:
            _LOGGER.error(
                "%s: STATUS characteristic not found! Available characteristics: %s",
                self._name,
                ", ".join(
                    f"{char.uuid} {list(char.properties)}" for char in characteristics
                )
                or "none",
            )
            self._fail("Bookoo STATUS characteristic not found")
            return False

        self._has_command_char = CHAR_COMMAND_UUID in uuids
        if not self._has_command_char:
            _LOGGER.warning("%s: CMD characteristic not found, commands disabled", self._name)

        # Reset watchdog state for new connection
        self._notification_retries = 0
        self._received_data = False
        self.not_responding = False

        self._subscribe_handle = asyncio.get_running_loop().call_later(
            self._subscribe_delay, self._enable_notifications, session
        )
        return True

    async def async_disconnect(self) -> None:
        """Disconnect and invalidate any in-flight connection work."""
        self._session += 1
        self._cancel_pending()
        self._received_data = False
        self._notification_retries = 0
        await self._transport.disconnect()
        self._set_state(DeviceConnectionState.DISCONNECTED)
        self._set_connected(False)

    def close(self) -> None:
        """Detach from the transport signals."""
        self._session += 1
        self._cancel_pending()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # --- Command Methods ---
    async def async_tare(self) -> bool:
        """Send tare command."""
        return await self._async_send_command(CMD_TARE)

    async def async_start_timer(self) -> bool:
        """Send start timer command."""
        return await self._async_send_command(CMD_START_TIMER)

    async def async_stop_timer(self) -> bool:
        """Send stop timer command."""
        return await self._async_send_command(CMD_STOP_TIMER)

    async def async_reset_timer(self) -> bool:
        """Send reset timer command."""
        return await self._async_send_command(CMD_RESET_TIMER)

    async def async_tare_and_start_timer(self) -> bool:
        """Send tare and start timer command."""
        return await self._async_send_command(CMD_TARE_AND_START_TIMER)

    async def _async_send_command(self, command: bytes) -> bool:
        if not self._has_command_char or not self._transport.is_connected:
            _LOGGER.debug(
                "%s: Cannot write command %s: not connected", self._name, command.hex()
            )
            return False

        try:
            await self._transport.write_characteristic(
                SERVICE_UUID, CHAR_COMMAND_UUID, command
            )
        except EspressoShotError as err:
            _LOGGER.error("%s: Failed to write command: %s", self._name, err)
            return False
        return True

    # --- Subscription and watchdog ---
    def _enable_notifications(self, session: int) -> None:
        self._subscribe_handle = None
        if session != self._session:
            return

        _LOGGER.debug(
            "%s: Enabling notifications (attempt %d)",
            self._name,
            self._notification_retries + 1,
        )
        self._subscribe_task = asyncio.get_running_loop().create_task(
            self._async_subscribe(session)
        )
        self._start_watchdog(session)

    async def _async_subscribe(self, session: int) -> None:
        if not self._received_data:
            self._set_state(DeviceConnectionState.SUBSCRIBING_NOTIFICATIONS)
        try:
            await self._transport.enable_notifications(SERVICE_UUID, CHAR_STATUS_UUID)
        except EspressoShotError as err:
            # Left to the watchdog, which re-issues the subscription
            _LOGGER.warning("%s: Failed to enable notifications: %s", self._name, err)
            return
        if session != self._session:
            return

        _LOGGER.debug("%s: Notification descriptor written successfully", self._name)
        if not self._received_data:
            self._set_state(DeviceConnectionState.AWAITING_FIRST_DATA)

    def _start_watchdog(self, session: int) -> None:
        if self._watchdog_handle is not None:
            self._watchdog_handle.cancel()
        self._watchdog_handle = asyncio.get_running_loop().call_later(
            self._watchdog_interval, self._on_watchdog_timeout, session
        )

    def _stop_watchdog(self) -> None:
        if self._watchdog_handle is not None:
            self._watchdog_handle.cancel()
            self._watchdog_handle = None

    def _on_watchdog_timeout(self, session: int) -> None:
        self._watchdog_handle = None
        if session != self._session or self._received_data or self.not_responding:
            return

        if self._notification_retries >= self._max_notification_retries:
            _LOGGER.warning(
                "%s: Failed to receive weight data after %d retries, giving up",
                self._name,
                self._notification_retries,
            )
            self.not_responding = True
            # The link stays up; only notification delivery failed
            self.error_occurred.emit(
                "Bookoo scale not responding - no weight data received"
            )
            return

        self._notification_retries += 1
        _LOGGER.info(
            "%s: No weight data received, retrying notification subscription (%d/%d)",
            self._name,
            self._notification_retries,
            self._max_notification_retries,
        )
        self._enable_notifications(session)

    # --- Transport events ---
    def _handle_notification(self, char_uuid: str, data: bytes) -> None:
        if char_uuid != CHAR_STATUS_UUID:
            _LOGGER.debug("%s: Notification from %s: %s", self._name, char_uuid, data.hex())
            return
        if self._state not in _STREAMING_STATES:
            _LOGGER.debug("%s: Dropping notification in state %s", self._name, self._state)
            return

        reading = parse_status_frame(data)
        if reading is None:
            _LOGGER.debug("%s: Dropped malformed status frame: %s", self._name, data.hex())
            return

        if not self._received_data:
            # First data received - we're truly connected now
            self._received_data = True
            self._stop_watchdog()
            self._notification_retries = 0
            self.not_responding = False
            self._set_state(DeviceConnectionState.CONNECTED)
            self._set_connected(True)
            _LOGGER.info("%s: First weight data received, connection confirmed", self._name)

        if reading.battery_level is not None:
            self.battery_level = reading.battery_level
        if reading.timer_ms is not None:
            self.timer_ms = reading.timer_ms
        self._set_reading(reading.weight, reading.flow_rate)

    def _handle_link_lost(self) -> None:
        _LOGGER.warning("%s: Link lost", self._name)
        self._session += 1
        self._cancel_pending()
        self._received_data = False
        self._set_state(DeviceConnectionState.DISCONNECTED)
        self._set_connected(False)

    # --- Internal state ---
    def _cancel_pending(self) -> None:
        self._stop_watchdog()
        if self._subscribe_handle is not None:
            self._subscribe_handle.cancel()
            self._subscribe_handle = None
        if self._subscribe_task is not None and not self._subscribe_task.done():
            self._subscribe_task.cancel()
        self._subscribe_task = None

    def _fail(self, message: str) -> None:
        self._stop_watchdog()
        self._received_data = False
        self._set_state(DeviceConnectionState.FAILED)
        self._set_connected(False)
        self.error_occurred.emit(message)

    def _set_state(self, state: DeviceConnectionState) -> None:
        if state == self._state:
            return
        _LOGGER.debug("%s: %s -> %s", self._name, self._state.value, state.value)
        self._state = state
        self.state_changed.emit(state)
