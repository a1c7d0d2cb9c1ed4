"""Asynchronous BLE transport for scale drivers."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError
from bleak_retry_connector import establish_connection

from .const import CONNECT_TIMEOUT_SECONDS
from .exceptions import ScaleCommandError, ScaleConnectionError, ScaleProtocolError
from .helpers import Signal
from .models import CharacteristicInfo

_LOGGER = logging.getLogger(__name__)

DeviceRef = Union[BLEDevice, str]


class ScaleBleTransport(ABC):
    """Link-level operations a scale driver needs from a BLE stack.

    Every operation is a coroutine that completes when the peripheral has
    answered. Unsolicited traffic arrives through the ``notification`` and
    ``disconnected`` signals, always on the event loop that owns the
    transport.
    """

    def __init__(self) -> None:
        """Initialize the transport signals."""
        self.notification = Signal("notification")
        self.disconnected = Signal("disconnected")

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the link is up."""

    @abstractmethod
    async def connect(self, device_ref: DeviceRef) -> None:
        """Establish the link. Raises ScaleConnectionError on failure."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear the link down. Never raises."""

    @abstractmethod
    async def discover_services(self) -> list[str]:
        """Return the UUIDs of the services exposed by the peripheral."""

    @abstractmethod
    async def discover_characteristics(
        self, service_uuid: str
    ) -> list[CharacteristicInfo]:
        """Return the characteristics of a service (empty if it is absent)."""

    @abstractmethod
    async def enable_notifications(self, service_uuid: str, char_uuid: str) -> None:
        """Subscribe to a characteristic; returns once the write is acknowledged."""

    @abstractmethod
    async def write_characteristic(
        self, service_uuid: str, char_uuid: str, data: bytes, response: bool = True
    ) -> None:
        """Write a value to a characteristic."""

    @abstractmethod
    async def read_characteristic(self, service_uuid: str, char_uuid: str) -> bytes:
        """Read the current value of a characteristic."""


class BleakScaleTransport(ScaleBleTransport):
    """ScaleBleTransport backed by bleak."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT_SECONDS) -> None:
        """Initialize the transport."""
        super().__init__()
        self.client: Optional[BleakClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_timeout = connect_timeout
        self._expected_disconnect = False
        self._notifying: set[str] = set()

    @property
    def is_connected(self) -> bool:
        """Return true if connected to device."""
        return self.client is not None and self.client.is_connected

    async def connect(self, device_ref: DeviceRef) -> None:
        """Connect to the scale."""
        self._loop = asyncio.get_running_loop()
        self._expected_disconnect = False
        self._notifying.clear()

        try:
            if isinstance(device_ref, BLEDevice):
                client = await establish_connection(
                    BleakClient,
                    device_ref,
                    device_ref.name or device_ref.address,
                    disconnected_callback=self._on_bleak_disconnect,
                )
            else:
                client = BleakClient(
                    device_ref, disconnected_callback=self._on_bleak_disconnect
                )
                await client.connect(timeout=self._connect_timeout)
        except (BleakError, asyncio.TimeoutError) as err:
            raise ScaleConnectionError(f"Failed to connect: {err}") from err

        self.client = client
        _LOGGER.info("Connected to scale %s", client.address)

    async def disconnect(self) -> None:
        """Disconnect from the device."""
        client = self.client
        self.client = None
        self._notifying.clear()
        if client is None:
            return

        self._expected_disconnect = True
        try:
            if client.is_connected:
                await client.disconnect()
        except BleakError as ex:
            _LOGGER.debug("Error disconnecting: %s", ex)

    async def discover_services(self) -> list[str]:
        """Return the services resolved during connection."""
        client = self._require_client()
        return [service.uuid.lower() for service in client.services]

    async def discover_characteristics(
        self, service_uuid: str
    ) -> list[CharacteristicInfo]:
        """Return the characteristics of a discovered service."""
        client = self._require_client()
        service = client.services.get_service(service_uuid)
        if service is None:
            return []
        return [
            CharacteristicInfo(
                uuid=char.uuid.lower(),
                properties=tuple(char.properties),
                descriptors=tuple(desc.uuid.lower() for desc in char.descriptors),
            )
            for char in service.characteristics
        ]

    async def enable_notifications(self, service_uuid: str, char_uuid: str) -> None:
        """Start (or restart) notifications on a characteristic."""
        client = self._require_client()
        char = self._resolve(client, service_uuid, char_uuid)

        if char_uuid in self._notifying:
            # Re-subscription after a silent period; clear the old handler first
            try:
                await client.stop_notify(char)
            except BleakError as ex:
                _LOGGER.debug("Error stopping notifications for %s: %s", char_uuid, ex)
            self._notifying.discard(char_uuid)

        try:
            await client.start_notify(char, self._on_bleak_notification)
        except (BleakError, asyncio.TimeoutError) as err:
            raise ScaleConnectionError(
                f"Failed to enable notifications on {char_uuid}: {err}"
            ) from err
        self._notifying.add(char_uuid)
        _LOGGER.debug("Started notifications for %s", char_uuid)

    async def write_characteristic(
        self, service_uuid: str, char_uuid: str, data: bytes, response: bool = True
    ) -> None:
        """Write a command to the device."""
        client = self._require_client()
        char = self._resolve(client, service_uuid, char_uuid)
        try:
            await client.write_gatt_char(char, data, response=response)
        except (BleakError, asyncio.TimeoutError) as err:
            raise ScaleCommandError(f"Failed to write {data.hex()}: {err}") from err
        _LOGGER.debug("Wrote command: %s", data.hex())

    async def read_characteristic(self, service_uuid: str, char_uuid: str) -> bytes:
        """Read a characteristic value."""
        client = self._require_client()
        char = self._resolve(client, service_uuid, char_uuid)
        try:
            return bytes(await client.read_gatt_char(char))
        except (BleakError, asyncio.TimeoutError) as err:
            raise ScaleCommandError(f"Failed to read {char_uuid}: {err}") from err

    def _require_client(self) -> BleakClient:
        if self.client is None or not self.client.is_connected:
            raise ScaleConnectionError("Not connected")
        return self.client

    @staticmethod
    def _resolve(
        client: BleakClient, service_uuid: str, char_uuid: str
    ) -> BleakGATTCharacteristic:
        service = client.services.get_service(service_uuid)
        char = service.get_characteristic(char_uuid) if service else None
        if char is None:
            raise ScaleProtocolError(
                f"Characteristic {char_uuid} not found in service {service_uuid}"
            )
        return char

    def _on_bleak_notification(
        self, sender: BleakGATTCharacteristic, data: bytearray
    ) -> None:
        """Handle notification from device, possibly on a backend thread."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(
            self.notification.emit, sender.uuid.lower(), bytes(data)
        )

    def _on_bleak_disconnect(self, client: BleakClient) -> None:
        """Handle Bluetooth disconnection, possibly on a backend thread."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._handle_disconnect, client)

    def _handle_disconnect(self, client: BleakClient) -> None:
        if self._expected_disconnect:
            _LOGGER.debug("Expected disconnect from %s", client.address)
            self._expected_disconnect = False
            return
        if self.client is not None and client is not self.client:
            _LOGGER.debug("Ignoring disconnect from stale client %s", client.address)
            return

        _LOGGER.warning("Device %s disconnected unexpectedly", client.address)
        self.client = None
        self._notifying.clear()
        self.disconnected.emit()
