"""Fixtures for Espresso Shot tests."""
from __future__ import annotations

import asyncio
import os
import sys
from typing import Any, Optional

import pytest

# Add the custom_components directory to the Python path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from custom_components.espresso_shot.const import (  # noqa: E402
    CHAR_COMMAND_UUID,
    CHAR_STATUS_UUID,
    SERVICE_UUID,
)
from custom_components.espresso_shot.models import CharacteristicInfo  # noqa: E402
from custom_components.espresso_shot.scale_device import WeightDevice  # noqa: E402
from custom_components.espresso_shot.transport import ScaleBleTransport  # noqa: E402

SCALE_ADDRESS = "AA:BB:CC:DD:EE:FF"


class FakeTransport(ScaleBleTransport):
    """In-memory transport that records what the driver asks of it."""

    def __init__(
        self,
        services: Optional[list[str]] = None,
        characteristics: Optional[list[CharacteristicInfo]] = None,
    ) -> None:
        super().__init__()
        self.services = [SERVICE_UUID] if services is None else services
        self.characteristics = (
            [
                CharacteristicInfo(CHAR_STATUS_UUID, ("notify",)),
                CharacteristicInfo(CHAR_COMMAND_UUID, ("write",)),
            ]
            if characteristics is None
            else characteristics
        )
        self.connected = False
        self.connect_error: Optional[Exception] = None
        self.subscribe_error: Optional[Exception] = None
        self.discovery_gate: Optional[asyncio.Event] = None
        self.connect_calls: list[Any] = []
        self.subscriptions: list[tuple[str, str]] = []
        self.writes: list[bytes] = []
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self, device_ref: Any) -> None:
        self.connect_calls.append(device_ref)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def discover_services(self) -> list[str]:
        if self.discovery_gate is not None:
            await self.discovery_gate.wait()
        return list(self.services)

    async def discover_characteristics(
        self, service_uuid: str
    ) -> list[CharacteristicInfo]:
        if service_uuid not in self.services:
            return []
        return list(self.characteristics)

    async def enable_notifications(self, service_uuid: str, char_uuid: str) -> None:
        self.subscriptions.append((service_uuid, char_uuid))
        if self.subscribe_error is not None:
            raise self.subscribe_error

    async def write_characteristic(
        self, service_uuid: str, char_uuid: str, data: bytes, response: bool = True
    ) -> None:
        self.writes.append(data)

    async def read_characteristic(self, service_uuid: str, char_uuid: str) -> bytes:
        return b""

    def push(self, data: bytes, char_uuid: str = CHAR_STATUS_UUID) -> None:
        """Deliver a notification as the peripheral would."""
        self.notification.emit(char_uuid, data)

    def drop_link(self) -> None:
        """Simulate an unexpected link loss."""
        self.connected = False
        self.disconnected.emit()


class FakeScale(WeightDevice):
    """Weight device whose readings are driven by the test."""

    def __init__(self) -> None:
        super().__init__()
        self.tare_calls = 0
        self.flow_samples: list[tuple[float, float]] = []
        self._set_connected(True)

    @property
    def name(self) -> str:
        return "Fake Scale"

    @property
    def scale_type(self) -> str:
        return "fake"

    async def async_connect(self, device_ref: Any = None) -> bool:
        return True

    async def async_disconnect(self) -> None:
        self._set_connected(False)

    async def async_tare(self) -> bool:
        self.tare_calls += 1
        return True

    def add_flow_sample(self, flow_rate: float, delta_time: float) -> None:
        self.flow_samples.append((flow_rate, delta_time))

    def read(self, weight: float, flow_rate: float = 0.0) -> None:
        """Publish a reading."""
        self._set_reading(weight, flow_rate)


def status_frame(weight: float, sign: Optional[int] = None) -> bytes:
    """Build a minimal 10-byte status frame."""
    raw = round(abs(weight) * 100)
    if sign is None:
        sign = ord("-") if weight < 0 else ord("+")
    return bytes([0x03, 0x0B, 0x00, 0x00, 0x00, 0x00, sign]) + raw.to_bytes(3, "big")


def full_status_frame(
    weight: float, flow_rate: float, battery: int, timer_ms: int
) -> bytes:
    """Build a 20-byte status frame with a valid XOR checksum."""
    payload = bytearray(20)
    payload[0] = 0x03
    payload[1] = 0x0B
    payload[2:5] = timer_ms.to_bytes(3, "big")
    payload[6] = ord("-") if weight < 0 else ord("+")
    payload[7:10] = round(abs(weight) * 100).to_bytes(3, "big")
    payload[10] = ord("-") if flow_rate < 0 else ord("+")
    payload[11:13] = round(abs(flow_rate) * 100).to_bytes(2, "big")
    payload[13] = battery
    checksum = 0
    for byte in payload[:-1]:
        checksum ^= byte
    payload[-1] = checksum
    return bytes(payload)


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Return a transport exposing a healthy Bookoo scale."""
    return FakeTransport()


@pytest.fixture
def fake_scale() -> FakeScale:
    """Return a connected fake weight device."""
    return FakeScale()
