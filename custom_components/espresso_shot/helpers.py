"""Helper functions and event plumbing for the Espresso Shot integration."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)


class Signal:
    """A named event that listeners can subscribe to.

    Listeners are called synchronously, in subscription order, on whatever
    loop emits the signal. A listener that raises is logged and skipped so
    the remaining listeners still receive the event.
    """

    def __init__(self, name: str) -> None:
        """Initialize the signal."""
        self.name = name
        self._listeners: list[Callable[..., Any]] = []

    @property
    def listener_count(self) -> int:
        """Return the number of connected listeners."""
        return len(self._listeners)

    def connect(self, listener: Callable[..., Any]) -> Callable[[], None]:
        """Subscribe a listener and return a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def disconnect_all(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    def emit(self, *args: Any) -> None:
        """Deliver the event to a snapshot of the current listeners."""
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in %s listener %s", self.name, listener)


def calculate_checksum(data: bytes) -> int:
    """Calculate XOR checksum for the Bookoo protocol."""
    if len(data) < 2:
        return 0

    # XOR all bytes except the last one (which is the checksum)
    checksum = 0
    for byte in data[:-1]:
        checksum ^= byte

    return checksum


def validate_checksum(data: bytes) -> bool:
    """Validate checksum of received data."""
    if len(data) < 2:
        return False

    calculated = calculate_checksum(data)
    received = data[-1]

    if calculated != received:
        _LOGGER.debug(
            "Checksum mismatch: calculated=%02x, received=%02x",
            calculated,
            received,
        )
        return False

    return True


def read_uint_be(data: bytes, offset: int, length: int) -> int:
    """Read an unsigned big-endian integer of length bytes at offset."""
    return int.from_bytes(data[offset : offset + length], "big")


def format_timer(timer_ms: int) -> str:
    """Format timer in MM:SS format."""
    total_seconds = timer_ms // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes:02d}:{seconds:02d}"
