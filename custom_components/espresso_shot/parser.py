"""Bluetooth status-frame parser for Bookoo scales."""
from __future__ import annotations

import logging
from typing import Optional

from .const import (
    BATTERY_OFFSET,
    FLOW_OFFSET,
    FLOW_SIGN_OFFSET,
    MIN_FRAME_LENGTH,
    TIMER_OFFSET,
    WEIGHT_OFFSET,
    WEIGHT_SIGN_OFFSET,
)
from .helpers import read_uint_be, validate_checksum
from .models import ScaleReading

_LOGGER = logging.getLogger(__name__)

NEGATIVE_SIGN = ord("-")


def decode_weight(frame: bytes) -> Optional[float]:
    """
    Decode the weight carried by a status frame.

    Format (only the first 10 bytes are required):
    - Bytes 0-5: Header and scale timer (ignored here)
    - Byte 6: Weight sign, ASCII '-' for negative, anything else positive
    - Bytes 7-9: Weight in grams * 100 (24-bit big-endian)

    Returns None for frames too short to carry a weight; never raises.
    """
    if len(frame) < MIN_FRAME_LENGTH:
        _LOGGER.debug(
            "Status frame too short: %d bytes, data: %s", len(frame), bytes(frame).hex()
        )
        return None

    weight = read_uint_be(frame, WEIGHT_OFFSET, 3) / 100.0
    if frame[WEIGHT_SIGN_OFFSET] == NEGATIVE_SIGN:
        weight = -weight
    return weight


def parse_status_frame(frame: bytes) -> Optional[ScaleReading]:
    """
    Parse a full status frame.

    The weight is decoded from any frame of at least 10 bytes. When the
    frame also carries the extended fields and its XOR checksum matches,
    the following are decoded as well:
    - Bytes 2-4: Scale timer milliseconds (24-bit big-endian)
    - Byte 10: Flow rate sign (ASCII '-' for negative)
    - Bytes 11-12: Flow rate * 100 (16-bit big-endian)
    - Byte 13: Battery percentage
    """
    weight = decode_weight(frame)
    if weight is None:
        return None

    if len(frame) <= BATTERY_OFFSET or not validate_checksum(bytes(frame)):
        return ScaleReading(weight=weight)

    flow_rate = read_uint_be(frame, FLOW_OFFSET, 2) / 100.0
    if frame[FLOW_SIGN_OFFSET] == NEGATIVE_SIGN:
        flow_rate = -flow_rate

    return ScaleReading(
        weight=weight,
        flow_rate=flow_rate,
        battery_level=frame[BATTERY_OFFSET],
        timer_ms=read_uint_be(frame, TIMER_OFFSET, 3),
    )
