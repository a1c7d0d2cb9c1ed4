"""Constants for the Espresso Shot integration."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry

# Domain
DOMAIN: Final = "espresso_shot"

# Device identifiers
DEVICE_NAME_PREFIX: Final = "BOOKOO_SC"
MANUFACTURER: Final = "Bookoo Coffee"

# BLE Service and Characteristic UUIDs
SERVICE_UUID: Final = "00000ffe-0000-1000-8000-00805f9b34fb"
CHAR_STATUS_UUID: Final = "0000ff11-0000-1000-8000-00805f9b34fb"  # Weight/status notifications
CHAR_COMMAND_UUID: Final = "0000ff12-0000-1000-8000-00805f9b34fb"  # Command writes
CHAR_NOTIFY_DESCRIPTOR: Final = "00002902-0000-1000-8000-00805f9b34fb"

# Commands (product 0x03, type 0x0A, opcode, two args, XOR checksum)
CMD_TARE: Final = bytes([0x03, 0x0A, 0x01, 0x00, 0x00, 0x08])
CMD_START_TIMER: Final = bytes([0x03, 0x0A, 0x04, 0x00, 0x00, 0x0A])
CMD_STOP_TIMER: Final = bytes([0x03, 0x0A, 0x05, 0x00, 0x00, 0x0D])
CMD_RESET_TIMER: Final = bytes([0x03, 0x0A, 0x06, 0x00, 0x00, 0x0C])
CMD_TARE_AND_START_TIMER: Final = bytes([0x03, 0x0A, 0x07, 0x00, 0x00, 0x00])

# Status frame layout
MIN_FRAME_LENGTH: Final = 10
WEIGHT_SIGN_OFFSET: Final = 6
WEIGHT_OFFSET: Final = 7
FLOW_SIGN_OFFSET: Final = 10
FLOW_OFFSET: Final = 11
BATTERY_OFFSET: Final = 13
TIMER_OFFSET: Final = 2

# Connection timing
SUBSCRIBE_DELAY_SECONDS: Final = 0.2
WATCHDOG_INTERVAL_SECONDS: Final = 1.0
MAX_NOTIFICATION_RETRIES: Final = 3
CONNECT_TIMEOUT_SECONDS: Final = 15.0
SCAN_INTERVAL_SECONDS: Final = 30
ENTITY_UPDATE_INTERVAL_SECONDS: Final = 1.0

# Shot timing
TARE_CONFIRM_THRESHOLD_G: Final = 1.0
MAX_FLOW_SAMPLE_DELTA_SECONDS: Final = 1.0

# Scale types
SCALE_TYPE_BOOKOO: Final = "bookoo"
SCALE_TYPE_FLOW: Final = "flow"
SCALE_TYPES: Final = [SCALE_TYPE_BOOKOO, SCALE_TYPE_FLOW]

# Config keys
CONF_SCALE_TYPE: Final = "scale_type"
CONF_TARGET_WEIGHT: Final = "target_weight"
CONF_RETARE_ON_START: Final = "retare_on_start"
CONF_TARE_TIMEOUT: Final = "tare_timeout"
CONF_DISPLAY_INTERVAL: Final = "display_interval"

# Configuration defaults
DEFAULT_NAME: Final = "Espresso Shot"
DEFAULT_TARGET_WEIGHT: Final = 36.0
DEFAULT_RETARE_ON_START: Final = True
DEFAULT_TARE_TIMEOUT: Final = 3.0
DEFAULT_DISPLAY_INTERVAL: Final = 0.1

# Event names
EVENT_SAMPLE: Final = f"{DOMAIN}_sample"
EVENT_WEIGHT_SAMPLE: Final = f"{DOMAIN}_weight_sample"
EVENT_STOP_AT_WEIGHT: Final = f"{DOMAIN}_stop_at_weight"
EVENT_FRAME_WEIGHT_REACHED: Final = f"{DOMAIN}_frame_weight_reached"
EVENT_SCALE_ERROR: Final = f"{DOMAIN}_scale_error"

# Service names
SERVICE_START_SHOT: Final = "start_shot"
SERVICE_END_SHOT: Final = "end_shot"
SERVICE_TARE: Final = "tare"
SERVICE_RESET: Final = "reset"
SERVICE_SET_TARGET_WEIGHT: Final = "set_target_weight"
SERVICE_SET_PROFILE: Final = "set_profile"
SERVICE_SHOT_SAMPLE: Final = "shot_sample"

# Service attributes
ATTR_CONFIG_ENTRY_ID: Final = "config_entry_id"
ATTR_WEIGHT: Final = "weight"
ATTR_FRAMES: Final = "frames"
ATTR_EXIT_WEIGHT: Final = "exit_weight"
ATTR_ELAPSED: Final = "elapsed"
ATTR_PRESSURE: Final = "pressure"
ATTR_FLOW: Final = "flow"
ATTR_TEMPERATURE: Final = "temperature"
ATTR_PRESSURE_GOAL: Final = "pressure_goal"
ATTR_FLOW_GOAL: Final = "flow_goal"
ATTR_TEMPERATURE_GOAL: Final = "temperature_goal"
ATTR_FRAME: Final = "frame"
ATTR_FLOW_MODE: Final = "flow_mode"


@dataclass(frozen=True)
class ShotConfig:
    """Typed configuration for the Espresso Shot integration."""

    scale_type: str
    address: str | None
    target_weight: float
    retare_on_start: bool
    tare_timeout: float
    display_interval: float

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ShotConfig:
        """Create a ShotConfig from merged entry data and options."""
        address = data.get("address")
        scale_type = data.get(
            CONF_SCALE_TYPE, SCALE_TYPE_BOOKOO if address else SCALE_TYPE_FLOW
        )
        return cls(
            scale_type=scale_type,
            address=address,
            target_weight=float(data.get(CONF_TARGET_WEIGHT, DEFAULT_TARGET_WEIGHT)),
            retare_on_start=bool(
                data.get(CONF_RETARE_ON_START, DEFAULT_RETARE_ON_START)
            ),
            tare_timeout=float(data.get(CONF_TARE_TIMEOUT, DEFAULT_TARE_TIMEOUT)),
            display_interval=float(
                data.get(CONF_DISPLAY_INTERVAL, DEFAULT_DISPLAY_INTERVAL)
            ),
        )

    @classmethod
    def from_config_entry(cls, entry: ConfigEntry) -> ShotConfig:
        """Create a ShotConfig instance from a ConfigEntry."""
        return cls.from_mapping({**entry.data, **entry.options})
