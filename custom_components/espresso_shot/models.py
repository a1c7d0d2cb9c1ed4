"""Models for the Espresso Shot integration."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TareState(str, Enum):
    """Tare lifecycle of the shot controller."""

    IDLE = "idle"
    PENDING = "pending"
    COMPLETE = "complete"


class DeviceConnectionState(str, Enum):
    """Connection lifecycle of a physical scale."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    DISCOVERING_CHARACTERISTICS = "discovering_characteristics"
    SUBSCRIBING_NOTIFICATIONS = "subscribing_notifications"
    AWAITING_FIRST_DATA = "awaiting_first_data"
    CONNECTED = "connected"
    FAILED = "failed"


class ShotPhase(str, Enum):
    """Shot lifecycle."""

    IDLE = "idle"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class ShotSample:
    """One timer-tagged telemetry sample from the espresso machine."""

    elapsed: float
    pressure: float
    flow: float
    temperature: float
    pressure_goal: float = 0.0
    flow_goal: float = 0.0
    temperature_goal: float = 0.0
    frame: int = -1
    flow_mode: bool = False


@dataclass(frozen=True)
class UnifiedSample:
    """Machine sample re-stamped on the shot timeline."""

    time: float
    pressure: float
    flow: float
    temperature: float
    pressure_goal: float
    flow_goal: float
    temperature_goal: float
    frame: int
    flow_mode: bool

    def as_dict(self) -> dict[str, Any]:
        """Return the sample as event data."""
        return {
            "time": self.time,
            "pressure": self.pressure,
            "flow": self.flow,
            "temperature": self.temperature,
            "pressure_goal": self.pressure_goal,
            "flow_goal": self.flow_goal,
            "temperature_goal": self.temperature_goal,
            "frame": self.frame,
            "flow_mode": self.flow_mode,
        }


@dataclass(frozen=True)
class WeightSampleEvent:
    """Scale reading bound to the shot time known when it arrived."""

    time: float
    weight: float

    def as_dict(self) -> dict[str, Any]:
        """Return the sample as event data."""
        return {"time": self.time, "weight": self.weight}


@dataclass(frozen=True)
class ScaleReading:
    """Decoded scale status frame."""

    weight: float
    flow_rate: Optional[float] = None
    battery_level: Optional[int] = None
    timer_ms: Optional[int] = None


@dataclass(frozen=True)
class CharacteristicInfo:
    """GATT characteristic as reported by a transport."""

    uuid: str
    properties: tuple[str, ...] = ()
    descriptors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProfileFrame:
    """One profile step; exit_weight of 0 means no weight exit."""

    exit_weight: float = 0.0
    name: str = ""


@dataclass(frozen=True)
class Profile:
    """Read-only view of the active brewing profile."""

    title: str = ""
    frames: tuple[ProfileFrame, ...] = field(default_factory=tuple)

    def frame(self, index: int) -> Optional[ProfileFrame]:
        """Return the frame at index, or None when out of range."""
        if 0 <= index < len(self.frames):
            return self.frames[index]
        return None
