"""Shot timing, tare management and weight-based stop detection.

The machine's own sample timer is the single source of truth for shot
time. Scale readings carry no clock; each one is stamped with the shot
time known when it arrives. Stop conditions are evaluated only once the
tare has completed and each of them latches so it fires once per shot
(stop-at-weight) or once per frame (per-frame weight exit).
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Optional

from .const import (
    DEFAULT_DISPLAY_INTERVAL,
    DEFAULT_RETARE_ON_START,
    DEFAULT_TARE_TIMEOUT,
    TARE_CONFIRM_THRESHOLD_G,
)
from .debug_logger import ShotDebugLogger
from .helpers import Signal, format_timer
from .models import (
    Profile,
    ShotPhase,
    ShotSample,
    TareState,
    UnifiedSample,
    WeightSampleEvent,
)
from .scale_device import WeightDevice

_LOGGER = logging.getLogger(__name__)


class ShotTimingController:
    """Fuse machine telemetry and scale readings into one shot timeline."""

    def __init__(
        self,
        scale: Optional[WeightDevice] = None,
        *,
        tare_timeout: float = DEFAULT_TARE_TIMEOUT,
        display_interval: float = DEFAULT_DISPLAY_INTERVAL,
        retare_on_start: bool = DEFAULT_RETARE_ON_START,
        debug_logger: Optional[ShotDebugLogger] = None,
    ) -> None:
        """Initialize the controller."""
        self._tare_timeout = tare_timeout
        self._display_interval = display_interval
        self.retare_on_start = retare_on_start
        self._debug_logger = debug_logger

        # Signals
        self.sample_ready = Signal("sample_ready")
        self.weight_sample_ready = Signal("weight_sample_ready")
        self.stop_at_weight_reached = Signal("stop_at_weight_reached")
        self.per_frame_weight_reached = Signal("per_frame_weight_reached")
        self.shot_time_changed = Signal("shot_time_changed")
        self.tare_complete_changed = Signal("tare_complete_changed")
        self.weight_changed = Signal("weight_changed")

        self._scale: Optional[WeightDevice] = None
        self._scale_unsubscribers: list[Callable[[], None]] = []
        self._profile: Optional[Profile] = None

        # Timing state
        self._phase = ShotPhase.IDLE
        self._shot_time = 0.0
        self._timer_base: Optional[float] = None
        self._display_anchor = 0.0

        # Weight state
        self._weight = 0.0
        self._flow_rate = 0.0
        self._target_weight = 0.0
        self._stop_at_weight_triggered = False
        self._frame_weight_skip_sent = -1  # Frame for which the weight exit already fired
        self._current_frame = -1
        self._extraction_started = False  # True after frame 0 seen (preheating complete)

        # Tare state machine
        self._tare_state = TareState.IDLE
        self._tare_timeout_handle: Optional[asyncio.TimerHandle] = None
        self._tare_task: Optional[asyncio.Task] = None

        # Display timer (for smooth UI updates between machine samples)
        self._display_handle: Optional[asyncio.TimerHandle] = None

        if scale is not None:
            self.set_scale(scale)

    # --- Properties ---
    @property
    def scale(self) -> Optional[WeightDevice]:
        """Return the attached weight device."""
        return self._scale

    @property
    def phase(self) -> ShotPhase:
        """Return the shot lifecycle phase."""
        return self._phase

    @property
    def is_shot_active(self) -> bool:
        """Return True while a shot is running."""
        return self._phase == ShotPhase.ACTIVE

    @property
    def shot_time(self) -> float:
        """Return the authoritative elapsed shot time in seconds."""
        return self._shot_time

    @property
    def display_time(self) -> float:
        """Return shot time extrapolated by wall clock, for display only."""
        if self._phase != ShotPhase.ACTIVE:
            return self._shot_time
        return self._shot_time + max(0.0, time.monotonic() - self._display_anchor)

    @property
    def tare_state(self) -> TareState:
        """Return the tare state."""
        return self._tare_state

    @property
    def is_tare_complete(self) -> bool:
        """Return True once the tare has completed."""
        return self._tare_state == TareState.COMPLETE

    @property
    def current_weight(self) -> float:
        """Return the latest weight in grams."""
        return self._weight

    @property
    def current_flow_rate(self) -> float:
        """Return the latest scale flow-rate estimate."""
        return self._flow_rate

    @property
    def target_weight(self) -> float:
        """Return the stop-at-weight target (0 = disabled)."""
        return self._target_weight

    @property
    def current_frame(self) -> int:
        """Return the current profile frame (-1 before extraction)."""
        return self._current_frame

    @property
    def extraction_started(self) -> bool:
        """Return True once frame 0 has been observed in this shot."""
        return self._extraction_started

    # --- Configuration ---
    def set_scale(self, scale: Optional[WeightDevice]) -> None:
        """Attach a weight device; the device stays owned by the caller."""
        for unsubscribe in self._scale_unsubscribers:
            unsubscribe()
        self._scale_unsubscribers.clear()

        self._scale = scale
        if scale is None:
            return

        self._scale_unsubscribers = [
            scale.weight_changed.connect(self.on_weight_sample),
            scale.connected_changed.connect(self._on_scale_connected_changed),
            scale.error_occurred.connect(self._on_scale_error),
        ]

    def set_target_weight(self, weight: float) -> None:
        """Set the stop-at-weight target; 0 disables it."""
        self._target_weight = max(0.0, weight)
        _LOGGER.debug("Target weight set to %.1f g", self._target_weight)
        self.check_stop_at_weight()

    def set_profile(self, profile: Optional[Profile]) -> None:
        """Set the active profile used for per-frame weight exits."""
        self._profile = profile

    # --- Shot lifecycle ---
    def start_shot(self) -> None:
        """Begin a shot: reset timing and latches, start the display timer."""
        if self._phase == ShotPhase.ACTIVE:
            _LOGGER.debug("start_shot called during an active shot, restarting")

        if self._debug_logger is not None:
            self._debug_logger.start_capture()

        self._phase = ShotPhase.ACTIVE
        self._shot_time = 0.0
        self._timer_base = None
        self._display_anchor = time.monotonic()
        # Readings from the previous shot must not satisfy this shot's stop checks
        self._weight = 0.0
        self._flow_rate = 0.0
        self._stop_at_weight_triggered = False
        self._frame_weight_skip_sent = -1
        self._current_frame = -1
        self._extraction_started = False
        _LOGGER.info("Shot started (target weight %.1f g)", self._target_weight)
        self.weight_changed.emit(self._weight)

        if self._scale is not None:
            self._scale.reset()
            if self.retare_on_start or self._tare_state != TareState.COMPLETE:
                self.tare()

        self.shot_time_changed.emit(self._shot_time)
        self._schedule_display_tick()

    def end_shot(self) -> None:
        """Freeze shot time and stop the display timer."""
        if self._phase != ShotPhase.ACTIVE:
            return

        self._phase = ShotPhase.ENDED
        self._cancel_display_tick()
        self._cancel_tare_timeout()
        _LOGGER.info(
            "Shot ended at %s (%.2f s), weight %.1f g",
            format_timer(int(self._shot_time * 1000)),
            self._shot_time,
            self._weight,
        )
        self.shot_time_changed.emit(self._shot_time)

        if self._debug_logger is not None:
            self._debug_logger.stop_capture()

    def reset(self) -> None:
        """Return to the construction state; tare goes back to Idle."""
        self._cancel_timers()
        self._phase = ShotPhase.IDLE
        self._shot_time = 0.0
        self._timer_base = None
        self._weight = 0.0
        self._flow_rate = 0.0
        self._stop_at_weight_triggered = False
        self._frame_weight_skip_sent = -1
        self._current_frame = -1
        self._extraction_started = False
        self._set_tare_state(TareState.IDLE)
        if self._debug_logger is not None:
            self._debug_logger.stop_capture()
        self.shot_time_changed.emit(self._shot_time)

    def shutdown(self) -> None:
        """Cancel every timer and detach from the scale."""
        self._cancel_timers()
        self.set_scale(None)
        if self._debug_logger is not None:
            self._debug_logger.stop_capture()

    # --- Data ingestion ---
    def on_shot_sample(self, sample: ShotSample) -> None:
        """Advance the shot timeline from a machine sample."""
        if self._phase != ShotPhase.ACTIVE:
            return

        if self._timer_base is None:
            self._timer_base = sample.elapsed
            delta = 0.0
        else:
            delta = sample.elapsed - self._timer_base - self._shot_time

        elapsed = sample.elapsed - self._timer_base
        if elapsed < self._shot_time:
            _LOGGER.debug(
                "Machine timer went backwards (%.3f < %.3f), holding",
                elapsed,
                self._shot_time,
            )
            elapsed = self._shot_time
        self._shot_time = elapsed
        self._display_anchor = time.monotonic()

        if sample.frame == 0 and not self._extraction_started:
            self._extraction_started = True
            _LOGGER.info("Extraction started at %.2f s", self._shot_time)

        frame_changed = False
        if self._extraction_started and sample.frame >= 0:
            if sample.frame > self._current_frame:
                _LOGGER.debug("Frame %d -> %d", self._current_frame, sample.frame)
                self._current_frame = sample.frame
                frame_changed = True
            elif sample.frame < self._current_frame:
                _LOGGER.debug(
                    "Ignoring frame regression %d -> %d",
                    self._current_frame,
                    sample.frame,
                )

        if self._scale is not None and delta > 0:
            self._scale.add_flow_sample(sample.flow, delta)

        self.shot_time_changed.emit(self._shot_time)
        self.sample_ready.emit(
            UnifiedSample(
                time=self._shot_time,
                pressure=sample.pressure,
                flow=sample.flow,
                temperature=sample.temperature,
                pressure_goal=sample.pressure_goal,
                flow_goal=sample.flow_goal,
                temperature_goal=sample.temperature_goal,
                frame=self._current_frame,
                flow_mode=sample.flow_mode,
            )
        )

        if frame_changed:
            self.check_per_frame_weight(self._current_frame)

    def on_weight_sample(self, weight: float, flow_rate: float) -> None:
        """Record a scale reading against the current shot time."""
        if self._phase != ShotPhase.ENDED:
            self._weight = weight
            self._flow_rate = flow_rate
            self.weight_changed.emit(weight)

        if self._tare_state == TareState.PENDING and abs(weight) < TARE_CONFIRM_THRESHOLD_G:
            _LOGGER.debug("Tare confirmed by reading %.2f g", weight)
            self._cancel_tare_timeout()
            self._set_tare_state(TareState.COMPLETE)

        if self._phase != ShotPhase.ACTIVE:
            return

        self.weight_sample_ready.emit(WeightSampleEvent(time=self._shot_time, weight=weight))
        self.check_stop_at_weight()
        self.check_per_frame_weight(self._current_frame)

    # --- Tare control ---
    def tare(self) -> None:
        """Zero the scale and wait for confirmation or timeout."""
        self._set_tare_state(TareState.PENDING)
        self._cancel_tare_timeout()
        loop = asyncio.get_running_loop()
        self._tare_timeout_handle = loop.call_later(
            self._tare_timeout, self._on_tare_timeout
        )
        if self._scale is not None:
            if self._tare_task is not None and not self._tare_task.done():
                self._tare_task.cancel()
            self._tare_task = loop.create_task(self._async_tare_scale(self._scale))

    async def _async_tare_scale(self, scale: WeightDevice) -> None:
        if not await scale.async_tare():
            _LOGGER.warning("%s did not accept the tare command", scale.name)

    def _on_tare_timeout(self) -> None:
        self._tare_timeout_handle = None
        if self._tare_state != TareState.PENDING:
            return
        _LOGGER.warning(
            "Tare not confirmed within %.1f s, assuming complete", self._tare_timeout
        )
        self._set_tare_state(TareState.COMPLETE)

    def _set_tare_state(self, state: TareState) -> None:
        if state == self._tare_state:
            return
        was_complete = self.is_tare_complete
        _LOGGER.debug("Tare %s -> %s", self._tare_state.value, state.value)
        self._tare_state = state
        if self.is_tare_complete != was_complete:
            self.tare_complete_changed.emit(self.is_tare_complete)
        if state == TareState.COMPLETE:
            self.check_stop_at_weight()
            self.check_per_frame_weight(self._current_frame)

    # --- Stop conditions ---
    def check_stop_at_weight(self) -> None:
        """Emit stop_at_weight_reached once per shot when the target is hit."""
        if (
            self._phase != ShotPhase.ACTIVE
            or self._tare_state != TareState.COMPLETE
            or self._target_weight <= 0
            or self._stop_at_weight_triggered
        ):
            return

        if self._weight >= self._target_weight:
            self._stop_at_weight_triggered = True
            _LOGGER.info(
                "Target weight reached: %.1f g >= %.1f g at %.2f s",
                self._weight,
                self._target_weight,
                self._shot_time,
            )
            self.stop_at_weight_reached.emit()

    def check_per_frame_weight(self, frame: int) -> None:
        """Emit per_frame_weight_reached once for the current frame."""
        if (
            self._phase != ShotPhase.ACTIVE
            or self._tare_state != TareState.COMPLETE
            or self._profile is None
            or not self._extraction_started
        ):
            return
        if frame < 0 or frame != self._current_frame:
            return
        if frame == self._frame_weight_skip_sent:
            return

        profile_frame = self._profile.frame(frame)
        if profile_frame is None or profile_frame.exit_weight <= 0:
            return

        if self._weight >= profile_frame.exit_weight:
            self._frame_weight_skip_sent = frame
            _LOGGER.info(
                "Frame %d weight exit: %.1f g >= %.1f g",
                frame,
                self._weight,
                profile_frame.exit_weight,
            )
            self.per_frame_weight_reached.emit(frame)

    # --- Scale events ---
    def _on_scale_connected_changed(self, connected: bool) -> None:
        if connected:
            _LOGGER.info("%s connected", self._scale.name if self._scale else "Scale")
        elif self._phase == ShotPhase.ACTIVE:
            _LOGGER.warning(
                "Scale disconnected during shot, continuing on machine data at %.2f s",
                self._shot_time,
            )

    def _on_scale_error(self, message: str) -> None:
        _LOGGER.warning("Scale error: %s", message)

    # --- Timers ---
    def _schedule_display_tick(self) -> None:
        self._cancel_display_tick()
        self._display_handle = asyncio.get_running_loop().call_later(
            self._display_interval, self._on_display_tick
        )

    def _on_display_tick(self) -> None:
        self._display_handle = None
        if self._phase != ShotPhase.ACTIVE:
            return
        self.shot_time_changed.emit(self.display_time)
        self._schedule_display_tick()

    def _cancel_display_tick(self) -> None:
        if self._display_handle is not None:
            self._display_handle.cancel()
            self._display_handle = None

    def _cancel_tare_timeout(self) -> None:
        if self._tare_timeout_handle is not None:
            self._tare_timeout_handle.cancel()
            self._tare_timeout_handle = None

    def _cancel_timers(self) -> None:
        self._cancel_display_tick()
        self._cancel_tare_timeout()
        if self._tare_task is not None and not self._tare_task.done():
            self._tare_task.cancel()
        self._tare_task = None
