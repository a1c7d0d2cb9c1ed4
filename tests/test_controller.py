"""Tests for the shot timing controller."""
import asyncio

import pytest
from conftest import FakeScale, settle

from custom_components.espresso_shot.controller import ShotTimingController
from custom_components.espresso_shot.debug_logger import ShotDebugLogger
from custom_components.espresso_shot.flow_scale import FlowScale
from custom_components.espresso_shot.models import (
    Profile,
    ProfileFrame,
    ShotPhase,
    ShotSample,
    TareState,
)


def sample(elapsed: float, frame: int = 0, flow: float = 2.0) -> ShotSample:
    """Return a machine sample."""
    return ShotSample(
        elapsed=elapsed, pressure=9.0, flow=flow, temperature=93.0, frame=frame
    )


def record(controller: ShotTimingController):
    """Collect the signals a controller emits."""
    events = {
        "samples": [],
        "weights": [],
        "stops": [],
        "frames": [],
        "times": [],
        "tare": [],
    }
    controller.sample_ready.connect(events["samples"].append)
    controller.weight_sample_ready.connect(events["weights"].append)
    controller.stop_at_weight_reached.connect(lambda: events["stops"].append(True))
    controller.per_frame_weight_reached.connect(events["frames"].append)
    controller.shot_time_changed.connect(events["times"].append)
    controller.tare_complete_changed.connect(events["tare"].append)
    return events


def make_controller(scale=None, **kwargs) -> ShotTimingController:
    kwargs.setdefault("tare_timeout", 3600)
    kwargs.setdefault("display_interval", 3600)
    return ShotTimingController(scale, **kwargs)


async def start_with_tare(controller: ShotTimingController, scale: FakeScale) -> None:
    """Start a shot and confirm the tare with a near-zero reading."""
    controller.start_shot()
    await settle()
    scale.read(0.1)
    assert controller.tare_state == TareState.COMPLETE


class TestTimeline:
    """Test shot time and sample stamping."""

    @pytest.mark.asyncio
    async def test_time_is_relative_to_first_sample(self):
        """Test elapsed time counts from the first machine sample."""
        controller = make_controller()
        events = record(controller)
        controller.start_shot()

        for elapsed in (100.0, 100.5, 101.25):
            controller.on_shot_sample(sample(elapsed))

        assert [s.time for s in events["samples"]] == [0.0, 0.5, 1.25]
        assert controller.shot_time == 1.25
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_time_never_decreases(self):
        """Test a machine timer going backwards does not move time back."""
        controller = make_controller()
        events = record(controller)
        controller.start_shot()

        for elapsed in (10.0, 11.0, 10.5, 12.0):
            controller.on_shot_sample(sample(elapsed))

        times = [s.time for s in events["samples"]]
        assert times == [0.0, 1.0, 1.0, 2.0]
        assert times == sorted(times)
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_weight_before_any_sample_is_bound_to_zero(self, fake_scale):
        """Test a scale reading before machine data is stamped at 0."""
        controller = make_controller(fake_scale, retare_on_start=False)
        events = record(controller)
        controller.start_shot()

        fake_scale.read(0.3)

        assert [(w.time, w.weight) for w in events["weights"]] == [(0.0, 0.3)]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_weight_uses_latest_sample_time(self, fake_scale):
        """Test readings take the shot time known when they arrive."""
        controller = make_controller(fake_scale, retare_on_start=False)
        events = record(controller)
        controller.start_shot()
        controller.on_shot_sample(sample(5.0))
        controller.on_shot_sample(sample(7.5))

        fake_scale.read(12.0)
        fake_scale.read(12.5)

        assert [w.time for w in events["weights"]] == [2.5, 2.5]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_samples_ignored_outside_a_shot(self):
        """Test samples before start_shot do not advance time."""
        controller = make_controller()
        events = record(controller)

        controller.on_shot_sample(sample(3.0))

        assert events["samples"] == []
        assert controller.shot_time == 0.0

    @pytest.mark.asyncio
    async def test_frames_forwarded_after_extraction_starts(self):
        """Test frame tracking engages on frame 0 and never goes back."""
        controller = make_controller()
        events = record(controller)
        controller.start_shot()

        for elapsed, frame in ((0.0, 5), (0.5, 0), (1.0, 1), (1.5, 0), (2.0, 2)):
            controller.on_shot_sample(sample(elapsed, frame=frame))

        assert [s.frame for s in events["samples"]] == [-1, 0, 1, 1, 2]
        assert controller.extraction_started is True
        controller.shutdown()


class TestEndShot:
    """Test the end of a shot."""

    @pytest.mark.asyncio
    async def test_end_shot_freezes_readings(self, fake_scale):
        """Test time and weight stop changing once the shot ends."""
        controller = make_controller(fake_scale, retare_on_start=False)
        controller.start_shot()
        controller.on_shot_sample(sample(0.0))
        controller.on_shot_sample(sample(20.0))
        fake_scale.read(30.0)

        controller.end_shot()
        controller.on_shot_sample(sample(25.0))
        fake_scale.read(31.0)

        assert controller.phase == ShotPhase.ENDED
        assert controller.shot_time == 20.0
        assert controller.display_time == 20.0
        assert controller.current_weight == 30.0
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_display_tick_runs_only_during_shot(self):
        """Test the display timer emits without touching shot time."""
        controller = make_controller(display_interval=0.01)
        events = record(controller)
        controller.start_shot()

        await asyncio.sleep(0.1)
        ticks = len(events["times"])
        assert ticks > 2
        assert controller.shot_time == 0.0

        controller.end_shot()
        ended = len(events["times"])
        await asyncio.sleep(0.05)
        assert len(events["times"]) == ended

    @pytest.mark.asyncio
    async def test_display_time_extrapolates(self):
        """Test display time runs ahead of the last machine sample."""
        controller = make_controller()
        controller.start_shot()
        controller.on_shot_sample(sample(0.0))
        controller.on_shot_sample(sample(1.0))

        await asyncio.sleep(0.05)

        assert controller.display_time > controller.shot_time == 1.0
        controller.shutdown()


class TestTare:
    """Test the tare state machine."""

    @pytest.mark.asyncio
    async def test_start_shot_tares_scale(self, fake_scale):
        """Test starting a shot sends a tare and waits for near-zero weight."""
        controller = make_controller(fake_scale)
        events = record(controller)

        controller.start_shot()
        await settle()

        assert controller.tare_state == TareState.PENDING
        assert fake_scale.tare_calls == 1

        fake_scale.read(5.0)
        assert controller.tare_state == TareState.PENDING

        fake_scale.read(-0.4)
        assert controller.tare_state == TareState.COMPLETE
        assert events["tare"] == [True]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_tare_timeout_completes(self):
        """Test an unconfirmed tare resolves to Complete."""
        controller = make_controller(tare_timeout=0.01)

        controller.tare()
        assert controller.tare_state == TareState.PENDING

        await asyncio.sleep(0.05)
        assert controller.tare_state == TareState.COMPLETE

    @pytest.mark.asyncio
    async def test_retare_returns_to_pending(self, fake_scale):
        """Test a second shot re-tares when configured."""
        controller = make_controller(fake_scale, retare_on_start=True)
        events = record(controller)
        await start_with_tare(controller, fake_scale)
        controller.end_shot()

        controller.start_shot()

        assert controller.tare_state == TareState.PENDING
        assert events["tare"] == [True, False]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_no_retare_keeps_complete(self, fake_scale):
        """Test a completed tare carries over when re-tare is off."""
        controller = make_controller(fake_scale, retare_on_start=False)
        controller.tare()
        await settle()
        fake_scale.read(0.0)
        controller.end_shot()

        controller.start_shot()
        await settle()

        assert controller.tare_state == TareState.COMPLETE
        assert fake_scale.tare_calls == 1
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_reset_returns_to_idle(self, fake_scale):
        """Test reset is the only way back to Idle."""
        controller = make_controller(fake_scale)
        await start_with_tare(controller, fake_scale)

        controller.reset()

        assert controller.tare_state == TareState.IDLE
        assert controller.phase == ShotPhase.IDLE
        assert controller.shot_time == 0.0


class TestStopAtWeight:
    """Test the stop-at-weight condition."""

    @pytest.mark.asyncio
    async def test_fires_once(self, fake_scale):
        """Test crossing the target fires exactly once per shot."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(36.0)
        events = record(controller)
        await start_with_tare(controller, fake_scale)

        for weight in (20.0, 35.9, 36.0, 38.0, 40.0):
            fake_scale.read(weight)

        assert events["stops"] == [True]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_not_before_tare_complete(self, fake_scale):
        """Test an untared heavy reading does not stop the shot."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(36.0)
        events = record(controller)
        controller.start_shot()
        await settle()

        fake_scale.read(250.0)

        assert controller.tare_state == TareState.PENDING
        assert events["stops"] == []
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_zero_target_disables(self, fake_scale):
        """Test a target of 0 never fires."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(0)
        events = record(controller)
        await start_with_tare(controller, fake_scale)

        fake_scale.read(100.0)

        assert events["stops"] == []
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_rearms_on_new_shot(self, fake_scale):
        """Test the latch clears when the next shot starts."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(10.0)
        events = record(controller)
        await start_with_tare(controller, fake_scale)
        fake_scale.read(12.0)
        controller.end_shot()

        await start_with_tare(controller, fake_scale)
        fake_scale.read(12.0)

        assert events["stops"] == [True, True]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_previous_shot_weight_does_not_stop_next_shot(self, fake_scale):
        """Test a silent scale cannot stop a new shot on the last shot's weight."""
        controller = make_controller(fake_scale, tare_timeout=0.01)
        controller.set_target_weight(36.0)
        controller.set_profile(Profile(frames=(ProfileFrame(exit_weight=5.0),)))
        events = record(controller)
        await start_with_tare(controller, fake_scale)
        fake_scale.read(40.0)
        controller.end_shot()
        assert events["stops"] == [True]

        controller.start_shot()
        controller.on_shot_sample(sample(0.0, frame=0))
        await asyncio.sleep(0.05)

        assert controller.tare_state == TareState.COMPLETE
        assert controller.current_weight == 0.0
        assert controller.current_flow_rate == 0.0
        assert events["stops"] == [True]
        assert events["frames"] == []
        controller.shutdown()


class TestPerFrameWeight:
    """Test per-frame weight exits."""

    @pytest.fixture
    def profile(self) -> Profile:
        return Profile(
            title="Test",
            frames=(
                ProfileFrame(exit_weight=0.0, name="fill"),
                ProfileFrame(exit_weight=5.0, name="preinfuse"),
                ProfileFrame(exit_weight=0.0, name="pour"),
            ),
        )

    @pytest.mark.asyncio
    async def test_fires_once_per_frame(self, fake_scale, profile):
        """Test a frame's exit weight fires once while that frame is current."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(0)
        controller.set_profile(profile)
        events = record(controller)
        await start_with_tare(controller, fake_scale)

        controller.on_shot_sample(sample(0.0, frame=0))
        controller.on_shot_sample(sample(1.0, frame=1))
        fake_scale.read(4.0)
        fake_scale.read(5.5)
        fake_scale.read(6.0)
        controller.on_shot_sample(sample(2.0, frame=1))

        assert events["frames"] == [1]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_checked_on_frame_change(self, fake_scale, profile):
        """Test entering a frame whose exit is already met fires immediately."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(0)
        controller.set_profile(profile)
        events = record(controller)
        await start_with_tare(controller, fake_scale)

        controller.on_shot_sample(sample(0.0, frame=0))
        fake_scale.read(8.0)
        controller.on_shot_sample(sample(1.0, frame=1))

        assert events["frames"] == [1]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_disengaged_before_extraction(self, fake_scale, profile):
        """Test preheat frames never trigger weight exits."""
        controller = make_controller(fake_scale)
        controller.set_target_weight(0)
        controller.set_profile(profile)
        events = record(controller)
        await start_with_tare(controller, fake_scale)

        controller.on_shot_sample(sample(0.0, frame=1))
        fake_scale.read(8.0)
        controller.on_shot_sample(sample(1.0, frame=1))

        assert events["frames"] == []
        assert controller.current_frame == -1
        controller.shutdown()


class TestFlowScaleIntegration:
    """Test the controller feeding a virtual scale."""

    @pytest.mark.asyncio
    async def test_machine_flow_drives_weight(self):
        """Test machine samples integrate into weight and stop the shot."""
        scale = FlowScale()
        controller = make_controller(scale)
        controller.set_target_weight(2.0)
        events = record(controller)

        controller.start_shot()
        await settle()
        assert controller.tare_state == TareState.COMPLETE

        controller.on_shot_sample(sample(0.0, flow=2.0))
        controller.on_shot_sample(sample(0.5, flow=2.0))
        assert controller.current_weight == 1.0

        controller.on_shot_sample(sample(2.0, flow=2.0))
        assert controller.current_weight == 1.0

        controller.on_shot_sample(sample(2.5, flow=2.0))
        assert controller.current_weight == 2.0
        assert events["stops"] == [True]
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_flow_scale_reset_on_start(self):
        """Test a new shot starts the virtual scale from zero."""
        scale = FlowScale()
        scale.add_flow_sample(3.0, 0.5)
        controller = make_controller(scale, retare_on_start=False)

        controller.start_shot()

        assert scale.weight == 0.0
        controller.shutdown()

    @pytest.mark.asyncio
    async def test_physical_scale_gets_machine_dt(self, fake_scale):
        """Test every attached device receives flow with the machine delta."""
        controller = make_controller(fake_scale, retare_on_start=False)
        controller.start_shot()

        controller.on_shot_sample(sample(10.0, flow=1.5))
        controller.on_shot_sample(sample(10.25, flow=1.5))

        assert fake_scale.flow_samples == [(1.5, 0.25)]
        controller.shutdown()


class TestDebugCapture:
    """Test shot debug capture wiring."""

    @pytest.mark.asyncio
    async def test_capture_spans_the_shot(self):
        """Test capture starts with the shot and stops when it ends."""
        debug_logger = ShotDebugLogger()
        controller = make_controller(debug_logger=debug_logger)

        controller.start_shot()
        assert debug_logger.is_capturing is True
        controller.on_shot_sample(sample(0.0, frame=0))
        controller.end_shot()

        assert debug_logger.is_capturing is False
        log = debug_logger.captured_log
        assert "START Shot capture started" in log
        assert "Extraction started" in log
        assert "Shot ended" in log
        assert log.splitlines()[-1].endswith("STOP Shot capture stopped")
