"""
Contract tests for the playback scheduler state machine.

Covers:
- Start: fresh run state, one interval wait, empty groups rejected, re-entrancy guard
- Decisions: miss escalation with jitter, hit playback, reset after playback
- Playback failures: non-fatal, still reset and re-arm
- Stop: idempotent, cancels waits, late callbacks are ignored
- Settings and groups are read fresh at every decision
- Status updates at every transition
"""

import random

import pytest

from ambient.errors import EmptyGroupError
from ambient.library import AssetGroup
from ambient.playback import PlaybackResult
from ambient.scheduler import Scheduler, SchedulerState
from ambient.selector import Selector
from ambient.status import StatusKind
from ambient.tests.contracts.test_doubles import (
    ImmediatePlaybackPort,
    MISS_ROLL,
    NO_JITTER,
    RaisingPlaybackPort,
    ScriptedRandom,
    StatusRecorder,
)

HIT_ROLL = 0.05  # 5.0 < any probability used below


def _hit_and_finish(scheduler, scripted_rng, manual_timers, fake_playback):
    scripted_rng.push(HIT_ROLL)
    manual_timers.fire_next()
    fake_playback.finish()


class TestStart:
    """Start creates a fresh run and arms exactly one wait."""

    def test_start_arms_one_interval_wait(self, scheduler, manual_timers, linear_config, group_ab):
        assert scheduler.start(linear_config, group_ab) is True

        assert scheduler.state is SchedulerState.WAITING
        assert scheduler.is_running
        assert scheduler.current_probability == 10.0
        assert scheduler.last_played is None
        assert len(manual_timers.pending) == 1
        assert manual_timers.pending[0].delay == 10.0

    def test_no_decision_before_interval(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        assert manual_timers.advance(9.9) == 0
        assert scripted_rng.calls == 0

    def test_empty_group_rejected(self, scheduler, manual_timers, status_recorder, linear_config):
        with pytest.raises(EmptyGroupError):
            scheduler.start(linear_config, AssetGroup("Empty"))

        assert scheduler.state is SchedulerState.STOPPED
        assert not scheduler.is_running
        assert manual_timers.pending == []
        assert status_recorder.updates == []

    def test_start_while_running_is_a_noop(
        self, scheduler, manual_timers, scripted_rng, fake_playback, linear_config, group_ab
    ):
        scheduler.start(linear_config, group_ab)
        _hit_and_finish(scheduler, scripted_rng, manual_timers, fake_playback)
        manual_timers.fire_next()  # settle
        scripted_rng.push(MISS_ROLL, NO_JITTER)
        manual_timers.fire_next()  # miss: 10 -> 25
        last = scheduler.last_played
        pending_before = manual_timers.pending

        assert scheduler.start(linear_config, group_ab) is False

        assert scheduler.current_probability == 25.0
        assert scheduler.last_played == last
        assert manual_timers.pending == pending_before

    def test_restart_after_stop_begins_fresh(
        self, scheduler, manual_timers, scripted_rng, fake_playback, linear_config, group_ab
    ):
        scheduler.start(linear_config, group_ab)
        _hit_and_finish(scheduler, scripted_rng, manual_timers, fake_playback)
        assert scheduler.last_played is not None
        scheduler.stop()

        scheduler.start(linear_config.with_changes(initial_probability=30.0), group_ab)

        assert scheduler.current_probability == 30.0
        assert scheduler.last_played is None


class TestMiss:
    """A miss escalates and re-arms with interval plus jitter."""

    def test_linear_misses(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        seen = []
        for _ in range(3):
            scripted_rng.push(MISS_ROLL, NO_JITTER)
            manual_timers.fire_next()
            seen.append(scheduler.current_probability)
        assert seen == [25.0, 40.0, 55.0]

    def test_exponential_misses(self, scheduler, manual_timers, scripted_rng, exponential_config, group_ab):
        scheduler.start(exponential_config, group_ab)
        seen = []
        for _ in range(2):
            scripted_rng.push(MISS_ROLL, NO_JITTER)
            manual_timers.fire_next()
            seen.append(scheduler.current_probability)
        assert seen == [20.0, 40.0]

    def test_probability_never_exceeds_100(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config.with_changes(linear_step=45.0), group_ab)
        # 10 -> 55 -> 100
        for _ in range(2):
            scripted_rng.push(0.9999, NO_JITTER)
            manual_timers.fire_next()
            assert scheduler.current_probability <= 100.0
        assert scheduler.current_probability == 100.0

    def test_miss_rearms_with_jitter(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(MISS_ROLL, 0.5)
        manual_timers.fire_next()

        assert scheduler.state is SchedulerState.WAITING
        assert len(manual_timers.pending) == 1
        assert manual_timers.pending[0].delay == pytest.approx(10.25)

    def test_jitter_stays_below_ceiling(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(MISS_ROLL, 0.99999)
        manual_timers.fire_next()

        delay = manual_timers.pending[0].delay
        assert 10.0 <= delay < 10.5

    def test_roll_equal_to_probability_is_a_miss(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                                  linear_config, group_ab):
        scheduler.start(linear_config.with_changes(initial_probability=25.0), group_ab)
        scripted_rng.push(0.25, NO_JITTER)  # roll 25.0, probability 25.0
        manual_timers.fire_next()
        assert fake_playback.requests == []
        assert scheduler.current_probability == 40.0


class TestHit:
    """A hit plays one clip, then resets and re-arms after the settle delay."""

    def test_hit_requests_playback(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                   linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()

        assert scheduler.state is SchedulerState.PLAYING
        assert len(fake_playback.requests) == 1
        asset, volume = fake_playback.requests[0]
        assert asset in group_ab.members
        assert volume == 0.5
        # While playing, the pending playback is the only wait
        assert manual_timers.pending == []

    def test_completion_resets_and_settles(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                           linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(MISS_ROLL, NO_JITTER, MISS_ROLL, NO_JITTER)
        manual_timers.fire_next()
        manual_timers.fire_next()
        assert scheduler.current_probability == 40.0

        scripted_rng.push(0.30)  # roll 30 < 40
        manual_timers.fire_next()
        asset = fake_playback.requests[0][0]
        fake_playback.finish()

        assert scheduler.current_probability == 10.0
        assert scheduler.last_played == asset
        assert scheduler.state is SchedulerState.WAITING
        assert len(manual_timers.pending) == 1
        assert manual_timers.pending[0].delay == 0.5

        manual_timers.fire_next()
        assert len(manual_timers.pending) == 1
        assert manual_timers.pending[0].delay == 10.0

    def test_synchronous_completion(self, manual_timers, linear_config, group_ab):
        rng = ScriptedRandom([HIT_ROLL])
        playback = ImmediatePlaybackPort()
        scheduler = Scheduler(playback, timers=manual_timers, rng=rng, selector=Selector(random.Random(1)))
        scheduler.start(linear_config, group_ab)
        manual_timers.fire_next()

        assert playback.requests
        assert scheduler.state is SchedulerState.WAITING
        assert scheduler.last_played == playback.requests[0]
        assert len(manual_timers.pending) == 1

    def test_anti_repeat_uses_last_played(self, manual_timers, fake_playback, linear_config, group_ab):
        calls = []

        class SpySelector(Selector):
            def pick(self, candidates, last_played, anti_repeat):
                calls.append((tuple(candidates), last_played, anti_repeat))
                return super().pick(candidates, last_played, anti_repeat)

        scheduler = Scheduler(
            fake_playback, timers=manual_timers, rng=ScriptedRandom([HIT_ROLL, HIT_ROLL]),
            selector=SpySelector(random.Random(1)),
        )
        scheduler.start(linear_config, group_ab)
        manual_timers.fire_next()
        first = fake_playback.requests[0][0]
        fake_playback.finish()
        manual_timers.fire_next()  # settle
        manual_timers.fire_next()

        assert calls[0] == (group_ab.members, None, True)
        assert calls[1] == (group_ab.members, first, True)


class TestPlaybackFailure:
    """Failures are non-fatal and surface as a status."""

    def test_failure_resets_and_rearms(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                       status_recorder, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(MISS_ROLL, NO_JITTER, HIT_ROLL)
        manual_timers.fire_next()
        manual_timers.fire_next()
        asset = fake_playback.requests[0][0]
        fake_playback.fail("file not found")

        assert scheduler.is_running
        assert scheduler.state is SchedulerState.WAITING
        assert scheduler.current_probability == 10.0
        assert scheduler.last_played == asset
        assert len(manual_timers.pending) == 1

        failure = status_recorder.updates[-1]
        assert failure.kind is StatusKind.PLAYBACK_FAILED
        assert failure.asset == asset
        assert "file not found" in failure.message

    def test_engine_exception_counts_as_failure(self, manual_timers, linear_config, group_ab):
        recorder = StatusRecorder()
        scheduler = Scheduler(
            RaisingPlaybackPort(), timers=manual_timers, rng=ScriptedRandom([HIT_ROLL]),
            selector=Selector(random.Random(1)), status_listener=recorder,
        )
        scheduler.start(linear_config, group_ab)
        manual_timers.fire_next()

        assert scheduler.state is SchedulerState.WAITING
        assert StatusKind.PLAYBACK_FAILED in [u.kind for u in recorder.updates]
        assert len(manual_timers.pending) == 1

    def test_duplicate_completion_is_ignored(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        captured = []

        class CapturingPlayback(ImmediatePlaybackPort):
            def play(self, asset, volume, on_complete):
                captured.append(on_complete)

        scheduler.playback = CapturingPlayback()
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()

        captured[0](PlaybackResult.finished("phoenix.mp3"))
        captured[0](PlaybackResult.finished("phoenix.mp3"))
        assert len(manual_timers.pending) == 1


class TestStop:
    """Stop is idempotent and silences late callbacks."""

    def test_stop_twice(self, scheduler, manual_timers, scripted_rng, fake_playback, status_recorder,
                        linear_config, group_ab):
        scheduler.start(linear_config, group_ab)

        assert scheduler.stop() is True
        assert scheduler.stop() is False

        assert scheduler.state is SchedulerState.STOPPED
        assert scheduler.snapshot() is None
        assert manual_timers.pending == []
        assert status_recorder.kinds == ["started", "stopped"]

        assert manual_timers.advance(1000.0) == 0
        assert scripted_rng.calls == 0
        assert fake_playback.requests == []

    def test_stop_when_never_started(self, scheduler, status_recorder):
        assert scheduler.stop() is False
        assert scheduler.state is SchedulerState.STOPPED
        assert status_recorder.updates == []

    def test_stop_while_playing_cancels_and_ignores_completion(
        self, scheduler, manual_timers, scripted_rng, fake_playback, linear_config, group_ab
    ):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()
        scheduler.stop()

        assert fake_playback.cancel_calls == 1
        fake_playback.finish()
        assert scheduler.state is SchedulerState.STOPPED
        assert manual_timers.pending == []

    def test_late_timer_after_stop_is_ignored(self, scheduler, manual_timers, scripted_rng, linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        timer = manual_timers.pending[0]
        scheduler.stop()

        timer.callback()

        assert scripted_rng.calls == 0
        assert scheduler.state is SchedulerState.STOPPED

    def test_timer_from_previous_run_is_ignored(self, scheduler, manual_timers, scripted_rng,
                                                linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        old_timer = manual_timers.pending[0]
        scheduler.stop()
        scheduler.start(linear_config, group_ab)

        old_timer.callback()

        assert scripted_rng.calls == 0
        assert len(manual_timers.pending) == 1
        assert scheduler.current_probability == 10.0

    def test_listener_can_stop_before_playback(self, manual_timers, fake_playback, linear_config, group_ab):
        holder = {}

        def stop_on_playing(update):
            if update.kind is StatusKind.PLAYING:
                holder["scheduler"].stop()

        scheduler = Scheduler(
            fake_playback, timers=manual_timers, rng=ScriptedRandom([HIT_ROLL]),
            selector=Selector(random.Random(1)), status_listener=stop_on_playing,
        )
        holder["scheduler"] = scheduler
        scheduler.start(linear_config, group_ab)
        manual_timers.fire_next()

        assert fake_playback.requests == []
        assert scheduler.state is SchedulerState.STOPPED
        assert manual_timers.pending == []


class TestFreshReads:
    """Settings and group contents are read at each decision."""

    def test_settings_changes_apply_at_next_tick(self, scheduler, manual_timers, scripted_rng, settings, group_ab):
        scheduler.start(settings, group_ab)
        settings.update(linear_step=5.0, interval_seconds=30.0)
        scripted_rng.push(MISS_ROLL, NO_JITTER)
        manual_timers.fire_next()

        assert scheduler.current_probability == 15.0
        assert manual_timers.pending[0].delay == 30.0

    def test_volume_read_at_playback(self, scheduler, manual_timers, scripted_rng, fake_playback, settings, group_ab):
        scheduler.start(settings, group_ab)
        settings.update(volume=0.2)
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()
        assert fake_playback.requests[0][1] == 0.2

    def test_reset_uses_current_initial_probability(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                                    settings, group_ab):
        scheduler.start(settings, group_ab)
        settings.update(initial_probability=35.0)
        _hit_and_finish(scheduler, scripted_rng, manual_timers, fake_playback)
        assert scheduler.current_probability == 35.0

    def test_group_members_read_at_selection(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                             linear_config, group_ab):
        groups = {"current": group_ab}
        scheduler.start(linear_config, lambda: groups["current"])
        groups["current"] = AssetGroup("Duelists", ("viper.mp3",))
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()
        assert fake_playback.requests[0][0] == "viper.mp3"

    def test_group_emptied_while_running_stops(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                               status_recorder, linear_config, group_ab):
        groups = {"current": group_ab}
        scheduler.start(linear_config, lambda: groups["current"])
        groups["current"] = AssetGroup("Duelists")
        scripted_rng.push(HIT_ROLL)
        manual_timers.fire_next()

        assert fake_playback.requests == []
        assert scheduler.state is SchedulerState.STOPPED
        assert manual_timers.pending == []
        assert status_recorder.kinds[-2:] == ["group_empty", "stopped"]


class TestStatusUpdates:
    """A status update is emitted at each transition."""

    def test_full_cycle(self, scheduler, manual_timers, scripted_rng, fake_playback, status_recorder,
                        linear_config, group_ab):
        scheduler.start(linear_config, group_ab)
        scripted_rng.push(MISS_ROLL, NO_JITTER)
        manual_timers.fire_next()
        _hit_and_finish(scheduler, scripted_rng, manual_timers, fake_playback)
        manual_timers.fire_next()  # settle
        scheduler.stop()

        assert status_recorder.kinds == ["started", "missed", "playing", "resumed", "stopped"]
        assert status_recorder.updates[0].probability == 10.0
        assert status_recorder.updates[1].probability == 25.0
        assert "25.0%" in status_recorder.updates[1].message
        assert status_recorder.updates[2].asset == fake_playback.requests[0][0]
        assert status_recorder.updates[3].probability == 10.0

    def test_listener_errors_do_not_break_the_loop(self, manual_timers, fake_playback, linear_config, group_ab):
        def broken_listener(update):
            raise RuntimeError("display went away")

        scheduler = Scheduler(
            fake_playback, timers=manual_timers, rng=ScriptedRandom([MISS_ROLL, NO_JITTER]),
            selector=Selector(random.Random(1)), status_listener=broken_listener,
        )
        scheduler.start(linear_config, group_ab)
        manual_timers.fire_next()

        assert scheduler.current_probability == 25.0
        assert len(manual_timers.pending) == 1


class TestSingleWait:
    """Exactly one pending wait while running, none while stopped."""

    def test_one_wait_throughout_a_session(self, scheduler, manual_timers, scripted_rng, fake_playback,
                                           linear_config, group_ab):
        def waits():
            return len(manual_timers.pending) + fake_playback.in_flight

        assert waits() == 0
        scheduler.start(linear_config, group_ab)
        assert waits() == 1

        for roll in (MISS_ROLL, MISS_ROLL, HIT_ROLL, MISS_ROLL, HIT_ROLL):
            if roll == MISS_ROLL:
                scripted_rng.push(roll, NO_JITTER)
                manual_timers.fire_next()
            else:
                scripted_rng.push(roll)
                manual_timers.fire_next()
                assert waits() == 1
                fake_playback.finish()
                assert waits() == 1
                manual_timers.fire_next()  # settle
            assert waits() == 1

        scheduler.stop()
        assert len(manual_timers.pending) == 0
