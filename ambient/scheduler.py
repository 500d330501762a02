"""
Adaptive-probability playback scheduler.

The scheduler is a small state machine driven entirely by callbacks:

    STOPPED --start--> WAITING --timer--> DECIDING --hit--> PLAYING
                          ^                  |                 |
                          |------ miss ------+                 |
                          +--- settle delay, then interval <---+  (playback done)

On every decision a roll in [0, 100) is compared with the current probability.
A miss escalates the probability and re-arms the timer with a little jitter.
A hit plays one clip from the group; once playback reports done (finished or
failed), the probability goes back to its initial value and, after a short
settle delay, the next wait is armed.

All entry points (start, stop, timer callbacks, playback completion) take the
same re-entrant lock, so callbacks arriving on timer or audio threads never
overlap. Each run carries an id; callbacks from a stopped or older run are
ignored.
"""

from dataclasses import dataclass, replace
from enum import Enum
import itertools
import logging
import random
import threading
from typing import Callable, Optional, Union

from . import probability
from . import status
from .config import ScheduleConfig
from .constants import JITTER_MAX_SECONDS, SETTLE_DELAY_SECONDS
from .errors import EmptyGroupError
from .library import AssetGroup
from .playback import PlaybackPort, PlaybackResult
from .selector import Selector
from .status import StatusListener, StatusUpdate
from .timers import ThreadingTimerService, TimerHandle, TimerService

logger = logging.getLogger(__name__)

ConfigSource = Union[ScheduleConfig, Callable[[], ScheduleConfig]]
GroupSource = Union[AssetGroup, Callable[[], AssetGroup]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    WAITING = "waiting"
    DECIDING = "deciding"
    PLAYING = "playing"


@dataclass
class RunState:
    """Mutable state of one run (start to stop). Owned by the Scheduler."""
    run_id: int
    current_probability: float
    last_played: Optional[str] = None
    pending_timer: Optional[TimerHandle] = None
    pending_asset: Optional[str] = None
    running: bool = True


def _as_source(value):
    """Turn a snapshot into a zero-argument callable; callables pass through."""
    if callable(value):
        return value
    return lambda: value


class Scheduler:
    """Decides when to play a clip and which one."""

    def __init__(
        self,
        playback: PlaybackPort,
        timers: Optional[TimerService] = None,
        rng: Optional[random.Random] = None,
        selector: Optional[Selector] = None,
        status_listener: Optional[StatusListener] = None,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        jitter_max: float = JITTER_MAX_SECONDS,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            playback: Audio engine that plays the chosen clips
            timers: Timer service (defaults to threading timers)
            rng: Random source for the trigger rolls and jitter
            selector: Clip selector (defaults to one sharing rng)
            status_listener: Called with a StatusUpdate at every transition
            settle_delay: Pause after a clip before the next wait is armed
            jitter_max: Upper bound (exclusive) of the random extra wait after a miss
        """
        self.playback = playback
        self.timers = timers or ThreadingTimerService()
        self.rng = rng or random.Random()
        self.selector = selector or Selector(self.rng)
        self.status_listener = status_listener
        self.settle_delay = settle_delay
        self.jitter_max = jitter_max

        self._lock = threading.RLock()
        self._state = SchedulerState.STOPPED
        self._run: Optional[RunState] = None
        self._config_source: Optional[Callable[[], ScheduleConfig]] = None
        self._group_source: Optional[Callable[[], AssetGroup]] = None
        self._run_ids = itertools.count(1)

    # ------------ queries ------------
    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._run is not None

    @property
    def current_probability(self) -> Optional[float]:
        with self._lock:
            return self._run.current_probability if self._run else None

    @property
    def last_played(self) -> Optional[str]:
        with self._lock:
            return self._run.last_played if self._run else None

    def snapshot(self) -> Optional[RunState]:
        """Copy of the current RunState, or None when stopped."""
        with self._lock:
            return replace(self._run) if self._run else None

    # ------------ public API ------------
    def start(self, config: ConfigSource, group: GroupSource) -> bool:
        """
        Start deciding.

        Args:
            config: ScheduleConfig snapshot, or a callable returning the current one
            group: AssetGroup snapshot, or a callable returning the current one

        Returns:
            True if a new run started, False if one was already running

        Raises:
            EmptyGroupError: If the group has no members (the scheduler stays stopped)
        """
        with self._lock:
            if self._run is not None:
                logger.info("Scheduler already running; start ignored")
                return False

            config_source = _as_source(config)
            group_source = _as_source(group)
            snapshot = config_source()
            current_group = group_source()
            if not current_group.members:
                logger.warning(f"Refusing to start: group '{current_group.name}' is empty")
                raise EmptyGroupError(current_group.name)

            self._config_source = config_source
            self._group_source = group_source
            self._run = RunState(
                run_id=next(self._run_ids),
                current_probability=probability.reset(snapshot),
            )
            self._state = SchedulerState.WAITING
            logger.info(
                f"▶ Scheduler started | group={current_group.name} ({len(current_group.members)} files) | "
                f"{snapshot.describe()}"
            )
            self._arm(snapshot.interval_seconds, self._on_timer)
            self._emit(status.started(self._run.current_probability))
            return True

    def stop(self) -> bool:
        """
        Stop deciding and cancel any pending wait.

        Returns:
            True if a run was stopped, False if already stopped
        """
        with self._lock:
            if self._run is None:
                return False
            self._halt()
            return True

    # ------------ callbacks ------------
    def _on_timer(self, run_id: int) -> None:
        with self._lock:
            if not self._is_current(run_id):
                logger.debug(f"Ignoring stale decision timer (run {run_id})")
                return

            run = self._run
            run.pending_timer = None
            self._state = SchedulerState.DECIDING
            config = self._config_source()

            roll = self.rng.random() * 100.0
            if roll < run.current_probability:
                logger.info(f"🎲 Hit: rolled {roll:.1f} < {run.current_probability:.1f}%", extra={'simple': True})
                self._play(run, config)
                return

            previous = run.current_probability
            run.current_probability = probability.escalate(previous, config)
            self._state = SchedulerState.WAITING
            jitter = self.rng.random() * self.jitter_max
            logger.info(
                f"🎲 Miss: rolled {roll:.1f} >= {previous:.1f}% | next {run.current_probability:.1f}% "
                f"in {config.interval_seconds + jitter:.2f}s",
                extra={'simple': True}
            )
            self._arm(config.interval_seconds + jitter, self._on_timer)
            self._emit(status.missed(run.current_probability))

    def _on_playback_complete(self, run_id: int, result: PlaybackResult) -> None:
        with self._lock:
            if not self._is_current(run_id) or self._state is not SchedulerState.PLAYING:
                logger.debug(f"Ignoring stale playback completion for {result.asset} (run {run_id})")
                return

            run = self._run
            config = self._config_source()
            if result.ok:
                logger.info(f"⏹ Finished: {result.asset}", extra={'simple': True})
            else:
                logger.warning(f"Playback failed for {result.asset}: {result.reason}")

            run.current_probability = probability.reset(config)
            run.last_played = run.pending_asset or result.asset
            run.pending_asset = None
            self._state = SchedulerState.WAITING
            self._arm(self.settle_delay, self._on_settled)

            if not result.ok:
                self._emit(status.playback_failed(result.asset, result.reason))

    def _on_settled(self, run_id: int) -> None:
        with self._lock:
            if not self._is_current(run_id):
                logger.debug(f"Ignoring stale settle timer (run {run_id})")
                return

            run = self._run
            run.pending_timer = None
            config = self._config_source()
            self._arm(config.interval_seconds, self._on_timer)
            self._emit(status.resumed(run.current_probability))

    # ------------ internals ------------
    def _play(self, run: RunState, config: ScheduleConfig) -> None:
        group = self._group_source()
        if not group.members:
            logger.warning(f"Group '{group.name}' became empty; stopping")
            self._emit(status.group_empty(group.name))
            if self._is_current(run.run_id):
                self._halt()
            return

        asset = self.selector.pick(group.members, run.last_played, config.anti_repeat)
        run.pending_asset = asset
        self._state = SchedulerState.PLAYING
        logger.info(f"Playing: {asset}")
        self._emit(status.playing(asset))
        if not self._is_current(run.run_id):
            # The status listener stopped us
            return

        run_id = run.run_id
        try:
            self.playback.play(asset, config.volume, lambda result: self._on_playback_complete(run_id, result))
        except Exception as e:
            logger.error(f"Playback engine raised for {asset}: {e}", exc_info=True)
            self._on_playback_complete(run_id, PlaybackResult.failed(asset, str(e)))

    def _arm(self, delay_seconds: float, on_fire: Callable[[int], None]) -> None:
        run = self._run
        if run.pending_timer is not None:
            run.pending_timer.cancel()
        run_id = run.run_id
        run.pending_timer = self.timers.call_later(delay_seconds, lambda: on_fire(run_id))

    def _halt(self) -> None:
        run = self._run
        run.running = False
        if run.pending_timer is not None:
            run.pending_timer.cancel()
            run.pending_timer = None
        if run.pending_asset is not None:
            try:
                self.playback.cancel()
            except Exception as e:
                logger.error(f"Failed to cancel playback of {run.pending_asset}: {e}", exc_info=True)
            run.pending_asset = None

        self._run = None
        self._state = SchedulerState.STOPPED
        logger.info("⏹ Scheduler stopped")
        self._emit(status.stopped())

    def _is_current(self, run_id: int) -> bool:
        return self._run is not None and self._run.running and self._run.run_id == run_id

    def _emit(self, update: StatusUpdate) -> None:
        if self.status_listener is None:
            return
        try:
            self.status_listener(update)
        except Exception as e:
            logger.error(f"Status listener failed on {update.kind.value}: {e}", exc_info=True)
