"""
Schedule configuration for the ambient trigger.

ScheduleConfig is an immutable snapshot of the settings the scheduler reads at
each decision point. Values are validated when a snapshot is built, so the
scheduler and probability model can assume every snapshot they see is sane.

SettingsHolder is the mutable side: the front end edits it, the scheduler pulls
a fresh snapshot from it on every tick.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum

from .constants import (
    DEFAULT_ANTI_REPEAT, DEFAULT_EXPONENTIAL_MULTIPLIER, DEFAULT_INITIAL_PROBABILITY,
    DEFAULT_INTERVAL_SECONDS, DEFAULT_LINEAR_STEP, DEFAULT_MODE, DEFAULT_VOLUME,
    MAX_PROBABILITY, MIN_PROBABILITY,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


class ProbabilityMode(str, Enum):
    """How the trigger probability grows after a miss."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"

    @classmethod
    def parse(cls, value) -> "ProbabilityMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigError(f"Unknown probability mode: {value!r} (expected 'linear' or 'exponential')") from None


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Immutable snapshot of the schedule settings.

    Attributes:
        interval_seconds: Base wait between decisions (> 0)
        initial_probability: Trigger chance in percent after start and after every hit (0-100)
        mode: LINEAR adds linear_step per miss, EXPONENTIAL multiplies by exponential_multiplier
        linear_step: Percentage points added per miss (> 0)
        exponential_multiplier: Factor applied per miss (> 1)
        anti_repeat: Lower the chance of replaying the previous clip
        volume: Playback volume (0-1)

    Raises:
        ConfigError: If any value is out of range
    """
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    initial_probability: float = DEFAULT_INITIAL_PROBABILITY
    mode: ProbabilityMode = ProbabilityMode.LINEAR
    linear_step: float = DEFAULT_LINEAR_STEP
    exponential_multiplier: float = DEFAULT_EXPONENTIAL_MULTIPLIER
    anti_repeat: bool = DEFAULT_ANTI_REPEAT
    volume: float = DEFAULT_VOLUME

    def __post_init__(self) -> None:
        # Accept "linear"/"exponential" strings from the CLI and env files
        object.__setattr__(self, 'mode', ProbabilityMode.parse(self.mode))

        if not self.interval_seconds > 0:
            raise ConfigError(f"Interval must be positive, got {self.interval_seconds}")
        if not MIN_PROBABILITY <= self.initial_probability <= MAX_PROBABILITY:
            raise ConfigError(
                f"Initial probability must be between {MIN_PROBABILITY:g} and {MAX_PROBABILITY:g}, "
                f"got {self.initial_probability}"
            )
        if not self.linear_step > 0:
            raise ConfigError(f"Linear step must be positive, got {self.linear_step}")
        if not self.exponential_multiplier > 1:
            raise ConfigError(f"Exponential multiplier must be greater than 1, got {self.exponential_multiplier}")
        if not 0.0 <= self.volume <= 1.0:
            raise ConfigError(f"Volume must be between 0 and 1, got {self.volume}")

    @classmethod
    def defaults(cls) -> "ScheduleConfig":
        """Build a snapshot from the environment-derived defaults in constants.py."""
        return cls(mode=DEFAULT_MODE)

    def with_changes(self, **changes) -> "ScheduleConfig":
        """Return a validated copy with the given fields replaced."""
        return replace(self, **changes)

    def describe(self) -> str:
        if self.mode is ProbabilityMode.LINEAR:
            growth = f"+{self.linear_step:g}%/miss"
        else:
            growth = f"x{self.exponential_multiplier:g}/miss"
        return (
            f"every {self.interval_seconds:g}s, start {self.initial_probability:g}% ({growth}), "
            f"volume {self.volume:.0%}, anti-repeat {'on' if self.anti_repeat else 'off'}"
        )


class SettingsHolder:
    """
    Thread-safe holder for the current ScheduleConfig.

    Callable, so it can be handed to the scheduler as a config source:
    every call returns the latest snapshot.
    """

    def __init__(self, config: ScheduleConfig = None):
        self._config = config or ScheduleConfig.defaults()
        self._lock = threading.Lock()

    def __call__(self) -> ScheduleConfig:
        return self.snapshot()

    def snapshot(self) -> ScheduleConfig:
        with self._lock:
            return self._config

    def update(self, **changes) -> ScheduleConfig:
        """
        Replace some settings.

        The new snapshot is validated before it becomes visible; on ConfigError
        the previous snapshot stays in place.
        """
        with self._lock:
            self._config = self._config.with_changes(**changes)
            config = self._config
        logger.debug(f"Settings updated: {config.describe()}")
        return config
