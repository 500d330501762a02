"""
Trigger probability model.

Probabilities are percentages on the 0-100 scale. After every miss the value
escalates (additively or multiplicatively, depending on the configured mode);
after every hit it goes back to the configured initial value.
"""

from .config import ProbabilityMode, ScheduleConfig
from .constants import MAX_PROBABILITY, MIN_PROBABILITY


def clamp(value: float) -> float:
    """Clamp a probability into [0, 100]."""
    return max(MIN_PROBABILITY, min(value, MAX_PROBABILITY))


def escalate(current: float, config: ScheduleConfig) -> float:
    """
    Raise the trigger probability after a miss.

    Args:
        current: Current probability (0-100)
        config: Settings snapshot providing the mode and its step/multiplier

    Returns:
        The next probability, never above 100
    """
    if config.mode is ProbabilityMode.LINEAR:
        next_probability = current + config.linear_step
    else:
        next_probability = current * config.exponential_multiplier
    return clamp(next_probability)


def reset(config: ScheduleConfig) -> float:
    """Probability to use after a hit (and at start)."""
    return clamp(config.initial_probability)
