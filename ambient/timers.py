"""
One-shot timer service used by the scheduler.

The scheduler never sleeps. It asks a TimerService to call it back after a
delay and keeps the returned handle so the wait can be cancelled on stop.
Tests replace the threading implementation with a manually advanced clock.
"""

from abc import ABC, abstractmethod
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    """A pending callback that can be cancelled."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""
        pass


class TimerService(ABC):
    """Schedules callbacks after a delay."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """
        Run callback once after delay_seconds.

        Args:
            delay_seconds: Delay before the callback runs
            callback: Zero-argument callable

        Returns:
            Handle that cancels the pending callback
        """
        pass


class _ThreadingTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()

    def __repr__(self) -> str:
        return f"<TimerHandle {self._timer.name} alive={self._timer.is_alive()}>"


class ThreadingTimerService(TimerService):
    """TimerService backed by daemon threading.Timer instances."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay_seconds), self._run_callback, args=(callback,))
        timer.name = "AmbientTimer"
        timer.daemon = True
        timer.start()
        logger.debug(f"Timer armed for {delay_seconds:.3f}s")
        return _ThreadingTimerHandle(timer)

    @staticmethod
    def _run_callback(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            # Nothing above a timer thread would see this otherwise
            logger.error(f"Timer callback failed: {e}", exc_info=True)
