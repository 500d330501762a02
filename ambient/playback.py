"""
Playback port: the contract between the scheduler and the audio engine.

The scheduler asks the port to play one clip and hands it a completion
callback. The port resolves that callback exactly once, either as finished or
as failed with a reason. Both outcomes advance the scheduler; a failure is only
surfaced as a status message.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackResult:
    """Outcome of one play request."""
    asset: str
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def finished(cls, asset: str) -> "PlaybackResult":
        return cls(asset=asset, ok=True)

    @classmethod
    def failed(cls, asset: str, reason: str) -> "PlaybackResult":
        return cls(asset=asset, ok=False, reason=reason)


CompletionCallback = Callable[[PlaybackResult], None]


class PlaybackCompletion:
    """
    Wraps a completion callback so it fires at most once.

    Engines resolve from whichever thread notices the end of playback (or the
    error); later resolutions are dropped.
    """

    def __init__(self, asset: str, callback: CompletionCallback) -> None:
        self.asset = asset
        self._callback = callback
        self._lock = threading.Lock()
        self._resolved = False

    @property
    def resolved(self) -> bool:
        with self._lock:
            return self._resolved

    def finish(self) -> bool:
        return self._resolve(PlaybackResult.finished(self.asset))

    def fail(self, reason: str) -> bool:
        return self._resolve(PlaybackResult.failed(self.asset, reason))

    def _resolve(self, result: PlaybackResult) -> bool:
        with self._lock:
            if self._resolved:
                logger.debug(f"Ignoring duplicate completion for {self.asset}")
                return False
            self._resolved = True
        self._callback(result)
        return True


class PlaybackPort(ABC):
    """Audio engine used by the scheduler."""

    @abstractmethod
    def play(self, asset: str, volume: float, on_complete: CompletionCallback) -> None:
        """
        Start playing one clip without blocking.

        Args:
            asset: Clip identifier (a filename inside the sound folder)
            volume: Playback volume (0-1)
            on_complete: Called exactly once with a PlaybackResult when the
                         clip finished or could not be played
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop the in-flight clip, if any. Safe to call when idle."""
        pass
