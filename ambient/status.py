"""Status updates emitted by the scheduler at each state transition."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class StatusKind(str, Enum):
    STARTED = "started"
    MISSED = "missed"
    PLAYING = "playing"
    PLAYBACK_FAILED = "playback_failed"
    RESUMED = "resumed"
    GROUP_EMPTY = "group_empty"
    STOPPED = "stopped"


@dataclass(frozen=True)
class StatusUpdate:
    """
    One human-readable status line plus the data behind it.

    probability is the chance (percent) that applies to the next decision,
    when one is scheduled.
    """
    kind: StatusKind
    message: str
    probability: Optional[float] = None
    asset: Optional[str] = None

    def __str__(self) -> str:
        return self.message


StatusListener = Callable[[StatusUpdate], None]


def started(probability: float) -> StatusUpdate:
    return StatusUpdate(StatusKind.STARTED, "Started: waiting for the first decision...", probability)


def missed(probability: float) -> StatusUpdate:
    return StatusUpdate(StatusKind.MISSED, f"... (next: {probability:.1f}%)", probability)


def playing(asset: str) -> StatusUpdate:
    return StatusUpdate(StatusKind.PLAYING, f"♪ Playing: {asset}", asset=asset)


def playback_failed(asset: str, reason: Optional[str]) -> StatusUpdate:
    detail = f" ({reason})" if reason else ""
    return StatusUpdate(StatusKind.PLAYBACK_FAILED, f"Error: could not play {asset}{detail}", asset=asset)


def resumed(probability: float) -> StatusUpdate:
    return StatusUpdate(StatusKind.RESUMED, "Decisions resumed", probability)


def group_empty(group_name: str) -> StatusUpdate:
    return StatusUpdate(StatusKind.GROUP_EMPTY, f"Group '{group_name}' has no sound files; stopping")


def stopped() -> StatusUpdate:
    return StatusUpdate(StatusKind.STOPPED, "Stopped")
