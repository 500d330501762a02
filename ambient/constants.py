"""Configuration constants for the ambient trigger."""

import logging
import os
from typing import Final

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to the default on bad input."""
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default


# Directory paths (expands ~ to full home directory path)
SOUND_DIR: Final[str] = os.path.expanduser(os.environ.get('AMBIENT_SOUND_DIR', '~/ambient-trigger/sound').strip())
CONFIG_PATH: Final[str] = os.path.expanduser(
    os.environ.get('AMBIENT_CONFIG_PATH', '~/ambient-trigger/sound_player_config.json').strip()
)
EXPORT_FILENAME: Final[str] = 'sound_player_config.json'
SOUND_EXTENSION: Final[str] = '.mp3'

# Schedule defaults (what the settings panel starts with)
DEFAULT_INTERVAL_SECONDS: Final[float] = _env_float('AMBIENT_INTERVAL', 10.0)
DEFAULT_INITIAL_PROBABILITY: Final[float] = _env_float('AMBIENT_INITIAL_PROBABILITY', 10.0)
DEFAULT_LINEAR_STEP: Final[float] = _env_float('AMBIENT_LINEAR_STEP', 5.0)
DEFAULT_EXPONENTIAL_MULTIPLIER: Final[float] = _env_float('AMBIENT_MULTIPLIER', 1.5)
DEFAULT_VOLUME: Final[float] = _env_float('AMBIENT_VOLUME', 0.5)
DEFAULT_MODE: Final[str] = os.environ.get('AMBIENT_MODE', 'linear').strip().lower()
DEFAULT_ANTI_REPEAT: Final[bool] = os.environ.get('AMBIENT_ANTI_REPEAT', 'true').strip().lower() in ('1', 'true', 'yes', 'on')

# Probability scale
MIN_PROBABILITY: Final[float] = 0.0
MAX_PROBABILITY: Final[float] = 100.0

# Scheduler timing and selection tuning
REPEAT_WEIGHT: Final[float] = _env_float('AMBIENT_REPEAT_WEIGHT', 0.5)  # Weight of the previous pick (others are 1.0)
SETTLE_DELAY_SECONDS: Final[float] = _env_float('AMBIENT_SETTLE_DELAY', 0.5)  # Pause after a clip before re-arming
JITTER_MAX_SECONDS: Final[float] = _env_float('AMBIENT_JITTER_MAX', 0.5)  # Upper bound of the random addition after a miss

# Playback engine
ERROR_GRACE_SECONDS: Final[float] = 1.0  # Pause before reporting a failed clip as done
MAX_CLIP_SECONDS: Final[int] = 3600  # Safety limit for a single clip
MIN_EXPECTED_FILE_BYTES: Final[int] = 1024  # Smaller files are logged as suspicious

# Default library document (used when nothing has been saved yet)
DEFAULT_FILES: Final[tuple] = ("breach.mp3", "kayo.mp3", "phoenix.mp3", "skye.mp3", "yoru.mp3")
DEFAULT_GROUPS: Final[tuple] = (
    ("All", DEFAULT_FILES),
    ("Initiators", ("breach.mp3", "kayo.mp3", "skye.mp3")),
    ("Duelists", ("phoenix.mp3", "yoru.mp3")),
    ("breach", ("breach.mp3",)),
    ("kayo", ("kayo.mp3",)),
    ("phoenix", ("phoenix.mp3",)),
    ("skye", ("skye.mp3",)),
    ("yoru", ("yoru.mp3",)),
)
