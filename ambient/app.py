"""
AmbientPlayer: the sound library, the schedule settings and the scheduler wired
to an audio engine, plus loading the saved library.
"""

import logging
import sys
from typing import Optional

from .config import SettingsHolder
from .constants import SOUND_DIR
from .errors import LibraryError
from .file_manager import FileManager
from .library import AssetGroup, SoundLibrary
from .playback import PlaybackPort
from .scheduler import Scheduler
from .state import ConfigStore
from .status import StatusListener, StatusUpdate

# Logging is configured in main.py
logger = logging.getLogger(__name__)


def load_library(store: ConfigStore) -> SoundLibrary:
    """
    Load the saved library, falling back to the default one.

    A document that cannot be parsed is logged and replaced by the default
    library (it is not overwritten until the next save).
    """
    document = store.load()
    if document is None:
        logger.info("No saved library; using the default sound set")
        return SoundLibrary.default()
    try:
        return SoundLibrary.from_document(document)
    except LibraryError as e:
        logger.warning(f"Saved library is invalid ({e}); using the default sound set")
        return SoundLibrary.default()


class AmbientPlayer:
    """Wires the sound library, the settings and the scheduler to an audio engine."""

    def __init__(
        self,
        store: ConfigStore,
        settings: Optional[SettingsHolder] = None,
        sound_dir: str = SOUND_DIR,
        playback: Optional[PlaybackPort] = None,
        status_listener: Optional[StatusListener] = None,
        **scheduler_options,
    ) -> None:
        """
        Initialize the ambient player.

        Args:
            store: Where the library document lives
            settings: Schedule settings (defaults from the environment)
            sound_dir: Folder holding the sound files
            playback: Audio engine (defaults to the pygame AudioPlayer)
            status_listener: Receives every StatusUpdate (e.g. to print it)
            **scheduler_options: Passed to Scheduler (timers, rng, settle_delay, jitter_max)
        """
        self.store = store
        self.settings = settings or SettingsHolder()
        self.sound_dir = sound_dir
        self.library = load_library(store)
        self.file_manager = FileManager()
        self.status_listener = status_listener
        self.last_status: Optional[StatusUpdate] = None

        if playback is None:
            # Imported here so library-only commands never touch the audio device
            from .audio_player import AudioPlayer
            playback = AudioPlayer(sound_dir)
        self.playback = playback
        self.scheduler = Scheduler(self.playback, status_listener=self._on_status, **scheduler_options)
        logger.info("AmbientPlayer initialized")

    def current_group(self, name: str) -> AssetGroup:
        """Current members of a group; a deleted group reads as empty."""
        try:
            return self.library.get_group(name)
        except LibraryError:
            return AssetGroup(name)

    def start(self, group_name: str) -> bool:
        """
        Start the scheduler on a group.

        Raises:
            LibraryError: If the group does not exist
            EmptyGroupError: If the group has no files
        """
        group = self.library.get_group(group_name)
        missing = self.file_manager.find_missing(self.sound_dir, list(group.members))
        if missing:
            logger.warning(f"Missing from {self.sound_dir}: {', '.join(missing)}")
        return self.scheduler.start(self.settings, lambda: self.current_group(group_name))

    def stop(self) -> bool:
        return self.scheduler.stop()

    def save(self) -> None:
        self.store.save(self.library.to_document())

    def import_library(self, path) -> SoundLibrary:
        """Replace the library with an imported document and save it."""
        self.library = SoundLibrary.import_json(path)
        self.save()
        return self.library

    def export_library(self, path):
        return self.library.export_json(path)

    def _on_status(self, update: StatusUpdate) -> None:
        self.last_status = update
        logger.debug(f"Status: {update.kind.value} | {update.message}")
        if self.status_listener is not None:
            self.status_listener(update)

    def sigterm_handler(self, _signo: int, _stack_frame) -> None:
        """
        Handle termination signal for graceful shutdown.

        Args:
            _signo: Signal number
            _stack_frame: Stack frame (unused)
        """
        logger.info("Received termination signal, shutting down gracefully...")
        self.stop()
        sys.exit(0)
