"""
Audio playback using pygame mixer.

This module provides the PlaybackPort the scheduler plays clips through. It
includes:
- Headless environment support (WSL, servers, Raspberry Pi)
- File validation before playback
- Non-blocking playback with a watcher thread that reports completion
- Safety limits to prevent runaway playback
- Error handling and recovery

Example:
    ```python
    from ambient.audio_player import AudioPlayer

    player = AudioPlayer(sound_dir="~/ambient-trigger/sound")
    player.play("kayo.mp3", 0.5, lambda result: print(result.ok))
    ```
"""

import logging
import os
import threading
import time
from typing import Optional

import pygame

from .constants import ERROR_GRACE_SECONDS, MAX_CLIP_SECONDS, MIN_EXPECTED_FILE_BYTES
from .playback import CompletionCallback, PlaybackCompletion, PlaybackPort

logger = logging.getLogger(__name__)

class AudioPlayer(PlaybackPort):
    """
    Plays sound files from the sound folder using pygame mixer.

    play() returns immediately. A daemon watcher thread polls the mixer and
    resolves the completion once the clip ends, fails, or is cancelled.

    Attributes:
        TICK_RATE (int): Polls per second while a clip is playing (default: 10)
    """

    TICK_RATE = 10

    def __init__(
        self,
        sound_dir: str,
        frequency: int = 48000,
        buffer_size: int = 2048,
        error_grace_seconds: float = ERROR_GRACE_SECONDS,
        max_clip_seconds: float = MAX_CLIP_SECONDS,
    ) -> None:
        """
        Initialize the audio player.

        Sets up pygame mixer for audio playback, with a dummy video driver for
        headless environments and retry logic for "device busy" errors.

        Args:
            sound_dir: Folder the clip identifiers are resolved against
            frequency: Audio frequency in Hz (default: 48000)
            buffer_size: Audio buffer size in samples (default: 2048)
            error_grace_seconds: Pause before a failed clip is reported as done
            max_clip_seconds: Clips still playing after this long are stopped

        Raises:
            pygame.error: If pygame mixer initialization fails after retries
        """
        self.sound_dir = os.path.expanduser(sound_dir)
        self.error_grace_seconds = error_grace_seconds
        self.max_clip_seconds = max_clip_seconds

        self._lock = threading.RLock()
        self._current: Optional[PlaybackCompletion] = None
        self._watcher: Optional[threading.Thread] = None

        self._init_mixer(frequency, buffer_size)

    def _init_mixer(self, frequency: int, buffer_size: int) -> None:
        # Set dummy video driver for headless environments (WSL, servers, etc.)
        if 'DISPLAY' not in os.environ:
            os.environ['SDL_VIDEODRIVER'] = 'dummy'

        audio_driver = os.environ.get('AMBIENT_AUDIO_DRIVER', '').strip()
        if audio_driver:
            os.environ['SDL_AUDIODRIVER'] = audio_driver
            logger.debug(f"Configured pygame to use audio driver: {audio_driver}")

        max_retries = 3
        retry_delay = 1.0  # seconds

        for attempt in range(1, max_retries + 1):
            try:
                # Try to cleanup any existing mixer instance first
                if pygame.mixer.get_init():
                    try:
                        pygame.mixer.music.stop()
                        pygame.mixer.quit()
                        time.sleep(0.1)
                    except pygame.error as e:
                        logger.debug(f"Ignoring mixer cleanup error: {e}")

                pygame.mixer.pre_init(frequency=frequency, buffer=buffer_size)
                pygame.mixer.init()
                logger.info("Audio player initialized successfully")
                return

            except pygame.error as e:
                error_msg = str(e)
                is_device_busy = 'busy' in error_msg.lower() or 'resource' in error_msg.lower()

                if attempt < max_retries and is_device_busy:
                    logger.warning(f"Audio device busy (attempt {attempt}/{max_retries}), retrying in {retry_delay}s...")
                    time.sleep(retry_delay)
                    retry_delay *= 1.5
                else:
                    logger.error(f"Failed to initialize audio player: {e}")
                    if is_device_busy:
                        logger.error("Audio device is busy. Another process may be holding it.")
                    raise

    def resolve_path(self, asset: str) -> str:
        return os.path.join(self.sound_dir, asset)

    def _validate_file(self, path: str) -> Optional[str]:
        """Return a failure reason, or None when the file looks playable."""
        if not path:
            return "empty path"
        if not os.path.exists(path):
            return "file not found"
        if not os.path.isfile(path):
            return "not a file"
        if not os.access(path, os.R_OK):
            return "file not readable"
        try:
            file_size = os.path.getsize(path)
        except OSError as e:
            return f"cannot read file size: {e}"
        if file_size == 0:
            return "file is empty"
        if file_size < MIN_EXPECTED_FILE_BYTES:
            logger.warning(f"Audio file is very small ({file_size} bytes): {path}")
        return None

    def play(self, asset: str, volume: float, on_complete: CompletionCallback) -> None:
        """
        Start playing a clip and return immediately.

        Failures (missing file, decode error, device error) are reported
        through on_complete after error_grace_seconds, never raised.
        """
        completion = PlaybackCompletion(asset, on_complete)
        path = self.resolve_path(asset)

        reason = self._validate_file(path)
        if reason:
            logger.error(f"Cannot play {asset}: {reason} ({path})")
            self._fail_later(completion, reason)
            return

        with self._lock:
            self._stop_current_locked()
            try:
                pygame.mixer.music.load(path)
                pygame.mixer.music.set_volume(max(0.0, min(volume, 1.0)))
                pygame.mixer.music.play()
            except pygame.error as e:
                logger.error(f"Error playing {asset}: {e}")
                self._fail_later(completion, str(e))
                return

            self._current = completion
            self._watcher = threading.Thread(
                target=self._watch, args=(completion,), name="AmbientPlaybackWatcher", daemon=True
            )
            self._watcher.start()
        logger.info(f"Playing: {asset} (volume {volume:.0%})")

    def cancel(self) -> None:
        """Stop the current clip. Safe to call even if nothing is playing."""
        with self._lock:
            if self._current is None:
                return
            self._stop_current_locked()
        logger.info("Playback stopped")

    def is_playing(self) -> bool:
        try:
            return pygame.mixer.music.get_busy()
        except pygame.error:
            return False

    # ------------ internals ------------
    def _watch(self, completion: PlaybackCompletion) -> None:
        clock = pygame.time.Clock()
        start_time = time.time()
        try:
            while self.is_playing():
                if self._current is not completion:
                    break
                if time.time() - start_time > self.max_clip_seconds:
                    logger.warning(f"Clip exceeded maximum time ({self.max_clip_seconds}s), stopping")
                    pygame.mixer.music.stop()
                    completion.fail("exceeded maximum playback time")
                    return
                clock.tick(self.TICK_RATE)
        except pygame.error as e:
            logger.error(f"Mixer error while playing {completion.asset}: {e}")
            completion.fail(str(e))
            return
        finally:
            with self._lock:
                if self._current is completion:
                    self._current = None

        if completion.resolved:
            return
        logger.debug(f"Finished playing: {completion.asset}")
        completion.finish()

    def _stop_current_locked(self) -> None:
        current = self._current
        if current is None:
            return
        self._current = None
        try:
            pygame.mixer.music.stop()
        except pygame.error as e:
            logger.error(f"Error stopping playback: {e}")
        # The watcher exits on its own; resolve here so the caller hears about it
        current.fail("cancelled")

    def _fail_later(self, completion: PlaybackCompletion, reason: str) -> None:
        if self.error_grace_seconds <= 0:
            completion.fail(reason)
            return
        timer = threading.Timer(self.error_grace_seconds, completion.fail, args=(reason,))
        timer.name = "AmbientPlaybackError"
        timer.daemon = True
        timer.start()
