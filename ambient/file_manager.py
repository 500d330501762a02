"""Sound folder listing, used to flag missing files and to discover new ones."""

import logging
import os
import time
from typing import List, NamedTuple

from .constants import SOUND_EXTENSION

logger = logging.getLogger(__name__)


class _Listing(NamedTuple):
    names: List[str]
    read_at: float
    folder_mtime: float


class FileManager:
    """Lists the .mp3 files present in a sound folder, with a short-lived cache."""

    def __init__(self, cache_ttl: float = 5.0):
        """
        Args:
            cache_ttl: Seconds a listing stays valid; a folder mtime change
                       invalidates it sooner
        """
        self.cache_ttl = cache_ttl
        self._listings: dict[str, _Listing] = {}

    @staticmethod
    def _folder_mtime(directory: str) -> float:
        try:
            return os.path.getmtime(directory)
        except OSError:
            return 0.0

    def _is_fresh(self, listing: _Listing, now: float, mtime: float) -> bool:
        return now - listing.read_at < self.cache_ttl and listing.folder_mtime == mtime

    def get_sound_files(self, directory: str, force_refresh: bool = False) -> List[str]:
        """
        Sound filenames in a folder, sorted by name.

        Returns an empty list when the folder does not exist or cannot be read.
        """
        if not os.path.isdir(directory):
            logger.debug(f"Sound folder does not exist: {directory}")
            return []

        now = time.time()
        mtime = self._folder_mtime(directory)
        listing = self._listings.get(directory)
        if listing and not force_refresh and self._is_fresh(listing, now, mtime):
            return list(listing.names)

        try:
            with os.scandir(directory) as entries:
                names = sorted(
                    e.name for e in entries
                    if e.is_file() and e.name.lower().endswith(SOUND_EXTENSION)
                )
        except OSError as e:
            logger.error(f"Cannot list sound folder {directory}: {e}")
            return []

        self._listings[directory] = _Listing(names, now, mtime)
        logger.debug(f"Found {len(names)} sound files in {directory}")
        return list(names)

    def find_missing(self, directory: str, names: List[str]) -> List[str]:
        """Registered names that have no file in the folder."""
        present = set(self.get_sound_files(directory))
        return [n for n in names if n not in present]

    def invalidate_cache(self, directory: str) -> None:
        self._listings.pop(directory, None)
