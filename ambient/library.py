"""
Sound library: the registered files and the named groups built from them.

The library is the document the user edits (and imports/exports):

    {
      "files":  ["breach.mp3", "kayo.mp3", ...],
      "groups": [{"name": "All", "files": ["breach.mp3", ...]}, ...]
    }

The scheduler never sees the document; it only gets the AssetGroup of the
group selected for playback.
"""

from dataclasses import dataclass, field
import json
import logging
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from .constants import DEFAULT_FILES, DEFAULT_GROUPS, SOUND_EXTENSION
from .errors import LibraryError

logger = logging.getLogger(__name__)


def _unique(items: Iterable[str]) -> tuple:
    """De-duplicate while keeping the first occurrence order."""
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True)
class AssetGroup:
    """A named, ordered set of clip identifiers eligible for playback."""
    name: str
    members: tuple = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'members', _unique(self.members))

    def __len__(self) -> int:
        return len(self.members)


def normalize_filename(raw_name: str) -> str:
    """Trim a filename and add the .mp3 extension when it is missing."""
    name = (raw_name or "").strip()
    if name and not name.lower().endswith(SOUND_EXTENSION):
        name += SOUND_EXTENSION
    return name


class SoundLibrary:
    """Registered sound files and groups, with the edits the settings screen offers."""

    def __init__(self, files: Optional[Iterable[str]] = None, groups: Optional[Iterable[AssetGroup]] = None):
        """
        Initialize the library.

        Args:
            files: Registered filenames (order preserved)
            groups: Groups built from those files
        """
        self._lock = threading.RLock()
        self._files: List[str] = list(_unique(files or []))
        self._groups: List[AssetGroup] = list(groups or [])

    @classmethod
    def default(cls) -> "SoundLibrary":
        """Library used when nothing has been saved yet."""
        return cls(DEFAULT_FILES, [AssetGroup(name, files) for name, files in DEFAULT_GROUPS])

    # ------------ queries ------------
    @property
    def files(self) -> List[str]:
        with self._lock:
            return list(self._files)

    @property
    def groups(self) -> List[AssetGroup]:
        with self._lock:
            return list(self._groups)

    def group_names(self) -> List[str]:
        with self._lock:
            return [g.name for g in self._groups]

    def get_group(self, name: str) -> AssetGroup:
        """
        Look up a group by name.

        Raises:
            LibraryError: If no group has that name
        """
        with self._lock:
            index = self._group_index(name)
            if index is None:
                raise LibraryError(f"No group named '{name}'")
            return self._groups[index]

    # ------------ file edits ------------
    def register_file(self, raw_name: str) -> str:
        """
        Register a sound file.

        Args:
            raw_name: Filename as typed; ".mp3" is appended when missing

        Returns:
            The registered (normalized) filename

        Raises:
            LibraryError: If the name is empty or already registered
        """
        name = normalize_filename(raw_name)
        if not name:
            raise LibraryError("File name is empty")
        with self._lock:
            if name in self._files:
                raise LibraryError(f"'{name}' is already registered")
            self._files.append(name)
        logger.info(f"Registered sound file: {name}")
        return name

    def remove_file(self, name: str) -> None:
        """Unregister a file and drop it from every group."""
        with self._lock:
            if name not in self._files:
                raise LibraryError(f"'{name}' is not registered")
            self._files.remove(name)
            self._groups = [
                AssetGroup(g.name, [f for f in g.members if f != name]) for g in self._groups
            ]
        logger.info(f"Removed sound file: {name}")

    # ------------ group edits ------------
    def create_group(self, raw_name: str) -> AssetGroup:
        """
        Create an empty group.

        Raises:
            LibraryError: If the name is empty or taken
        """
        name = (raw_name or "").strip()
        if not name:
            raise LibraryError("Group name is empty")
        with self._lock:
            if self._group_index(name) is not None:
                raise LibraryError(f"Group '{name}' already exists")
            group = AssetGroup(name)
            self._groups.append(group)
        logger.info(f"Created group: {name}")
        return group

    def delete_group(self, name: str) -> None:
        with self._lock:
            index = self._group_index(name)
            if index is None:
                raise LibraryError(f"No group named '{name}'")
            del self._groups[index]
        logger.info(f"Deleted group: {name}")

    def set_group_files(self, name: str, files: Iterable[str]) -> AssetGroup:
        """
        Replace a group's members.

        Files that are not registered are skipped (with a warning); the
        remaining order is kept.
        """
        with self._lock:
            index = self._group_index(name)
            if index is None:
                raise LibraryError(f"No group named '{name}'")
            members = []
            for f in files:
                if f in self._files:
                    members.append(f)
                else:
                    logger.warning(f"Skipping unregistered file '{f}' for group '{name}'")
            group = AssetGroup(name, members)
            self._groups[index] = group
        logger.info(f"Updated group '{name}': {len(group.members)} files")
        return group

    # ------------ document ------------
    def to_document(self) -> dict:
        with self._lock:
            return {
                "files": list(self._files),
                "groups": [{"name": g.name, "files": list(g.members)} for g in self._groups],
            }

    @classmethod
    def from_document(cls, document) -> "SoundLibrary":
        """
        Build a library from a decoded document.

        Raises:
            LibraryError: If the document lacks the files/groups lists
        """
        if not isinstance(document, dict) or "files" not in document or "groups" not in document:
            raise LibraryError("Invalid configuration document: expected 'files' and 'groups'")
        files = document["files"]
        groups = document["groups"]
        if not isinstance(files, list) or not isinstance(groups, list):
            raise LibraryError("Invalid configuration document: 'files' and 'groups' must be lists")

        parsed = []
        for entry in groups:
            if not isinstance(entry, dict) or "name" not in entry:
                raise LibraryError(f"Invalid group entry: {entry!r}")
            members = entry.get("files", [])
            if not isinstance(members, list):
                raise LibraryError(f"Invalid group entry: 'files' of '{entry['name']}' must be a list")
            parsed.append(AssetGroup(str(entry["name"]), [str(f) for f in members]))
        return cls([str(f) for f in files], parsed)

    def export_json(self, path) -> Path:
        """Write the library document to a JSON file."""
        path = Path(path)
        path.write_text(json.dumps(self.to_document(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Exported library to {path}")
        return path

    @classmethod
    def import_json(cls, path) -> "SoundLibrary":
        """
        Read a library document from a JSON file.

        Raises:
            LibraryError: If the file cannot be read, is not JSON, or has the wrong shape
        """
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise LibraryError(f"Could not read {path}: {e}") from e
        library = cls.from_document(document)
        logger.info(f"Imported library from {path}: {len(library.files)} files, {len(library.groups)} groups")
        return library

    def _group_index(self, name: str) -> Optional[int]:
        for i, g in enumerate(self._groups):
            if g.name == name:
                return i
        return None
