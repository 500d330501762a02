"""
Sound library storage for the ambient trigger.

Provides atomic, crash-resistant JSON storage for the library document.
"""

import json
import os
import logging

from ambient.constants import CONFIG_PATH

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    JSON storage for the library document with atomic writes.

    Uses a temporary file + atomic rename so a crash mid-save never leaves a
    half-written document behind.
    """

    def __init__(self, path: str = CONFIG_PATH):
        """
        Initialize the store.

        Args:
            path: Path to the JSON document
        """
        self.path = path
        logger.debug(f"ConfigStore initialized with path: {path}")

    def save(self, data: dict) -> None:
        """
        Save the document atomically.

        Args:
            data: Library document ({"files": [...], "groups": [...]})
        """
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
            logger.debug(f"Library saved to {self.path}")
        except Exception as e:
            logger.error(f"Failed to save library: {e}")
            # Clean up temp file on error
            try:
                if os.path.exists(tmp):
                    os.remove(tmp)
            except OSError:
                pass
            raise

    def load(self) -> dict | None:
        """
        Load the document.

        Returns:
            The decoded document, or None if the file doesn't exist or is invalid
        """
        if not os.path.exists(self.path):
            logger.debug(f"No library file found at {self.path}")
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            logger.debug(f"Library loaded from {self.path}")
            return data
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load library: {e}")
            return None
