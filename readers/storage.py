"""Local durable key-value storage backed by JSON files."""
import json
import logging
import os
import re
import tempfile
from typing import Any, Optional

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStore:
    """One JSON document per key under a data directory."""

    def __init__(self, data_dir: str):
        """
        Args:
            data_dir: Directory holding the key files (created on first write)
        """
        self.data_dir = data_dir

    def _path(self, key: str) -> str:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self.data_dir, f"{key}.json")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """
        Read a stored value.

        Returns:
            The decoded value, or ``default`` when the key is missing or unreadable
        """
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Write a value, replacing the previous one atomically.

        Raises:
            OSError: If the directory or file cannot be written
            TypeError: If the value is not JSON serializable
        """
        path = self._path(key)
        os.makedirs(self.data_dir, exist_ok=True)
        payload = json.dumps(value, indent=2)

        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.unlink(path)
