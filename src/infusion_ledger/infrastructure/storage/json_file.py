"""
File-backed key-value store.

Keeps every key in one JSON object on disk and rewrites the whole file on
each change, so a device keeps its own copy of the data.
"""

import json
import logging
import os
from pathlib import Path

from infusion_ledger.utils.exceptions import StorageError

logger = logging.getLogger(__name__)


class JsonFileStore:
    """
    Key-value store persisted as a single JSON document.

    The file is read on every access so that separate processes sharing the
    path observe each other's writes. There is no locking.
    """

    def __init__(self, path: str | Path) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the JSON document. Created on first write.
        """
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        """
        Read the whole document.

        Raises:
            StorageError: If the file cannot be read or is not a JSON object.
        """
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read store {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Store {self.path} does not contain a JSON object")

        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        """
        Replace the document atomically.

        Raises:
            StorageError: If the file cannot be written.
        """
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write store {self.path}: {e}") from e

        logger.debug(f"Saved store with {len(data)} keys to {self.path}")

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)
