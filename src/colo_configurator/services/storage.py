"""
Storage collaborators - opaque key-value stores the Store mirrors itself to.

Values are strings (serialized JSON); backends raise StorageError on failure
and leave handling to the caller.
"""
import json
import os
from pathlib import Path
from typing import Dict, Optional

from .errors import StorageError


class InMemoryStorage:
    """Lightweight in-memory key-value store (tests and dev use)."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        if key in self._values:
            del self._values[key]


class JsonFileStorage:
    """
    Key-value store backed by a single JSON file.

    The file holds one object mapping keys to stored strings. Writes go to a
    sibling temp file first and are moved into place.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)
