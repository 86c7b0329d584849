"""
Resume cursor for time-boxed matrix runs.

The cursor is a (row, col) pair stored in a small key-value store that
outlives the process. Each workflow keeps its own namespace so the
narrative and probability passes never share a cursor.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

ROW_KEY = "lastProcessedRow"
COL_KEY = "lastProcessedCol"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def update(self, values: Dict[str, str]) -> None: ...


class MemoryStore:
    """Process-local key-value store, for tests and dry runs."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def update(self, values: Dict[str, str]) -> None:
        self.data.update(values)


class JsonFileStore:
    """Key-value store persisted as one JSON object on disk.

    Every ``set``/``delete`` rewrites the file through a temp file and
    ``os.replace`` so a killed process never leaves it half-written.
    """

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load checkpoint store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def update(self, values: Dict[str, str]) -> None:
        """Set several keys in one write."""
        data = self._load()
        data.update(values)
        self._save(data)


@dataclass
class Checkpoint:
    """(row, col) cursor for one workflow namespace."""
    store: KeyValueStore
    namespace: str

    def _key(self, name: str) -> str:
        return f"{self.namespace}.{name}"

    def load(self) -> Optional[tuple]:
        row = self.store.get(self._key(ROW_KEY))
        col = self.store.get(self._key(COL_KEY))
        if row is None or col is None:
            return None
        try:
            return int(row), int(col)
        except ValueError:
            logger.warning(f"Ignoring malformed {self.namespace} checkpoint: {row!r}, {col!r}")
            return None

    def save(self, row: int, col: int) -> None:
        self.store.update({self._key(ROW_KEY): str(row), self._key(COL_KEY): str(col)})

    def clear(self) -> None:
        self.store.delete(self._key(ROW_KEY))
        self.store.delete(self._key(COL_KEY))
        logger.info(f"Cleared {self.namespace} checkpoint")
