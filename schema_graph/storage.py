"""
Persisted diagram state.

The diagram is stored as one JSON blob under a fixed key in a key-value
store. Two stores are provided:
- FileKeyValueStore: one `<key>.json` file per key in a directory
  (SCHEMA_GRAPH_DATA_DIR, default ~/.schema-graph)
- MemoryKeyValueStore: process-local dict, for tests and embedding

DiagramStorage never raises on I/O or decode problems: failures are logged
and reported as None (load) or False (save/clear).
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from .models import Diagram

logger = logging.getLogger(__name__)

STORAGE_KEY = "nosql-diagram-data"

DATA_DIR = Path(os.environ.get(
    "SCHEMA_GRAPH_DATA_DIR",
    str(Path.home() / ".schema-graph")
))


class KeyValueStore(Protocol):
    """Minimal string key-value persistence."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-memory key-value store."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """Key-value store keeping each key in its own JSON file."""

    def __init__(self, directory: str | Path = DATA_DIR):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # Atomic replace
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class DiagramStorage:
    """Load/save contract for the current diagram."""

    def __init__(self, store: Optional[KeyValueStore] = None, key: str = STORAGE_KEY):
        self.store = store if store is not None else FileKeyValueStore()
        self.key = key

    def save(self, diagram: Diagram) -> bool:
        """Persist the diagram. Returns False if the store failed."""
        try:
            self.store.set(self.key, json.dumps(diagram.to_json_dict()))
        except OSError:
            logger.exception("Failed to save diagram under %s", self.key)
            return False
        logger.debug("Saved diagram (%d entities)", len(diagram.entities))
        return True

    def load(self) -> Optional[Diagram]:
        """Load the persisted diagram, or None if absent or unreadable."""
        try:
            raw = self.store.get(self.key)
        except OSError:
            logger.exception("Failed to read diagram under %s", self.key)
            return None
        if raw is None:
            return None

        try:
            return Diagram.from_json_dict(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            logger.error("Stored diagram under %s is corrupt: %s", self.key, e)
            return None

    def clear(self) -> bool:
        """Remove the persisted diagram."""
        try:
            self.store.delete(self.key)
        except OSError:
            logger.exception("Failed to clear diagram under %s", self.key)
            return False
        return True
