"""
Key-Value Stores for Client-Side Bookkeeping

A tiny string-to-string store with the same shape as browser local
storage. The rate limiter keeps its timestamps here.

The interface is intentionally minimal - get, set, remove.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog


logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Lost on restart."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store backed by a single JSON object on disk.

    The file is re-read on every access so separate processes see each
    other's writes. There is no file locking: concurrent writers can
    lose updates.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "kv_store_unreadable",
                path=str(self._path),
                error=str(e),
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("kv_store_not_an_object", path=str(self._path))
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as e:
            # Attempts are not recorded, the caller still gets a decision
            logger.warning(
                "kv_store_unwritable",
                path=str(self._path),
                error=str(e),
            )

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
