"""
Key-Value Store

Explicit key-value storage for client-side state that a browser would keep
in ``localStorage``: the search index snapshot, reading history and recent
searches.

Design choices
--------------
- Values must be JSON-serializable; every write round-trips through JSON so
  an in-memory store behaves like a persisted one.
- Thread-safe access using a re-entrant lock.
- Copy-on-read semantics (callers cannot mutate internal state).
- TTL-aware reads for timestamped snapshots: stale, malformed or unreadable
  entries are deleted and reported as a miss.
"""

from __future__ import annotations

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Optional

from ..core.errors import CacheCorrupt

logger = logging.getLogger("bookshelf.store")

Clock = Callable[[], float]


def now_ms(clock: Clock = time.time) -> int:
    """Milliseconds since the epoch, the timestamp unit of stored snapshots."""
    return int(clock() * 1000)


class KeyValueStore(ABC):
    """
    Abstract string-keyed store of JSON values.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock

    def timestamp(self) -> int:
        """Current time in the store's clock, epoch milliseconds."""
        return now_ms(self._clock)

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return a copy of the value stored under ``key``, or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every key."""

    def get_fresh(self, key: str, ttl_seconds: float) -> Optional[Dict[str, Any]]:
        """
        Return a timestamped snapshot if it is younger than ``ttl_seconds``.

        The stored value must be a mapping with an integer ``timestamp`` in
        epoch milliseconds. Stale or malformed entries are deleted.

        Returns
        -------
        Optional[Dict[str, Any]]
            The snapshot, or None on a miss.
        """
        try:
            value = self.get(key)
            if value is None:
                return None
            if not isinstance(value, dict) or not isinstance(value.get("timestamp"), (int, float)):
                raise CacheCorrupt(f"Snapshot {key!r} has no timestamp")
        except CacheCorrupt as exc:
            logger.warning("Discarding corrupt snapshot %r: %s", key, exc)
            self.delete(key)
            return None

        age_ms = self.timestamp() - value["timestamp"]
        if age_ms > ttl_seconds * 1000:
            logger.info("Snapshot %r expired (age %.0fs)", key, age_ms / 1000)
            self.delete(key)
            return None

        return value


class MemoryStore(KeyValueStore):
    """
    In-process store. Nothing survives a restart.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self._data: Dict[str, str] = {}
        self._lock = RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class JsonFileStore(KeyValueStore):
    """
    Store persisted as a single JSON object on disk.

    The file is read once, on first access; reads are then served from
    memory. Every mutation rewrites the file atomically and is blocking, so
    async callers should run mutations with ``asyncio.to_thread``. A missing
    or unparseable file reads as an empty store; a corrupt single value
    raises ``CacheCorrupt`` from ``get`` (and is thus a miss for
    ``get_fresh``).
    """

    def __init__(self, path: str, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self._path = Path(path)
        self._data: Optional[Dict[str, str]] = None
        self._lock = RLock()
        # Serializes file writes without holding up readers of ``_data``.
        self._write_lock = RLock()

    def _loaded(self) -> Dict[str, str]:
        if self._data is None:
            self._data = self._load()
        return self._data

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Client state file %s unreadable (%s); starting empty", self._path, type(exc).__name__)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        with self._write_lock:
            with self._lock:
                data = dict(self._loaded())
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self._path)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._loaded().get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheCorrupt(f"Value for {key!r} is not valid JSON") from exc

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        with self._lock:
            self._loaded()[key] = raw
        self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            removed = self._loaded().pop(key, None) is not None
        if removed:
            self._save()

    def clear(self) -> None:
        with self._lock:
            self._data = {}
        self._save()
