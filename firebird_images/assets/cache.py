"""Asset cache for expensive upstream lookups.

This module handles:
- Memoizing producer results under a stable cache key
- Pluggable storage backends (filesystem, in-memory)
- Offline mode, where a cache miss is an error instead of a fetch

Entries never expire; invalidation is done by deleting the entry.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class OfflineModeError(Exception):
    """Raised when a lookup is not cached but offline mode is enabled."""

    def __init__(self, key: str, code: str = "offline_mode") -> None:
        """Initialize OfflineModeError.

        Args:
            key: Cache key that was missing.
            code: Error code for structured error handling.
        """
        super().__init__(f"Cannot fetch '{key}' in offline mode (not cached)")
        self.key = key
        self.code = code


class CacheStorage(Protocol):
    """Storage backend for serialized cache entries."""

    def exists(self, key: str) -> bool: ...

    def read(self, key: str) -> str: ...

    def write(self, key: str, data: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> Iterator[str]: ...


class MemoryCacheStorage:
    """In-memory storage, mainly for tests."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def exists(self, key: str) -> bool:
        return key in self._entries

    def read(self, key: str) -> str:
        return self._entries[key]

    def write(self, key: str, data: str) -> None:
        self._entries[key] = data

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._entries))


class FileCacheStorage:
    """Filesystem storage: one JSON file per key under a root directory.

    Keys may contain '/' to group entries into subdirectories.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p not in ("", ".", "..")]
        if not parts:
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.root.joinpath(*parts).with_name(parts[-1] + self.SUFFIX)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def read(self, key: str) -> str:
        return self._path(key).read_text(encoding="utf-8")

    def write(self, key: str, data: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a temp file, then rename so readers never see partial data
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self) -> Iterator[str]:
        if not self.root.exists():
            return iter(())
        return iter(
            sorted(
                p.relative_to(self.root).as_posix()[: -len(self.SUFFIX)]
                for p in self.root.rglob(f"*{self.SUFFIX}")
                if p.is_file()
            )
        )


class AssetCache:
    """Memoize JSON-serializable producer results in a storage backend.

    Args:
        storage: Backend holding serialized entries.
        offline: If True, a missing key raises OfflineModeError.
    """

    def __init__(self, storage: CacheStorage, offline: bool = False) -> None:
        self.storage = storage
        self.offline = offline

    def get_or_create(self, key: str, producer: Callable[[], Any]) -> Any:
        """Return the cached value for key, computing it on a miss.

        Args:
            key: Stable cache key.
            producer: Zero-argument callable computing the value.

        Returns:
            The cached or freshly produced value.

        Raises:
            OfflineModeError: If the key is missing in offline mode.
        """
        if self.storage.exists(key):
            logger.debug("Cache hit: %s", key)
            return json.loads(self.storage.read(key))

        if self.offline:
            raise OfflineModeError(key)

        logger.debug("Cache miss: %s", key)
        value = producer()
        self.storage.write(key, json.dumps(value, indent=2, sort_keys=True))
        return value

    def invalidate(self, key: str) -> bool:
        """Remove a single entry. Returns True if it existed."""
        return self.storage.delete(key)

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for key in list(self.storage.keys()):
            if self.storage.delete(key):
                removed += 1
        logger.info("Cleared %d cache entries", removed)
        return removed


__all__ = [
    "AssetCache",
    "CacheStorage",
    "FileCacheStorage",
    "MemoryCacheStorage",
    "OfflineModeError",
]
