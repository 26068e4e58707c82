"""
Storage backends.

Synchronous string key-value stores that persist cache entries:
- MemoryBackend: process-local dict with an optional quota
- JsonFileBackend: a single JSON object file
- SQLiteBackend: one row per key in an SQLite database

Every backend raises ``BackingStoreError`` when the underlying store rejects
a read or write.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from credcache.errors import BackingStoreError

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Persistent, synchronous string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""

    @abstractmethod
    def keys(self) -> List[str]:
        """List every key currently stored."""

    def is_available(self) -> bool:
        return True


# =============================================================================
# In-memory
# =============================================================================


class MemoryBackend(StorageBackend):
    """
    In-memory backend.

    Mostly useful for tests and short-lived processes. ``quota_bytes`` bounds
    the total size of keys plus values; a write past it fails the same way a
    full browser storage area does.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self._quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def _usage_with(self, key: str, value: str) -> int:
        total = 0
        for k, v in self._data.items():
            if k != key:
                total += len(k.encode("utf-8")) + len(v.encode("utf-8"))
        return total + len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self._quota_bytes is not None and self._usage_with(key, value) > self._quota_bytes:
                raise BackingStoreError(
                    f"Quota exceeded: writing '{key}' would exceed {self._quota_bytes} bytes"
                )
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())


# =============================================================================
# JSON file
# =============================================================================


class JsonFileBackend(StorageBackend):
    """
    Backend persisted as one JSON object file.

    The whole file is rewritten on every mutation through a temporary file
    and ``os.replace`` so a crash never leaves a half-written store.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise BackingStoreError(f"Cannot read store file {self.path}: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            logger.warning("Store file %s is not valid JSON, starting empty", self.path)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Store file %s does not hold an object, starting empty", self.path)
            data = {}

        self._data = {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, indent=2, sort_keys=True)
                try:
                    os.chmod(tmp_name, 0o600)
                except OSError as e:
                    logger.warning(f"Could not set store file permissions: {e}")
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BackingStoreError(f"Cannot write store file {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._save()
            except BackingStoreError:
                # Keep memory consistent with what is on disk.
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._save()
            except BackingStoreError:
                self._data[key] = previous
                raise

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def is_available(self) -> bool:
        parent = self.path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return os.access(parent, os.W_OK)


# =============================================================================
# SQLite
# =============================================================================


class SQLiteBackend(StorageBackend):
    """Backend stored in an SQLite database, one row per key."""

    def __init__(self, path: Union[str, Path]):
        self.db_path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise BackingStoreError(f"Cannot open database {self.db_path}: {e}") from e

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackingStoreError(f"Cannot create {self.db_path.parent}: {e}") from e

        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise BackingStoreError(f"Cannot initialize database {self.db_path}: {e}") from e
        finally:
            conn.close()
        self._initialized = True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._ensure_initialized()
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise BackingStoreError(f"Read failed for '{key}': {e}") from e
            finally:
                conn.close()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_initialized()
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise BackingStoreError(f"Write failed for '{key}': {e}") from e
            finally:
                conn.close()

    def remove(self, key: str) -> None:
        with self._lock:
            self._ensure_initialized()
            conn = self._connect()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
            except sqlite3.Error as e:
                raise BackingStoreError(f"Delete failed for '{key}': {e}") from e
            finally:
                conn.close()

    def keys(self) -> List[str]:
        with self._lock:
            self._ensure_initialized()
            conn = self._connect()
            try:
                return [row[0] for row in conn.execute("SELECT key FROM kv_store")]
            except sqlite3.Error as e:
                raise BackingStoreError(f"Listing keys failed: {e}") from e
            finally:
                conn.close()
