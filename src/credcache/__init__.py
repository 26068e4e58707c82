"""
credcache - encrypted client-side credential cache.

- AES-GCM encryption with a PBKDF2-derived key, memoized single-flight
- Optional TTL with lazy expiry
- Legacy plaintext reads with migration into the encrypted namespace
- Plaintext fallback when encryption is unavailable
- Auth session / API client and persisted state built on top
"""

__version__ = "0.1.0"

from credcache.errors import (
    CredentialCacheError,
    UnsupportedEnvironmentError,
    EncryptionUnavailableError,
    CorruptRecordError,
    BackingStoreError,
)
from credcache.record import StoredRecord
from credcache.backends import (
    StorageBackend,
    MemoryBackend,
    JsonFileBackend,
    SQLiteBackend,
)
from credcache.cipher import (
    CipherProvider,
    AesGcmCipher,
    build_passphrase,
)
from credcache.keycell import CellState, KeyCell
from credcache.cache import CredentialCache
from credcache.config import CacheSettings
from credcache.factory import build_api_client, build_backend, build_cache, build_session
from credcache.persist import PersistedState

__all__ = [
    "__version__",
    # Errors
    "CredentialCacheError",
    "UnsupportedEnvironmentError",
    "EncryptionUnavailableError",
    "CorruptRecordError",
    "BackingStoreError",
    # Storage
    "StoredRecord",
    "StorageBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "SQLiteBackend",
    # Crypto
    "CipherProvider",
    "AesGcmCipher",
    "build_passphrase",
    "CellState",
    "KeyCell",
    # Cache
    "CredentialCache",
    "CacheSettings",
    "build_backend",
    "build_cache",
    "build_session",
    "build_api_client",
    "PersistedState",
]
