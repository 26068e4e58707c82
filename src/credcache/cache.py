"""
Encrypted credential cache.

Caches small string values (bearer tokens, serialized session state) in a
persistent key-value store with:
- AES-GCM encryption under a key derived once per cache instance
- optional TTL, enforced lazily on read
- fallback reads of legacy plaintext entries, migrated on first read
- plaintext writes when encryption is unavailable, instead of losing data

Example:
    cache = CredentialCache(JsonFileBackend("~/.credcache/store.json"))

    await cache.set_item("token", token, ttl_ms=7 * 24 * 60 * 60 * 1000)
    token = await cache.get_item("token")
    cache.remove_item("token")
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from credcache.backends import StorageBackend
from credcache.cipher import (
    DEFAULT_SALT,
    KEY_LENGTH,
    MIN_ITERATIONS,
    AesGcmCipher,
    CipherProvider,
    build_passphrase,
)
from credcache.errors import (
    BackingStoreError,
    EncryptionUnavailableError,
    UnsupportedEnvironmentError,
)
from credcache.keycell import KeyCell
from credcache.record import StoredRecord, now_ms
from credcache.strategies import (
    EncryptedStrategy,
    Outcome,
    PlainStrategy,
)

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "secure_"
DEFAULT_CLIENT_ID = "credcache"
DEFAULT_MAX_VALUE_BYTES = 512 * 1024


class CredentialCache:
    """
    Encrypt-at-rest cache for small string values.

    Only backing store failures (``BackingStoreError``) and a missing store
    (``UnsupportedEnvironmentError``) reach the caller. Missing, expired and
    undecryptable records all read as None.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend],
        cipher: Optional[CipherProvider] = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        salt: bytes = DEFAULT_SALT,
        iterations: int = MIN_ITERATIONS,
        client_id: str = DEFAULT_CLIENT_ID,
        host: Optional[str] = None,
        max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES,
        migrate_legacy: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the cache.

        Args:
            backend: Backing key-value store (None means no storage available)
            cipher: Cipher provider, AES-GCM by default
            namespace: Prefix for encrypted entries
            salt: Key-derivation salt
            iterations: Key-derivation iteration count
            client_id: Client identifier mixed into the passphrase
            host: Host name mixed into the passphrase (defaults to this machine's)
            max_value_bytes: Largest accepted value, UTF-8 encoded
            migrate_legacy: Re-encrypt plaintext values found on read
            clock: Returns the current time in epoch milliseconds
        """
        if not namespace:
            raise ValueError("namespace must not be empty")

        self._backend = backend
        self._cipher = cipher if cipher is not None else AesGcmCipher()
        self.namespace = namespace
        self._max_value_bytes = max_value_bytes
        self._migrate_legacy = migrate_legacy
        self._clock = clock
        self._unsupported_logged = False

        # Plain keys this instance owns, so clear() can reach them.
        self._plain_keys: set[str] = set()

        passphrase = build_passphrase(client_id, host)
        self.key_cell = KeyCell(
            lambda: self._cipher.derive_key(passphrase, salt, iterations, KEY_LENGTH)
        )

        self.encrypted: Optional[EncryptedStrategy] = None
        self.plain: Optional[PlainStrategy] = None
        if backend is not None:
            self.encrypted = EncryptedStrategy(
                backend, self._cipher, self.key_cell, namespace, clock
            )
            self.plain = PlainStrategy(backend)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def _chain(self) -> list:
        return [self.encrypted, self.plain]

    def _require_backend(self) -> StorageBackend:
        if self._backend is None or not self._backend.is_available():
            if not self._unsupported_logged:
                logger.error("No usable backing store, credential cache is disabled")
                self._unsupported_logged = True
            raise UnsupportedEnvironmentError("No usable backing store is available")
        return self._backend

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")

    def _check_value(self, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError("value must be a string")
        size = len(value.encode("utf-8"))
        if size > self._max_value_bytes:
            raise ValueError(
                f"value is {size} bytes, larger than the {self._max_value_bytes} byte limit"
            )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def set_item(self, key: str, value: str, ttl_ms: Optional[int] = None) -> None:
        """
        Store ``value`` under ``key``.

        Args:
            key: Cache key
            value: Value to store
            ttl_ms: Time to live in milliseconds (optional)
        """
        self._check_key(key)
        self._check_value(value)
        if ttl_ms is not None and ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._require_backend()

        record = StoredRecord.create(value, ttl_ms, self._clock())

        for strategy in self._chain:
            result = await strategy.write(key, record)
            if not result.written:
                logger.warning(
                    "Falling back from %s storage for '%s': %s",
                    strategy.name, key, result.error,
                )
                continue

            for other in self._chain:
                if other is not strategy:
                    other.remove(key)

            if strategy is self.plain:
                self._plain_keys.add(key)
                if ttl_ms is not None:
                    logger.warning("Expiry is not enforced for plaintext entry '%s'", key)
            else:
                self._plain_keys.discard(key)
            logger.debug("Stored '%s' using %s storage", key, strategy.name)
            return

    async def get_item(self, key: str) -> Optional[str]:
        """
        Retrieve the value for ``key``.

        Returns:
            The stored value, or None if missing, expired or unreadable
        """
        self._check_key(key)
        self._require_backend()

        for strategy in self._chain:
            result = await strategy.read(key)

            if result.outcome is Outcome.EXPIRED:
                logger.debug("Entry '%s' expired", key)
                self.remove_item(key)
                return None

            if result.outcome is Outcome.HIT:
                if strategy is self.plain:
                    self._plain_keys.add(key)
                    if self._migrate_legacy:
                        await self._migrate(key, result.value)
                return result.value

        return None

    async def _migrate(self, key: str, value: str) -> None:
        try:
            await self.encrypted.prepare()
        except EncryptionUnavailableError as e:
            logger.debug("Leaving '%s' in plaintext: %s", key, e)
            return

        # With the key ready, nothing below suspends before the write, so a
        # concurrent set_item cannot slip in between this check and the write.
        if (
            self._backend.get(key) != value
            or self._backend.get(self.encrypted.storage_key(key)) is not None
        ):
            logger.debug("Skipping migration of '%s', it changed meanwhile", key)
            return

        try:
            result = await self.encrypted.write(key, StoredRecord(data=value))
            if not result.written:
                logger.debug("Leaving '%s' in plaintext: %s", key, result.error)
                return
            self.plain.remove(key)
        except BackingStoreError as e:
            logger.warning("Could not migrate plaintext entry '%s': %s", key, e)
            return
        self._plain_keys.discard(key)
        logger.info("Migrated plaintext entry '%s' to encrypted storage", key)

    async def has_item(self, key: str) -> bool:
        """Check if ``key`` holds a readable, unexpired value."""
        return await self.get_item(key) is not None

    def remove_item(self, key: str) -> None:
        """Remove both the encrypted and plaintext entries for ``key``."""
        self._check_key(key)
        self._require_backend()
        for strategy in self._chain:
            strategy.remove(key)
        self._plain_keys.discard(key)

    def keys(self) -> List[str]:
        """List keys held in the encrypted namespace."""
        backend = self._require_backend()
        return [
            k[len(self.namespace):]
            for k in backend.keys()
            if k.startswith(self.namespace) and len(k) > len(self.namespace)
        ]

    def clear(self) -> None:
        """
        Remove every entry this cache manages.

        Covers the whole encrypted namespace plus plaintext keys this
        instance wrote or read. Other keys in the store are left alone.
        """
        backend = self._require_backend()
        removed = 0
        for k in backend.keys():
            if k.startswith(self.namespace):
                backend.remove(k)
                removed += 1
        for k in sorted(self._plain_keys):
            backend.remove(k)
            removed += 1
        self._plain_keys.clear()
        logger.info(f"Cleared {removed} credential cache entries")

    async def purge_expired(self) -> int:
        """
        Delete all expired encrypted entries.

        Returns:
            Number of deleted entries
        """
        self._require_backend()
        purged = 0
        for key in self.keys():
            result = await self.encrypted.read(key)
            if result.outcome is Outcome.EXPIRED:
                self.remove_item(key)
                purged += 1
        if purged > 0:
            logger.info(f"Purged {purged} expired entries")
        return purged

    def is_supported(self) -> bool:
        """Check whether both the backing store and the cipher are usable."""
        if self._backend is None or not self._backend.is_available():
            return False
        return self._cipher.is_available()
