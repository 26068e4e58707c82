"""
Read/write strategies for the credential cache.

The cache walks an ordered list of strategies. Each one reports a plain
outcome instead of raising, so the fallback order lives in one list:

    encrypted namespace  ->  plain key

Backing store failures are the exception: they propagate out of every
strategy untouched.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from credcache.backends import StorageBackend
from credcache.cipher import CipherProvider
from credcache.errors import (
    CorruptRecordError,
    CredentialCacheError,
    EncryptionUnavailableError,
)
from credcache.keycell import KeyCell
from credcache.record import StoredRecord

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Result of a single strategy lookup."""

    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"


@dataclass
class ReadResult:
    outcome: Outcome
    value: Optional[str] = None
    error: Optional[CredentialCacheError] = None

    @classmethod
    def hit(cls, value: str) -> "ReadResult":
        return cls(Outcome.HIT, value=value)

    @classmethod
    def miss(cls, error: Optional[CredentialCacheError] = None) -> "ReadResult":
        return cls(Outcome.MISS, error=error)

    @classmethod
    def expired(cls) -> "ReadResult":
        return cls(Outcome.EXPIRED)


@dataclass
class WriteResult:
    written: bool
    error: Optional[CredentialCacheError] = None


class EncryptedStrategy:
    """Records encrypted with the derived key, stored under ``namespace + key``."""

    name = "encrypted"

    def __init__(
        self,
        backend: StorageBackend,
        cipher: CipherProvider,
        key_cell: KeyCell,
        namespace: str,
        clock: Callable[[], int],
    ):
        self._backend = backend
        self._cipher = cipher
        self._key_cell = key_cell
        self.namespace = namespace
        self._clock = clock

    def storage_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def _key(self) -> bytes:
        if not self._cipher.is_available():
            raise EncryptionUnavailableError("Cipher provider is not available")
        try:
            return await self._key_cell.get()
        except EncryptionUnavailableError:
            raise
        except Exception as e:
            raise EncryptionUnavailableError(f"Failed to derive encryption key: {e}") from e

    async def prepare(self) -> None:
        """Make sure the key is derived; raises EncryptionUnavailableError."""
        await self._key()

    async def seal(self, text: str) -> str:
        key = await self._key()
        try:
            blob = self._cipher.encrypt(key, text.encode("utf-8"))
        except EncryptionUnavailableError:
            raise
        except Exception as e:
            raise EncryptionUnavailableError(f"Encryption failed: {e}") from e
        return base64.b64encode(blob).decode("ascii")

    async def open(self, encoded: str) -> str:
        try:
            blob = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CorruptRecordError(f"Record is not valid base64: {e}") from e

        key = await self._key()
        try:
            plaintext = self._cipher.decrypt(key, blob)
        except (CorruptRecordError, EncryptionUnavailableError):
            raise
        except Exception as e:
            raise CorruptRecordError(f"Decryption failed: {e}") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptRecordError(f"Decrypted record is not UTF-8: {e}") from e

    async def read(self, key: str) -> ReadResult:
        encoded = self._backend.get(self.storage_key(key))
        if encoded is None:
            return ReadResult.miss()

        try:
            record = StoredRecord.from_json(await self.open(encoded))
        except CorruptRecordError as e:
            logger.warning("Unreadable encrypted record for '%s': %s", key, e)
            return ReadResult.miss(e)
        except EncryptionUnavailableError as e:
            logger.warning("Cannot decrypt '%s', encryption unavailable: %s", key, e)
            return ReadResult.miss(e)

        if record.is_expired(self._clock()):
            return ReadResult.expired()
        return ReadResult.hit(record.data)

    async def write(self, key: str, record: StoredRecord) -> WriteResult:
        try:
            encoded = await self.seal(record.to_json())
        except EncryptionUnavailableError as e:
            return WriteResult(written=False, error=e)
        self._backend.set(self.storage_key(key), encoded)
        return WriteResult(written=True)

    def remove(self, key: str) -> None:
        self._backend.remove(self.storage_key(key))


class PlainStrategy:
    """Unencrypted values under the bare key (legacy data and degraded writes)."""

    name = "plain"

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    def storage_key(self, key: str) -> str:
        return key

    async def read(self, key: str) -> ReadResult:
        value = self._backend.get(key)
        if value is None:
            return ReadResult.miss()
        return ReadResult.hit(value)

    async def write(self, key: str, record: StoredRecord) -> WriteResult:
        self._backend.set(key, record.data)
        return WriteResult(written=True)

    def remove(self, key: str) -> None:
        self._backend.remove(key)
