"""
Cipher providers.

AES-256-GCM with a PBKDF2-HMAC-SHA256 derived key, built on the
``cryptography`` package. Every failure surfaces as
``EncryptionUnavailableError`` (derivation, encryption) or
``CorruptRecordError`` (decryption), which the cache turns into its
plaintext fallback or a cache miss.

The passphrase comes from values any local process can observe (host name
and client identifier). This hides tokens from casual inspection of the
store; it does not protect them from a determined local attacker.
"""

from __future__ import annotations

import logging
import os
import socket
from abc import ABC, abstractmethod
from typing import Optional

from credcache.errors import CorruptRecordError, EncryptionUnavailableError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_LENGTH = 32
MIN_ITERATIONS = 100_000
DEFAULT_SALT = b"auth-module-salt"


def build_passphrase(client_id: str, host: Optional[str] = None) -> str:
    """Build the key-derivation passphrase from host name and client identifier."""
    if host is None:
        try:
            host = socket.gethostname()
        except OSError:
            host = "localhost"
    return f"{host}-{client_id}"


class CipherProvider(ABC):
    """Key derivation plus authenticated encryption."""

    @abstractmethod
    def derive_key(self, passphrase: str, salt: bytes, iterations: int, length: int = KEY_LENGTH) -> bytes:
        """Derive a symmetric key from ``passphrase``."""

    @abstractmethod
    def encrypt(self, key: bytes, plaintext: bytes) -> bytes:
        """Encrypt with a fresh nonce. Returns ``nonce || ciphertext``."""

    @abstractmethod
    def decrypt(self, key: bytes, blob: bytes) -> bytes:
        """Split the nonce off ``blob`` and decrypt, verifying the tag."""

    def is_available(self) -> bool:
        return True


class AesGcmCipher(CipherProvider):
    """AES-GCM with PBKDF2-HMAC-SHA256 key derivation."""

    def is_available(self) -> bool:
        try:
            from cryptography.hazmat.primitives.ciphers.aead import AESGCM  # noqa: F401
        except ImportError:
            return False
        return True

    def derive_key(self, passphrase: str, salt: bytes, iterations: int, length: int = KEY_LENGTH) -> bytes:
        try:
            from cryptography.hazmat.primitives import hashes
            from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
        except ImportError as e:
            raise EncryptionUnavailableError(
                "cryptography package not available. "
                "Install with: pip install cryptography"
            ) from e

        if iterations < MIN_ITERATIONS:
            raise EncryptionUnavailableError(
                f"Refusing to derive a key with {iterations} iterations (minimum {MIN_ITERATIONS})"
            )

        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=length,
                salt=salt,
                iterations=iterations,
            )
            return kdf.derive(passphrase.encode("utf-8"))
        except Exception as e:
            raise EncryptionUnavailableError(f"Key derivation failed: {e}") from e

    def encrypt(self, key: bytes, plaintext: bytes) -> bytes:
        try:
            from cryptography.hazmat.primitives.ciphers.aead import AESGCM
        except ImportError as e:
            raise EncryptionUnavailableError("cryptography package not available") from e

        try:
            nonce = os.urandom(NONCE_SIZE)
            return nonce + AESGCM(key).encrypt(nonce, plaintext, None)
        except Exception as e:
            raise EncryptionUnavailableError(f"Encryption failed: {e}") from e

    def decrypt(self, key: bytes, blob: bytes) -> bytes:
        try:
            from cryptography.exceptions import InvalidTag
            from cryptography.hazmat.primitives.ciphers.aead import AESGCM
        except ImportError as e:
            raise EncryptionUnavailableError("cryptography package not available") from e

        if len(blob) <= NONCE_SIZE:
            raise CorruptRecordError("Encrypted blob is too short")

        nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise CorruptRecordError("Invalid encryption key or corrupted data")
        except Exception as e:
            raise CorruptRecordError(f"Decryption failed: {e}") from e
