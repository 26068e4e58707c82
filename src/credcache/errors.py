"""
Credential cache errors.

Only ``BackingStoreError`` and ``UnsupportedEnvironmentError`` ever reach
callers of the cache. The other two are raised internally and turned into
the plaintext fallback (``EncryptionUnavailableError``) or a cache miss
(``CorruptRecordError``).
"""


class CredentialCacheError(Exception):
    """Base exception for credential cache errors."""
    pass


class UnsupportedEnvironmentError(CredentialCacheError):
    """Raised when no usable backing store is present."""
    pass


class EncryptionUnavailableError(CredentialCacheError):
    """Raised when the cipher is missing or key derivation/encryption fails."""
    pass


class CorruptRecordError(CredentialCacheError):
    """Raised when an encrypted record cannot be decrypted or parsed."""
    pass


class BackingStoreError(CredentialCacheError):
    """Raised when the backing store rejects a read or write."""
    pass
