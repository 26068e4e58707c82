"""Credential cache settings, loaded from CREDCACHE_* environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from credcache import __version__
from credcache.cache import DEFAULT_MAX_VALUE_BYTES, DEFAULT_NAMESPACE
from credcache.cipher import DEFAULT_SALT, MIN_ITERATIONS

logger = logging.getLogger(__name__)

__all__ = ["CacheSettings", "BACKEND_CHOICES"]

BACKEND_CHOICES = ("memory", "file", "sqlite")

_DEFAULT_DIR = Path.home() / ".credcache"


def _int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s, using %s", name, default)
        return default


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass
class CacheSettings:
    """Credential cache settings.

    Env vars::

        CREDCACHE_BACKEND=file               # memory | file | sqlite
        CREDCACHE_PATH=~/.credcache/store.json
        CREDCACHE_NAMESPACE=secure_
        CREDCACHE_SALT=auth-module-salt
        CREDCACHE_ITERATIONS=100000          # never below 100000
        CREDCACHE_CLIENT_ID=credcache/0.1.0
        CREDCACHE_MAX_VALUE_BYTES=524288
        CREDCACHE_MIGRATE_LEGACY=1
        CREDCACHE_API_URL=http://localhost:5000/api
        CREDCACHE_TOKEN_TTL_MS=604800000     # unset = tokens never expire
        CREDCACHE_LOG_LEVEL=WARNING
    """

    backend: str = "file"
    path: Optional[Path] = None
    namespace: str = DEFAULT_NAMESPACE
    salt: bytes = DEFAULT_SALT
    iterations: int = MIN_ITERATIONS
    client_id: str = f"credcache/{__version__}"
    max_value_bytes: int = DEFAULT_MAX_VALUE_BYTES
    migrate_legacy: bool = True
    api_url: str = "http://localhost:5000/api"
    token_ttl_ms: Optional[int] = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.backend not in BACKEND_CHOICES:
            raise ValueError(
                f"Unknown backend '{self.backend}', expected one of {', '.join(BACKEND_CHOICES)}"
            )
        if self.iterations < MIN_ITERATIONS:
            logger.warning(
                "Raising key-derivation iterations from %d to %d", self.iterations, MIN_ITERATIONS
            )
            self.iterations = MIN_ITERATIONS
        if self.token_ttl_ms is not None and self.token_ttl_ms <= 0:
            self.token_ttl_ms = None
        if self.path is not None:
            self.path = Path(self.path).expanduser()

    @property
    def store_path(self) -> Path:
        """Backend path, defaulting per backend type."""
        if self.path is not None:
            return self.path
        if self.backend == "sqlite":
            return _DEFAULT_DIR / "store.db"
        return _DEFAULT_DIR / "store.json"

    @classmethod
    def from_env(cls) -> "CacheSettings":
        """Load settings from environment variables."""
        defaults = cls()
        raw_path = os.getenv("CREDCACHE_PATH", "").strip()
        raw_salt = os.getenv("CREDCACHE_SALT", "")

        return cls(
            backend=os.getenv("CREDCACHE_BACKEND", defaults.backend).strip().lower() or defaults.backend,
            path=Path(raw_path) if raw_path else None,
            namespace=os.getenv("CREDCACHE_NAMESPACE", "").strip() or defaults.namespace,
            salt=raw_salt.encode("utf-8") if raw_salt else defaults.salt,
            iterations=_int("CREDCACHE_ITERATIONS", defaults.iterations),
            client_id=os.getenv("CREDCACHE_CLIENT_ID", "").strip() or defaults.client_id,
            max_value_bytes=_int("CREDCACHE_MAX_VALUE_BYTES", defaults.max_value_bytes),
            migrate_legacy=_bool("CREDCACHE_MIGRATE_LEGACY", defaults.migrate_legacy),
            api_url=os.getenv("CREDCACHE_API_URL", "").strip() or defaults.api_url,
            token_ttl_ms=_int("CREDCACHE_TOKEN_TTL_MS", None),
            log_level=os.getenv("CREDCACHE_LOG_LEVEL", "").strip().upper() or defaults.log_level,
        )
