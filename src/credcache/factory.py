"""Composition root: builds backends, caches and the auth clients from settings."""

from __future__ import annotations

from typing import Callable, Optional

import requests

from credcache.auth import ApiClient, AuthSession
from credcache.backends import JsonFileBackend, MemoryBackend, SQLiteBackend, StorageBackend
from credcache.cache import CredentialCache
from credcache.cipher import CipherProvider
from credcache.config import CacheSettings
from credcache.record import now_ms


def build_backend(settings: CacheSettings) -> StorageBackend:
    """Create the backing store named by ``settings.backend``."""
    if settings.backend == "memory":
        return MemoryBackend()
    if settings.backend == "sqlite":
        return SQLiteBackend(settings.store_path)
    return JsonFileBackend(settings.store_path)


def build_cache(
    settings: Optional[CacheSettings] = None,
    *,
    backend: Optional[StorageBackend] = None,
    cipher: Optional[CipherProvider] = None,
    clock: Callable[[], int] = now_ms,
) -> CredentialCache:
    """Factory for creating the application's credential cache."""
    settings = settings or CacheSettings.from_env()
    return CredentialCache(
        backend if backend is not None else build_backend(settings),
        cipher,
        namespace=settings.namespace,
        salt=settings.salt,
        iterations=settings.iterations,
        client_id=settings.client_id,
        max_value_bytes=settings.max_value_bytes,
        migrate_legacy=settings.migrate_legacy,
        clock=clock,
    )


def build_session(settings: CacheSettings, cache: CredentialCache) -> AuthSession:
    """Auth session whose tokens expire after ``settings.token_ttl_ms``."""
    return AuthSession(cache, token_ttl_ms=settings.token_ttl_ms)


def build_api_client(
    settings: CacheSettings,
    session: AuthSession,
    *,
    http: Optional[requests.Session] = None,
) -> ApiClient:
    """API client pointed at ``settings.api_url``."""
    return ApiClient(session, settings.api_url, http=http)
