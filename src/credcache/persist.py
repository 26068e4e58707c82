"""Persisted application state, rehydrated through the credential cache."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

from credcache.cache import CredentialCache

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "persist:root"


class PersistedState:
    """
    Saves a JSON-serializable state snapshot and restores it on startup.

    Snapshots carry a version number; a snapshot written under another
    version is discarded instead of being rehydrated.
    """

    def __init__(self, cache: CredentialCache, *, key: str = DEFAULT_STATE_KEY, version: int = 1):
        self._cache = cache
        self.key = key
        self.version = version

    async def save(self, state: Mapping[str, Any]) -> None:
        payload = json.dumps({"version": self.version, "state": dict(state)})
        await self._cache.set_item(self.key, payload)

    async def load(self) -> Optional[Dict[str, Any]]:
        raw = await self._cache.get_item(self.key)
        if raw is None:
            return None

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable persisted state under '%s'", self.key)
            self.purge()
            return None

        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            logger.warning("Discarding malformed persisted state under '%s'", self.key)
            self.purge()
            return None

        if payload.get("version") != self.version:
            logger.info(
                "Discarding persisted state version %s (expected %s)",
                payload.get("version"), self.version,
            )
            self.purge()
            return None

        return payload["state"]

    def purge(self) -> None:
        self._cache.remove_item(self.key)
