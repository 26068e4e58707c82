"""Session token lifecycle on top of the credential cache."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from credcache.cache import CredentialCache
from credcache.errors import CredentialCacheError

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"


class AuthSession:
    """
    Stores and reads the bearer token.

    A failing cache never breaks authentication: the user is just treated
    as logged out.
    """

    def __init__(
        self,
        cache: CredentialCache,
        *,
        token_key: str = TOKEN_KEY,
        token_ttl_ms: Optional[int] = None,
    ):
        self._cache = cache
        self.token_key = token_key
        self._token_ttl_ms = token_ttl_ms

    async def store_token(self, token: str) -> None:
        if not token:
            raise ValueError("token must not be empty")
        await self._cache.set_item(self.token_key, token, self._token_ttl_ms)

    async def get_token(self) -> Optional[str]:
        try:
            return await self._cache.get_item(self.token_key)
        except CredentialCacheError as e:
            logger.warning("Could not read session token: %s", e)
            return None

    async def authorization_header(self) -> Dict[str, str]:
        token = await self.get_token()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def is_authenticated(self) -> bool:
        return await self.get_token() is not None

    def logout(self) -> None:
        try:
            self._cache.remove_item(self.token_key)
        except CredentialCacheError as e:
            logger.error("Failed to remove token: %s", e)
