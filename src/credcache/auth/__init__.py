"""Authentication flow built on the credential cache."""

from credcache.auth.session import AuthSession, TOKEN_KEY
from credcache.auth.api_client import (
    ApiClient,
    ApiError,
    AuthenticationRequired,
    InvalidCredentialsError,
    AccountLockedError,
)

__all__ = [
    "AuthSession",
    "TOKEN_KEY",
    "ApiClient",
    "ApiError",
    "AuthenticationRequired",
    "InvalidCredentialsError",
    "AccountLockedError",
]
