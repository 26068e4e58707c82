"""REST API client that authenticates with the cached bearer token."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from credcache.auth.session import AuthSession

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ApiError(RuntimeError):
    """HTTP error returned by the API."""

    def __init__(self, status: int, message: str, body: Optional[Dict[str, Any]] = None):
        super().__init__(f"API error {status}: {message}")
        self.status = status
        self.message = message
        self.body = body or {}


class AuthenticationRequired(ApiError):
    """The API rejected the token (HTTP 401); the token has been dropped."""


class InvalidCredentialsError(ApiError):
    def __init__(self, message: str, remaining_attempts: Optional[int] = None, body=None):
        super().__init__(401, message, body)
        self.remaining_attempts = remaining_attempts


class AccountLockedError(ApiError):
    def __init__(self, message: str, remaining_time: Optional[int] = None, body=None):
        super().__init__(423, message, body)
        self.remaining_time = remaining_time


def _json_body(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class ApiClient:
    """Thin REST client.

    Attaches ``Authorization: Bearer <token>`` from the session to every
    request and drops the token when the API answers 401. Blocking
    ``requests`` calls run in a worker thread.
    """

    def __init__(
        self,
        session: AuthSession,
        base_url: str,
        *,
        http: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._auth = session
        self.base_url = base_url.rstrip("/")
        self._http = http or requests.Session()
        self._timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            **(await self._auth.authorization_header()),
        }
        return await asyncio.to_thread(
            self._http.request,
            method,
            self._url(path),
            headers=headers,
            json=json,
            timeout=self._timeout,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises:
            AuthenticationRequired: on HTTP 401 (the cached token is removed)
            ApiError: on any other HTTP error status
        """
        resp = await self._send(method, path, json=json)
        body = _json_body(resp)

        if resp.status_code == 401:
            logger.info("API rejected the session token, logging out")
            self._auth.logout()
            raise AuthenticationRequired(401, body.get("message") or "Unauthorized", body)
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, body.get("message") or resp.reason or "Request failed", body)
        return body

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in with email and password, store the token, return the user."""
        resp = await self._send("POST", "/auth/login", json={"email": email, "password": password})
        body = _json_body(resp)

        if resp.status_code == 423:
            raise AccountLockedError(
                body.get("message") or "Account temporarily locked",
                remaining_time=body.get("remainingTime"),
                body=body,
            )
        if resp.status_code == 401:
            raise InvalidCredentialsError(
                body.get("message") or "Invalid credentials",
                remaining_attempts=body.get("remainingAttempts"),
                body=body,
            )
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, body.get("message") or "Login failed", body)

        token = body.get("token")
        if not token:
            raise ApiError(resp.status_code, "Login response did not include a token", body)

        await self._auth.store_token(token)
        return body.get("user") or {}

    async def complete_oauth(self, token: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """Store the token handed back by the OAuth callback."""
        await self._auth.store_token(token)
        return user

    async def check_auth(self) -> Optional[Dict[str, Any]]:
        """Verify the cached token against the profile endpoint.

        Returns the user, or None when there is no valid session. Any
        failure drops the token.
        """
        if await self._auth.get_token() is None:
            return None

        try:
            body = await self.request("GET", "/user/profile")
        except (ApiError, requests.RequestException) as e:
            logger.info("Token verification failed: %s", e)
            self._auth.logout()
            return None

        user = body.get("user")
        if not isinstance(user, dict):
            logger.info("Profile response had no user, logging out")
            self._auth.logout()
            return None
        return user

    def logout(self) -> None:
        self._auth.logout()
