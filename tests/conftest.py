from __future__ import annotations

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from credcache.backends import MemoryBackend
from credcache.cache import CredentialCache
from credcache.cipher import AesGcmCipher
from credcache.errors import EncryptionUnavailableError


VALID_PASSWORD = "correct-horse"
LOCKED_EMAIL = "locked@example.com"
API_TOKEN = "tok-123"
API_USER = {"id": "u1", "email": "seller@example.com", "role": "seller"}


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class CountingCipher(AesGcmCipher):
    """Real AES-GCM cipher that counts key derivations."""

    def __init__(self):
        self.derive_calls = 0
        self._count_lock = threading.Lock()

    def derive_key(self, passphrase, salt, iterations, length=32):
        with self._count_lock:
            self.derive_calls += 1
        return super().derive_key(passphrase, salt, iterations, length)


class FailingCipher(AesGcmCipher):
    """Cipher whose key derivation always fails."""

    def __init__(self):
        self.derive_calls = 0

    def derive_key(self, passphrase, salt, iterations, length=32):
        self.derive_calls += 1
        raise RuntimeError("crypto subsystem unavailable")


class MissingCipher(AesGcmCipher):
    """Cipher reporting that no crypto library is installed."""

    def is_available(self) -> bool:
        return False

    def derive_key(self, passphrase, salt, iterations, length=32):
        raise EncryptionUnavailableError("cryptography package not available")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def cipher() -> CountingCipher:
    return CountingCipher()


@pytest.fixture
def cache(backend, cipher, clock) -> CredentialCache:
    return CredentialCache(backend, cipher, clock=clock, host="test-host")


# ─────────────────────────────────────────────────────────────────
# Fake REST API
# ─────────────────────────────────────────────────────────────────


class _AuthApiHandler(BaseHTTPRequestHandler):
    server_version = "credcache-api-mock/1.0"

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
        # Keep pytest output clean.
        return

    def _send_json(self, status: int, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:  # noqa: N802
        path = self.path.rstrip("/")
        if path == "/api/user/profile":
            if self.headers.get("Authorization") == f"Bearer {API_TOKEN}":
                self._send_json(200, {"user": API_USER})
            else:
                self._send_json(401, {"message": "Token expired"})
            return

        if path == "/api/broken":
            self._send_json(500, {"message": "Internal error"})
            return

        self._send_json(404, {"message": "not found"})

    def do_POST(self) -> None:  # noqa: N802
        if self.path.rstrip("/") != "/api/auth/login":
            self._send_json(404, {"message": "not found"})
            return

        length = int(self.headers.get("Content-Length", "0") or "0")
        raw = self.rfile.read(length) if length > 0 else b"{}"
        try:
            req = json.loads(raw.decode("utf-8"))
        except Exception:
            self._send_json(400, {"message": "invalid json"})
            return

        if req.get("email") == LOCKED_EMAIL:
            self._send_json(423, {"message": "Account locked", "remainingTime": 900})
            return
        if req.get("password") != VALID_PASSWORD:
            self._send_json(401, {"message": "Invalid credentials", "remainingAttempts": 2})
            return

        self._send_json(200, {"token": API_TOKEN, "user": API_USER})


@pytest.fixture(scope="session")
def api_server_url() -> str:
    """Start a tiny fake of the auth REST API."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _AuthApiHandler)

    host, port = server.server_address
    url = f"http://{host}:{port}/api"

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    # Basic readiness check
    deadline = time.time() + 5.0
    while time.time() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.2):
                break
        except OSError:
            time.sleep(0.05)
    else:
        server.shutdown()
        raise RuntimeError("Failed to start API mock server")

    yield url

    server.shutdown()
    server.server_close()
