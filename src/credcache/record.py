"""Stored record format."""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from typing import Optional

from credcache.errors import CorruptRecordError


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class StoredRecord:
    """A cached value plus its optional absolute expiry."""

    data: str
    expires_at: Optional[int] = None

    @classmethod
    def create(cls, value: str, ttl_ms: Optional[int], now: int) -> "StoredRecord":
        return cls(data=value, expires_at=now + ttl_ms if ttl_ms else None)

    def is_expired(self, now: int) -> bool:
        if self.expires_at is None:
            return False
        return now > self.expires_at

    def to_json(self) -> str:
        payload = {"data": self.data}
        if self.expires_at is not None:
            payload["expiresAt"] = self.expires_at
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "StoredRecord":
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise CorruptRecordError(f"Record is not valid JSON: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), str):
            raise CorruptRecordError("Record is missing a string 'data' field")

        expires_at = payload.get("expiresAt")
        if expires_at is not None and (
            isinstance(expires_at, bool) or not isinstance(expires_at, (int, float))
        ):
            raise CorruptRecordError("Record has a non-numeric 'expiresAt'")
        if isinstance(expires_at, float) and not math.isfinite(expires_at):
            raise CorruptRecordError("Record has a non-finite 'expiresAt'")

        return cls(
            data=payload["data"],
            expires_at=int(expires_at) if expires_at is not None else None,
        )
