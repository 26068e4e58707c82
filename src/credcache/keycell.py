"""Single-flight memo for the derived encryption key."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CellState(Enum):
    """Lifecycle of the memoized key."""

    ABSENT = "absent"
    IN_PROGRESS = "in_progress"
    READY = "ready"


class KeyCell:
    """
    Holds the derived key for the lifetime of the owning cache.

    The first caller starts derivation in a worker thread; callers that
    arrive while it runs await the same task. A failed derivation leaves
    the cell ABSENT so a later call can try again.
    """

    def __init__(self, derive: Callable[[], bytes]):
        self._derive = derive
        self._key: Optional[bytes] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def state(self) -> CellState:
        if self._key is not None:
            return CellState.READY
        if self._pending is not None:
            return CellState.IN_PROGRESS
        return CellState.ABSENT

    async def get(self) -> bytes:
        if self._key is not None:
            return self._key

        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_task(self._run())

        # Shielded so one cancelled waiter does not cancel everybody else's derivation.
        return await asyncio.shield(self._pending)

    async def _run(self) -> bytes:
        try:
            key = await asyncio.to_thread(self._derive)
        except BaseException:
            self._pending = None
            raise
        self._key = key
        self._pending = None
        logger.debug("Encryption key derived")
        return key

    def reset(self) -> None:
        """Forget the memoized key; the next ``get`` derives it again."""
        self._key = None
        self._pending = None
