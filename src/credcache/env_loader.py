"""Read CREDCACHE_* settings from a .env file into os.environ."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ENV_FILE_VAR = "CREDCACHE_ENV_FILE"

_LINE = re.compile(r"^(?:export\s+)?(CREDCACHE_[A-Z0-9_]+)\s*=\s*(.*)$")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def load_env(path: Optional[str | os.PathLike[str]] = None, *, override: bool = False) -> list[str]:
    """
    Load ``KEY=VALUE`` lines from ``path`` (or ``$CREDCACHE_ENV_FILE``, or ``./.env``).

    Only CREDCACHE_* keys are applied. Existing variables win unless
    ``override`` is set. Returns the keys that were applied.
    """
    if path is None:
        path = os.getenv(ENV_FILE_VAR, "").strip() or ".env"
    env_file = Path(path).expanduser()
    if not env_file.is_file():
        return []

    applied: list[str] = []
    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _LINE.match(line)
        if match is None:
            logger.debug("Ignoring .env line outside the CREDCACHE_ namespace")
            continue
        key, value = match.groups()
        if key in os.environ and not override:
            continue
        os.environ[key] = _unquote(value.strip())
        applied.append(key)

    if applied:
        logger.debug("Loaded %d settings from %s", len(applied), env_file)
    return applied
