"""credcache CLI - inspect and manage the local credential cache.

Commands:
  - `credcache set KEY VALUE [--ttl MS]`
  - `credcache get KEY`
  - `credcache remove KEY`
  - `credcache keys` / `credcache purge` / `credcache clear`
  - `credcache status`
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import Optional

from credcache.cache import CredentialCache
from credcache.config import BACKEND_CHOICES, CacheSettings
from credcache.env_loader import load_env
from credcache.errors import CredentialCacheError
from credcache.factory import build_cache

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_ERROR = 2


# ANSI colors
class Colors:
    RESET = "\033[0m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credcache",
        description="Encrypted local credential cache",
    )
    parser.add_argument("--backend", choices=BACKEND_CHOICES, help="Override CREDCACHE_BACKEND")
    parser.add_argument("--path", help="Override CREDCACHE_PATH")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p_set = sub.add_parser("set", help="Store a value")
    p_set.add_argument("key")
    p_set.add_argument("value")
    p_set.add_argument("--ttl", type=int, default=None, help="Time to live in milliseconds")

    p_get = sub.add_parser("get", help="Print a value")
    p_get.add_argument("key")

    p_rm = sub.add_parser("remove", help="Remove a value")
    p_rm.add_argument("key")

    sub.add_parser("keys", help="List encrypted keys")
    sub.add_parser("purge", help="Delete expired entries")
    sub.add_parser("clear", help="Delete every managed entry")
    sub.add_parser("status", help="Show backend and encryption status")
    return parser


async def _run(cache: CredentialCache, settings: CacheSettings, args: argparse.Namespace) -> int:
    if args.command == "set":
        await cache.set_item(args.key, args.value, args.ttl)
        return EXIT_OK

    if args.command == "get":
        value = await cache.get_item(args.key)
        if value is None:
            print(f"{Colors.YELLOW}not found: {args.key}{Colors.RESET}", file=sys.stderr)
            return EXIT_NOT_FOUND
        print(value)
        return EXIT_OK

    if args.command == "remove":
        cache.remove_item(args.key)
        return EXIT_OK

    if args.command == "keys":
        for key in sorted(cache.keys()):
            print(key)
        return EXIT_OK

    if args.command == "purge":
        print(f"purged {await cache.purge_expired()} expired entries")
        return EXIT_OK

    if args.command == "clear":
        cache.clear()
        return EXIT_OK

    # status
    supported = cache.is_supported()
    color = Colors.GREEN if supported else Colors.YELLOW
    print(f"backend:    {settings.backend} ({settings.store_path})")
    print(f"namespace:  {settings.namespace}")
    print(f"encryption: {color}{'available' if supported else 'unavailable (plaintext fallback)'}{Colors.RESET}")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    load_env()
    args = build_parser().parse_args(argv)

    settings = CacheSettings.from_env()
    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.path:
        overrides["path"] = args.path
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cache = build_cache(settings)
        return asyncio.run(_run(cache, settings, args))
    except ValueError as e:
        print(f"{Colors.RED}error: {e}{Colors.RESET}", file=sys.stderr)
        return EXIT_ERROR
    except CredentialCacheError as e:
        logger.debug("Cache operation failed", exc_info=True)
        print(f"{Colors.RED}error: {e}{Colors.RESET}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
