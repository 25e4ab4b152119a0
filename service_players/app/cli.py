"""
Operator commands for the player cache: serve and database maintenance.
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger

from .persistence import PlayerCacheStore

logger = get_logger("players.cli")


async def _run_db_command(config: ServiceConfig, command: str) -> int:
    store = PlayerCacheStore.from_config(config)
    await store.start(create_tables=False)
    try:
        if command == "create":
            await store.create_tables()
            logger.info("Database tables created")
        elif command == "drop":
            await store.drop_tables()
            logger.warning("Database tables deleted")
        elif command == "sweep":
            deleted = await store.delete_expired()
            print(f"Deleted {deleted} expired rows")
        elif command == "count":
            print(f"Cached rows: {await store.count()}")
    finally:
        await store.stop()
    return 0


def _serve(config: ServiceConfig) -> int:
    from .main import PlayerCacheService

    PlayerCacheService(config).run()
    return 0


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="player-cache", description="Caching proxy for the chess federation member API.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default=None, help="Bind address (overrides PLAYERCACHE_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (overrides PLAYERCACHE_PORT)")

    db = sub.add_parser("db", help="Database management commands")
    db_sub = db.add_subparsers(dest="db_command", required=True)
    db_sub.add_parser("create", help="Create database tables")
    drop = db_sub.add_parser("drop", help="Drop all database tables. WARNING: deletes all cached data")
    drop.add_argument("--yes", action="store_true", help="Confirm the drop")
    db_sub.add_parser("sweep", help="Delete expired cache rows once")
    db_sub.add_parser("count", help="Show the number of cached rows")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    overrides = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    config = get_config(**overrides)

    if args.command == "serve":
        return _serve(config)

    configure_logging(config.service_name, config.log_level, config.log_format)

    if args.db_command == "drop" and not args.yes:
        print("Refusing to drop tables without --yes", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run_db_command(config, args.db_command))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[player-cache] {args.db_command} failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
