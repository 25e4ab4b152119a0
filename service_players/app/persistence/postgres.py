"""
PostgreSQL persistence layer for the player cache.
"""

import json
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import asyncpg

from shared.config import ServiceConfig
from shared.logging import get_logger
from shared.errors import StoreError

from ..players.models import CachedRecord

_LIVE = "(expires_at IS NULL OR expires_at > NOW())"

_COLUMNS = "member_id, rating_date, data, fetched_at, expires_at"


class PlayerCacheStore:
    """Period-versioned player snapshots with lazy, read-time expiry.

    Reads only ever return live rows. Expired rows stay in the table until
    ``delete_expired`` removes them.
    """

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("players.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "PlayerCacheStore":
        return cls(
            config.postgres_dsn,
            min_size=config.postgres_min_pool,
            max_size=config.postgres_max_pool,
            command_timeout=config.request_timeout_seconds,
        )

    async def start(self, *, create_tables: bool = True):
        """Open the connection pool, creating the schema when asked."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                init=self._init_connection,
            )
        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreError("start", str(e)) from e

        if create_tables:
            await self.create_tables()

        self.logger.info("PostgreSQL persistence started", min_size=self.min_size, max_size=self.max_size)

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    @staticmethod
    async def _init_connection(conn) -> None:
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[Any]:
        """Acquire a pooled connection, translating failures into StoreError."""
        if self.pool is None:
            raise StoreError(operation, "connection pool is not started")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(operation, str(e), details={"error_type": type(e).__name__}) from e

    async def create_tables(self):
        """Create the cache table and indexes if they don't exist."""
        async with self._connection("create_tables") as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS player_cache (
                    member_id INTEGER NOT NULL,
                    rating_date DATE NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    club TEXT,
                    club_id INTEGER,
                    fide_id INTEGER,
                    elo_standard INTEGER,
                    elo_rapid INTEGER,
                    elo_blitz INTEGER,
                    lask_rating INTEGER,
                    data JSONB NOT NULL,
                    fetched_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    expires_at TIMESTAMP WITH TIME ZONE,
                    PRIMARY KEY (member_id, rating_date),
                    CONSTRAINT player_cache_first_of_month CHECK (EXTRACT(DAY FROM rating_date) = 1)
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_player_cache_fide ON player_cache(fide_id, rating_date);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_player_cache_expires ON player_cache(expires_at)
                WHERE expires_at IS NOT NULL;
            """)

    async def drop_tables(self):
        """Drop the cache table and everything in it."""
        async with self._connection("drop_tables") as conn:
            await conn.execute("DROP TABLE IF EXISTS player_cache;")
        self.logger.warning("Player cache table dropped")

    async def get(self, member_id: int, period: date) -> Optional[CachedRecord]:
        """Live record for one member and period, or None."""
        async with self._connection("get") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM player_cache
                WHERE member_id = $1 AND rating_date = $2
                AND {_LIVE}
                """,
                member_id, period,
            )
            return self._row_to_record(row) if row else None

    async def get_by_fide_id(self, fide_id: int, period: date) -> Optional[CachedRecord]:
        """Live record for the player carrying ``fide_id`` in the given period."""
        async with self._connection("get_by_fide_id") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM player_cache
                WHERE fide_id = $1 AND rating_date = $2
                AND {_LIVE}
                ORDER BY fetched_at DESC
                LIMIT 1
                """,
                fide_id, period,
            )
            return self._row_to_record(row) if row else None

    async def get_batch(self, member_ids: Iterable[int], period: date) -> Dict[int, CachedRecord]:
        """Live records for many members in one period. Missing ids are absent."""
        ids = list(member_ids)
        if not ids:
            return {}

        async with self._connection("get_batch") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM player_cache
                WHERE member_id = ANY($1::integer[]) AND rating_date = $2
                AND {_LIVE}
                """,
                ids, period,
            )
            return {row["member_id"]: self._row_to_record(row) for row in rows}

    async def get_range(self, member_id: int, periods: Iterable[date]) -> Dict[date, CachedRecord]:
        """Live records for one member across several periods."""
        wanted: List[date] = list(periods)
        if not wanted:
            return {}

        async with self._connection("get_range") as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM player_cache
                WHERE member_id = $1 AND rating_date = ANY($2::date[])
                AND {_LIVE}
                """,
                member_id, wanted,
            )
            return {row["rating_date"]: self._row_to_record(row) for row in rows}

    async def save(self, record: CachedRecord) -> None:
        """Insert or overwrite the row for ``(member_id, period)``."""
        async with self._connection("save") as conn:
            columns = record.denormalized()
            await conn.execute("""
                INSERT INTO player_cache (
                    member_id, rating_date, first_name, last_name, club, club_id, fide_id,
                    elo_standard, elo_rapid, elo_blitz, lask_rating, data, fetched_at, expires_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                ON CONFLICT (member_id, rating_date) DO UPDATE SET
                    first_name = EXCLUDED.first_name,
                    last_name = EXCLUDED.last_name,
                    club = EXCLUDED.club,
                    club_id = EXCLUDED.club_id,
                    fide_id = EXCLUDED.fide_id,
                    elo_standard = EXCLUDED.elo_standard,
                    elo_rapid = EXCLUDED.elo_rapid,
                    elo_blitz = EXCLUDED.elo_blitz,
                    lask_rating = EXCLUDED.lask_rating,
                    data = EXCLUDED.data,
                    fetched_at = EXCLUDED.fetched_at,
                    expires_at = EXCLUDED.expires_at
            """,
                record.member_id, record.period,
                columns["first_name"], columns["last_name"], columns["club"],
                columns["club_id"], columns["fide_id"],
                columns["elo_standard"], columns["elo_rapid"], columns["elo_blitz"],
                columns["lask_rating"],
                record.payload, record.fetched_at, record.expires_at,
            )

        self.logger.debug("Player cached", member_id=record.member_id, period=record.period.isoformat())

    async def delete_expired(self) -> int:
        """Physically remove rows whose expiry has passed. Returns the row count."""
        async with self._connection("delete_expired") as conn:
            result = await conn.execute(
                "DELETE FROM player_cache WHERE expires_at IS NOT NULL AND expires_at <= NOW()"
            )

        deleted = _affected_rows(result)
        self.logger.info("Expired cache rows deleted", count=deleted)
        return deleted

    async def count(self) -> int:
        """Total number of rows, live or expired."""
        async with self._connection("count") as conn:
            value = await conn.fetchval("SELECT COUNT(*) FROM player_cache")
            return value or 0

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._connection("health_check") as conn:
                await conn.fetchval("SELECT 1")
                return True
        except StoreError as e:
            self.logger.warning("Database health check failed", error=str(e))
            return False

    def _row_to_record(self, row) -> CachedRecord:
        """Convert database row to CachedRecord."""
        data = row["data"]
        if isinstance(data, (str, bytes)):
            data = json.loads(data)

        return CachedRecord(
            member_id=row["member_id"],
            period=row["rating_date"],
            payload=data,
            fetched_at=_as_utc(row["fetched_at"]),
            expires_at=_as_utc(row["expires_at"]) if row["expires_at"] is not None else None,
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _affected_rows(status: str) -> int:
    """Parse asyncpg command status such as ``DELETE 3``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
