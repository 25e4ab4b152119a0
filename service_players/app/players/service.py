"""
Cache-aside orchestration for player lookups.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from shared.config import ServiceConfig
from shared.logging import get_logger
from shared.errors import InvalidInputError, StoreError, UpstreamError
from shared.metrics import MetricsCollector

from ..periods import DateLike, expand, format_date, months_between, normalize
from .models import CachedRecord, PlayerError, PlayersResponse, RatingHistoryResponse

Payload = Dict[str, Any]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PlayerService:
    """Serves player snapshots from the cache, fetching upstream only on a miss.

    Cache faults never fail a request: a failed read counts as a miss and a
    failed write is logged and dropped. Upstream faults fail only the item
    that could not be fetched.
    """

    def __init__(
        self,
        store,
        upstream,
        config: ServiceConfig,
        *,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.cache_ttl = timedelta(seconds=config.cache_ttl_seconds)
        self.batch_max_ids = config.batch_max_ids
        self.history_max_months = config.history_max_months
        self.metrics = metrics
        self.logger = get_logger("players.service")
        self._clock = clock or _utc_now

    def determine_expiry(self, period: date, now: Optional[datetime] = None) -> Optional[datetime]:
        """Expiry for a record of ``period``.

        Closed months never change upstream, so they never expire. The current
        month (or a future one) lives for the configured TTL.
        """
        now = now or self._clock()
        if period < normalize(now):
            return None
        return now + self.cache_ttl

    async def get_player(self, member_id: int, when: DateLike) -> Payload:
        """Single lookup by member id. Upstream failures propagate."""
        _validate_id(member_id, "member id")
        period = normalize(when)

        cached = await self._cache_read("get", self.store.get, member_id, period)
        if cached is not None:
            self._count_lookup("hit")
            self.logger.debug("Cache hit", member_id=member_id, period=period.isoformat())
            return cached.payload

        self._count_lookup("miss")
        self.logger.debug("Cache miss, fetching from upstream", member_id=member_id, period=period.isoformat())

        payload = await self.upstream.get_player(member_id, format_date(when))
        await self._cache_write(self._record(member_id, period, payload))
        return payload

    async def get_player_by_fide_id(self, fide_id: int, when: DateLike) -> Payload:
        """Single lookup by FIDE id, cached under the member id in the payload."""
        _validate_id(fide_id, "fide id")
        period = normalize(when)

        cached = await self._cache_read("get_by_fide_id", self.store.get_by_fide_id, fide_id, period)
        if cached is not None:
            self._count_lookup("hit")
            self.logger.debug("Cache hit by FIDE id", fide_id=fide_id, period=period.isoformat())
            return cached.payload

        self._count_lookup("miss")
        self.logger.debug("Cache miss by FIDE id, fetching from upstream", fide_id=fide_id, period=period.isoformat())

        payload = await self.upstream.get_player_by_fide_id(fide_id, format_date(when))

        now = self._clock()
        try:
            record = CachedRecord.from_payload(
                payload,
                period,
                fetched_at=now,
                expires_at=self.determine_expiry(period, now),
            )
        except ValueError as e:
            self.logger.warning("Upstream player has no member id, not caching", fide_id=fide_id, error=str(e))
            return payload

        await self._cache_write(record)
        return payload

    async def get_players(self, member_ids: Sequence[int], when: DateLike) -> PlayersResponse:
        """Batch lookup for one date.

        The batch is validated before any I/O. Missing ids are fetched
        concurrently; per-id upstream failures land in ``errors`` and never
        abort the other fetches. Players come back in request order.
        """
        ids = self._validate_batch(member_ids)
        period = normalize(when)

        cached = await self._cache_read("get_batch", self.store.get_batch, ids, period) or {}
        found: Dict[int, Payload] = {
            member_id: record.payload for member_id, record in cached.items()
        }
        missing = [member_id for member_id in dict.fromkeys(ids) if member_id not in found]

        self._count_lookup("hit", len(ids) - len(missing))
        self._count_lookup("miss", len(missing))
        self.logger.debug("Batch lookup", total=len(ids), cached=len(found), missing=len(missing))

        errors: List[PlayerError] = []
        if missing:
            fetched, errors = await self._fetch_players_parallel(missing, when, period)
            found.update(fetched)

        return PlayersResponse(
            players=[found[member_id] for member_id in ids if member_id in found],
            errors=errors,
        )

    async def _fetch_players_parallel(
        self,
        member_ids: List[int],
        when: DateLike,
        period: date,
    ) -> Tuple[Dict[int, Payload], List[PlayerError]]:
        """Fan out one fetch task per id and wait for all of them."""
        results: Dict[int, Payload] = {}
        failures: Dict[int, PlayerError] = {}
        lock = asyncio.Lock()

        date_str = format_date(when)
        expires_at = self.determine_expiry(period)

        async def fetch_one(member_id: int) -> None:
            try:
                payload = await self.upstream.get_player(member_id, date_str)
            except UpstreamError as e:
                self.logger.warning("Failed to fetch player", member_id=member_id, error=e.message)
                async with lock:
                    failures[member_id] = PlayerError(id=member_id, error=e.message)
                return

            await self._cache_write(
                CachedRecord(
                    member_id=member_id,
                    period=period,
                    payload=payload,
                    fetched_at=self._clock(),
                    expires_at=expires_at,
                )
            )
            async with lock:
                results[member_id] = payload

        tasks = [asyncio.create_task(fetch_one(member_id)) for member_id in member_ids]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        errors = [failures[member_id] for member_id in member_ids if member_id in failures]
        return results, errors

    async def get_player_ratings(self, member_id: int, start: DateLike, end: DateLike) -> RatingHistoryResponse:
        """Rating history for one player between two dates, newest first.

        Missing periods are fetched one after another. A period that fails
        upstream is left out of the result.
        """
        _validate_id(member_id, "member id")
        if normalize(start) > normalize(end):
            return RatingHistoryResponse(player_id=member_id, ratings=[])
        span = months_between(start, end)
        if span > self.history_max_months:
            raise InvalidInputError(
                f"maximum {self.history_max_months} months allowed",
                details={"requested_months": span},
            )

        periods = expand(start, end)
        cached = await self._cache_read("get_range", self.store.get_range, member_id, periods) or {}
        found: Dict[date, Payload] = {period: record.payload for period, record in cached.items()}
        missing = [period for period in periods if period not in found]

        self._count_lookup("hit", len(periods) - len(missing))
        self._count_lookup("miss", len(missing))
        self.logger.debug("Rating history lookup", member_id=member_id, total=len(periods), missing=len(missing))

        for period in missing:
            try:
                payload = await self.upstream.get_player(member_id, format_date(period))
            except UpstreamError as e:
                self.logger.warning(
                    "Failed to fetch player for period",
                    member_id=member_id,
                    period=period.isoformat(),
                    error=e.message,
                )
                continue

            await self._cache_write(self._record(member_id, period, payload))
            found[period] = payload

        return RatingHistoryResponse(
            player_id=member_id,
            ratings=[found[period] for period in reversed(periods) if period in found],
        )

    async def search_players(self, first_name: str, last_name: str) -> List[Payload]:
        """Name search, passed straight through to upstream."""
        if not first_name.strip() or not last_name.strip():
            raise InvalidInputError("first and last name are required")
        return await self.upstream.search_players(first_name.strip(), last_name.strip())

    def _record(self, member_id: int, period: date, payload: Payload) -> CachedRecord:
        now = self._clock()
        return CachedRecord(
            member_id=member_id,
            period=period,
            payload=payload,
            fetched_at=now,
            expires_at=self.determine_expiry(period, now),
        )

    def _validate_batch(self, member_ids: Sequence[int]) -> List[int]:
        ids = list(member_ids)
        if not ids:
            raise InvalidInputError("at least one id is required")
        if len(ids) > self.batch_max_ids:
            raise InvalidInputError(
                f"maximum {self.batch_max_ids} ids allowed",
                details={"requested": len(ids), "maximum": self.batch_max_ids},
            )
        for member_id in ids:
            _validate_id(member_id, "member id")
        return ids

    async def _cache_read(self, operation: str, func: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run a store read; a store failure reads as a miss."""
        try:
            return await func(*args)
        except StoreError as e:
            self.logger.error("Cache lookup failed", operation=operation, error=str(e))
            self._count_store_error(operation)
            return None

    async def _cache_write(self, record: CachedRecord) -> None:
        try:
            await self.store.save(record)
        except StoreError as e:
            self.logger.error(
                "Failed to cache player",
                member_id=record.member_id,
                period=record.period.isoformat(),
                error=str(e),
            )
            self._count_store_error("save")

    def _count_lookup(self, result: str, amount: int = 1) -> None:
        if self.metrics is not None and amount:
            self.metrics.increment_counter("player_cache_lookups_total", amount, result=result)

    def _count_store_error(self, operation: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("player_cache_store_errors_total", operation=operation)


def _validate_id(value: Any, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(f"invalid {label}: {value!r}")
