"""
Player cache service: HTTP surface for cached player lookups.
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from fastapi import APIRouter, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import InvalidInputError, RequestCancelledError
from shared.metrics import MetricsCollector

from .adapters import UpstreamClient
from .maintenance import ExpiredRecordSweeper
from .periods import parse_date, shift_months, today_utc
from .persistence import PlayerCacheStore
from .players import PlayerService, PlayersResponse, RatingHistoryResponse
from .ratelimit import TokenBucketRateLimiter

T = TypeVar("T")

DEFAULT_HISTORY_MONTHS = 12


class PlayerCacheService(BaseService):
    """Player cache service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[PlayerCacheStore] = None,
        upstream: Optional[UpstreamClient] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
        today: Callable[[], date] = today_utc,
    ):
        super().__init__(config or get_config(), metrics=metrics)
        self._today = today

        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(self.config.upstream_rate_limit)
        self.store = store or PlayerCacheStore.from_config(self.config)
        self.upstream = upstream or UpstreamClient.from_config(
            self.config,
            self.rate_limiter,
            metrics=self.metrics,
        )
        self.player_service = PlayerService(
            self.store,
            self.upstream,
            self.config,
            metrics=self.metrics,
        )
        self.sweeper = ExpiredRecordSweeper(
            self.store,
            self.config.sweep_interval_seconds,
            metrics=self.metrics,
        )

        self._setup_player_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.player_cache_service = self

    async def startup(self) -> None:
        await self.store.start()
        await self.sweeper.start()

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.upstream.close()
        await self.store.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        healthy = await self.store.health_check()
        return {"postgres": "ok" if healthy else "error"}

    async def _with_deadline(self, operation: Awaitable[T]) -> T:
        """Bound a request by the configured overall timeout."""
        timeout = self.config.request_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await operation
        except TimeoutError:
            raise RequestCancelledError(
                "Request deadline exceeded",
                details={"timeout_seconds": timeout},
            )

    def _setup_player_routes(self):
        """Set up player lookup routes."""
        router = APIRouter(prefix=self.config.api_prefix, tags=["player"])

        @router.get("/player/batch", response_model=PlayersResponse)
        async def get_players(
            ids: Optional[str] = Query(None, description="Comma-separated member ids"),
            date_param: Optional[str] = Query(None, alias="date", description="Rating date (YYYY-MM-DD or YYYY-MM)"),
        ):
            """Batch fetch several players for one rating date."""
            if not ids:
                raise InvalidInputError("ids parameter is required")
            member_ids = _parse_ids(ids)
            when = parse_date(date_param, self._today())
            return await self._with_deadline(self.player_service.get_players(member_ids, when))

        @router.get("/player/fideid/{fide_id}/date/{rating_date}")
        async def get_player_by_fide_id(fide_id: str, rating_date: str) -> Dict[str, Any]:
            """Player by FIDE id for a rating date (cached)."""
            parsed_id = _parse_id(fide_id, "fide id")
            when = parse_date(rating_date, self._today())
            return await self._with_deadline(self.player_service.get_player_by_fide_id(parsed_id, when))

        @router.get("/player/fornamn/{first_name}/efternamn/{last_name}")
        async def search_players(first_name: str, last_name: str) -> List[Dict[str, Any]]:
            """Search players by name (not cached)."""
            return await self._with_deadline(self.player_service.search_players(first_name, last_name))

        @router.get("/player/{member_id}/date/{rating_date}")
        async def get_player(member_id: str, rating_date: str) -> Dict[str, Any]:
            """Player by member id for a rating date (cached)."""
            parsed_id = _parse_id(member_id, "player id")
            when = parse_date(rating_date, self._today())
            return await self._with_deadline(self.player_service.get_player(parsed_id, when))

        @router.get("/player/{member_id}/ratings", response_model=RatingHistoryResponse)
        async def get_player_ratings(
            member_id: str,
            from_param: Optional[str] = Query(None, alias="from", description="Start date (YYYY-MM-DD or YYYY-MM)"),
            to_param: Optional[str] = Query(None, alias="to", description="End date (YYYY-MM-DD or YYYY-MM)"),
            months: Optional[str] = Query(None, description="Months back from today, overrides from/to"),
        ):
            """Rating history between two dates, newest first. Defaults to the last 12 months."""
            parsed_id = _parse_id(member_id, "player id")
            today = self._today()

            if months:
                count = _parse_id(months, "months")
                if count > self.config.history_max_months:
                    raise InvalidInputError(
                        f"maximum {self.config.history_max_months} months allowed",
                        details={"requested_months": count},
                    )
                start, end = shift_months(today, -count), today
            else:
                start = parse_date(from_param, shift_months(today, -DEFAULT_HISTORY_MONTHS))
                end = parse_date(to_param, today)

            return await self._with_deadline(self.player_service.get_player_ratings(parsed_id, start, end))

        self.app.include_router(router)


def _parse_id(text: str, label: str) -> int:
    try:
        value = int(text)
    except (TypeError, ValueError):
        raise InvalidInputError(f"invalid {label}")
    if value <= 0:
        raise InvalidInputError(f"invalid {label}")
    return value


def _parse_ids(text: str) -> List[int]:
    ids: List[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise InvalidInputError("invalid ids format", details={"value": part})
    return ids


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = PlayerCacheService(config)
    return service.app


if __name__ == "__main__":
    service = PlayerCacheService()
    service.run()
