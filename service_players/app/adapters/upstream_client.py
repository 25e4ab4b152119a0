"""
HTTP client for the chess federation member API.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from shared.config import ServiceConfig
from shared.logging import get_logger
from shared.errors import UpstreamError
from shared.metrics import MetricsCollector

from ..ratelimit import TokenBucketRateLimiter


class UpstreamClient:
    """Rate-limited, read-only client for the upstream player endpoints."""

    def __init__(
        self,
        base_url: str,
        rate_limiter: TokenBucketRateLimiter,
        *,
        timeout: float = 30.0,
        permit_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.rate_limiter = rate_limiter
        self.permit_timeout = permit_timeout
        self.metrics = metrics
        self.logger = get_logger("players.upstream_client")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        rate_limiter: TokenBucketRateLimiter,
        *,
        metrics: Optional[MetricsCollector] = None,
    ) -> "UpstreamClient":
        return cls(
            config.upstream_base_url,
            rate_limiter,
            timeout=config.upstream_timeout_seconds,
            permit_timeout=config.request_timeout_seconds,
            metrics=metrics,
        )

    async def close(self) -> None:
        """Close pooled HTTP connections."""
        await self._client.aclose()

    async def get_player(self, member_id: int, date: str) -> Dict[str, Any]:
        """Fetch a player snapshot by federation member id for a rating date."""
        return await self._get_object(f"/player/{member_id}/date/{date}")

    async def get_player_by_fide_id(self, fide_id: int, date: str) -> Dict[str, Any]:
        """Fetch a player snapshot by FIDE id for a rating date."""
        return await self._get_object(f"/player/fideid/{fide_id}/date/{date}")

    async def search_players(self, first_name: str, last_name: str) -> List[Dict[str, Any]]:
        """Search players by name. Results are never cached."""
        path = "/player/fornamn/{}/efternamn/{}".format(
            quote(first_name, safe=""),
            quote(last_name, safe=""),
        )
        data = await self.get_json(path)
        if not isinstance(data, list):
            raise UpstreamError("Unexpected search payload", detail=f"expected list, got {type(data).__name__}")
        return data

    async def _get_object(self, path: str) -> Dict[str, Any]:
        data = await self.get_json(path)
        if not isinstance(data, dict):
            raise UpstreamError("Unexpected player payload", detail=f"expected object, got {type(data).__name__}")
        return data

    async def get_json(self, path: str) -> Any:
        """Rate-limited GET returning the decoded JSON body."""
        response = await self._get(path)
        try:
            return response.json()
        except ValueError as exc:
            self._record("invalid_body")
            raise UpstreamError("Malformed upstream response", detail=str(exc), details={"path": path}) from exc

    async def _get(self, path: str) -> httpx.Response:
        """Acquire a permit, then issue the GET with the client's own timeout."""
        await self.rate_limiter.acquire(self.permit_timeout)

        self.logger.debug("Upstream request", path=path)
        try:
            if self.metrics is not None:
                with self.metrics.time_operation("upstream_fetch_duration_seconds"):
                    response = await self._client.get(path)
            else:
                response = await self._client.get(path)
        except httpx.HTTPError as exc:
            self._record("transport_error")
            self.logger.error("Upstream transport error", path=path, error=str(exc))
            raise UpstreamError(
                "Upstream request failed",
                detail=f"{type(exc).__name__}: {exc}",
                details={"path": path},
            ) from exc

        if response.status_code != 200:
            self._record("http_error")
            self.logger.warning(
                "Upstream returned error status",
                path=path,
                status_code=response.status_code,
            )
            raise UpstreamError(
                f"Upstream error: status={response.status_code}",
                upstream_status=response.status_code,
                detail=response.text[:500],
                details={"path": path},
            )

        self._record("success")
        return response

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_fetches_total", outcome=outcome)
