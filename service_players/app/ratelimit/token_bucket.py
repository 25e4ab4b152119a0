"""
Token bucket rate limiter guarding the upstream federation API.
"""

import asyncio
import time
from typing import Optional

from aiolimiter import AsyncLimiter

from shared.logging import get_logger
from shared.errors import RequestCancelledError


class TokenBucketRateLimiter:
    """Process-wide token bucket shared by every upstream call.

    The bucket holds ``rate`` permits and refills at ``rate`` permits per
    second, so short bursts up to ``rate`` calls go through immediately and
    the long-run average stays at ``rate`` calls per second.
    """

    def __init__(self, rate: int, *, name: str = "upstream"):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")

        self.rate = rate
        self.capacity = rate
        self.name = name
        self.logger = get_logger(f"players.rate_limiter.{name}")
        self._limiter = AsyncLimiter(max_rate=rate, time_period=1.0)

    async def acquire(self, timeout: Optional[float] = None) -> float:
        """Wait for one permit and return the seconds spent waiting.

        Raises ``RequestCancelledError`` when no permit frees up within
        ``timeout``. Cancellation of the calling task propagates unchanged.
        """
        start = time.monotonic()
        try:
            if timeout is None:
                await self._limiter.acquire()
            else:
                await asyncio.wait_for(self._limiter.acquire(), timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Rate limit wait timed out", limiter=self.name, timeout=timeout)
            raise RequestCancelledError(
                "Timed out waiting for upstream rate limit permit",
                details={"limiter": self.name, "timeout_seconds": timeout},
            )

        waited = time.monotonic() - start
        if waited > 0.05:
            self.logger.debug("Rate limit wait", limiter=self.name, waited_ms=round(waited * 1000, 2))
        return waited
