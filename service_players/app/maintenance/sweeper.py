"""
Background removal of expired cache rows.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from shared.logging import get_logger
from shared.errors import StoreError
from shared.metrics import MetricsCollector


class ExpiredRecordSweeper:
    """Periodically deletes rows whose ``expires_at`` has passed.

    Reads already ignore expired rows, so the sweep only reclaims space and
    can run at any cadence.
    """

    def __init__(self, store, interval_seconds: float, *, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.logger = get_logger("players.maintenance.sweeper")
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._running or self.interval_seconds <= 0:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Expired row sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.logger.info("Expired row sweeper stopped")

    async def sweep_once(self) -> int:
        """Delete expired rows now and return how many went."""
        deleted = await self.store.delete_expired()
        if self.metrics is not None:
            self.metrics.increment_counter("cache_expired_rows_deleted_total", deleted)
            self.metrics.set_gauge("cache_sweep_last_run_timestamp", time.time())
        return deleted

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except StoreError as e:
                self.logger.error("Expired row sweep failed", error=str(e))
