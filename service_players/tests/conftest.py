"""
Shared fixtures for player cache tests.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from service_players.app.players.models import CachedRecord
from shared.config import ServiceConfig
from shared.errors import StoreError, UpstreamError
from shared.metrics import MetricsCollector


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryStore:
    """Dict-backed stand-in for PlayerCacheStore with the same read semantics."""

    def __init__(self, clock: FixedClock):
        self.clock = clock
        self.records: Dict[Tuple[int, date], CachedRecord] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.reads = 0
        self.saves = 0

    def seed(self, record: CachedRecord) -> None:
        self.records[(record.member_id, record.period)] = record

    def _check_read(self, operation: str) -> None:
        self.reads += 1
        if self.fail_reads:
            raise StoreError(operation, "connection refused")

    def _live(self, record: Optional[CachedRecord]) -> Optional[CachedRecord]:
        if record is not None and record.is_live(self.clock()):
            return record
        return None

    async def get(self, member_id: int, period: date) -> Optional[CachedRecord]:
        self._check_read("get")
        return self._live(self.records.get((member_id, period)))

    async def get_by_fide_id(self, fide_id: int, period: date) -> Optional[CachedRecord]:
        self._check_read("get_by_fide_id")
        for (_, record_period), record in self.records.items():
            if record_period == period and record.fide_id == fide_id:
                return self._live(record)
        return None

    async def get_batch(self, member_ids, period: date) -> Dict[int, CachedRecord]:
        self._check_read("get_batch")
        found = {}
        for member_id in member_ids:
            record = self._live(self.records.get((member_id, period)))
            if record is not None:
                found[member_id] = record
        return found

    async def get_range(self, member_id: int, periods) -> Dict[date, CachedRecord]:
        self._check_read("get_range")
        found = {}
        for period in periods:
            record = self._live(self.records.get((member_id, period)))
            if record is not None:
                found[period] = record
        return found

    async def save(self, record: CachedRecord) -> None:
        await asyncio.sleep(0)
        if self.fail_writes:
            raise StoreError("save", "disk full")
        self.saves += 1
        self.records[(record.member_id, record.period)] = record


class FakeUpstream:
    """Upstream double that counts calls and fails on demand."""

    def __init__(self):
        self.calls: List[Tuple[str, Any, Any]] = []
        self.failing_ids: Dict[int, UpstreamError] = {}
        self.failing_dates: Set[str] = set()
        self.fide_members: Dict[int, Optional[int]] = {}
        self.search_results: List[Dict[str, Any]] = []
        self.payloads: Dict[int, Dict[str, Any]] = {}

    async def get_player(self, member_id: int, date: str) -> Dict[str, Any]:
        self.calls.append(("get_player", member_id, date))
        await asyncio.sleep(0)
        if member_id in self.failing_ids:
            raise self.failing_ids[member_id]
        if date in self.failing_dates:
            raise UpstreamError("Upstream error: status=500", upstream_status=500)
        if member_id in self.payloads:
            return dict(self.payloads[member_id], date=date)
        return {
            "id": member_id,
            "firstName": "Player",
            "lastName": str(member_id),
            "date": date,
            "elo": {"rating": 1800 + member_id % 100},
        }

    async def get_player_by_fide_id(self, fide_id: int, date: str) -> Dict[str, Any]:
        self.calls.append(("get_player_by_fide_id", fide_id, date))
        await asyncio.sleep(0)
        payload: Dict[str, Any] = {"fideid": fide_id, "date": date}
        member_id = self.fide_members.get(fide_id)
        if member_id is not None:
            payload["id"] = member_id
        return payload

    async def search_players(self, first_name: str, last_name: str) -> List[Dict[str, Any]]:
        self.calls.append(("search_players", first_name, last_name))
        return self.search_results


@pytest.fixture
def now():
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FixedClock(now)


@pytest.fixture
def store(clock):
    return InMemoryStore(clock)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def config():
    return ServiceConfig(
        cache_ttl_seconds=86400,
        batch_max_ids=100,
        history_max_months=240,
    )


@pytest.fixture
def metrics():
    return MetricsCollector("players-test")
