"""
Tests for the upstream federation API client.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from service_players.app.adapters import UpstreamClient
from shared.errors import RequestCancelledError, UpstreamError
from shared.metrics import MetricsCollector

BASE_URL = "https://federation.test/public/api/v1"


def _client(handler, *, limiter=None, metrics=None):
    if limiter is None:
        limiter = MagicMock()
        limiter.acquire = AsyncMock(return_value=0.0)
    return UpstreamClient(
        BASE_URL,
        limiter,
        permit_timeout=5.0,
        metrics=metrics,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_player_path_and_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": 12345, "firstName": "Anna"})

    client = _client(handler)
    payload = await client.get_player(12345, "2024-06-15")
    await client.close()

    assert payload == {"id": 12345, "firstName": "Anna"}
    assert seen[0].method == "GET"
    assert seen[0].url.path == "/public/api/v1/player/12345/date/2024-06-15"


@pytest.mark.asyncio
async def test_get_player_by_fide_id_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"id": 1, "fideid": 1503014})

    client = _client(handler)
    await client.get_player_by_fide_id(1503014, "2024-06-01")

    assert seen == ["/public/api/v1/player/fideid/1503014/date/2024-06-01"]


@pytest.mark.asyncio
async def test_permit_acquired_before_request():
    limiter = MagicMock()
    limiter.acquire = AsyncMock(return_value=0.0)
    client = _client(lambda request: httpx.Response(200, json={"id": 1}), limiter=limiter)

    await client.get_player(1, "2024-06-01")

    limiter.acquire.assert_awaited_once_with(5.0)


@pytest.mark.asyncio
async def test_permit_timeout_skips_request():
    limiter = MagicMock()
    limiter.acquire = AsyncMock(side_effect=RequestCancelledError("Timed out waiting for upstream rate limit permit"))
    handler = MagicMock(return_value=httpx.Response(200, json={}))
    client = _client(handler, limiter=limiter)

    with pytest.raises(RequestCancelledError):
        await client.get_player(1, "2024-06-01")

    handler.assert_not_called()


@pytest.mark.asyncio
async def test_non_success_status_raises():
    metrics = MetricsCollector("players-test")
    client = _client(lambda request: httpx.Response(404, text="Player not found"), metrics=metrics)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_player(99999, "2024-06-01")

    error = exc_info.value
    assert error.message == "Upstream error: status=404"
    assert error.upstream_status == 404
    assert error.detail == "Player not found"
    assert metrics.registry.get_sample_value("upstream_fetches_total", {"outcome": "http_error"}) == 1


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_player(1, "2024-06-01")

    assert exc_info.value.upstream_status is None
    assert "ConnectError" in exc_info.value.detail


@pytest.mark.asyncio
async def test_malformed_body_raises():
    client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_player(1, "2024-06-01")

    assert exc_info.value.message == "Malformed upstream response"


@pytest.mark.asyncio
async def test_unexpected_shape_raises():
    client = _client(lambda request: httpx.Response(200, json=[{"id": 1}]))

    with pytest.raises(UpstreamError):
        await client.get_player(1, "2024-06-01")


@pytest.mark.asyncio
async def test_search_quotes_names():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path.decode())
        return httpx.Response(200, json=[{"id": 1}])

    client = _client(handler)
    results = await client.search_players("Anna Maria", "Öberg")

    assert results == [{"id": 1}]
    assert seen[0].endswith("/player/fornamn/Anna%20Maria/efternamn/%C3%96berg")


@pytest.mark.asyncio
async def test_search_requires_list():
    client = _client(lambda request: httpx.Response(200, json={"id": 1}))

    with pytest.raises(UpstreamError):
        await client.search_players("Anna", "Berg")


@pytest.mark.asyncio
async def test_success_counted():
    metrics = MetricsCollector("players-test")
    client = _client(lambda request: httpx.Response(200, json={"id": 1}), metrics=metrics)

    await client.get_player(1, "2024-06-01")

    assert metrics.registry.get_sample_value("upstream_fetches_total", {"outcome": "success"}) == 1
    assert metrics.registry.get_sample_value("upstream_fetch_duration_seconds_count") == 1
