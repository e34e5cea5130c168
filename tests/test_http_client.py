"""Tests for the rate-limited HTTP client: pacing, backoff and retry budget."""

from __future__ import annotations

import httpx
import pytest

from dropsync.adapters.http_client import (
    ApiError,
    RateLimitedClient,
    RetryPolicy,
    parse_retry_after,
)


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> _SleepRecorder:
    recorder = _SleepRecorder()
    monkeypatch.setattr("dropsync.adapters.http_client.asyncio.sleep", recorder)
    return recorder


def _client(handler, *, pacing: float = 0.5, max_retries: int = 5) -> RateLimitedClient:
    return RateLimitedClient(
        "https://api.example.test/v1",
        name="example",
        pacing_seconds=pacing,
        retry=RetryPolicy(max_retries=max_retries, base_delay=1.0, multiplier=2.0, max_delay=30.0),
        transport=httpx.MockTransport(handler),
    )


def _sequence(*responses: httpx.Response | Exception):
    calls: list[httpx.Request] = []
    remaining = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        result = remaining.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    return handler, calls


class TestRetryPolicy:
    def test_exponential_backoff(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0)
        assert [policy.delay_for(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_retry_after_is_capped(self):
        policy = RetryPolicy(max_delay=30.0)
        assert policy.delay_for(0, retry_after=7) == 7
        assert policy.delay_for(0, retry_after=3600) == 30.0
        assert policy.delay_for(0, retry_after=-5) == 0.0

    def test_parse_retry_after(self):
        assert parse_retry_after("12") == 12.0
        assert parse_retry_after(" 1.5 ") == 1.5
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


@pytest.mark.asyncio
async def test_pacing_delay_precedes_first_attempt(sleeps):
    handler, calls = _sequence(httpx.Response(200, json={"ok": True}))
    async with _client(handler) as client:
        data = await client.request_json("GET", "/things", operation="list")

    assert data == {"ok": True}
    assert len(calls) == 1
    assert calls[0].url.path == "/v1/things"
    assert sleeps.delays == [0.5]


@pytest.mark.asyncio
async def test_429_honours_retry_after(sleeps):
    handler, calls = _sequence(
        httpx.Response(429, headers={"Retry-After": "3"}, json={"message": "slow down"}),
        httpx.Response(200, json={"ok": True}),
    )
    async with _client(handler) as client:
        await client.request("GET", "/things", operation="list")

    assert len(calls) == 2
    # pacing, retry-after wait, pacing
    assert sleeps.delays == [0.5, 3.0, 0.5]


@pytest.mark.asyncio
async def test_5xx_and_network_errors_share_the_budget(sleeps):
    handler, calls = _sequence(
        httpx.Response(502),
        httpx.ConnectError("connection reset"),
        httpx.Response(503),
        httpx.Response(200, json={}),
    )
    async with _client(handler, pacing=0.0) as client:
        response = await client.request("GET", "/things", operation="list")

    assert response.status_code == 200
    assert len(calls) == 4
    assert [d for d in sleeps.delays if d] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_other_4xx_fails_immediately(sleeps):
    handler, calls = _sequence(httpx.Response(400, json={"message": "bad property"}))
    async with _client(handler) as client:
        with pytest.raises(ApiError) as excinfo:
            await client.request("POST", "/pages", operation="create")

    assert len(calls) == 1
    assert excinfo.value.status == 400
    assert excinfo.value.retryable is False
    assert "bad property" in excinfo.value.message


@pytest.mark.asyncio
async def test_exhausted_budget_raises_non_retryable(sleeps):
    handler, calls = _sequence(*[httpx.Response(429) for _ in range(3)])
    async with _client(handler, pacing=0.0, max_retries=2) as client:
        with pytest.raises(ApiError) as excinfo:
            await client.request("GET", "/things", operation="list")

    assert len(calls) == 3
    assert excinfo.value.status == 429
    assert excinfo.value.retryable is False


@pytest.mark.asyncio
async def test_non_json_body_is_an_api_error(sleeps):
    handler, _ = _sequence(httpx.Response(200, text="<html>"))
    async with _client(handler) as client:
        with pytest.raises(ApiError):
            await client.request_json("GET", "/things", operation="list")


@pytest.mark.asyncio
async def test_request_before_open_raises():
    client = _client(lambda request: httpx.Response(200))
    with pytest.raises(RuntimeError):
        await client.request("GET", "/things", operation="list")
