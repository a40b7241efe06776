"""Tests for GTFS-RT feed fetcher."""

import httpx
import pytest

from transit_sync.errors import FeedRejectedError, FetchError, QuotaExhausted
from transit_sync.services.gtfs_rt.fetcher import RealtimeFetcher, parse_rate_limit

from .fixtures.gtfs_rt_fixture import build_trip_update_feed

URL = "https://example.test/tripupdates?agency=SF&api_key=secret"


def _fetcher(handler, max_retries: int = 1) -> RealtimeFetcher:
    return RealtimeFetcher(
        timeout_sec=5,
        max_retries=max_retries,
        backoff_base=0.0,
        transport=httpx.MockTransport(handler),
    )


class TestRealtimeFetcher:
    """Unit tests for RealtimeFetcher."""

    async def test_fetch_success(self) -> None:
        payload = build_trip_update_feed()
        fetcher = _fetcher(lambda request: httpx.Response(200, content=payload))

        result = await fetcher.fetch(URL, "trip_updates", "poll-1")

        assert result.content == payload
        assert len(result.sha256) == 64
        assert result.status_code == 200
        assert result.rate_remaining is None

    async def test_rate_limit_headers_are_captured(self) -> None:
        headers = {"RateLimit-Limit": "60", "RateLimit-Remaining": "12", "RateLimit-Reset": "1800"}
        fetcher = _fetcher(lambda request: httpx.Response(200, content=b"\x0a\x00", headers=headers))

        result = await fetcher.fetch(URL, "trip_updates", "poll-1")

        assert (result.rate_limit, result.rate_remaining, result.rate_reset) == (60, 12, 1800)

    async def test_fetch_empty_response_raises(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200, content=b""))

        with pytest.raises(FetchError):
            await fetcher.fetch(URL, "trip_updates", "poll-1")

    async def test_server_error_is_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, content=b"\x0a\x00")

        result = await _fetcher(handler, max_retries=3).fetch(URL, "trip_updates", "poll-1")

        assert result.content == b"\x0a\x00"
        assert len(calls) == 2

    async def test_all_retries_fail(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError, match="after 2 attempts"):
            await _fetcher(handler, max_retries=2).fetch(URL, "trip_updates", "poll-1")

    async def test_too_many_requests_raises_quota_exhausted(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(429, headers={"Retry-After": "120"})

        with pytest.raises(QuotaExhausted) as exc_info:
            await _fetcher(handler, max_retries=3).fetch(URL, "trip_updates", "poll-1")

        assert exc_info.value.reset_sec == 120
        assert len(calls) == 1

    async def test_client_error_is_rejected_without_retry(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404)

        with pytest.raises(FeedRejectedError, match="404"):
            await _fetcher(handler, max_retries=3).fetch(URL, "trip_updates", "poll-1")
        assert len(calls) == 1


class TestParseRateLimit:
    def test_standard_headers(self) -> None:
        headers = httpx.Headers({"RateLimit-Limit": "60", "RateLimit-Remaining": "0"})
        assert parse_rate_limit(headers) == (60, 0, None)

    def test_legacy_headers(self) -> None:
        headers = httpx.Headers({"X-RateLimit-Limit": "100", "X-RateLimit-Remaining": "99"})
        assert parse_rate_limit(headers) == (100, 99, None)

    def test_retry_after_fallback(self) -> None:
        headers = httpx.Headers({"Retry-After": "30"})
        assert parse_rate_limit(headers) == (None, None, 30)

    def test_list_and_garbage_values(self) -> None:
        headers = httpx.Headers({"RateLimit-Limit": "60, 60;w=3600", "RateLimit-Remaining": "lots"})
        assert parse_rate_limit(headers) == (60, None, None)
