"""GTFS-RT feed fetcher with retry, backoff and rate-limit header capture."""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import httpx

from transit_sync.errors import FeedRejectedError, FetchError, QuotaExhausted
from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0


@dataclass(frozen=True)
class FeedFetchResult:
    content: bytes
    sha256: str
    status_code: int
    rate_limit: Optional[int] = None
    rate_remaining: Optional[int] = None
    rate_reset: Optional[int] = None


def _header_int(headers: Mapping[str, str], *names: str) -> int | None:
    for name in names:
        value = headers.get(name)
        if value is None:
            continue
        try:
            return int(value.split(",")[0].strip())
        except ValueError:
            logger.debug("Ignoring non-integer rate limit header", header=name, value=value)
    return None


def parse_rate_limit(headers: Mapping[str, str]) -> tuple[int | None, int | None, int | None]:
    """(limit, remaining, reset seconds) from ``RateLimit-*`` or ``X-RateLimit-*`` headers."""
    return (
        _header_int(headers, "RateLimit-Limit", "X-RateLimit-Limit"),
        _header_int(headers, "RateLimit-Remaining", "X-RateLimit-Remaining"),
        _header_int(headers, "RateLimit-Reset", "X-RateLimit-Reset", "Retry-After"),
    )


class RealtimeFetcher:
    """Fetches GTFS-RT protobuf feeds from remote URLs."""

    def __init__(
        self,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._transport = transport

    async def fetch(self, url: str, feed_type: str, poll_id: str) -> FeedFetchResult:
        """Download a GTFS-RT feed with retry + exponential backoff.

        Args:
            url: Full URL (with API key) to fetch.
            feed_type: Label for logging (e.g. "trip_updates").
            poll_id: Correlation ID for this poll cycle.

        Raises:
            QuotaExhausted: On HTTP 429; never retried here.
            FeedRejectedError: On any other 4xx.
            FetchError: If network errors or 5xx persist through all retries.
        """
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "Fetching GTFS-RT feed",
                    feed_type=feed_type,
                    poll_id=poll_id,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_sec),
                    follow_redirects=True,
                    transport=self._transport,
                ) as client:
                    response = await client.get(url)

                limit, remaining, reset = parse_rate_limit(response.headers)
                if response.status_code == 429:
                    msg = f"Rate limit reached fetching {feed_type}"
                    raise QuotaExhausted(msg, reset_sec=reset)
                response.raise_for_status()
                data = response.content

                if not data:
                    msg = "Empty response body"
                    raise FetchError(msg)

                feed_hash = hashlib.sha256(data).hexdigest()
                logger.info(
                    "GTFS-RT feed downloaded",
                    feed_type=feed_type,
                    poll_id=poll_id,
                    size_bytes=len(data),
                    feed_hash=feed_hash[:12],
                    rate_remaining=remaining,
                )
                return FeedFetchResult(
                    content=data,
                    sha256=feed_hash,
                    status_code=response.status_code,
                    rate_limit=limit,
                    rate_remaining=remaining,
                    rate_reset=reset,
                )

            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    msg = f"{feed_type} request rejected with HTTP {exc.response.status_code}"
                    raise FeedRejectedError(msg) from exc
                last_error = exc
            except (httpx.RequestError, FetchError) as exc:
                last_error = exc

            if attempt < self.max_retries - 1:
                delay = self.backoff_base ** (attempt + 1)
                logger.warning(
                    "GTFS-RT fetch failed, retrying",
                    feed_type=feed_type,
                    poll_id=poll_id,
                    attempt=attempt + 1,
                    delay_sec=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        msg = f"Failed to fetch {feed_type} after {self.max_retries} attempts"
        logger.error(msg, feed_type=feed_type, poll_id=poll_id, error=str(last_error))
        raise FetchError(msg) from last_error
