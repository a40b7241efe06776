"""GTFS static archive fetcher with retry."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx

from transit_sync.errors import FeedRejectedError, FetchError
from transit_sync.logging import get_logger

logger = get_logger(__name__)

# Default settings
DEFAULT_TIMEOUT_SEC = 120
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0


class ArchiveFetcher:
    """Fetches a static GTFS archive from a remote URL or a local path."""

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

    async def fetch_remote(self, url: str) -> bytes:
        """Download the archive with retry + exponential backoff.

        Network errors and 5xx responses are retried; any other 4xx is final.

        Raises:
            FetchError: If all retries are exhausted.
            FeedRejectedError: If the server rejects the request.
        """
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "Fetching GTFS static feed",
                    url=_redact(url),
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_sec),
                    follow_redirects=True,
                    transport=self._transport,
                ) as client:
                    response = await client.get(url)
                    response.raise_for_status()
                    data = response.content

                logger.info("GTFS feed downloaded", size_bytes=len(data))
                return data

            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    msg = f"Static feed request rejected with HTTP {exc.response.status_code}"
                    raise FeedRejectedError(msg) from exc
                last_error = exc
            except httpx.RequestError as exc:
                last_error = exc

            if attempt < self.max_retries - 1:
                delay = self.backoff_base ** (attempt + 1)
                logger.warning(
                    "Fetch attempt failed, retrying",
                    attempt=attempt + 1,
                    delay_sec=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        msg = f"Failed to fetch GTFS feed after {self.max_retries} attempts"
        raise FetchError(msg) from last_error

    async def fetch_local(self, path: str | Path) -> bytes:
        """Read the archive from the local filesystem.

        Raises:
            FileNotFoundError: If path does not exist.
        """
        path = Path(path)
        if not path.exists():
            msg = f"Local GTFS file not found: {path}"
            raise FileNotFoundError(msg)

        data = await asyncio.to_thread(path.read_bytes)
        logger.info("GTFS feed loaded from local file", path=str(path), size_bytes=len(data))
        return data


def _redact(url: str) -> str:
    """Drop the query string, which carries the API key."""
    return url.split("?", 1)[0]
