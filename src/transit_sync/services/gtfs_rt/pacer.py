"""Spaces upstream calls according to the advertised rate limit."""

from __future__ import annotations

from transit_sync.logging import get_logger

logger = get_logger(__name__)


class RateLimitPacer:
    """Tracks the last seen rate-limit counters for one upstream.

    Calls are spread evenly over the window: with a limit of ``L`` calls per
    ``window_sec`` seconds the interval between calls is ``window_sec // L``.
    Without a limit header the configured default is used.
    """

    def __init__(self, window_sec: int, default_limit: int, pause_sec: int) -> None:
        self.window_sec = window_sec
        self.default_limit = default_limit
        self.default_pause_sec = pause_sec
        self.limit: int | None = None
        self.remaining: int | None = None
        self.reset: int | None = None

    def observe(self, limit: int | None, remaining: int | None, reset: int | None) -> None:
        if limit is not None and limit > 0:
            self.limit = limit
        self.remaining = remaining
        self.reset = reset
        if self.exhausted:
            logger.info("Rate limit quota exhausted", limit=self.limit, reset_sec=reset)

    @property
    def interval_sec(self) -> int:
        limit = self.limit or self.default_limit
        return self.window_sec // max(limit, 1)

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    @property
    def pause_sec(self) -> int:
        if self.reset is not None and self.reset > 0:
            return self.reset
        return self.default_pause_sec
