"""Tests for the rate-limit pacer."""

from transit_sync.services.gtfs_rt.pacer import RateLimitPacer


def _pacer() -> RateLimitPacer:
    return RateLimitPacer(window_sec=3600, default_limit=60, pause_sec=300)


class TestRateLimitPacer:
    def test_default_interval(self) -> None:
        pacer = _pacer()
        assert pacer.interval_sec == 60
        assert not pacer.exhausted

    def test_interval_follows_advertised_limit(self) -> None:
        pacer = _pacer()
        pacer.observe(limit=240, remaining=100, reset=None)
        assert pacer.interval_sec == 15

    def test_missing_limit_keeps_last_seen(self) -> None:
        pacer = _pacer()
        pacer.observe(limit=120, remaining=50, reset=None)
        pacer.observe(limit=None, remaining=49, reset=None)
        assert pacer.limit == 120
        assert pacer.remaining == 49

    def test_exhausted_pauses_until_reset(self) -> None:
        pacer = _pacer()
        pacer.observe(limit=60, remaining=0, reset=900)
        assert pacer.exhausted
        assert pacer.pause_sec == 900

    def test_exhausted_without_reset_uses_default_pause(self) -> None:
        pacer = _pacer()
        pacer.observe(limit=60, remaining=0, reset=None)
        assert pacer.pause_sec == 300

    def test_unknown_remaining_is_not_exhausted(self) -> None:
        pacer = _pacer()
        pacer.observe(limit=None, remaining=None, reset=None)
        assert not pacer.exhausted
