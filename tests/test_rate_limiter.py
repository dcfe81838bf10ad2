"""Tests for the per-caller sliding-window rate limiter."""

import threading

from store_assistant.ai.rate_limiter import RateLimiter, RateLimitEntry


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _limiter(clock: FakeClock, **kwargs) -> RateLimiter:
    return RateLimiter(clock=clock, **kwargs)


class TestCheckAndRecord:
    def test_ceiling_boundary(self):
        clock = FakeClock()
        limiter = _limiter(clock, requests_per_minute=3)
        assert [limiter.check_and_record(1) for _ in range(3)] == [True, True, True]
        clock.advance(59)
        assert limiter.check_and_record(1) is False

    def test_window_slides(self):
        clock = FakeClock()
        limiter = _limiter(clock, requests_per_minute=2)
        assert limiter.check_and_record(1)
        assert limiter.check_and_record(1)
        assert not limiter.check_and_record(1)
        clock.advance(61)
        assert limiter.check_and_record(1)

    def test_rejected_requests_are_not_recorded(self):
        clock = FakeClock()
        limiter = _limiter(clock, requests_per_minute=1)
        assert limiter.check_and_record(1)
        for _ in range(5):
            clock.advance(10)
            assert not limiter.check_and_record(1)
        # Only the first request counts, so the window clears 60s after it.
        clock.advance(11)
        assert limiter.check_and_record(1)

    def test_callers_are_independent(self):
        clock = FakeClock()
        limiter = _limiter(clock, requests_per_minute=1)
        assert limiter.check_and_record("a")
        assert limiter.check_and_record("b")
        assert not limiter.check_and_record("a")

    def test_remaining(self):
        clock = FakeClock()
        limiter = _limiter(clock, requests_per_minute=5)
        assert limiter.remaining(7) == 5
        limiter.check_and_record(7)
        limiter.check_and_record(7)
        assert limiter.remaining(7) == 3

    def test_concurrent_checks_respect_ceiling(self):
        limiter = RateLimiter(requests_per_minute=50)
        results: list[bool] = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                allowed = limiter.check_and_record("shared")
                with lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 50


class RacingEntries(dict):
    """Hands out an already-evicted entry on the first lookup, as if a sweep ran in between."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.evicted = RateLimitEntry()
        self.raced = False

    def setdefault(self, key, default=None):
        if not self.raced:
            self.raced = True
            return self.evicted
        return super().setdefault(key, default)


def test_request_is_not_recorded_on_an_evicted_entry():
    clock = FakeClock()
    limiter = _limiter(clock, requests_per_minute=5)
    assert limiter.check_and_record(1)
    limiter._entries = RacingEntries(limiter._entries)

    assert limiter.check_and_record(1)

    assert len(limiter._entries.evicted.request_times) == 0
    assert limiter.remaining(1) == 3


class TestCleanup:
    def test_evicts_idle_callers(self):
        clock = FakeClock()
        limiter = _limiter(clock, entry_expiration_seconds=600)
        limiter.check_and_record(1)
        clock.advance(601)
        assert limiter.cleanup(force=True) == 1
        assert 1 not in limiter

    def test_keeps_recent_callers(self):
        clock = FakeClock()
        limiter = _limiter(clock, entry_expiration_seconds=600)
        limiter.check_and_record(1)
        clock.advance(120)
        assert limiter.cleanup(force=True) == 0
        assert 1 in limiter

    def test_cleanup_is_gated_by_interval(self):
        clock = FakeClock()
        limiter = _limiter(clock, cleanup_interval_seconds=300, entry_expiration_seconds=10)
        limiter.check_and_record(1)
        clock.advance(100)
        assert limiter.cleanup() == 0
        assert 1 in limiter

    def test_amortized_cleanup_on_check(self):
        clock = FakeClock()
        limiter = _limiter(clock, cleanup_interval_seconds=300, entry_expiration_seconds=600)
        for caller in range(10):
            limiter.check_and_record(caller)
        clock.advance(700)
        limiter.check_and_record("new")
        assert len(limiter) == 1
        assert "new" in limiter
