from __future__ import annotations

from portal.auth.rate_limit import RateLimiter


class _Clock:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


def test_blocks_after_max_failures() -> None:
    limiter = RateLimiter(max_attempts=3, window_seconds=60, clock=_Clock())
    assert limiter.check("ann@x.com") == (True, 3)
    assert limiter.record_failure("ann@x.com") == 2
    assert limiter.record_failure("ann@x.com") == 1
    assert limiter.record_failure("ann@x.com") == 0
    assert limiter.check("ann@x.com") == (False, 0)
    # Other identifiers are unaffected.
    assert limiter.check("bob@x.com") == (True, 3)


def test_window_slides() -> None:
    clock = _Clock()
    limiter = RateLimiter(max_attempts=2, window_seconds=60, clock=clock)
    limiter.record_failure("ann@x.com")
    clock.t += 30
    limiter.record_failure("ann@x.com")
    assert limiter.check("ann@x.com")[0] is False
    clock.t += 31
    assert limiter.check("ann@x.com") == (True, 1)
    clock.t += 30
    assert limiter.check("ann@x.com") == (True, 2)


def test_reset_clears_failures() -> None:
    limiter = RateLimiter(max_attempts=2, window_seconds=60, clock=_Clock())
    limiter.record_failure("ann@x.com")
    limiter.record_failure("ann@x.com")
    limiter.reset("ann@x.com")
    assert limiter.check("ann@x.com") == (True, 2)


def test_expired_identifiers_are_swept() -> None:
    clock = _Clock()
    limiter = RateLimiter(max_attempts=5, window_seconds=60, clock=clock)
    for i in range(10_000):
        limiter.record_failure(f"user{i}@x.com")
    assert len(limiter._failures) == 10_000

    clock.t += 61
    # Lookups for unrelated emails are enough to trigger a sweep.
    for _ in range(256):
        limiter.check("late@x.com")
    assert len(limiter._failures) == 0


def test_sweep_keeps_identifiers_inside_window() -> None:
    clock = _Clock()
    limiter = RateLimiter(max_attempts=3, window_seconds=60, clock=clock, sweep_every=1)
    limiter.record_failure("old@x.com")
    clock.t += 45
    limiter.record_failure("ann@x.com")
    clock.t += 20
    limiter.check("bob@x.com")
    assert set(limiter._failures) == {"ann@x.com"}
    assert limiter.check("ann@x.com") == (True, 2)
