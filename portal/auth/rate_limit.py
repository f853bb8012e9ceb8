from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Tuple


class RateLimiter:
    """
    In-memory limiter for failed login attempts.

    Tracks failures per identifier (normalized email). After `max_attempts` failures
    inside `window_seconds` further attempts are refused until the window slides.
    Per-process only: each replica counts on its own.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 256,
    ) -> None:
        self._failures: Dict[str, List[float]] = defaultdict(list)
        self._max_attempts = max_attempts
        self._window = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._sweep_every = max(1, sweep_every)
        self._calls = 0

    def _prune(self, identifier: str, now: float) -> List[float]:
        recent = [t for t in self._failures.get(identifier, []) if now - t < self._window]
        if recent:
            self._failures[identifier] = recent
        else:
            self._failures.pop(identifier, None)
        return recent

    def _sweep(self, now: float) -> None:
        # Drop identifiers whose newest failure left the window.
        self._calls += 1
        if self._calls < self._sweep_every:
            return
        self._calls = 0
        stale = [k for k, ts in self._failures.items() if not ts or now - ts[-1] >= self._window]
        for k in stale:
            del self._failures[k]

    def check(self, identifier: str) -> Tuple[bool, int]:
        """
        Returns:
            Tuple of (is_allowed, attempts_remaining)
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            recent = self._prune(identifier, now)
            remaining = max(0, self._max_attempts - len(recent))
            return remaining > 0, remaining

    def record_failure(self, identifier: str) -> int:
        """Record a failed attempt; returns attempts remaining."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            recent = self._prune(identifier, now)
            recent.append(now)
            self._failures[identifier] = recent
            return max(0, self._max_attempts - len(recent))

    def reset(self, identifier: str) -> None:
        """Forget failures after a successful login."""
        with self._lock:
            self._failures.pop(identifier, None)
