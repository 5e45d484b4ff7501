"""
Per-identity request limits for the HTTP adapter.

Authenticated routes are keyed by caller identity, public routes by
client address. Reads and writes have separate budgets.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding-window counter: at most `rpm` hits per key in any window of
    `window_seconds`. Rejected hits are not counted.

    Keys with no hit inside the window are dropped, either when they are
    checked or by the sweep that runs every `cleanup_every` checks.
    """

    def __init__(
        self,
        rpm: int,
        window_seconds: int = 60,
        time_source: Callable[[], float] = time.monotonic,
        cleanup_every: int = 1000
    ):
        self.limit = max(1, rpm)
        self.window = window_seconds
        self._time = time_source
        self._cleanup_every = max(1, cleanup_every)
        self._checks = 0
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        with self._lock:
            return len(self._hits)

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """Count a hit for key if it fits in the window."""
        now = self._time()
        with self._lock:
            self._checks += 1
            if self._checks >= self._cleanup_every:
                self._checks = 0
                self._sweep(now)

            hits = self._hits.get(key)
            if hits is not None:
                self._prune(hits, now)

            if hits and len(hits) >= self.limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    retry_after=max(0.0, hits[0] + self.window - now),
                )

            if hits is None:
                hits = self._hits[key] = deque()
            hits.append(now)
            return RateLimitResult(allowed=True, remaining=self.limit - len(hits))

    def cleanup_expired(self) -> int:
        """Drop every key whose hits have all left the window. Returns the count dropped."""
        now = self._time()
        with self._lock:
            return self._sweep(now)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when none is given."""
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def _prune(self, hits: Deque[float], now: float) -> None:
        while hits and hits[0] <= now - self.window:
            hits.popleft()

    def _sweep(self, now: float) -> int:
        expired = []
        for key, hits in self._hits.items():
            self._prune(hits, now)
            if not hits:
                expired.append(key)
        for key in expired:
            del self._hits[key]
        return len(expired)
