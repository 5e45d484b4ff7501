"""
Logical clock providers.

The registry stamps registrations and attestations with a value supplied
by its host. Hosts that have a block counter plug it in through
ManualClock; standalone deployments use SystemClock.
"""

import threading
from abc import ABC, abstractmethod

from .util import now_epoch


class Clock(ABC):
    """Abstract interface for a monotonically non-decreasing clock."""

    @abstractmethod
    def now(self) -> int:
        """Return the current logical clock value."""
        pass


class SystemClock(Clock):
    """
    Wall-clock seconds, clamped so the value never goes backwards even
    if the system time is adjusted.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.RLock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, now_epoch())
            return self._last


class ManualClock(Clock):
    """
    Externally driven clock, e.g. a block height fed by the host.
    """

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.RLock()

    def now(self) -> int:
        with self._lock:
            return self._value

    def advance(self, steps: int = 1) -> int:
        """Move the clock forward and return the new value."""
        if steps < 0:
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._value += steps
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            if value < self._value:
                raise ValueError(f"clock cannot move backwards ({value} < {self._value})")
            self._value = value
