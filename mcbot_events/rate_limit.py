"""
Rate limiting for high-frequency world signals.

Uses a fixed minimum interval per key: the first signal opens a window,
anything arriving before the window closes is dropped (not queued).
"""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional


class IntervalLimiter:
    """
    Per-key minimum-interval limiter.

    Example:
        >>> limiter = IntervalLimiter(interval_ms=500)
        >>> limiter.allow("move")
        True
        >>> limiter.allow("move")  # inside the same 500 ms window
        False
    """

    def __init__(
        self,
        interval_ms: float = 500.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize limiter.

        Args:
            interval_ms: Minimum spacing between accepted signals per key
            clock: Monotonic time source in seconds (defaults to time.monotonic)
        """
        if interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")
        self.interval = interval_ms / 1000.0
        self.clock = clock or time.monotonic
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def ready(self, key: str) -> bool:
        """Whether a signal for key would be accepted now, without consuming the window."""
        now = self.clock()
        with self._lock:
            last = self._last.get(key)
            return last is None or now - last >= self.interval

    def mark(self, key: str) -> None:
        """Open a new window for key at the current time."""
        now = self.clock()
        with self._lock:
            self._last[key] = now

    def allow(self, key: str) -> bool:
        """
        Check and consume in one step.

        Returns:
            True if accepted (a new window starts), False if dropped
        """
        now = self.clock()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < self.interval:
                return False
            self._last[key] = now
            return True

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key, or every key when none is given."""
        with self._lock:
            if key is None:
                self._last.clear()
            else:
                self._last.pop(key, None)

    def stats(self) -> Dict:
        with self._lock:
            return {
                "active_keys": len(self._last),
                "interval_ms": round(self.interval * 1000.0, 3),
            }
