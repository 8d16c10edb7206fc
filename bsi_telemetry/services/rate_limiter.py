from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple


@dataclass(frozen=True)
class Limit:
    allowed: bool
    remaining: int
    reset_after_s: float

    @property
    def retry_after(self) -> int:
        """Whole seconds for a Retry-After header."""
        return max(1, int(math.ceil(self.reset_after_s)))


class RateLimiter:
    """Fixed-window attempt counter keyed by caller-chosen strings.

    Every call to ``hit`` counts, successful or not. The window opens on the
    first hit for a key and resets once ``window_s`` has elapsed. Expired keys
    are swept from inside ``hit`` at most once per window.

    Process-local: several workers each keep their own counters.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        # key -> (window_opened_at, hits)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    def hit(self, key: str, *, limit: int, window_s: int) -> Limit:
        now = self._clock()
        limit = max(1, int(limit))
        window_s = max(1, int(window_s))
        with self._lock:
            if now - self._last_sweep >= window_s:
                self._drop_stale(now, window_s)
            opened, hits = self._windows.get(key, (now, 0))
            if now - opened >= window_s:
                opened, hits = now, 0
            reset_after = max(0.0, opened + window_s - now)
            if hits >= limit:
                return Limit(False, 0, reset_after)
            hits += 1
            self._windows[key] = (opened, hits)
            return Limit(True, limit - hits, reset_after)

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def purge_expired(self, *, window_s: int) -> int:
        now = self._clock()
        with self._lock:
            return self._drop_stale(now, max(1, int(window_s)))

    def _drop_stale(self, now: float, window_s: int) -> int:
        stale = [k for k, (opened, _) in self._windows.items() if now - opened >= window_s]
        for k in stale:
            del self._windows[k]
        self._last_sweep = now
        return len(stale)
