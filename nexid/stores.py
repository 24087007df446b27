"""
In-memory state: per-client rate windows and completed async results.

Both live for the lifetime of the process only.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .models import VerifyResponse

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# =============================================================================
# Rate Limiter
# =============================================================================

@dataclass
class RateWindow:
    count: int
    reset_at: float
    last_seen: float


class RateLimiter:
    """Fixed-window request counter keyed by client address.

    Args:
        window_s: Window length in seconds.
        max_requests: Requests admitted per window; the next one is rejected.
        clock: Monotonic time source, overridable in tests.
    """

    CLEANUP_EVERY = 100

    def __init__(self, window_s: float = 60.0, max_requests: int = 20, clock: Clock = time.monotonic):
        self.window_s = window_s
        self.max_requests = max_requests
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._calls = 0

    def admit(self, key: str) -> Tuple[bool, int]:
        """Count one request for `key`. Returns (allowed, count in window)."""
        now = self._clock()
        with self._lock:
            self._calls += 1
            if self._calls % self.CLEANUP_EVERY == 0:
                self._cleanup(now)

            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                self._windows[key] = RateWindow(count=1, reset_at=now + self.window_s, last_seen=now)
                return True, 1

            window.count += 1
            window.last_seen = now
            return window.count <= self.max_requests, window.count

    def _cleanup(self, now: float):
        idle = [k for k, w in self._windows.items() if now > w.last_seen + self.window_s]
        for k in idle:
            del self._windows[k]
        if idle:
            logger.debug("reclaimed %d idle rate windows", len(idle))

    def __len__(self) -> int:
        return len(self._windows)


# =============================================================================
# Result Store
# =============================================================================

class ResultStore:
    """Completed async decisions keyed by request id.

    Entries are write-once. With `ttl_s` set, an entry is dropped once it is
    older than the TTL; `ttl_s=0` keeps entries for the life of the process.
    """

    CLEANUP_EVERY = 50

    def __init__(self, ttl_s: float = 3600.0, clock: Clock = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self._results: Dict[str, Tuple[VerifyResponse, float]] = {}
        self._lock = threading.Lock()

    def put(self, response: VerifyResponse) -> bool:
        """Store a result. Returns False if the id was already written."""
        now = self._clock()
        with self._lock:
            if response.requestId in self._results:
                logger.warning("result %s already stored, keeping first write", response.requestId)
                return False
            self._results[response.requestId] = (response, now)
            if len(self._results) % self.CLEANUP_EVERY == 0:
                self._cleanup(now)
            return True

    def get(self, request_id: str) -> Optional[VerifyResponse]:
        now = self._clock()
        with self._lock:
            entry = self._results.get(request_id)
            if entry is None:
                return None
            response, stored_at = entry
            if self._expired(stored_at, now):
                del self._results[request_id]
                return None
            return response

    def _expired(self, stored_at: float, now: float) -> bool:
        return self.ttl_s > 0 and now - stored_at >= self.ttl_s

    def _cleanup(self, now: float):
        expired = [rid for rid, (_, at) in self._results.items() if self._expired(at, now)]
        for rid in expired:
            del self._results[rid]

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, request_id: str) -> bool:
        return self.get(request_id) is not None
