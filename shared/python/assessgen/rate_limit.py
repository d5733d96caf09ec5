"""Sliding-window request limiter used as a router dependency."""

from __future__ import annotations

from collections import defaultdict, deque
import math
import threading
import time

from fastapi import HTTPException, Request, status

from assessgen.config import get_settings

WINDOW_SECONDS = 60.0


class SlidingWindowLimiter:
    """Allows ``limit`` hits per client within any ``window`` seconds.

    State is process-local; each worker enforces its own window.
    """

    def __init__(self, window: float = WINDOW_SECONDS, clock=time.monotonic) -> None:
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, client: str, limit: int) -> float | None:
        """Record a hit; return seconds to wait when the client is over ``limit``."""

        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            hits = self._hits[client]
            self._expire(hits, now)
            if len(hits) >= limit:
                return self.window - (now - hits[0])
            hits.append(now)
            return None

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def _expire(self, hits: deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Forget clients with no hit left inside the window."""

        for client in list(self._hits):
            hits = self._hits[client]
            self._expire(hits, now)
            if not hits:
                del self._hits[client]
        self._last_sweep = now

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def rate_limit_dependency(request: Request) -> None:
    client = request.client.host if request.client else "unknown"
    retry_after = limiter.hit(client, get_settings().rate_limit_per_minute)
    if retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please retry later",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )


def reset_rate_limits() -> None:
    limiter.reset()
