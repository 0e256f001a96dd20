"""
In-process fixed-window rate limiting.

A RateLimiter instance is used as a FastAPI dependency; each client address
gets ``max_requests`` calls per ``window_seconds``. Counters live in memory,
so limits are per process.
"""

import logging
import threading
import time

from fastapi import Request

from errors import RateLimited

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, name: str, max_requests: int, window_seconds: int, message: str):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._hits = {}
        self._last_sweep = None
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        # at most once per window; caller holds the lock
        if self._last_sweep is None:
            self._last_sweep = now
        elif now - self._last_sweep >= self.window_seconds:
            self._hits = {k: v for k, v in self._hits.items() if now - v[0] < self.window_seconds}
            self._last_sweep = now

    def hit(self, key: str, now: float = None) -> bool:
        """Record one request for key; False once the window's budget is spent."""
        now = time.monotonic() if now is None else now
        with self._lock:
            self._sweep(now)
            started, count = self._hits.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._hits[key] = (started, count)
            return count <= self.max_requests

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_sweep = None

    def __call__(self, request: Request) -> None:
        client = request.client.host if request.client else "unknown"
        if not self.hit(client):
            logger.warning("Rate limit '%s' exceeded by %s", self.name, client)
            raise RateLimited(self.message)


login_limiter = RateLimiter(
    "login", max_requests=5, window_seconds=15 * 60,
    message="Too many login attempts, please try again later",
)

enquiry_limiter = RateLimiter(
    "enquiry", max_requests=10, window_seconds=60 * 60,
    message="Too many enquiries submitted, please try again later",
)

api_limiter = RateLimiter(
    "api", max_requests=100, window_seconds=60,
    message="Too many requests, please try again later",
)

ALL_LIMITERS = (login_limiter, enquiry_limiter, api_limiter)
