"""
Rate Limiter - Token bucket algorithm, process-local.

Limits requests per client address: each client gets a bucket of
`max_requests` tokens that refills at `max_requests / window_seconds`
tokens per second. A request costs one token; an empty bucket means 429.

State lives in this process only. Several relay processes each keep
their own buckets.
"""

import logging
import threading
import time
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/", "/health", "/metrics")


class TokenBucketRateLimiter:
    """
    In-memory token bucket rate limiter keyed by client id.

    Buckets: client_id -> (tokens, last_refill_timestamp).
    A client seen for the first time starts with a full bucket. A bucket idle
    for a whole window has refilled completely, so it is dropped; a sweep runs
    at most once per window.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Max requests per window (bucket capacity)
            window_seconds: Time window in seconds
            clock: Time source, injectable for tests

        Example: max_requests=60, window_seconds=60 = 60 requests/minute
        """
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.refill_rate = max_requests / window_seconds
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check_rate_limit(self, client_id: str) -> tuple[bool, dict]:
        """
        Consume one token for `client_id` if available.

        Returns:
            (allowed, info) with info = {"remaining": int, "reset_at": int, "limit": int}.
            reset_at is the number of seconds until the bucket is full again
            (allowed) or until the next token arrives (rejected).
        """
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep_idle(now)
            tokens, last_refill = self._buckets.get(client_id, (float(self.max_requests), now))

            elapsed = now - last_refill
            tokens = min(float(self.max_requests), tokens + elapsed * self.refill_rate)

            if tokens >= 1.0:
                tokens -= 1.0
                self._buckets[client_id] = (tokens, now)
                return True, {
                    "remaining": int(tokens),
                    "reset_at": int((self.max_requests - tokens) / self.refill_rate),
                    "limit": self.max_requests
                }

            self._buckets[client_id] = (tokens, now)
            time_until_token = (1.0 - tokens) / self.refill_rate
            return False, {
                "remaining": 0,
                "reset_at": max(1, int(time_until_token + 0.999)),
                "limit": self.max_requests
            }

    def _sweep_idle(self, now: float) -> None:
        """Drop buckets untouched for a full window. Caller holds the lock."""
        idle = [cid for cid, (_, last) in self._buckets.items() if now - last >= self.window_seconds]
        for cid in idle:
            del self._buckets[cid]
        self._last_sweep = now
        if idle:
            logger.info(f"Rate limiter dropped {len(idle)} idle bucket(s)")

    def __len__(self) -> int:
        return len(self._buckets)

    def reset_limit(self, client_id: str) -> None:
        """Forget a client's bucket (next request starts full)."""
        with self._lock:
            self._buckets.pop(client_id, None)
        logger.info(f"Rate limit reset for client: {client_id}")


def _rate_limit_headers(info: dict) -> dict:
    return {
        "X-RateLimit-Limit": str(info["limit"]),
        "X-RateLimit-Remaining": str(info["remaining"]),
        "X-RateLimit-Reset": str(info["reset_at"]),
    }


async def rate_limit_middleware(request: Request, call_next, limiter: TokenBucketRateLimiter):
    """
    FastAPI middleware enforcing the per-client limit.

    Health, root and metrics routes are never limited.
    Rejected requests get 429 with X-RateLimit-* and Retry-After headers;
    allowed requests get X-RateLimit-* on their response.
    """
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    client_id = request.client.host if request.client else "unknown"
    allowed, info = limiter.check_rate_limit(client_id)

    if not allowed:
        logger.warning(f"Rate limited: {client_id} {request.method} {request.url.path}")
        headers = _rate_limit_headers(info)
        headers["Retry-After"] = str(info["reset_at"])
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests, please try again later."},
            headers=headers
        )

    response = await call_next(request)
    response.headers.update(_rate_limit_headers(info))
    return response
