"""Middleware for the guestbook API.

Provides CORS and per-client token bucket rate limiting.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from aiohttp import web

from guestbook_server.errors import RateLimitError
from guestbook_server.logging import get_logger

log = get_logger("guestbook_server.api.middleware")

# Paths that are never rate limited
UNLIMITED_PATHS = frozenset({"/health"})

CORS_ALLOW_METHODS = "POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"


def client_ip(request: web.Request, *, trust_forwarded_for: bool = False) -> str:
    """Identify the client for rate limiting and reputation checks."""
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.remote or "unknown"


def create_cors_middleware(allowed_origins: list[str] | None = None) -> Any:
    """Create CORS middleware.

    ``Access-Control-Allow-Origin`` is echoed only for an exact match
    against *allowed_origins*. Preflight requests are answered directly.
    """
    origins = frozenset(allowed_origins or ())

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=200)
        else:
            response = await handler(request)

        origin = request.headers.get("Origin", "")
        if origin and origin in origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS

        return response

    return cors_middleware


@dataclass
class TokenBucket:
    """Token bucket state for one client."""

    capacity: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now


class RateLimiter:
    """In-memory token bucket rate limiter keyed by client identity.

    Each key lazily gets a full bucket holding ``requests`` tokens that
    refills at ``requests / window_seconds`` tokens per second. One lock
    guards the bucket map for lookups, consumption and sweeps.
    """

    def __init__(
        self,
        requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests <= 0 or window_seconds <= 0:
            raise ValueError("requests and window_seconds must be positive")
        self._capacity = float(requests)
        self._refill_rate = requests / window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, TokenBucket] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def allow(self, key: str) -> bool:
        """Consume one token for *key*. Returns False when none is left."""
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(
                    capacity=self._capacity,
                    refill_rate=self._refill_rate,
                    tokens=self._capacity,
                    last_refill=now,
                )
                self._buckets[key] = bucket
            else:
                bucket.refill(now)

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False

    def sweep(self) -> int:
        """Drop idle buckets and return how many were removed.

        A bucket below capacity has been used recently and is kept; a full
        bucket is idle. Clients under sustained load are therefore never
        evicted. The surviving buckets go into a new map that replaces the
        old one.
        """
        with self._lock:
            now = self._clock()
            kept: dict[str, TokenBucket] = {}
            for key, bucket in self._buckets.items():
                bucket.refill(now)
                if bucket.tokens < bucket.capacity:
                    kept[key] = bucket
            removed = len(self._buckets) - len(kept)
            self._buckets = kept
        return removed

    async def run_sweeper(self, interval: float) -> None:
        """Sweep every *interval* seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep()
            if removed:
                log.debug("rate_limiter_swept", removed=removed, remaining=len(self))


def create_rate_limit_middleware(
    rate_limiter: RateLimiter, *, trust_forwarded_for: bool = False
) -> Any:
    """Create rate limiting middleware (runs after CORS)."""

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        if request.path in UNLIMITED_PATHS:
            return await handler(request)  # type: ignore[no-any-return]

        ip = client_ip(request, trust_forwarded_for=trust_forwarded_for)
        if not rate_limiter.allow(ip):
            log.warning("rate_limited", client_ip=ip, path=request.path)
            return web.json_response(
                {"error": RateLimitError.public_message},
                status=RateLimitError.status_code,
            )

        return await handler(request)  # type: ignore[no-any-return]

    return rate_limit_middleware
