"""
Token bucket rate limiting for the API.

Every client gets a general bucket; credential endpoints (login, register,
refresh) draw from a second, smaller bucket so password guessing and
refresh storms are throttled before they reach bcrypt or the database.
"""

import time
import logging
from typing import Callable, Dict, Iterable, Optional, Tuple
from threading import Lock

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse


logger = logging.getLogger(__name__)

CREDENTIAL_PATHS = ("/api/auth/login", "/api/auth/register", "/api/auth/refresh")


class TokenBucket:
    """
    Tokens are added at a constant rate up to `capacity`; each request
    consumes one.
    """

    def __init__(self, capacity: int, refill_rate: float):
        """
        Args:
            capacity: Maximum number of tokens the bucket can hold
            refill_rate: Number of tokens added per second
        """
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()
        self.lock = Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Take `tokens` from the bucket if available."""
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def available(self) -> float:
        with self.lock:
            self._refill()
            return self.tokens

    def is_idle(self, now: float, idle_after: float) -> bool:
        return self.available() >= self.capacity and (now - self.last_refill) > idle_after


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client rate limiting keyed by IP address.
    """

    def __init__(
        self,
        app: FastAPI,
        requests_per_minute: int = 100,
        bucket_capacity: Optional[int] = None,
        credential_requests_per_minute: int = 10,
        credential_paths: Iterable[str] = CREDENTIAL_PATHS,
        cleanup_interval: int = 3600,
    ):
        """
        Args:
            app: FastAPI application instance
            requests_per_minute: Budget for every request
            bucket_capacity: Maximum burst (default: same as requests_per_minute)
            credential_requests_per_minute: Budget for `credential_paths`
            credential_paths: Paths drawing from the credential bucket
            cleanup_interval: Seconds between sweeps of idle buckets
        """
        super().__init__(app)

        self.requests_per_minute = requests_per_minute
        self.bucket_capacity = bucket_capacity or requests_per_minute
        self.credential_requests_per_minute = credential_requests_per_minute
        self.credential_paths = frozenset(credential_paths)
        self.cleanup_interval = cleanup_interval

        self.buckets: Dict[Tuple[str, str], TokenBucket] = {}
        self.bucket_lock = Lock()
        self.last_cleanup = time.monotonic()

        logger.info(
            f"Rate limiter initialized: {requests_per_minute} req/min, "
            f"{credential_requests_per_minute} req/min on credential endpoints"
        )

    def _get_client_identifier(self, request: Request) -> str:
        # Behind a proxy the first X-Forwarded-For entry is the client
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _get_bucket(self, client_id: str, kind: str) -> TokenBucket:
        with self.bucket_lock:
            bucket = self.buckets.get((client_id, kind))
            if bucket is None:
                if kind == "credentials":
                    per_minute = self.credential_requests_per_minute
                    capacity = per_minute
                else:
                    per_minute = self.requests_per_minute
                    capacity = self.bucket_capacity
                bucket = TokenBucket(capacity=capacity, refill_rate=per_minute / 60.0)
                self.buckets[(client_id, kind)] = bucket
            return bucket

    def _cleanup_idle_buckets(self) -> None:
        now = time.monotonic()
        if now - self.last_cleanup < self.cleanup_interval:
            return

        with self.bucket_lock:
            idle = [key for key, bucket in self.buckets.items() if bucket.is_idle(now, self.cleanup_interval)]
            for key in idle:
                del self.buckets[key]
            self.last_cleanup = now

        if idle:
            logger.info(f"Cleaned up {len(idle)} idle rate limit buckets")

    def _reject(self, client_id: str, path: str, limit: int, bucket: TokenBucket) -> JSONResponse:
        logger.warning(f"Rate limit exceeded for {client_id} on {path}")
        retry_after = int(1 / bucket.refill_rate) + 1
        return JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": f"Too many requests. Maximum {limit} requests per minute allowed.",
            },
            headers={
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "Retry-After": str(retry_after),
            },
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        self._cleanup_idle_buckets()

        client_id = self._get_client_identifier(request)
        path = request.url.path

        if path in self.credential_paths:
            credential_bucket = self._get_bucket(client_id, "credentials")
            if not credential_bucket.consume():
                return self._reject(client_id, path, self.credential_requests_per_minute, credential_bucket)

        bucket = self._get_bucket(client_id, "general")
        if not bucket.consume():
            return self._reject(client_id, path, self.requests_per_minute, bucket)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(int(bucket.available()))
        return response
