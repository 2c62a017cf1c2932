# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Brute-force guard – per client IP and route request throttle.

Independent of the account lockout in ``auth.credentials``: this layer
counts raw requests to the sensitive auth routes, whatever their outcome,
and blocks the (ip, route) pair for a while once the limit is exceeded.

Counting is approximate under concurrency (a lost increment only delays the
block by one request).
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request, status
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.cache import TTLCache
from core.config import settings
from core.errors import RateLimitedError
from core.logger import logger
from core.security import get_client_ip

PROTECTED_ROUTES = (
    "/auth/login",
    "/auth/verify-2fa",
    "/auth/refresh-token",
)

RATE_LIMIT_MESSAGE = RateLimitedError.message


@dataclass
class GuardDecision:
    allowed: bool
    retry_after: Optional[int] = None


class BruteForceGuard:
    """
    Sliding-window counter per (ip, route).

    Every hit pushes the counter expiry to now + ``window_seconds``; the hit
    that takes the count past ``max_requests`` installs a block entry that
    lives for ``block_seconds``.
    """

    def __init__(
        self,
        cache: TTLCache,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        block_seconds: Optional[int] = None,
        routes: tuple[str, ...] = PROTECTED_ROUTES,
    ):
        self.cache = cache
        self.max_requests = max_requests or settings.brute_force_max_requests
        self.window_seconds = window_seconds or settings.brute_force_window_seconds
        self.block_seconds = block_seconds or settings.brute_force_block_minutes * 60
        self.routes = tuple(r.lower() for r in routes)

    def is_protected(self, path: str) -> bool:
        path = path.lower()
        return any(path.startswith(route) for route in self.routes)

    def check(self, ip: str, path: str) -> GuardDecision:
        path = path.lower()
        if not self.is_protected(path):
            return GuardDecision(allowed=True)

        blocked_key = f"blocked:{ip}:{path}"
        remaining = self.cache.ttl(blocked_key)
        if remaining is not None:
            logger.warning("Blocked request from %s to %s", ip, path)
            return GuardDecision(allowed=False, retry_after=max(1, int(remaining)))

        count = self.cache.incr(f"brute_force:{ip}:{path}", self.window_seconds)
        if count > self.max_requests:
            logger.warning(
                "Request limit exceeded from %s to %s, blocking for %d s",
                ip,
                path,
                self.block_seconds,
            )
            self.cache.set(blocked_key, True, self.block_seconds)
            return GuardDecision(allowed=False, retry_after=self.block_seconds)

        return GuardDecision(allowed=True)


class BruteForceMiddleware(BaseHTTPMiddleware):
    """Short-circuit throttled requests with 429 before any route runs."""

    def __init__(self, app, guard: BruteForceGuard):
        super().__init__(app)
        self.guard = guard

    async def dispatch(self, request: Request, call_next):
        decision = self.guard.check(get_client_ip(request), request.url.path)
        if not decision.allowed:
            return PlainTextResponse(
                RATE_LIMIT_MESSAGE,
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={"Retry-After": str(decision.retry_after)},
            )
        return await call_next(request)
