# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
HTTP middleware shared by every route.

* ``SecurityHeadersMiddleware``      – hardening headers on every response.
* ``BearerNormalizationMiddleware``  – accepts a bare JWT in Authorization.
"""

import re

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger

# header.payload.signature, base64url segments
_JWT_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")

_CSP = (
    "default-src 'self'; "
    "img-src 'self' data:; "
    "font-src 'self'; "
    "style-src 'self' 'unsafe-inline'; "
    "script-src 'self' 'unsafe-inline'; "
    "connect-src 'self'"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add anti-sniffing, framing, CSP and referrer headers; HSTS off localhost."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        headers = response.headers
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = "DENY"
        headers["X-XSS-Protection"] = "1; mode=block"
        headers["Content-Security-Policy"] = _CSP
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        host = request.url.hostname or ""
        if host and host not in ("localhost", "127.0.0.1"):
            headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class BearerNormalizationMiddleware(BaseHTTPMiddleware):
    """
    Some clients send ``Authorization: <jwt>`` without the scheme.  A value
    shaped like a JWT is rewritten to ``Bearer <jwt>`` before routing; any
    other value is passed through untouched.
    """

    async def dispatch(self, request: Request, call_next):
        auth = request.headers.get("Authorization", "").strip()
        if auth and not auth.lower().startswith("bearer ") and _JWT_RE.match(auth):
            headers = [
                (name, value)
                for name, value in request.scope["headers"]
                if name != b"authorization"
            ]
            headers.append((b"authorization", f"Bearer {auth}".encode("latin-1")))
            request.scope["headers"] = headers
            logger.debug("Added missing Bearer scheme to Authorization header")
        return await call_next(request)
