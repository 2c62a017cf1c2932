# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
FastAPI application factory.

Responsibilities
----------------
* Instantiate the FastAPI app.
* Register middleware (outermost first): request log, security headers,
  brute-force guard, bearer normalization, CORS.
* Map ``AppError`` and request validation failures to their HTTP status
  (400 for malformed input) and everything else to a generic 500.
* Mount the auth and admin routers.
* Expose a /health endpoint for container liveness checks.

The brute-force cache and the pending two-factor store are created here and
injected, so tests can hand in their own instances.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from admin.router import router as admin_router
from auth.router import router as auth_router
from core.brute_force import BruteForceGuard, BruteForceMiddleware
from core.cache import TTLCache
from core.config import settings
from core.errors import AppError, InternalError, ValidationError
from core.logger import logger
from core.middleware import BearerNormalizationMiddleware, SecurityHeadersMiddleware
from core.security import get_client_ip


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Only the URL and metadata are recorded, never bodies, cookies or the
# Authorization header.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "%s %s | client=%s status=%d latency=%.1fms",
            request.method,
            request.url.path,
            get_client_ip(request),
            response.status_code,
            elapsed_ms,
        )
        return response


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and query strings answer 400 like any other ValidationError
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": "; ".join(problems) or ValidationError.message},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": InternalError.message},
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("Garden auth service starting up")
    yield
    logger.info("Garden auth service shutting down")


def create_app(
    guard: Optional[BruteForceGuard] = None,
    pending_logins: Optional[TTLCache] = None,
) -> FastAPI:
    app = FastAPI(title="Botanical Garden Auth", version="1.0.0", lifespan=_lifespan)

    app.state.brute_force_guard = guard or BruteForceGuard(TTLCache())
    app.state.pending_logins = pending_logins if pending_logins is not None else TTLCache()

    # Cookies carry the refresh token, so credentials must be allowed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(BearerNormalizationMiddleware)
    app.add_middleware(BruteForceMiddleware, guard=app.state.brute_force_guard)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(_RequestLogMiddleware)

    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
