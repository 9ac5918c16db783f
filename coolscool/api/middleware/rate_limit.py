"""
Rate limiting per user (bearer token subject) or, without a token, per client IP.

Fixed one-minute windows held in process memory.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from coolscool.config import Settings, get_settings
from coolscool.kernel.identity.jwt import JWTManager
from coolscool.logging_config import get_logger, get_request_id

logger = get_logger(__name__)

WINDOW_SECONDS = 60


def _get_client_ip(request: Request) -> str:
    """Get client IP from request (X-Forwarded-For or direct)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[int, float]] = {}
        self._clock = clock

    def check_and_incr(self, identifier: str, limit: int, window_seconds: int = WINDOW_SECONDS) -> bool:
        """Returns True if under limit (and increments). False if over limit (no increment)."""
        now = self._clock()
        entry = self._data.get(identifier)
        if entry is None or now - entry[1] >= window_seconds:
            self._data[identifier] = (1, now)
            return True
        count, start = entry
        if count >= limit:
            return False
        self._data[identifier] = (count + 1, start)
        return True

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Drop stale windows so the store does not grow without bound."""
        now = self._clock()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for k in stale:
            self._data.pop(k, None)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limits every request under the API prefix to rate_limit_api_per_minute."""

    def __init__(
        self,
        app: ASGIApp,
        settings: Optional[Settings] = None,
        store: Optional[InMemoryRateLimitStore] = None,
    ):
        super().__init__(app)
        self.settings = settings or get_settings()
        self.store = store or InMemoryRateLimitStore()
        self.jwt_manager = JWTManager(
            secret_key=self.settings.secret_key,
            algorithm=self.settings.algorithm,
        )

    def _identifier(self, request: Request) -> str:
        auth = request.headers.get("authorization") or ""
        if auth.lower().startswith("bearer "):
            payload = self.jwt_manager.verify_access_token(auth[7:].strip())
            if payload:
                return f"user:{payload.sub}"
        return f"ip:{_get_client_ip(request)}"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.settings.rate_limit_enabled:
            return await call_next(request)
        if not request.url.path.startswith(self.settings.api_v1_prefix):
            return await call_next(request)

        self.store.cleanup_old(max_age_seconds=2 * WINDOW_SECONDS)
        identifier = self._identifier(request)
        if not self.store.check_and_incr(identifier, self.settings.rate_limit_api_per_minute):
            logger.warning("Rate limit exceeded", extra={"identifier": identifier})
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Too many requests. Please try again later.",
                    "code": "rate_limited",
                    "request_id": get_request_id(),
                },
            )
        return await call_next(request)
