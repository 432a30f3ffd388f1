"""Per-caller HTTP rate limiting with slowapi.

Requests carrying a valid bearer token are counted per user id; anything
else is counted per client address. Counters live in Redis unless
RATE_LIMIT_STORAGE_URI points elsewhere (``memory://`` in tests).
"""

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from officemate.auth.tokens import TokenCodec
from officemate.config import get_settings
from officemate.errors import AuthenticationError

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    """User id from a verified bearer token, else the client address."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            return f"user:{TokenCodec().decode(token)['sub']}"
        except (AuthenticationError, KeyError):
            logger.debug("Unusable bearer token, limiting by address")
    return f"ip:{get_remote_address(request)}"


def build_limiter(limit: Optional[str] = None, storage_uri: Optional[str] = None) -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=rate_limit_key,
        # One budget shared by every route
        application_limits=[limit or f"{settings.api_rate_limit_per_minute}/minute"],
        storage_uri=storage_uri or settings.rate_limit_storage_uri or settings.redis_url,
        strategy="fixed-window",
        # Redis outages let requests through
        swallow_errors=True,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {rate_limit_key(request)}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests. Please slow down.",
        },
        headers={"Retry-After": "60"},
    )
