"""Per-client rate limiting with slowapi.

Live analysis calls a paid hosted model, so it gets a tight budget; the rule
engine and demo scenarios are cheap and get a generous one.
"""

import json
from typing import Any, List

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from threat_classifier.config import get_settings

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a moment."


def _trusted_proxies() -> List[str]:
    return [ip.strip() for ip in get_settings().trusted_proxies.split(",") if ip.strip()]


def get_client_ip(request: Request) -> str:
    """
    Resolve the client IP used as the rate limit key.

    X-Forwarded-For is honoured only when the direct peer is one of the
    configured TRUSTED_PROXIES; otherwise the peer address is used as is.
    """
    peer: str = get_remote_address(request)

    if peer in _trusted_proxies():
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

    return peer


# In-memory storage, keyed by client IP
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200/minute"],
    enabled=get_settings().rate_limit_enabled,
)

# Per-route budgets
RATE_LIMITS = {
    "analyze": get_settings().analyze_rate_limit,  # Hosted model calls
    "rules": "100/minute",                         # Rule engine / demo scenarios
}


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Turn a slowapi RateLimitExceeded into a 429 response.

    The body follows the analyse endpoint envelope (``success``/``error``)
    and also carries ``detail`` and ``retry_after``. Headers:
    Retry-After, X-RateLimit-Remaining (always 0) and X-RateLimit-Limit.
    """
    retry_after = getattr(exc, "retry_after", 60)

    response = Response(
        content=json.dumps({
            "success": False,
            "error": RATE_LIMIT_MESSAGE,
            "detail": "Rate limit exceeded",
            "retry_after": retry_after,
        }),
        status_code=429,
        media_type="application/json",
    )
    response.headers["Retry-After"] = str(retry_after)
    response.headers["X-RateLimit-Remaining"] = "0"

    limit = getattr(exc, "detail", None)
    if limit:
        response.headers["X-RateLimit-Limit"] = limit

    return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Expose slowapi's remaining request count as X-RateLimit-Remaining."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response: Response = await call_next(request)

        rate_limit_data = getattr(request.state, "_rate_limit_data", None)
        if rate_limit_data:
            response.headers["X-RateLimit-Remaining"] = str(rate_limit_data.get("remaining", 0))

        return response


def get_limiter() -> Limiter:
    """Return the shared limiter used by route decorators."""
    return limiter
