"""Per-client request limits on the sending routes.

All single-target send routes share one bucket; broadcast has its own,
stricter one. Clients are keyed by remote address.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

NOTIFICATION_LIMIT = "30/minute"
BROADCAST_LIMIT = "5 per 5 minutes"

limiter = Limiter(key_func=get_remote_address)

notification_limit = limiter.shared_limit(NOTIFICATION_LIMIT, scope="notifications")
broadcast_limit = limiter.limit(BROADCAST_LIMIT)

_BODIES = {
    "notifications": (
        {
            "success": False,
            "error": "Rate limit exceeded",
            "message": "Too many requests. Wait before sending more notifications.",
            "retryAfter": "60 seconds",
        },
        60,
    ),
    "broadcast": (
        {
            "success": False,
            "error": "Broadcast rate limit exceeded",
            "message": "Too many broadcast requests. Wait 5 minutes.",
            "retryAfter": "5 minutes",
        },
        300,
    ),
}


def rate_limit_response(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    kind = "broadcast" if request.url.path.rstrip("/").endswith("/broadcast") else "notifications"
    body, retry_after = _BODIES[kind]
    logger.warning(
        "Rate limit hit on %s from %s (%s)", request.url.path, get_remote_address(request), exc.detail
    )
    return JSONResponse(status_code=429, content=body, headers={"Retry-After": str(retry_after)})
