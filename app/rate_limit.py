"""Per-client, per-route rate limiting.

Fixed-window counters keyed by client IP and endpoint. The counter storage is
chosen by ``RATE_LIMIT_STORAGE_URI``: ``memory://`` keeps them in this process
only, a shared backend such as ``redis://`` is needed once more than one
instance serves traffic.
"""

import math
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from app.config import get_settings

LOGIN_LIMIT = "5/minute"
REGISTER_LIMIT = "3/minute"
RESEND_VERIFICATION_LIMIT = "2 per 5 minutes"


def client_ip(request: Request) -> str:
    """Best-effort client address behind the platform's proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


limiter = Limiter(
    key_func=client_ip,
    storage_uri=get_settings().RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
)


def retry_after_seconds(request: Request) -> int:
    """Seconds until the window that rejected ``request`` resets (at least 1)."""
    view_limit = getattr(request.state, "view_rate_limit", None)
    if not view_limit:
        return 1
    item, keys = view_limit
    reset_at, _ = limiter.limiter.get_window_stats(item, *keys)
    return max(1, math.ceil(reset_at - time.time()))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a 429 with the number of seconds to wait."""
    retry_after = retry_after_seconds(request)
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests", "retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)},
    )
