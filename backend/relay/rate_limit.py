"""
In-memory fixed-window rate limiting for FastAPI routes.

Counts live in this process only and reset on restart, like the fallback
queue. The key is the socket peer address; forwarded headers are ignored.

Usage:
    support_rate_limit = create_rate_limiter(limit=2, window_seconds=600, key_prefix="support")

    @router.post("/webhook/support")
    async def support(_: None = Depends(support_rate_limit)):
        ...
"""

import logging
import time
from threading import Lock
from typing import Callable

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

SUPPORT_LIMIT = 2
SUPPORT_WINDOW_SECONDS = 10 * 60
SUPPORT_LIMIT_MESSAGE = (
    "Rate limit exceeded. You can send maximum 2 support requests per 10 minutes. "
    "Please try again later."
)

# {key: {"count": int, "reset_time": float}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()


def client_ip(request: Request) -> str:
    # X-Forwarded-For is client-controlled and no proxy is trusted
    return request.client.host if request.client else "unknown"


def check_rate_limit(
    key: str,
    limit: int,
    window_seconds: int,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[bool, int, int]:
    """
    Count one request against `key`.

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    now = clock()
    with cache_lock:
        for stale in [k for k, v in memory_cache.items() if now >= v["reset_time"]]:
            del memory_cache[stale]

        entry = memory_cache.setdefault(key, {"count": 0, "reset_time": now + window_seconds})
        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1
        ttl = max(0, int(entry["reset_time"] - now))
        return is_allowed, entry["count"], ttl


def reset_rate_limits() -> None:
    with cache_lock:
        memory_cache.clear()


def create_rate_limiter(
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    message: str = "Rate limit exceeded. Please try again later.",
):
    async def rate_limiter(request: Request) -> None:
        key = f"{key_prefix}:{client_ip(request)}"
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds)
        if not is_allowed:
            logger.warning(f"Rate limit exceeded for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=429,
                detail=message,
                headers={"Retry-After": str(ttl)},
            )

    return rate_limiter


support_rate_limit = create_rate_limiter(
    limit=SUPPORT_LIMIT,
    window_seconds=SUPPORT_WINDOW_SECONDS,
    key_prefix="support",
    message=SUPPORT_LIMIT_MESSAGE,
)
