"""Per-client request quotas backed by throttled-py"""
import os
from datetime import timedelta
from typing import Optional, Tuple

from fastapi import Request
from throttled import Throttled, RateLimiterType, store, rate_limiter

from core.config import (
    logger,
    SUBMIT_LIMIT_PER_HOUR,
    SCRAPE_LIMIT_PER_MINUTE,
    PROXY_LIMIT_PER_MINUTE,
    PWNED_LIMIT_PER_MINUTE,
    TRUSTED_PROXIES,
)


def _build_store():
    """Shared Redis store when REDIS_URL is set; per-process memory otherwise."""
    redis_url = os.getenv("REDIS_URL", "").strip()
    if not redis_url:
        logger.warning("[rate_limit] REDIS_URL not set; quotas are per worker process")
        return store.MemoryStore()
    try:
        limiter_store = store.RedisStore(server=redis_url)
        logger.info("[rate_limit] quotas stored in Redis")
        return limiter_store
    except Exception as ex:
        logger.warning(f"[rate_limit] Redis unavailable, falling back to memory: {ex}")
        return store.MemoryStore()


storage = _build_store()


def _fixed_window(window: timedelta, limit: int) -> Throttled:
    return Throttled(
        using=RateLimiterType.FIXED_WINDOW.value,
        quota=rate_limiter.per_duration(window, limit=limit),
        store=storage,
    )


# Submissions are keyed by uid when signed in, everything else by client IP
submit_throttle = _fixed_window(timedelta(hours=1), SUBMIT_LIMIT_PER_HOUR)
scrape_throttle = _fixed_window(timedelta(minutes=1), SCRAPE_LIMIT_PER_MINUTE)
proxy_throttle = _fixed_window(timedelta(minutes=1), PROXY_LIMIT_PER_MINUTE)
# Upstream asks for roughly one request per 1.5s
pwned_throttle = _fixed_window(timedelta(minutes=1), PWNED_LIMIT_PER_MINUTE)

_THROTTLES = {
    "submit": (submit_throttle, "Too many submissions. Please try again later."),
    "scrape": (scrape_throttle, "Too many scrape requests. Please slow down."),
    "proxy": (proxy_throttle, "Too many test requests. Please slow down."),
    "pwned": (pwned_throttle, "Too many breach checks. Please slow down."),
}


def client_key(request: Request, uid: Optional[str] = None) -> str:
    if uid:
        return f"uid:{uid}"
    peer = request.client.host if request.client else ""
    forwarded = ""
    if peer and peer in TRUSTED_PROXIES:
        # Rightmost hop not added by one of our own proxies
        hops = [h.strip() for h in (request.headers.get("x-forwarded-for") or "").split(",") if h.strip()]
        while hops and hops[-1] in TRUSTED_PROXIES:
            hops.pop()
        forwarded = hops[-1] if hops else ""
    ip = forwarded or peer or "unknown"
    return f"ip:{ip}"


def check_rate_limit(bucket: str, key: str) -> Tuple[bool, str]:
    """
    Spend one unit of the ``bucket`` quota for ``key``.

    Returns (allowed, error_message). A failing limiter store lets the request through.
    """
    throttle, message = _THROTTLES[bucket]
    try:
        result = throttle.limit(f"{bucket}:{key}", cost=1)
    except Exception as ex:
        logger.warning(f"[rate_limit] {bucket} check failed, allowing request: {ex}")
        return True, ""
    if result.limited:
        return False, message
    return True, ""
