"""Fixed-window rate limiting for purchase and login routes.

Counters live in Redis. When Redis is unreachable each process falls back to
its own in-memory windows, which are dropped once they expire.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

# key -> (hits, window_ends_at)
_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def _caller_key(prefix: str, request: Request) -> str:
    authorization = request.headers.get("authorization") or ""
    if authorization.lower().startswith("bearer ") and len(authorization) > 7:
        caller = f"token:{authorization[-32:]}"
    else:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            caller = forwarded.split(",")[0].strip()
        elif request.client and request.client.host:
            caller = request.client.host
        else:
            caller = "unknown"
    return f"confessions:rate:{prefix}:{caller}"


def _sweep_expired(now: float) -> None:
    expired = [key for key, (_, ends_at) in _local_counters.items() if ends_at <= now]
    for key in expired:
        del _local_counters[key]


async def _hit_local_window(key: str, window_seconds: int) -> Tuple[int, float]:
    """Count one hit in the in-process window for ``key``."""
    now = time.time()
    async with _local_lock:
        _sweep_expired(now)
        hits, ends_at = _local_counters.get(key, (0, now + window_seconds))
        hits += 1
        _local_counters[key] = (hits, ends_at)
    return hits, ends_at - now


async def _hit_redis_window(key: str, window_seconds: int) -> Tuple[int, Optional[float]]:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        async with client.pipeline(transaction=True) as pipe:
            hits, ttl = await pipe.incr(key).ttl(key).execute()
        if ttl is None or ttl < 0:
            await client.expire(key, window_seconds)
            ttl = window_seconds
    finally:
        await client.aclose()
    return int(hits), float(ttl)


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[], None]:
    """Return a dependency allowing ``limit`` calls per caller per window."""

    async def _dependency(request: Request):
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = _caller_key(prefix, request)
        try:
            hits, retry_after = await _hit_redis_window(key, window_seconds)
        except Exception as exc:
            logger.debug("Redis rate limit unavailable, using local counters: %s", exc)
            hits, retry_after = await _hit_local_window(key, window_seconds)

        if hits > limit:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {prefix}. Try again later.",
                headers={"Retry-After": str(max(int(retry_after or window_seconds), 1))},
            )

    return _dependency
