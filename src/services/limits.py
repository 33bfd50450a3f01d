"""Per-actor request throttling and Idempotency-Key bookkeeping.

Both live in Redis so that several API workers share one view. Rate limits use
a fixed one-minute window per actor. An idempotency key is claimed before a
transition runs and released again when the transition fails, so the client
can retry the same request after a rollback.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import redis.asyncio as redis
from fastapi import HTTPException, status

from src.core.config import settings


logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

_redis_client: redis.Redis | None = None


async def _get_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.REDIS_URI), decode_responses=True
        )
    return _redis_client


def _rate_limit_key(actor_id: str, window: int) -> str:
    return f"rl:{actor_id}:{window}"


def _idempotency_key(actor_id: str, key: str) -> str:
    return f"idemp:{actor_id}:{key}"


async def check_rate_limit(actor_id: str) -> None:
    """Count one request for ``actor_id`` and reject it above the per-minute limit.

    A rejected request gets 429 with ``Retry-After`` set to the seconds left in
    the current window.
    """
    client = await _get_client()
    now = int(time.time())
    window = now // WINDOW_SECONDS
    key = _rate_limit_key(actor_id, window)

    current = await client.incr(key)
    if current == 1:
        await client.expire(key, WINDOW_SECONDS)
    if current > settings.limits.rate_limit_rpm:
        retry_after = WINDOW_SECONDS - now % WINDOW_SECONDS
        logger.warning(f"Rate limit hit for {actor_id}: {current} requests this minute")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after)},
        )


async def claim_idempotency_key(actor_id: str, key: Optional[str]) -> bool:
    """Claim ``key`` for ``actor_id``; a replay inside the TTL is a 409.

    Returns ``False`` when no key was supplied, ``True`` when one was claimed.
    """
    if not key:
        return False
    client = await _get_client()
    claimed = await client.set(
        _idempotency_key(actor_id, key),
        "1",
        ex=settings.limits.idempotency_ttl_seconds,
        nx=True,
    )
    if not claimed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Duplicate request (idempotency)",
        )
    return True


async def release_idempotency_key(actor_id: str, key: Optional[str]) -> None:
    """Free a claimed key after the guarded request failed and rolled back."""
    if not key:
        return
    client = await _get_client()
    await client.delete(_idempotency_key(actor_id, key))
    logger.info(f"Released idempotency key {key} for {actor_id}")
