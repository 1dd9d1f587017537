from __future__ import annotations

import logging
from functools import lru_cache

import redis
from fastapi import Depends, HTTPException, Request

from . import config
from .auth import now_s

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    return redis.Redis.from_url(config.REDIS_URL, decode_responses=True, socket_timeout=1.0)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limit(request: Request, r: redis.Redis = Depends(get_redis)) -> None:
    """Fixed-window request counter per client ip.

    Fails open when redis is unreachable.
    """
    window = config.RATE_LIMIT_WINDOW_SECONDS
    key = f"ratelimit:{_client_ip(request)}:{now_s() // window}"
    try:
        # the key gets its ttl in the same transaction that counts
        with r.pipeline() as pipe:
            pipe.set(key, 0, ex=window, nx=True)
            pipe.incr(key)
            _, count = pipe.execute()
        count = int(count)
    except redis.RedisError as exc:
        logger.warning("rate limiter unavailable: %s", exc)
        return

    if count > config.RATE_LIMIT_MAX:
        logger.info("rate limit exceeded for %s", _client_ip(request))
        raise HTTPException(status_code=429, detail="too many requests")
