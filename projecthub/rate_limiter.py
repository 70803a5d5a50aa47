"""
Rate limiting for expensive endpoints.

Counters live in process memory and are mirrored to Redis every few seconds, so
several workers converge on a shared count without a Redis round trip per request.
When Redis is unreachable each worker keeps counting on its own and reconnects
after ``REDIS_RETRY_INTERVAL`` seconds.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import Request

from .errors import RateLimitError

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_unavailable_until = 0.0

# {key: {"count": int, "reset_time": int, "last_redis_sync": int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

MEMORY_CACHE_SYNC_INTERVAL = 10
MEMORY_CACHE_CLEANUP_INTERVAL = 60
REDIS_RETRY_INTERVAL = 30
last_cleanup_time = 0


def _mask_url(url: str) -> str:
    if "@" not in url:
        return "****"
    scheme = url.split("@")[0].split(":")[0]
    return f"{scheme}:****@{url.split('@', 1)[1]}"


def get_redis_client() -> redis.Redis:
    """Lazily connect to Redis from REDIS_URL or REDIS_HOST/REDIS_PORT"""
    global redis_client

    if redis_client is not None:
        return redis_client

    common = {
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
        "retry_on_timeout": True,
        "health_check_interval": 30,
        "max_connections": 20,
    }

    redis_url = os.getenv("REDIS_URL")
    try:
        if redis_url:
            logger.info(f"📡 Connecting to Redis: {_mask_url(redis_url)}")
            client = redis.from_url(redis_url, **common)
        else:
            host = os.getenv("REDIS_HOST", "localhost")
            port = int(os.getenv("REDIS_PORT", "6379"))
            logger.info(f"📡 Connecting to Redis at {host}:{port}")
            client = redis.Redis(
                host=host,
                port=port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                **common,
            )
        client.ping()
    except Exception as e:
        logger.error(f"❌ Failed to connect to Redis: {e}")
        raise

    logger.info("Redis connected successfully")
    redis_client = client
    return redis_client


def get_shared_counter_store() -> Optional[redis.Redis]:
    """Redis client for sharing counters, or None while Redis is unreachable"""
    global redis_unavailable_until

    if redis_client is None and time.time() < redis_unavailable_until:
        return None
    try:
        return get_redis_client()
    except Exception:
        redis_unavailable_until = time.time() + REDIS_RETRY_INTERVAL
        logger.warning(
            f"⚠️ Redis unavailable, rate limits are counted per worker for the next {REDIS_RETRY_INTERVAL}s"
        )
        return None


def cleanup_expired_cache():
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired:
            del memory_cache[k]
        if expired:
            logger.debug(f"🧹 Cleaned up {len(expired)} expired rate limit entries")

    last_cleanup_time = current_time


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: Optional[redis.Redis] = None
) -> tuple[bool, int, int]:
    """
    Count one request against ``key``.

    Returns (is_allowed, current_count, ttl_seconds). Without a Redis client the
    in-memory window alone decides.
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        entry = memory_cache.get(key)
        if entry is None:
            entry = {
                "count": 0,
                "reset_time": current_time + window_seconds,
                "last_redis_sync": current_time,
            }
            if client is not None:
                try:
                    stored = client.get(key)
                    ttl = client.ttl(key)
                    if stored and ttl > 0:
                        entry["count"] = int(stored)
                        entry["reset_time"] = current_time + ttl
                except Exception as e:
                    logger.warning(f"⚠️ Failed to load {key} from Redis, using memory only: {e}")
            memory_cache[key] = entry

        if current_time >= entry["reset_time"]:
            entry["count"] = 0
            entry["reset_time"] = current_time + window_seconds
            entry["last_redis_sync"] = 0

        is_allowed = entry["count"] < limit
        if is_allowed:
            entry["count"] += 1

        if client is not None and current_time - entry.get("last_redis_sync", 0) >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                client.set(key, entry["count"], ex=window_seconds)
                entry["last_redis_sync"] = current_time
            except Exception as e:
                logger.warning(f"⚠️ Failed to sync {key} to Redis: {e}")

        return is_allowed, entry["count"], max(0, entry["reset_time"] - current_time)


def client_key(request: Request, key_prefix: str, use_ip: bool) -> str:
    if not use_ip:
        return f"{key_prefix}:global"
    client_ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return f"{key_prefix}:{client_ip}"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    key = client_key(request, key_prefix, use_ip)
    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, get_shared_counter_store())

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit}")
        raise RateLimitError(
            f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
            retry_after=ttl,
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Build a rate limit dependency, e.g.

        board_creation_rate_limit = create_rate_limiter(10, 3600, "board_creation")

        @router.post("")
        async def create_board(..., _: None = Depends(board_creation_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
