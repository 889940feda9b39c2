import json
import logging

from redis.exceptions import RedisError

from . import redis_client

logger = logging.getLogger("reciguard.cache")


def get_json_sync(key: str):
    raw = redis_client.get_sync_redis().get(key)
    return json.loads(raw) if raw else None


def set_json_sync(key: str, value, ttl_sec: int) -> None:
    redis_client.get_sync_redis().set(key, json.dumps(value), ex=ttl_sec)


def get_or_set_json_sync(key: str, ttl_sec: int, compute_func, should_cache=lambda v: True):
    """Cached value for key, computing it on a miss.

    Returns (value, hit). Redis being down only costs the cache: the value is
    computed and returned uncached.
    """
    try:
        hit = get_json_sync(key)
    except RedisError as e:
        logger.warning(f"Cache read failed for {key}: {e}")
        return compute_func(), False
    if hit is not None:
        return hit, True

    val = compute_func()
    if should_cache(val):
        try:
            set_json_sync(key, val, ttl_sec)
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
    return val, False
