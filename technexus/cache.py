import json
import logging

import redis
from fastapi.encoders import jsonable_encoder

from .config import REDIS_URL

logger = logging.getLogger(__name__)

PRODUCTS_LIST_KEY = "products_list"

cache = redis.Redis.from_url(REDIS_URL, decode_responses=True) if REDIS_URL else None


def get_json(key: str):
    if cache is None:
        return None
    try:
        cached = cache.get(key)
    except redis.RedisError as exc:
        logger.warning("cache read failed for %s: %s", key, exc)
        return None
    return json.loads(cached) if cached else None


def set_json(key: str, value, ex: int = 600):
    if cache is None:
        return
    try:
        cache.set(key, json.dumps(jsonable_encoder(value)), ex=ex)
    except redis.RedisError as exc:
        logger.warning("cache write failed for %s: %s", key, exc)


def invalidate(*keys: str):
    if cache is None or not keys:
        return
    try:
        cache.delete(*keys)
    except redis.RedisError as exc:
        logger.warning("cache invalidation failed for %s: %s", keys, exc)
