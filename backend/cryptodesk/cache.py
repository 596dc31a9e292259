from __future__ import annotations

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from cryptodesk.config.settings import settings

logger = logging.getLogger(__name__)


def _get_client() -> Redis:
    return Redis.from_url(settings.redis_url)


def list_cache_key(search: str) -> str:
    return f"crypto_list_{search}"


def chart_cache_key(coin_id: str, days: int) -> str:
    return f"{coin_id}_chart_{days}d"


def get_payload(cache_key: str) -> Any | None:
    try:
        client = _get_client()
        raw = client.get(cache_key)
    except RedisError as exc:
        logger.warning("Read cache unavailable: %s", exc)
        return None

    if not raw:
        return None

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def set_payload(cache_key: str, payload: Any, ttl_seconds: int | None = None) -> None:
    ttl = ttl_seconds if ttl_seconds is not None else settings.read_cache_ttl_seconds
    try:
        client = _get_client()
        client.setex(cache_key, ttl, json.dumps(payload, default=str))
    except RedisError as exc:
        logger.warning("Read cache unavailable: %s", exc)
