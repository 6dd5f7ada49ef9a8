# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Redis JSON cache: optional acceleration, never correctness-bearing.
Unconfigured or failing Redis behaves as a permanent cache miss.
"""

import json
from typing import Any, Optional

import redis

from oncall_rotation.core.config import settings
from oncall_rotation.core.logging import get_logger

logger = get_logger(__name__)


class RedisCache:
    """Read-through helper with lazy connection and fail-open semantics."""

    def __init__(self, url: str = "", prefix: str = "", ttl: int = 300) -> None:
        self._url = url
        self._prefix = prefix
        self._ttl = ttl
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    def _get_client(self) -> Optional[redis.Redis]:
        if not self._url:
            return None
        if self._client is None:
            try:
                self._client = redis.Redis.from_url(
                    self._url, socket_timeout=1.0, socket_connect_timeout=1.0
                )
            except (redis.RedisError, ValueError) as exc:
                logger.warning("Redis cache unavailable: %s", exc)
                return None
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get_json(self, key: str) -> Optional[Any]:
        client = self._get_client()
        if client is None:
            return None
        try:
            raw = client.get(self._key(key))
        except redis.RedisError as exc:
            logger.warning("Cache get failed key=%s: %s", key, exc)
            return None
        if raw is None:
            logger.debug("Cache miss key=%s", key)
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry key=%s", key)
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        client = self._get_client()
        if client is None:
            return False
        try:
            client.setex(self._key(key), ttl or self._ttl, json.dumps(value))
            return True
        except redis.RedisError as exc:
            logger.warning("Cache set failed key=%s: %s", key, exc)
            return False

    def delete(self, key: str) -> None:
        client = self._get_client()
        if client is None:
            return
        try:
            client.delete(self._key(key))
        except redis.RedisError as exc:
            logger.warning("Cache delete failed key=%s: %s", key, exc)


def build_cache() -> RedisCache:
    return RedisCache(
        url=settings.REDIS_URL,
        prefix=settings.CACHE_KEY_PREFIX,
        ttl=settings.CACHE_TTL_SECONDS,
    )
