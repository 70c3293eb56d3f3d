"""
Redis-backed JSON cache with per-entry TTL and glob invalidation
The cache is optional: an unconnected or failing cache behaves as a miss
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from metrics import record_cache_operation

logger = logging.getLogger(__name__)

CACHE_TTL_SHORT = 60
CACHE_TTL_MEDIUM = 300
CACHE_TTL_LONG = 3600

SCAN_BATCH_SIZE = 100


class CacheError(Exception):
    """Base class for cache failures"""


class CacheNotInitializedError(CacheError):
    def __init__(self):
        super().__init__("Connection not initialized")


class CacheSerializationError(CacheError):
    pass


class CacheBackendError(CacheError):
    pass


def cache_key(prefix: str, *parts: Any) -> str:
    """Join key parts with ':' under a dotted prefix"""
    return ":".join([prefix, *(str(part) for part in parts)])


class CacheManager:
    """Thin wrapper over a shared redis.asyncio client"""

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.url = config.get('url', 'redis://localhost:6379')
        self.enabled = config.get('enabled', True)
        self._client: Optional[redis.Redis] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self, url: Optional[str] = None) -> bool:
        """Connect to Redis; on failure the cache stays uninitialized"""
        if not self.enabled:
            logger.info("Cache disabled in configuration")
            return False

        url = url or self.url
        client = redis.from_url(url, decode_responses=True)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning(f"Cache unavailable at {url}, continuing without cache: {e}")
            await client.aclose()
            return False

        async with self._lock:
            self._client = client
        logger.info(f"Cache connected: {url}")
        return True

    def set_client(self, client) -> None:
        """Swap the underlying client (e.g. a FakeRedis instance)"""
        self._client = client

    async def close(self):
        if self._client is not None:
            async with self._lock:
                client, self._client = self._client, None
            await client.aclose()
            logger.info("Cache connection closed")

    async def _call(self, operation: str, *args, **kwargs):
        """Run a single remote call under the connection guard"""
        async with self._lock:
            if self._client is None:
                raise CacheNotInitializedError()
            try:
                return await getattr(self._client, operation)(*args, **kwargs)
            except (RedisError, OSError) as e:
                raise CacheBackendError(f"Redis error: {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        """
        Return the decoded value or None on a miss
        Raises CacheError when the cache is unavailable or the entry is undecodable
        """
        raw = await self._call('get', key)
        if raw is None:
            record_cache_operation('get', 'miss')
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            record_cache_operation('get', 'error')
            raise CacheSerializationError(f"Serialization error: {e}") from e
        record_cache_operation('get', 'hit')
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Best-effort write with expiry; failures are logged"""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache set skipped for {key}: serialization error: {e}")
            record_cache_operation('set', 'error')
            return False

        try:
            await self._call('set', key, payload, ex=int(ttl_seconds))
        except CacheNotInitializedError:
            record_cache_operation('set', 'skipped')
            return False
        except CacheError as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            record_cache_operation('set', 'error')
            return False

        record_cache_operation('set', 'ok')
        return True

    async def delete(self, key: str) -> bool:
        """Best-effort delete"""
        try:
            await self._call('delete', key)
        except CacheNotInitializedError:
            return False
        except CacheError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            record_cache_operation('delete', 'error')
            return False

        record_cache_operation('delete', 'ok')
        return True

    async def exists(self, key: str) -> bool:
        return bool(await self._call('exists', key))

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern
        Scans the key space with a cursor in batches; returns the number of keys deleted
        """
        keys = []
        cursor = 0
        try:
            while True:
                cursor, batch = await self._call('scan', cursor, match=pattern, count=SCAN_BATCH_SIZE)
                keys.extend(batch)
                if int(cursor) == 0:
                    break

            if keys:
                await self._call('delete', *keys)
        except CacheNotInitializedError:
            return 0
        except CacheError as e:
            logger.warning(f"Cache invalidation failed for {pattern}: {e}")
            record_cache_operation('invalidate', 'error')
            return 0

        logger.debug(f"Invalidated {len(keys)} cache keys matching {pattern}")
        record_cache_operation('invalidate', 'ok')
        return len(keys)
