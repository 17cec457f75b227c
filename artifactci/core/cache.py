"""
Distributed Cache Service using Redis

Shared cache for all backend pods. Holds GitHub App installation tokens and
collaborator permission lookups so artifact views do not hit the GitHub API
on every request.

- Automatic JSON serialization/deserialization
- TTL-based expiration
- Graceful fallback when Redis is unavailable
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from artifactci.core.metrics import cache_hits_total, cache_misses_total

logger = logging.getLogger(__name__)


class CacheService:
    """
    Distributed cache service using Redis.

    A miss and an unavailable Redis look the same to callers: ``get`` returns
    None and the value is fetched from the source.
    """

    def __init__(self, redis_url: str, prefix: str = "", default_ttl_seconds: int = 3600):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl_seconds
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._available: bool = True
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client with connection pooling.

        Uses a lock so concurrent coroutines initialize the pool once.
        """
        if self._client is not None and self._pool is not None:
            return self._client

        async with self._lock:
            if self._client is not None and self._pool is not None:
                return self._client

            try:
                self._pool = ConnectionPool.from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=20,
                )
                self._client = redis.Redis(connection_pool=self._pool)
                await self._client.ping()
                self._available = True
                logger.info("Redis cache connection established")
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
                self._available = False
                raise
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not self._available:
            return None

        try:
            client = await self.get_client()
            data = await client.get(self._make_key(key))
            if data:
                cache_hits_total.inc()
                return json.loads(data)
            cache_misses_total.inc()
            return None
        except redis.ConnectionError:
            logger.warning("Redis connection lost, disabling cache temporarily")
            self._available = False
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to decode cached value for {key}: {e}")
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key (will be prefixed automatically)
            value: Value to cache (must be JSON serializable)
            ttl_seconds: Time-to-live in seconds (default from constructor)

        Returns:
            True if cached successfully, False otherwise
        """
        if not self._available:
            return False

        if ttl_seconds is None:
            ttl_seconds = self._default_ttl

        try:
            client = await self.get_client()
            await client.setex(self._make_key(key), ttl_seconds, json.dumps(value, default=str))
            return True
        except redis.ConnectionError:
            logger.warning("Redis connection lost, disabling cache temporarily")
            self._available = False
            return False
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize value for {key}: {e}")
            return False
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or fetch and cache if missing.

        Errors from ``fetch_fn`` propagate; None results are not cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = await fetch_fn()
        if data is not None:
            await self.set(key, data, ttl_seconds)
        return data

    async def health_check(self) -> Dict[str, Any]:
        try:
            client = await self.get_client()
            return {
                "status": "healthy",
                "available": self._available,
                "total_keys": await client.dbsize(),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "available": False,
                "error": str(e),
            }


class CacheTTL:
    """Standard TTL values (seconds) for cached GitHub data."""

    # Installation tokens live for an hour; refresh well before expiry
    INSTALLATION_TOKEN = 50 * 60
    COLLABORATOR_PERMISSION = 5 * 60
    REPO_INSTALLATION = 24 * 3600


class CacheKeys:
    """Cache key builders for consistent key naming."""

    @staticmethod
    def installation_token(installation_id: int) -> str:
        return f"gh:installation_token:{installation_id}"

    @staticmethod
    def collaborator_permission(owner: str, repo: str, login: str) -> str:
        return f"gh:permission:{owner.lower()}/{repo.lower()}:{login.lower()}"

    @staticmethod
    def repo_installation(owner: str, repo: str) -> str:
        return f"gh:repo_installation:{owner.lower()}/{repo.lower()}"
