"""Per-organization quota/limit cache.

Daily email limits and other plan capabilities are cached per organization by the
quota enforcement layer. Anything that changes an organization's plan or seats
must drop those entries; the committed subscription row stays the source of truth.
"""

from typing import Optional, Union
from uuid import UUID

from seatwise.core.config import settings
from seatwise.core.logging import ContextualLogger, logger
from seatwise.core.redis_client import RedisClient, redis_client


class QuotaCache:
    """Redis-backed cache of per-organization quota values."""

    def __init__(self, client: Optional[RedisClient] = None, prefix: Optional[str] = None):
        """Initialize the cache with the shared Redis client."""
        self._redis = client or redis_client
        self.prefix = prefix or settings.QUOTA_CACHE_PREFIX

    def _key(self, organization_id: Union[UUID, str], name: str = "*") -> str:
        return f"{self.prefix}:org:{organization_id}:{name}"

    async def get_limit(self, organization_id: Union[UUID, str], name: str) -> Optional[int]:
        """Return a cached limit value, or None when absent or Redis is unavailable."""
        try:
            value = await self._redis.client.get(self._key(organization_id, name))
        except Exception as e:
            logger.warning(f"Quota cache read failed for org {organization_id}: {e}")
            return None
        return int(value) if value is not None else None

    async def set_limit(
        self, organization_id: Union[UUID, str], name: str, value: int, ttl_seconds: int = 300
    ) -> None:
        """Cache a limit value for a short time."""
        try:
            await self._redis.client.set(self._key(organization_id, name), value, ex=ttl_seconds)
        except Exception as e:
            logger.warning(f"Quota cache write failed for org {organization_id}: {e}")

    async def invalidate(
        self,
        organization_id: Union[UUID, str],
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> int:
        """Drop every cached quota entry of an organization.

        Failures are logged, never raised.

        Returns:
            Number of keys deleted (0 on failure).
        """
        log = contextual_logger or logger
        try:
            pattern = self._key(organization_id)
            keys = [key async for key in self._redis.client.scan_iter(match=pattern)]
            deleted = await self._redis.client.delete(*keys) if keys else 0
            log.info(f"Cleared {deleted} quota cache entries for organization {organization_id}")
            return deleted
        except Exception as e:
            log.error(f"Failed to clear quota cache for organization {organization_id}: {e}")
            return 0


quota_cache = QuotaCache()
