"""Unit tests for the quota cache."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from seatwise.core.quota_cache import QuotaCache


def _redis(keys=None, delete=None):
    """Stand-in for RedisClient whose ``client`` holds the given keys."""
    client = MagicMock()

    async def scan_iter(match):
        for key in keys or []:
            yield key

    client.scan_iter = scan_iter
    client.delete = delete or AsyncMock(return_value=len(keys or []))
    client.get = AsyncMock(return_value="500")
    client.set = AsyncMock()
    return MagicMock(client=client)


@pytest.mark.asyncio
class TestQuotaCache:
    """Tests for QuotaCache."""

    async def test_invalidate_deletes_org_keys(self):
        """Every key under the organization prefix is deleted."""
        org_id = uuid.uuid4()
        keys = [f"quota:org:{org_id}:daily_email_limit", f"quota:org:{org_id}:max_users"]
        redis = _redis(keys)

        deleted = await QuotaCache(client=redis, prefix="quota").invalidate(org_id)

        assert deleted == 2
        redis.client.delete.assert_awaited_once_with(*keys)

    async def test_invalidate_without_keys(self):
        """Nothing cached means nothing deleted."""
        redis = _redis([])

        assert await QuotaCache(client=redis).invalidate(uuid.uuid4()) == 0
        redis.client.delete.assert_not_awaited()

    async def test_invalidate_swallows_redis_errors(self):
        """Cache failures never fail the billing operation."""
        redis = _redis(["quota:org:x:daily_email_limit"], AsyncMock(side_effect=ConnectionError()))

        assert await QuotaCache(client=redis).invalidate("x") == 0

    async def test_get_and_set_limit(self):
        """Limits are stored under the organization key."""
        redis = _redis()
        cache = QuotaCache(client=redis, prefix="quota")

        assert await cache.get_limit("org-1", "daily_email_limit") == 500
        await cache.set_limit("org-1", "daily_email_limit", 30, ttl_seconds=60)

        redis.client.set.assert_awaited_once_with("quota:org:org-1:daily_email_limit", 30, ex=60)
