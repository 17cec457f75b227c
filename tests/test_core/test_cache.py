"""Tests for cache key builders, TTL constants and get_or_fetch."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from artifactci.core.cache import CacheKeys, CacheService, CacheTTL


class TestCacheTTLValues:
    def test_installation_token_refreshes_before_expiry(self):
        assert 0 < CacheTTL.INSTALLATION_TOKEN < 3600

    def test_permission_is_short_lived(self):
        assert 0 < CacheTTL.COLLABORATOR_PERMISSION <= 600


class TestCacheKeys:
    def test_permission_key_is_case_insensitive(self):
        assert CacheKeys.collaborator_permission("MMKAL", "Artifact.CI", "OctoCat") == (
            CacheKeys.collaborator_permission("mmkal", "artifact.ci", "octocat")
        )

    def test_installation_token_key(self):
        assert CacheKeys.installation_token(99) == "gh:installation_token:99"


class TestGetOrFetch:
    def test_cached_value_skips_fetch(self):
        cache = CacheService("redis://localhost:6379/15")
        fetch = AsyncMock(return_value="fresh")
        with patch.object(cache, "get", AsyncMock(return_value="cached")):
            assert asyncio.run(cache.get_or_fetch("k", fetch)) == "cached"
        fetch.assert_not_called()

    def test_miss_fetches_and_stores(self):
        cache = CacheService("redis://localhost:6379/15")
        with patch.object(cache, "get", AsyncMock(return_value=None)), patch.object(
            cache, "set", AsyncMock(return_value=True)
        ) as mock_set:
            assert asyncio.run(cache.get_or_fetch("k", AsyncMock(return_value="fresh"), ttl_seconds=5)) == "fresh"
        mock_set.assert_called_once_with("k", "fresh", 5)

    def test_none_is_not_cached(self):
        cache = CacheService("redis://localhost:6379/15")
        with patch.object(cache, "get", AsyncMock(return_value=None)), patch.object(
            cache, "set", AsyncMock(return_value=True)
        ) as mock_set:
            assert asyncio.run(cache.get_or_fetch("k", AsyncMock(return_value=None))) is None
        mock_set.assert_not_called()

    def test_fetch_errors_propagate(self):
        cache = CacheService("redis://localhost:6379/15")
        with patch.object(cache, "get", AsyncMock(return_value=None)):
            with pytest.raises(RuntimeError):
                asyncio.run(cache.get_or_fetch("k", AsyncMock(side_effect=RuntimeError("down"))))
