"""
Unit tests for the profile cache.
"""
from redis.exceptions import ConnectionError

from storefront.services.cache_service import CacheService


class DictRedis:
    """Just enough of the redis client for CacheService."""

    def __init__(self, down=False):
        self.down = down
        self.data = {}
        self.ttls = {}

    def ping(self):
        if self.down:
            raise ConnectionError('redis is down')
        return True

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)


def _cache(client):
    cache = CacheService()
    cache.client = client
    cache._enabled = True
    cache._prefix = 'storefront'
    cache._profile_ttl = 300
    return cache


class TestCacheService:

    def test_disabled_cache_always_loads(self):
        cache = CacheService()
        calls = []

        for _ in range(2):
            cache.memoize_profile('BIS00001', lambda: calls.append(1) or {'name': 'Cafe'})

        assert len(calls) == 2

    def test_profile_is_cached_with_ttl(self):
        client = DictRedis()
        cache = _cache(client)
        calls = []

        def load():
            calls.append(1)
            return {'name': 'Cafe'}

        assert cache.memoize_profile('BIS00001', load) == {'name': 'Cafe'}
        assert cache.memoize_profile('BIS00001', load) == {'name': 'Cafe'}
        assert len(calls) == 1
        assert client.ttls['storefront:profile:BIS00001'] == 300

    def test_missing_profile_is_not_cached(self):
        client = DictRedis()
        cache = _cache(client)

        assert cache.memoize_profile('BIS00009', lambda: None) is None
        assert client.data == {}

    def test_delete_invalidates(self):
        cache = _cache(DictRedis())
        cache.memoize_profile('BIS00001', lambda: {'name': 'Old'})
        cache.delete('profile', 'BIS00001')

        assert cache.memoize_profile('BIS00001', lambda: {'name': 'New'}) == {'name': 'New'}

    def test_redis_down_falls_through(self):
        cache = _cache(DictRedis(down=True))

        assert not cache.is_available()
        assert cache.memoize_profile('BIS00001', lambda: {'name': 'Cafe'}) == {'name': 'Cafe'}
        assert cache.delete('profile', 'BIS00001') is False
