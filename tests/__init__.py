"""
cachebank Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Record store and search tests against the in-memory cache,
  plus live memcached tests (CACHEBANK_MEMCACHED_TESTS=1)
"""
