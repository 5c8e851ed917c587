"""
Snapshot cache repositories for ShellyFlow.

The refresh loop and the push callback share computed daily snapshots
through these repositories.
"""

from .cache_repository import CacheRepository, MemoryCacheRepository

# RedisCacheRepository requires redis-py (optional dependency)
try:
    from .redis_cache_repository import RedisCacheRepository
    __all__ = ['CacheRepository', 'MemoryCacheRepository', 'RedisCacheRepository']
except ImportError:
    __all__ = ['CacheRepository', 'MemoryCacheRepository']
