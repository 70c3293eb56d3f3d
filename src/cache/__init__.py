"""
Cache module for read-path results
"""

from .manager import (
    CacheManager, CacheError, CacheNotInitializedError, CacheSerializationError,
    CACHE_TTL_SHORT, CACHE_TTL_MEDIUM, CACHE_TTL_LONG, cache_key
)

__all__ = [
    'CacheManager', 'CacheError', 'CacheNotInitializedError', 'CacheSerializationError',
    'CACHE_TTL_SHORT', 'CACHE_TTL_MEDIUM', 'CACHE_TTL_LONG', 'cache_key'
]
