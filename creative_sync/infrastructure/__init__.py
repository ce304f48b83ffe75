"""
CREATIVE SYNC INFRASTRUCTURE
Cross-cutting building blocks

This package contains:
- caching: in-process TTL cache with lazy eviction
- error_handling: error taxonomy, retry policy and retry handler
"""

from .caching import TTLCache, CacheKeys, meta_cache
from .error_handling import (
    CreativeSyncError, ValidationError, TransportError, NotFoundError,
    PlatformRejectionError, PlatformTimeoutError,
    RetryPolicy, RetryHandler, with_retry,
)

__all__ = [
    'TTLCache', 'CacheKeys', 'meta_cache',
    'CreativeSyncError', 'ValidationError', 'TransportError', 'NotFoundError',
    'PlatformRejectionError', 'PlatformTimeoutError',
    'RetryPolicy', 'RetryHandler', 'with_retry',
]
