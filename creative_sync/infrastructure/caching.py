"""
Caching Infrastructure
In-memory TTL cache for ad platform and asset store reads
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60

# TTLs per resource kind
CAMPAIGNS_TTL = 5 * 60
ADSETS_TTL = 5 * 60
INSIGHTS_TTL = 15 * 60
VIDEO_THUMBNAIL_TTL = 60 * 60
IMAGE_THUMBNAIL_TTL = 60 * 60
PACKAGE_CREATIVES_TTL = 60


class CacheKeys:
    """Key builders, namespaced by resource kind and parameters."""

    campaigns = "meta:campaigns"
    adsets = "meta:adsets"

    @staticmethod
    def adsets_by_campaign(campaign_id: str) -> str:
        return f"meta:adsets:campaign:{campaign_id}"

    @staticmethod
    def adset_by_id(adset_id: str) -> str:
        return f"meta:adset:{adset_id}"

    @staticmethod
    def insights(ad_id: str, date_range: str) -> str:
        return f"meta:insights:{ad_id}:{date_range}"

    @staticmethod
    def video_thumbnail(video_id: str) -> str:
        return f"meta:video:thumbnail:{video_id}"

    @staticmethod
    def image_thumbnail(image_hash: str) -> str:
        return f"meta:image:thumbnail:{image_hash}"

    @staticmethod
    def package_creatives(package_id: Any) -> str:
        return f"drive:creatives:{package_id}"


@dataclass
class CacheEntry:
    data: Any
    inserted_at: float
    ttl_seconds: float

    def is_fresh(self, now: float) -> bool:
        return now - self.inserted_at <= self.ttl_seconds


class TTLCache:
    """Process-local key/value cache with lazy expiry.

    Entries are only evicted when read after their TTL or on
    ``invalidate``; there is no background sweep.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock or time.monotonic

    def set(self, key: str, data: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        """Store ``data`` under ``key``, overwriting any previous entry."""
        self._entries[key] = CacheEntry(data=data, inserted_at=self._clock(), ttl_seconds=ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not entry.is_fresh(self._clock()):
            # pop, not del: a concurrent reader may have evicted it already
            self._entries.pop(key, None)
            return None

        return entry.data

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop every entry, or only keys containing ``pattern``.

        Returns the number of entries removed.
        """
        if not pattern:
            removed = len(self._entries)
            self._entries.clear()
            logger.debug(f"Cache cleared ({removed} entries)")
            return removed

        keys_to_delete = [k for k in list(self._entries.keys()) if pattern in k]
        for key in keys_to_delete:
            self._entries.pop(key, None)
        logger.debug(f"Cache invalidated {len(keys_to_delete)} entries matching {pattern!r}")
        return len(keys_to_delete)

    def stats(self) -> Dict[str, Any]:
        keys: List[str] = list(self._entries.keys())
        return {"size": len(keys), "keys": keys}

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide cache shared by the platform client and the sync pipeline
meta_cache = TTLCache()


__all__ = [
    "TTLCache",
    "CacheEntry",
    "CacheKeys",
    "meta_cache",
    "DEFAULT_TTL_SECONDS",
    "CAMPAIGNS_TTL",
    "ADSETS_TTL",
    "INSIGHTS_TTL",
    "VIDEO_THUMBNAIL_TTL",
    "IMAGE_THUMBNAIL_TTL",
    "PACKAGE_CREATIVES_TTL",
]
