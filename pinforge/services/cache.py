"""Read-through caching of JSON-serializable values."""

import json
import logging
from typing import Any, Callable

from ..clients.cache import CacheBackend
from ..config import CACHE_TTL_SECONDS
from ..errors import DistributedStateError

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, cache: CacheBackend | None):
        self.cache = cache

    def cache_get(self, key: str, fetcher: Callable[[], Any], ttl: int = CACHE_TTL_SECONDS) -> Any:
        """
        Cached value for key, else fetcher() stored with a TTL.

        Cache errors fall through to fetcher(); fetcher errors propagate.
        """
        if self.cache is None:
            return fetcher()
        try:
            cached = self.cache.get(key)
        except DistributedStateError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return fetcher()
        if cached is not None:
            logger.debug(f"Cache HIT: {key}")
            return json.loads(cached)

        logger.debug(f"Cache MISS: {key}")
        fresh = fetcher()
        try:
            self.cache.set(key, json.dumps(fresh), ex=ttl)
        except DistributedStateError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return fresh

    def cache_invalidate(self, key: str):
        if self.cache is None:
            return
        try:
            self.cache.delete(key)
            logger.debug(f"Cache invalidated: {key}")
        except DistributedStateError as e:
            logger.warning(f"Cache invalidate failed for {key}: {e}")

    def cache_invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern, e.g. 'fonts:*'."""
        if self.cache is None:
            return 0
        try:
            keys = self.cache.keys(pattern)
            if not keys:
                return 0
            removed = self.cache.delete(*keys)
        except DistributedStateError as e:
            logger.warning(f"Cache invalidate failed for {pattern}: {e}")
            return 0
        logger.info(f"Invalidated {removed} keys matching {pattern}")
        return removed
