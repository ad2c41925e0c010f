"""Sliding-window rate limiting on a sorted set of request timestamps."""

import logging
import time
from typing import Callable

from ..clients.cache import CacheBackend
from ..config import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS
from ..errors import DistributedStateError
from ..utils import short_uuid

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allows at most `max_requests` per `window_seconds` for each key."""

    def __init__(
        self,
        cache: CacheBackend | None,
        max_requests: int = RATE_LIMIT_MAX,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> bool:
        """Record a request for `key`. Returns False when the window is full."""
        if self.cache is None:
            return True
        window_key = f"ratelimit:{key}"
        now = int(self.clock() * 1000)
        try:
            self.cache.zremrangebyscore(window_key, 0, now - self.window_seconds * 1000)
            count = self.cache.zcard(window_key)
            if count >= self.max_requests:
                logger.info(f"Rate limit exceeded: {key} ({count}/{self.max_requests})")
                return False
            self.cache.zadd(window_key, now, f"{now}:{short_uuid()}")
            self.cache.expire(window_key, self.window_seconds)
        except DistributedStateError as e:
            logger.warning(f"Rate limit check failed for {key}, allowing: {e}")
        return True
