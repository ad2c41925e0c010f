"""Advisory distributed locks (SET NX EX) with a TTL safety net."""

import logging
import time

from ..clients.cache import CacheBackend
from ..config import LOCK_TTL_SECONDS
from ..errors import DistributedStateError
from ..utils import short_uuid

logger = logging.getLogger(__name__)


# fail-open acquires hold no lock, so there is nothing to release
UNTRACKED = "untracked"


def render_lock_key(campaign_id: str) -> str:
    return f"render:{campaign_id}"


class LockService:
    """
    Campaign-level mutual exclusion.

    acquire() hands back the holder's token, and release() only deletes the
    lock while it still carries that token, so a run whose lock expired cannot
    free a successor's lock. Without a backend every acquire succeeds; a
    backend error also lets the caller proceed. A crashed holder's lock
    expires after its TTL.
    """

    def __init__(self, cache: CacheBackend | None, ttl: int = LOCK_TTL_SECONDS):
        self.cache = cache
        self.ttl = ttl

    def acquire(self, lock_key: str, ttl: int | None = None) -> str | None:
        """Token for the new holder, or None when the lock is held elsewhere."""
        if self.cache is None:
            return UNTRACKED
        value = f"{int(time.time() * 1000)}:{short_uuid()}"
        try:
            acquired = self.cache.set(f"lock:{lock_key}", value, ex=ttl or self.ttl, nx=True)
        except DistributedStateError as e:
            logger.warning(f"Failed to acquire lock {lock_key}, proceeding without it: {e}")
            return UNTRACKED
        if not acquired:
            logger.info(f"Lock {lock_key} is held elsewhere")
            return None
        return value

    def release(self, lock_key: str, token: str):
        if self.cache is None or token == UNTRACKED:
            return
        key = f"lock:{lock_key}"
        try:
            if self.cache.get(key) != token:
                logger.warning(f"Lock {lock_key} is no longer held by this run, leaving it")
                return
            self.cache.delete(key)
        except DistributedStateError as e:
            logger.warning(f"Failed to release lock {lock_key}: {e}")

    def is_locked(self, lock_key: str) -> bool:
        if self.cache is None:
            return False
        try:
            return self.cache.exists(f"lock:{lock_key}")
        except DistributedStateError as e:
            logger.warning(f"Failed to check lock {lock_key}: {e}")
            return False

    def is_campaign_rendering(self, campaign_id: str) -> bool:
        return self.is_locked(render_lock_key(campaign_id))
