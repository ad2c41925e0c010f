"""Campaign progress counters in the cache service.

Layout per campaign:
    progress:{id}           hash  total, completed, failed, status, ...
    progress:{id}:errors    list  JSON {"row": n, "error": "..."} entries
    progress:{id}:terminal  string, set once when the run turns terminal

Every method fails open: with no backend, or when the backend errors, reads
return None and writes do nothing.
"""

import json
import logging
from typing import Any

from ..clients.cache import CacheBackend
from ..config import PROGRESS_TTL_SECONDS
from ..errors import DistributedStateError
from ..models import ProgressRecord
from ..utils import utc_now_iso

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("completed", "failed")
INT_FIELDS = ("total", "completed", "failed", "next_index")
TERMINAL_STATUSES = ("completed", "failed")


def progress_key(campaign_id: str) -> str:
    return f"progress:{campaign_id}"


class ProgressService:
    """Atomic per-campaign counters with an exactly-once terminal transition."""

    def __init__(self, cache: CacheBackend | None, ttl: int = PROGRESS_TTL_SECONDS):
        self.cache = cache
        self.ttl = ttl

    def set_progress(self, campaign_id: str, **fields: Any):
        """
        Merge fields into the progress record.

        A 'processing' status stamps started_at if it is not set yet; a
        terminal status stamps completed_at.
        """
        if self.cache is None:
            return
        key = progress_key(campaign_id)
        try:
            mapping = {k: v for k, v in fields.items() if v is not None}
            status = mapping.get("status")
            if status == "processing" and "started_at" not in self.cache.hgetall(key):
                mapping["started_at"] = utc_now_iso()
            if status in TERMINAL_STATUSES:
                mapping.setdefault("completed_at", utc_now_iso())
            mapping["campaign_id"] = campaign_id
            self.cache.hset(key, mapping)
            self.cache.expire(key, self.ttl)
        except DistributedStateError as e:
            logger.warning(f"Failed to set progress for {campaign_id}: {e}")

    def start(self, campaign_id: str, total: int):
        """Fresh run: drop any previous record, then zero the counters."""
        self.clear_progress(campaign_id)
        self.set_progress(campaign_id, total=total, completed=0, failed=0, next_index=0, status="processing")

    def get_progress(self, campaign_id: str) -> ProgressRecord | None:
        if self.cache is None:
            return None
        key = progress_key(campaign_id)
        try:
            data = self.cache.hgetall(key)
            if not data:
                return None
            errors = self.cache.lrange(f"{key}:errors", 0, -1)
        except DistributedStateError as e:
            logger.warning(f"Failed to read progress for {campaign_id}: {e}")
            return None
        return _record_from_hash(campaign_id, data, errors)

    def increment(self, campaign_id: str, field: str, by: int = 1) -> ProgressRecord | None:
        """
        Atomically bump `completed` or `failed`, then check for completion.

        The terminal status is written by whichever caller first wins the
        SET NX on progress:{id}:terminal, so concurrent workers finishing the
        last rows produce a single transition.

        Returns:
            The record as seen after the increment, or None when unavailable
        """
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown progress counter: {field}")
        if self.cache is None:
            return None
        key = progress_key(campaign_id)
        try:
            self.cache.hincrby(key, field, by)
            record = _record_from_hash(campaign_id, self.cache.hgetall(key))
            if record.is_done:
                status = "failed" if record.failed > 0 else "completed"
                if self.cache.set(f"{key}:terminal", status, ex=self.ttl, nx=True):
                    record.status = status
                    record.completed_at = utc_now_iso()
                    self.cache.hset(key, {"status": status, "completed_at": record.completed_at})
                    logger.info(
                        f"Campaign {campaign_id} {status}: "
                        f"{record.completed} completed, {record.failed} failed of {record.total}"
                    )
            return record
        except DistributedStateError as e:
            logger.warning(f"Failed to increment {field} for {campaign_id}: {e}")
            return None

    def add_error(self, campaign_id: str, row_index: int, message: str):
        if self.cache is None:
            return
        key = f"{progress_key(campaign_id)}:errors"
        try:
            self.cache.rpush(key, json.dumps({"row": row_index, "error": message}))
            self.cache.expire(key, self.ttl)
        except DistributedStateError as e:
            logger.warning(f"Failed to record error for {campaign_id}: {e}")

    def clear_progress(self, campaign_id: str):
        if self.cache is None:
            return
        key = progress_key(campaign_id)
        try:
            self.cache.delete(key, f"{key}:errors", f"{key}:terminal")
        except DistributedStateError as e:
            logger.warning(f"Failed to clear progress for {campaign_id}: {e}")


def _record_from_hash(campaign_id: str, data: dict[str, str], errors: list[str] | None = None) -> ProgressRecord:
    counters = {name: int(data.get(name) or 0) for name in INT_FIELDS}
    return ProgressRecord(
        campaign_id=campaign_id,
        status=data.get("status") or "processing",
        started_at=data.get("started_at"),
        completed_at=data.get("completed_at"),
        errors=[json.loads(e) for e in errors or []],
        **counters,
    )
