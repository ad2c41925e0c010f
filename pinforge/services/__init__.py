"""Distributed-state services. All of them fail open."""

from .cache import CacheService
from .locks import LockService, render_lock_key
from .progress import ProgressService, progress_key
from .rate_limit import RateLimiter

__all__ = [
    "CacheService",
    "LockService",
    "ProgressService",
    "RateLimiter",
    "progress_key",
    "render_lock_key",
]
