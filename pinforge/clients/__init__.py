"""External service clients."""

from .cache import MemoryCache, UpstashClient, build_cache
from .images import ImageFetcher
from .storage import PinStorage
from .supabase import SupabaseClient

__all__ = [
    "ImageFetcher",
    "MemoryCache",
    "PinStorage",
    "SupabaseClient",
    "UpstashClient",
    "build_cache",
]
