"""Image source fetching with a per-run cache."""

import base64
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from urllib.parse import parse_qs, unquote, urlparse

import requests
from PIL import Image

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "image/*",
}


def unwrap_proxy_url(url: str) -> str:
    """/api/proxy-image?url=<encoded> -> <decoded>, anything else unchanged."""
    if url.startswith("/api/proxy-image"):
        original = parse_qs(urlparse(url).query).get("url")
        if original:
            return unquote(original[0])
    return url


def decode_data_uri(uri: str) -> bytes:
    """Payload bytes of a data: URI (base64 or percent-encoded)."""
    header, _, payload = uri.partition(",")
    if ";base64" in header:
        return base64.b64decode(payload)
    return unquote(payload).encode("latin-1")


class ImageFetcher:
    """Fetches and decodes image sources. Results are cached by source string."""

    def __init__(self, timeout: int = 30, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: dict[str, Image.Image] = {}
        self._failures: dict[str, str] = {}
        self._lock = threading.Lock()

    def _download(self, src: str) -> bytes:
        if src.startswith("data:"):
            return decode_data_uri(src)
        url = unwrap_proxy_url(src)
        if url.startswith("//"):
            url = f"https:{url}"
        response = self.session.get(url, headers=BROWSER_HEADERS, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    def fetch(self, src: str) -> Image.Image:
        """
        Decoded RGBA image for a source.

        Raises:
            RuntimeError: network or decode failure (also cached, so a broken
                URL is only tried once per fetcher)
        """
        with self._lock:
            if src in self._cache:
                return self._cache[src]
            if src in self._failures:
                raise RuntimeError(self._failures[src])

        try:
            data = self._download(src)
            image = Image.open(BytesIO(data))
            image.load()
            image = image.convert("RGBA")
        except (requests.RequestException, OSError, ValueError) as e:
            message = f"Failed to load image {src[:80]}: {e}"
            with self._lock:
                self._failures[src] = message
            raise RuntimeError(message)

        with self._lock:
            self._cache[src] = image
        return image

    def prefetch(self, sources: list[str], max_workers: int = 8) -> int:
        """Warm the cache for unique sources. Returns how many loaded."""
        unique = [s for s in dict.fromkeys(sources) if s]
        if not unique:
            return 0

        def _try(src: str) -> bool:
            try:
                self.fetch(src)
                return True
            except RuntimeError as e:
                logger.warning(f"Image prefetch failed: {e}")
                return False

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            loaded = sum(executor.map(_try, unique))
        logger.info(f"Prefetched {loaded}/{len(unique)} images")
        return loaded

    def clear(self):
        with self._lock:
            self._cache.clear()
            self._failures.clear()
