"""Key-value cache clients: Upstash Redis (REST) and an in-process stand-in.

Both expose the same small Redis command subset. Failures raise
DistributedStateError; the services built on top decide how to fail open.
"""

import fnmatch
import threading
import time
from typing import Any, Callable

import requests

from ..errors import DistributedStateError


class UpstashClient:
    """Client for Upstash Redis over its REST API."""

    def __init__(self, url: str, token: str):
        self.base_url = url.rstrip("/")
        self.token = token

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def _request_with_retry(
        self,
        method: str,
        url: str,
        headers: dict,
        json: list | dict | None = None,
        max_retries: int = 3,
    ) -> requests.Response:
        """Make request with exponential backoff on 429 errors."""
        response = None
        for attempt in range(max_retries):
            if method == "POST":
                response = requests.post(url, json=json, headers=headers, timeout=30)
            else:
                response = requests.get(url, headers=headers, timeout=30)

            if response.status_code == 429:
                time.sleep(2 ** attempt)
                continue

            return response

        return response

    def command(self, *args: Any) -> Any:
        """Run one Redis command, e.g. command("SET", "k", "v", "NX")."""
        payload = [str(a) for a in args]
        try:
            response = self._request_with_retry("POST", self.base_url, self._get_headers(), json=payload)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise DistributedStateError(f"Upstash {args[0]} failed: {e}")

        if "error" in data:
            raise DistributedStateError(f"Upstash {args[0]} error: {data['error']}")
        return data.get("result")

    def get(self, key: str) -> str | None:
        return self.command("GET", key)

    def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool:
        args: list[Any] = ["SET", key, value]
        if nx:
            args.append("NX")
        if ex:
            args += ["EX", int(ex)]
        return self.command(*args) == "OK"

    def delete(self, *keys: str) -> int:
        return int(self.command("DEL", *keys) or 0)

    def exists(self, key: str) -> bool:
        return bool(self.command("EXISTS", key))

    def expire(self, key: str, seconds: int) -> bool:
        return bool(self.command("EXPIRE", key, int(seconds)))

    def hset(self, key: str, mapping: dict[str, Any]) -> int:
        args: list[Any] = ["HSET", key]
        for field_name, value in mapping.items():
            args += [field_name, value]
        return int(self.command(*args) or 0)

    def hgetall(self, key: str) -> dict[str, str]:
        # REST returns a flat [field, value, field, value, ...] list
        flat = self.command("HGETALL", key) or []
        return dict(zip(flat[::2], flat[1::2]))

    def hincrby(self, key: str, field_name: str, amount: int = 1) -> int:
        return int(self.command("HINCRBY", key, field_name, amount))

    def rpush(self, key: str, *values: Any) -> int:
        return int(self.command("RPUSH", key, *values))

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return self.command("LRANGE", key, start, stop) or []

    def zadd(self, key: str, score: float, member: str) -> int:
        return int(self.command("ZADD", key, score, member) or 0)

    def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return int(self.command("ZREMRANGEBYSCORE", key, min_score, max_score) or 0)

    def zcard(self, key: str) -> int:
        return int(self.command("ZCARD", key) or 0)

    def keys(self, pattern: str) -> list[str]:
        return self.command("KEYS", pattern) or []


class MemoryCache:
    """Thread-safe in-process implementation of the same command subset.

    Used for local runs and tests. `clock` returns seconds and can be replaced
    to drive expiry deterministically.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._data: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._lock = threading.RLock()

    def _purge(self, key: str):
        deadline = self._expires.get(key)
        if deadline is not None and self.clock() >= deadline:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _live(self, key: str) -> Any:
        self._purge(key)
        return self._data.get(key)

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._live(key)
            return value if isinstance(value, str) else None

    def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool:
        with self._lock:
            if nx and self._live(key) is not None:
                return False
            self._data[key] = str(value)
            if ex:
                self._expires[key] = self.clock() + ex
            else:
                self._expires.pop(key, None)
            return True

    def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._live(key) is not None:
                    removed += 1
                self._data.pop(key, None)
                self._expires.pop(key, None)
            return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            if self._live(key) is None:
                return False
            self._expires[key] = self.clock() + seconds
            return True

    def ttl(self, key: str) -> float | None:
        with self._lock:
            if self._live(key) is None or key not in self._expires:
                return None
            return self._expires[key] - self.clock()

    def hset(self, key: str, mapping: dict[str, Any]) -> int:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, dict):
                current = {}
                self._data[key] = current
            added = sum(1 for k in mapping if k not in current)
            current.update({k: str(v) for k, v in mapping.items()})
            return added

    def hgetall(self, key: str) -> dict[str, str]:
        with self._lock:
            current = self._live(key)
            return dict(current) if isinstance(current, dict) else {}

    def hincrby(self, key: str, field_name: str, amount: int = 1) -> int:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, dict):
                current = {}
                self._data[key] = current
            value = int(current.get(field_name, 0)) + amount
            current[field_name] = str(value)
            return value

    def rpush(self, key: str, *values: Any) -> int:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, list):
                current = []
                self._data[key] = current
            current.extend(str(v) for v in values)
            return len(current)

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, list):
                return []
            stop = len(current) if stop == -1 else stop + 1
            return list(current[start:stop])

    def zadd(self, key: str, score: float, member: str) -> int:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, set):
                current = set()
                self._data[key] = current
            existing = {m for s, m in current if m == member}
            current.difference_update({(s, m) for s, m in current if m in existing})
            current.add((float(score), member))
            return 0 if existing else 1

    def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        with self._lock:
            current = self._live(key)
            if not isinstance(current, set):
                return 0
            doomed = {(s, m) for s, m in current if min_score <= s <= max_score}
            current.difference_update(doomed)
            return len(doomed)

    def zcard(self, key: str) -> int:
        with self._lock:
            current = self._live(key)
            return len(current) if isinstance(current, set) else 0

    def keys(self, pattern: str) -> list[str]:
        with self._lock:
            for key in list(self._data):
                self._purge(key)
            return [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]


CacheBackend = UpstashClient | MemoryCache


def build_cache(url: str | None, token: str | None) -> UpstashClient | None:
    """Upstash client when configured, else None (distributed state disabled)."""
    if not url or not token:
        return None
    return UpstashClient(url, token)
