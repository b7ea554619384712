"""In-memory TTL cache for routed call results."""

import copy
import hashlib
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

DEFAULT_TTL_MS = 3_600_000


def make_key(task: str, schema: str | None, mode: str | None, prompt: str) -> str:
    """Content hash of the logical request."""
    raw = f"{_plain(task)}|{_plain(schema)}|{_plain(mode)}|{prompt}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _plain(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "value", value))


@dataclass
class CacheEntry:
    value: Any
    expires_at_ms: float


class ResponseCache:
    """TTL-only key/value store; expired entries are dropped lazily on read.

    Values are deep-copied on the way in and out, so callers never share
    mutable state with the cache.
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._now_ms() > entry.expires_at_ms:
                del self._store[key]
                logger.debug(f"Cache: expired {key[:12]}")
                return None
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        entry = CacheEntry(copy.deepcopy(value), self._now_ms() + ttl)
        with self._lock:
            self._store[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
