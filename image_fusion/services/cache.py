"""Bounded, TTL-aware in-process cache for analysis results."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any, Generic, TypeVar

from ..providers.base import AnalysisOptions

logger = logging.getLogger(__name__)

V = TypeVar("V")
Clock = Callable[[], float]


def make_cache_key(payload: bytes, options: AnalysisOptions) -> str:
    """Derive a stable key from the image content and the normalised options."""
    digest = hashlib.sha256()
    digest.update(payload)
    digest.update(b"\x00")
    digest.update(json.dumps(options.cache_fields(), sort_keys=True).encode("utf-8"))
    return digest.hexdigest()


@dataclass(slots=True, frozen=True)
class CacheEntry(Generic[V]):
    key: str
    value: V
    inserted_at: float


class CacheStore(Generic[V]):
    """Maps keys to values, evicting the oldest insertions first.

    Entries older than ``ttl`` seconds are reported as misses and dropped
    on lookup. A single lock guards the underlying ``OrderedDict`` so the
    store can be shared by concurrent requests.
    """

    def __init__(self, *, max_size: int, ttl: float, clock: Clock | None = None) -> None:
        if max_size < 0:
            raise ValueError("max_size must not be negative")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._lock = Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str) -> tuple[V | None, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if self._clock() - entry.inserted_at > self._ttl:
                del self._entries[key]
                logger.debug("Cache entry %s expired", key[:12])
                return None, False
            return entry.value, True

    def put(self, key: str, value: V) -> None:
        if self._max_size == 0:
            return
        entry = CacheEntry(key=key, value=value, inserted_at=self._clock())
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:12])

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if now - entry.inserted_at > self._ttl
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._entries
