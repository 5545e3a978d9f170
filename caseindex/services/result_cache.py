"""
TTL cache for normalized case records and raw portal pages.

Keys are fingerprints of (strategy identity, normalized query parameters).
Entries older than their TTL are invisible to readers and purged lazily on
read or in bulk by ``sweep()``.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from loguru import logger


def fingerprint(endpoint: str, params: Mapping[str, Any]) -> str:
    """Deterministic cache key for one strategy + parameter set."""
    payload = json.dumps(
        {"endpoint": endpoint, "params": {k: str(v) for k, v in params.items()}},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    stored_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class ResultCache:
    """In-process TTL store shared by every router call."""

    def __init__(
        self,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_live(self._clock()):
                del self._entries[key]
                return None
            return entry.data

    def put(self, key: str, data: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        with self._lock:
            # Replace, never merge into an existing entry
            self._entries[key] = CacheEntry(data=data, stored_at=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if not e.is_live(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"ResultCache sweep removed {len(expired)} expired entries")
        return len(expired)
