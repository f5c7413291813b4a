"""
Process-local HTTP response cache keyed by ``METHOD:URL``.

Entries expire after their TTL or when cleared. Nothing is shared between
worker processes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi import Request

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    data: Any
    status: int
    timestamp: float


@dataclass
class ResponseCache:
    """TTL cache for successful JSON responses."""

    clock: Callable[[], float] = time.monotonic
    entries: dict[str, CacheEntry] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    @staticmethod
    def key_for(request: Request) -> str:
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return f"{request.method}:{url}"

    def get(self, key: str, ttl: float = DEFAULT_TTL_SECONDS) -> Optional[CacheEntry]:
        with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            if self.clock() - entry.timestamp < ttl:
                return entry
            del self.entries[key]
        return None

    def set(self, key: str, data: Any, status: int = 200) -> None:
        if not 200 <= status < 300:
            return
        with self._lock:
            self.entries[key] = CacheEntry(
                data=data, status=status, timestamp=self.clock()
            )

    def fetch(
        self,
        request: Request,
        producer: Callable[[], Any],
        ttl: float = DEFAULT_TTL_SECONDS,
        status: int = 200,
    ) -> Any:
        """
        Return the cached payload for ``request`` or build, store and return a
        fresh one. Exceptions from ``producer`` propagate and nothing is stored.
        """
        key = self.key_for(request)
        cached = self.get(key, ttl)
        if cached is not None:
            return cached.data
        data = producer()
        self.set(key, data, status)
        return data

    def clear(self, pattern: str) -> int:
        """Drop every entry whose key contains ``pattern``."""
        with self._lock:
            doomed = [key for key in self.entries if pattern in key]
            for key in doomed:
                del self.entries[key]
        return len(doomed)

    def clear_all(self) -> None:
        with self._lock:
            self.entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self.entries), "keys": list(self.entries)}
