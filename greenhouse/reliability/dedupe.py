"""Bounded, time-aware record of alert events that were already handled."""

from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable


class ProcessedEventCache:
    """Thread-safe set of event ids with insertion-order eviction and TTL.

    Entries are kept in the order they were recorded; once ``maxsize`` is
    exceeded the oldest entry is dropped. An entry older than ``ttl_seconds``
    no longer counts as processed.
    """

    def __init__(
        self,
        *,
        maxsize: int = 10_000,
        ttl_seconds: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.maxsize = maxsize
        self.ttl = ttl_seconds
        self._clock = clock
        self._store: OrderedDict[str, float] = OrderedDict()
        self._lock = Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def contains(self, event_id: str) -> bool:
        """True if *event_id* was recorded and has not expired."""
        now = self._clock()
        with self._lock:
            expires_at = self._store.get(event_id)
            if expires_at is not None and expires_at > now:
                self._hits += 1
                return True
            if expires_at is not None:
                self._store.pop(event_id, None)
                self._expirations += 1
            self._misses += 1
            return False

    __contains__ = contains

    def add(self, event_id: str) -> None:
        """Record *event_id* as processed."""
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            self._store.pop(event_id, None)
            self._store[event_id] = now + self.ttl
            while len(self._store) > self.maxsize:
                self._store.popitem(last=False)
                self._evictions += 1

    def _purge_expired(self, now: float) -> None:
        # Oldest entries expire first, so stop at the first live one.
        while self._store:
            oldest_key, expires_at = next(iter(self._store.items()))
            if expires_at > now:
                break
            self._store.pop(oldest_key)
            self._expirations += 1

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get_stats(self) -> dict[str, Any]:
        """Size, capacity and hit/eviction counters for the health endpoint."""
        with self._lock:
            size = len(self._store)
            hits = self._hits
            misses = self._misses
            evictions = self._evictions
            expirations = self._expirations

        utilization = (size / self.maxsize * 100) if self.maxsize > 0 else 0.0
        return {
            "size": size,
            "maxsize": self.maxsize,
            "ttl_seconds": self.ttl,
            "hits": hits,
            "misses": misses,
            "evictions": evictions,
            "expirations": expirations,
            "utilization": round(utilization, 2),
        }
