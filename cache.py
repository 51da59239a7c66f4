"""
GPAI Relay Cache Layer
Bounded in-memory cache for upstream replies with FIFO eviction.
"""

import logging
import threading
from collections import OrderedDict
from typing import Optional

from models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)


class BoundedResponseCache:
    """
    Fixed-capacity cache keyed by request fingerprint.

    Eviction is FIFO by insertion order: when full, the oldest inserted entry
    goes first. A hit does NOT refresh an entry's position, so this is not LRU.
    No TTL - entries live until evicted or the process exits.

    One instance per app; created empty at startup, never persisted.
    """

    def __init__(self, capacity: int = 100) -> None:
        """Initialize an empty cache holding at most `capacity` entries."""
        if capacity <= 0:
            raise ValueError(f"Cache capacity must be > 0, got {capacity}")
        self._capacity = capacity
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for `key`, or None. Read-only: order is untouched."""
        return self._entries.get(key)

    def insert(self, key: str, entry: CacheEntry) -> Optional[CacheEntry]:
        """
        Store `entry` under `key`.

        If the cache is full and `key` is new, exactly one entry (the oldest
        inserted) is evicted first. Replacing an existing key keeps its
        original queue position and evicts nothing.

        Returns:
            The evicted entry, or None if nothing was evicted.
        """
        evicted = None
        with self._lock:
            if key in self._entries:
                self._entries[key] = entry
                return None

            if len(self._entries) >= self._capacity:
                _, evicted = self._entries.popitem(last=False)
                self._evictions += 1

            self._entries[key] = entry

        if evicted is not None:
            logger.info(f"Cache evicted oldest entry {evicted.key[:12]}... (capacity={self._capacity})")
        return evicted

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def stats(self) -> CacheStats:
        """Return cache statistics for monitoring."""
        return CacheStats(
            stored_items=len(self._entries),
            capacity=self._capacity,
            evictions=self._evictions,
        )
