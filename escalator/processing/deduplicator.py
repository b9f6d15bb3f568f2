"""Bounded identity cache of already-processed event IDs."""

import threading
from collections import OrderedDict

import structlog


logger = structlog.get_logger()


class Deduplicator:
    """
    Remembers which event IDs have been processed.

    IDs are kept in insertion order. Once the cache grows past its
    capacity the oldest IDs are evicted in a single batch, so cleanup
    happens once per batch rather than on every insert.

    The pipeline calls is_new() and mark_seen() as a pair from a single
    task. check_and_mark() is the atomic variant for callers that run
    cycles concurrently.
    """

    def __init__(self, capacity: int = 10000, eviction_batch_size: int = 1000):
        if capacity < 1:
            raise ValueError(f"capacity must be a positive integer, got {capacity}")
        if eviction_batch_size < 1:
            raise ValueError(
                f"eviction_batch_size must be a positive integer, got {eviction_batch_size}"
            )
        self._capacity = capacity
        self._eviction_batch_size = eviction_batch_size
        # OrderedDict keys double as insertion order and membership set
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def eviction_batch_size(self) -> int:
        return self._eviction_batch_size

    def is_new(self, event_id: str) -> bool:
        """Check whether an ID has not been seen (or has since been evicted)."""
        return event_id not in self._seen

    def mark_seen(self, event_id: str):
        """Record an ID, evicting the oldest batch if capacity is exceeded."""
        if event_id in self._seen:
            return

        self._seen[event_id] = None

        overflow = len(self._seen) - self._capacity
        if overflow > 0:
            # Never evict the ID that was just inserted
            count = max(overflow, min(self._eviction_batch_size, len(self._seen) - 1))
            self._evict(count)

    def check_and_mark(self, event_id: str) -> bool:
        """Atomically mark an ID and report whether it was new."""
        with self._lock:
            if not self.is_new(event_id):
                return False
            self.mark_seen(event_id)
            return True

    def _evict(self, count: int):
        for _ in range(count):
            self._seen.popitem(last=False)

        logger.debug(
            "Evicted processed event IDs",
            evicted=count,
            remaining=len(self._seen),
            capacity=self._capacity,
        )

    def clear(self):
        """Clear all deduplication state."""
        self._seen.clear()

    def __contains__(self, event_id: str) -> bool:
        return event_id in self._seen

    def __len__(self):
        return len(self._seen)
