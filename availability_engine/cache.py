"""Session-scoped slot availability cache."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from availability_engine.slots import AvailabilitySnapshot, SlotKey

logger = logging.getLogger(__name__)


class SlotCache:
    """Keyed store of availability snapshots.

    Writes replace whole entries, so concurrent writers can only race to
    last-write-wins and never leave a torn entry. Entries live for the whole
    session unless ``ttl_seconds`` is set.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[SlotKey, tuple[float, AvailabilitySnapshot]] = {}

    def get(self, key: SlotKey) -> AvailabilitySnapshot | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, snapshot = entry
        if self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds:
            logger.debug("Slot cache entry expired for %s", key)
            self._entries.pop(key, None)
            return None
        return snapshot

    def put(self, key: SlotKey, snapshot: AvailabilitySnapshot) -> None:
        self._entries[key] = (self._clock(), snapshot)

    def invalidate(self, key: SlotKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry; called on logout and app restart."""
        logger.info("Clearing slot cache (%d entries)", len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# process-wide instance shared by every booking panel
slot_cache = SlotCache()
