from __future__ import annotations

import asyncio
import logging

from availability_engine.api_client import SchedulingApi
from availability_engine.cache import SlotCache, slot_cache
from availability_engine.errors import NetworkError
from availability_engine.slots import AvailabilitySnapshot, SlotKey

logger = logging.getLogger(__name__)


class SlotFetcher:
    """Single gateway from the engine to the Scheduling API.

    Serves availability snapshots from the slot cache when possible and
    shares one request between concurrent callers asking for the same key.
    """

    def __init__(self, api: SchedulingApi, cache: SlotCache | None = None, city_id: str = "1") -> None:
        self.api = api
        self.cache = cache if cache is not None else slot_cache
        self.city_id = city_id
        self._in_flight: dict[SlotKey, asyncio.Task[AvailabilitySnapshot]] = {}

    async def fetch_slots(
        self,
        location_id: str | None,
        modality_id: str | None,
        date: str | None,
        *,
        refresh: bool = False,
    ) -> AvailabilitySnapshot:
        """Return the availability snapshot for a location, modality and date.

        ``refresh`` skips the cache read (the result is still written back).
        Raises NetworkError when the API cannot answer.
        """
        if not (location_id and modality_id and date):
            return AvailabilitySnapshot.empty()

        key = SlotKey(location_id, modality_id, date)
        if not refresh:
            if (cached := self.cache.get(key)) is not None:
                logger.debug("Slot cache hit for %s", key)
                return cached
            if (task := self._in_flight.get(key)) is not None:
                logger.debug("Joining in-flight slot request for %s", key)
                return await asyncio.shield(task)

        task = asyncio.get_running_loop().create_task(self._load(key))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: SlotKey, task: asyncio.Task[AvailabilitySnapshot]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # retrieved here so unawaited failures are not reported as lost
            task.exception()

    async def _load(self, key: SlotKey) -> AvailabilitySnapshot:
        logger.info("Fetching slot availability for %s", key)
        payload = await self.api.get_available_schedules(key.location_id, key.modality_id, key.date)
        try:
            snapshot = AvailabilitySnapshot.from_payload(key, payload)
        except ValueError as exc:
            raise NetworkError(f"Unexpected availability payload for {key}: {exc}") from exc
        self.cache.put(key, snapshot)
        return snapshot

    async def fetch_available_locations(self, modality_id: str) -> frozenset[str]:
        """Return the ids of the locations that offer ``modality_id``."""
        payload = await self.api.get_available_locations(modality_id, self.city_id)
        entries = payload.get("data") or []
        if not isinstance(entries, list):
            raise NetworkError("Unexpected available-locations payload")
        return frozenset(str(entry["id"]) for entry in entries if isinstance(entry, dict) and "id" in entry)
