import asyncio

import pytest

from availability_engine.errors import NetworkError
from availability_engine.fetcher import SlotFetcher
from availability_engine.slots import SlotKey

DATE = "2026-10-20"


@pytest.mark.asyncio
async def test_fetch_normalizes_and_caches(fetcher, api, cache):
    """Test that a miss hits the API once and stores the snapshot."""
    snapshot = await fetcher.fetch_slots("10", "2", DATE)

    assert api.schedule_calls() == 1
    assert snapshot.key == SlotKey("10", "2", DATE)
    assert [entry.template.name for entry in snapshot.templates] == ["Mañana", "Tarde"]
    assert snapshot.find_slot("09:00")[1].available_capacity == 5
    assert cache.get(SlotKey("10", "2", DATE)) is snapshot


@pytest.mark.asyncio
async def test_cache_hit_makes_no_network_call(fetcher, api):
    """Test that a second fetch for the same key returns the identical cached object."""
    first = await fetcher.fetch_slots("10", "2", DATE)
    second = await fetcher.fetch_slots("10", "2", DATE)

    assert second is first
    assert api.schedule_calls() == 1


@pytest.mark.asyncio
async def test_different_keys_fetch_separately(fetcher, api):
    """Test that location, modality and date are all part of the key."""
    await fetcher.fetch_slots("10", "2", DATE)
    await fetcher.fetch_slots("10", "1", DATE)
    await fetcher.fetch_slots("10", "2", "2026-10-21")
    assert api.schedule_calls() == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [(None, "2", DATE), ("10", None, DATE), ("10", "2", None), ("", "2", DATE)])
async def test_missing_input_is_empty_without_network(fetcher, api, args):
    """Test the empty snapshot for incomplete keys."""
    snapshot = await fetcher.fetch_slots(*args)
    assert snapshot.is_empty
    assert api.calls == []


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_request(fetcher, api):
    """Test that a second fetch for a pending key reuses the in-flight request."""
    gate = asyncio.Event()
    api.gates[DATE] = gate

    first = asyncio.create_task(fetcher.fetch_slots("10", "2", DATE))
    second = asyncio.create_task(fetcher.fetch_slots("10", "2", DATE))
    await asyncio.sleep(0)
    gate.set()

    a, b = await asyncio.gather(first, second)
    assert a is b
    assert api.schedule_calls() == 1


@pytest.mark.asyncio
async def test_refresh_bypasses_cache_and_writes_back(fetcher, api, cache):
    """Test the pre-submit re-read of capacity."""
    stale = await fetcher.fetch_slots("10", "2", DATE)
    api.book("10", "2", DATE, "09:00")

    fresh = await fetcher.fetch_slots("10", "2", DATE, refresh=True)

    assert api.schedule_calls() == 2
    assert fresh is not stale
    assert fresh.find_slot("09:00")[1].available_capacity == 4
    assert cache.get(SlotKey("10", "2", DATE)) is fresh


@pytest.mark.asyncio
async def test_network_error_propagates_and_is_not_cached(fetcher, api, cache):
    """Test that transport failures surface to the caller."""
    api.failure = NetworkError("down")

    with pytest.raises(NetworkError):
        await fetcher.fetch_slots("10", "2", DATE)
    assert cache.get(SlotKey("10", "2", DATE)) is None

    api.failure = None
    assert not (await fetcher.fetch_slots("10", "2", DATE)).is_empty


@pytest.mark.asyncio
async def test_unexpected_payload_is_a_network_error(cache):
    """Test that a body without a data list is reported as unusable."""

    class BrokenApi:
        async def get_available_schedules(self, location_id, modality_id, date):
            return {"data": "nope"}

    with pytest.raises(NetworkError):
        await SlotFetcher(BrokenApi(), cache).fetch_slots("10", "2", DATE)


@pytest.mark.asyncio
async def test_non_list_slots_are_dropped_not_raised(cache):
    """Test that a template with a scalar slots field yields an empty snapshot."""

    class ScalarSlotsApi:
        async def get_available_schedules(self, location_id, modality_id, date):
            template = {"id": 1, "name": "Mañana", "start_time": "08:00", "end_time": "12:00"}
            return {"success": True, "data": [{"template": template, "slots": 5}]}

    snapshot = await SlotFetcher(ScalarSlotsApi(), cache).fetch_slots("10", "2", DATE)

    assert snapshot.is_empty
    assert snapshot.templates == ()


@pytest.mark.asyncio
async def test_available_locations_are_string_ids(fetcher, api):
    """Test the location membership lookup used by the compatibility rule."""
    assert await fetcher.fetch_available_locations("1") == frozenset({"10", "11"})
    assert await fetcher.fetch_available_locations("2") == frozenset({"10"})
    assert await fetcher.fetch_available_locations("9") == frozenset()
    assert api.calls[0] == ("locations", ("1", "1"))
