import pytest
from pydantic import ValidationError

from availability_engine.slots import AvailabilitySnapshot, Slot, SlotKey, TimeTemplate, normalize_time

KEY = SlotKey("10", "2", "2026-10-20")


def _payload(*slots, template=None):
    return {
        "success": True,
        "data": [
            {
                "template": template or {"id": 7, "name": "Mañana", "start_time": "08:00:00", "end_time": "12:00:00"},
                "slots": list(slots),
            }
        ],
    }


def test_times_are_normalized_to_hours_and_minutes():
    """Test that HH:MM:SS from the API becomes HH:MM."""
    slot = Slot(start_time="09:00:00", end_time="10:00", available_capacity=3, total_capacity=5)
    assert (slot.start_time, slot.end_time) == ("09:00", "10:00")
    assert normalize_time(" 14:30 ") == "14:30"
    with pytest.raises(ValueError):
        normalize_time("9 o'clock")


def test_capacity_invariants_are_enforced():
    """Test that impossible capacity counters are rejected."""
    with pytest.raises(ValidationError):
        Slot(start_time="09:00", end_time="10:00", available_capacity=6, total_capacity=5)
    with pytest.raises(ValidationError):
        Slot(start_time="09:00", end_time="10:00", available_capacity=-1, total_capacity=5)
    with pytest.raises(ValidationError):
        Slot(start_time="09:00", end_time="10:00", available_capacity=0, total_capacity=0)


def test_capacity_level_and_last_slot():
    """Test the UI hints derived from the capacity counter."""
    def slot(available):
        return Slot(start_time="09:00", end_time="10:00", available_capacity=available, total_capacity=10)

    assert slot(7).capacity_level == "high"
    assert slot(4).capacity_level == "medium"
    assert slot(3).capacity_level == "low"
    assert slot(1).is_last and not slot(2).is_last


def test_template_id_is_coerced_to_string():
    """Test that numeric template ids stay opaque strings."""
    template = TimeTemplate(id=3, name="Tarde", start_time="14:00", end_time="17:00")
    assert template.id == "3"


def test_snapshot_from_payload_finds_slots():
    """Test normalization of a well-formed response."""
    snapshot = AvailabilitySnapshot.from_payload(
        KEY,
        _payload(
            {"start_time": "08:00:00", "end_time": "09:00:00", "available_capacity": 2, "total_capacity": 5},
            {"start_time": "09:00:00", "end_time": "10:00:00", "available_capacity": 3, "total_capacity": 5},
        ),
    )

    assert snapshot.key == KEY
    assert not snapshot.is_empty
    template, slot = snapshot.find_slot("09:00")
    assert template.id == "7"
    assert slot.available_capacity == 3
    assert snapshot.find_slot("09:00:00") == (template, slot)
    assert snapshot.find_slot("09:00", template_id="99") is None
    assert snapshot.find_slot("11:00") is None
    assert snapshot.find_slot("garbage") is None


def test_malformed_entries_are_dropped(caplog):
    """Test that broken slots and templates are rejected instead of propagated."""
    payload = _payload(
        {"start_time": "08:00", "end_time": "09:00", "available_capacity": 2, "total_capacity": 5},
        {"start_time": "09:00", "end_time": "10:00"},
        {"start_time": "10:00", "end_time": "11:00", "available_capacity": 9, "total_capacity": 5},
    )
    payload["data"].append({"template": {"name": "sin id"}, "slots": []})
    payload["data"].append("not an object")

    snapshot = AvailabilitySnapshot.from_payload(KEY, payload)

    assert len(snapshot.templates) == 1
    assert [s.start_time for s in snapshot.templates[0].slots] == ["08:00"]
    assert "Dropping" in caplog.text


def test_template_with_non_list_slots_is_dropped(caplog):
    """Test that a template whose slots field is not a list is skipped."""
    payload = _payload({"start_time": "08:00", "end_time": "09:00", "available_capacity": 2, "total_capacity": 5})
    payload["data"].append(
        {"template": {"id": 8, "name": "Tarde", "start_time": "14:00", "end_time": "17:00"}, "slots": 5}
    )

    snapshot = AvailabilitySnapshot.from_payload(KEY, payload)

    assert [entry.template.id for entry in snapshot.templates] == ["7"]
    assert "slots is not a list" in caplog.text


def test_missing_data_is_an_empty_snapshot():
    """Test that an absent data list yields an empty snapshot."""
    snapshot = AvailabilitySnapshot.from_payload(KEY, {"success": True})
    assert snapshot.is_empty
    with pytest.raises(ValueError):
        AvailabilitySnapshot.from_payload(KEY, {"data": {"oops": 1}})
