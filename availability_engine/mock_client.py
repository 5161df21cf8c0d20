from __future__ import annotations

import asyncio
from typing import Any

from availability_engine.errors import NetworkError

DEFAULT_LOCATIONS = {
    # modality id -> location ids offering it
    "1": ["10", "11"],  # virtual
    "2": ["10"],  # presencial
}

DEFAULT_TEMPLATES = [
    {"id": 1, "name": "Mañana", "start_time": "08:00:00", "end_time": "12:00:00", "interval_minutes": 60, "capacity_per_interval": 5},
    {"id": 2, "name": "Tarde", "start_time": "14:00:00", "end_time": "17:00:00", "interval_minutes": 60, "capacity_per_interval": 3},
]


class MockSchedulingApi:
    """In-memory Scheduling API used by tests and local demos.

    Every template yields one slot per interval on any date. ``capacity`` maps
    ``(location_id, modality_id, date, "HH:MM")`` to the remaining capacity of
    that slot; unlisted slots are fully free.
    """

    def __init__(
        self,
        locations: dict[str, list[str]] | None = None,
        templates: list[dict[str, Any]] | None = None,
        capacity: dict[tuple[str, str, str, str], int] | None = None,
    ) -> None:
        self.locations = locations if locations is not None else {k: list(v) for k, v in DEFAULT_LOCATIONS.items()}
        self.templates = templates if templates is not None else [dict(t) for t in DEFAULT_TEMPLATES]
        self.capacity = dict(capacity or {})
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.failure: NetworkError | None = None
        # optional gates keyed by date, used to hold a response until released
        self.gates: dict[str, asyncio.Event] = {}

    def schedule_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "schedules")

    def location_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "locations")

    def book(self, location_id: str, modality_id: str, date: str, time: str) -> None:
        """Simulate another agent taking one unit of a slot."""
        key = (location_id, modality_id, date, time)
        total = self._total_for(time)
        self.capacity[key] = max(self.capacity.get(key, total) - 1, 0)

    def _total_for(self, time: str) -> int:
        for template in self.templates:
            if time in self._starts(template):
                return template["capacity_per_interval"]
        return 0

    @staticmethod
    def _minutes(value: str) -> int:
        hours, minutes = value.split(":")[:2]
        return int(hours) * 60 + int(minutes)

    def _starts(self, template: dict[str, Any]) -> list[str]:
        start = self._minutes(template["start_time"])
        end = self._minutes(template["end_time"])
        step = template["interval_minutes"]
        return [f"{m // 60:02d}:{m % 60:02d}" for m in range(start, end, step)]

    async def get_available_schedules(self, location_id: str, modality_id: str, date: str) -> dict[str, Any]:
        """Return the templates and slots offered on ``date``."""
        self.calls.append(("schedules", (location_id, modality_id, date)))
        if gate := self.gates.get(date):
            await gate.wait()
        if self.failure:
            raise self.failure
        if location_id not in self.locations.get(modality_id, []):
            return {"success": True, "data": []}

        data = []
        for template in self.templates:
            step = template["interval_minutes"]
            total = template["capacity_per_interval"]
            slots = []
            for start in self._starts(template):
                end_minutes = self._minutes(start) + step
                available = self.capacity.get((location_id, modality_id, date, start), total)
                slots.append(
                    {
                        "start_time": start,
                        "end_time": f"{end_minutes // 60:02d}:{end_minutes % 60:02d}",
                        "available_capacity": available,
                        "total_capacity": total,
                        "occupied": total - available,
                    }
                )
            data.append({"template": dict(template), "slots": slots})
        return {"success": True, "data": data}

    async def get_available_locations(self, modality_id: str, city_id: str) -> dict[str, Any]:
        """Return the locations offering ``modality_id``."""
        self.calls.append(("locations", (modality_id, city_id)))
        if self.failure:
            raise self.failure
        return {"success": True, "data": [{"id": int(loc) if loc.isdigit() else loc} for loc in self.locations.get(modality_id, [])]}
