"""Slot availability records as served by the Scheduling API.

Each snapshot knows
    • the (location, modality, date) key it was fetched for
    • the time templates offered on that date
    • the concrete slots of every template, with their capacity counters
"""

from __future__ import annotations

import logging
from datetime import time
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

CapacityLevel = Literal["high", "medium", "low"]


def normalize_time(value: str) -> str:
    """Return ``HH:MM`` for ``HH:MM`` or ``HH:MM:SS`` input; raise ValueError otherwise."""
    return time.fromisoformat(value.strip()).strftime("%H:%M")


class SlotKey(NamedTuple):
    location_id: str
    modality_id: str
    date: str


class TimeTemplate(BaseModel):
    """A named recurring window, e.g. "Mañana 08:00-12:00"."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    start_time: str
    end_time: str
    interval_minutes: int | None = None
    capacity_per_interval: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, value: str) -> str:
        return normalize_time(value)


class Slot(BaseModel):
    """One concrete bookable unit with its capacity counter."""

    model_config = ConfigDict(frozen=True)

    start_time: str
    end_time: str
    available_capacity: int = Field(ge=0)
    total_capacity: int = Field(gt=0)
    occupied: int | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, value: str) -> str:
        return normalize_time(value)

    @model_validator(mode="after")
    def _capacity_bounds(self) -> Slot:
        if self.available_capacity > self.total_capacity:
            raise ValueError("available_capacity cannot exceed total_capacity")
        return self

    @property
    def is_last(self) -> bool:
        return self.available_capacity == 1

    @property
    def capacity_level(self) -> CapacityLevel:
        percentage = self.available_capacity / self.total_capacity * 100
        if percentage >= 70:
            return "high"
        if percentage >= 40:
            return "medium"
        return "low"


class TemplateSlots(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: TimeTemplate
    slots: tuple[Slot, ...] = ()


class AvailabilitySnapshot(BaseModel):
    """Result of one availability fetch for a single key.

    Snapshots are read-only mirrors of the remote capacity counters and may be
    stale; nothing in the client ever decrements them.
    """

    model_config = ConfigDict(frozen=True)

    key: SlotKey | None = None
    templates: tuple[TemplateSlots, ...] = ()

    @classmethod
    def empty(cls, key: SlotKey | None = None) -> AvailabilitySnapshot:
        return cls(key=key)

    @classmethod
    def from_payload(cls, key: SlotKey, payload: dict[str, Any]) -> AvailabilitySnapshot:
        """Build a snapshot from a ``/schedules/available`` response body.

        Malformed template entries are dropped with a warning, as are
        malformed slots inside an otherwise valid template.
        """
        entries = payload.get("data") or []
        if not isinstance(entries, list):
            raise ValueError("'data' must be a list")

        templates: list[TemplateSlots] = []
        for raw in entries:
            if not isinstance(raw, dict):
                logger.warning("Dropping non-object availability entry for %s", key)
                continue
            try:
                template = TimeTemplate.model_validate(raw.get("template"))
            except ValidationError as exc:
                logger.warning("Dropping malformed template for %s: %s", key, exc.errors()[0]["msg"])
                continue

            raw_slots = raw.get("slots") or []
            if not isinstance(raw_slots, list):
                logger.warning("Dropping template %s for %s: slots is not a list", template.id, key)
                continue

            slots: list[Slot] = []
            for raw_slot in raw_slots:
                try:
                    slots.append(Slot.model_validate(raw_slot))
                except ValidationError as exc:
                    logger.warning(
                        "Dropping malformed slot in template %s for %s: %s",
                        template.id,
                        key,
                        exc.errors()[0]["msg"],
                    )
            templates.append(TemplateSlots(template=template, slots=tuple(slots)))

        return cls(key=key, templates=tuple(templates))

    @property
    def is_empty(self) -> bool:
        return not any(entry.slots for entry in self.templates)

    def find_slot(self, start_time: str, template_id: str | None = None) -> tuple[TimeTemplate, Slot] | None:
        """Return the first template slot starting at ``start_time``.

        With ``template_id`` only that template is searched.
        """
        try:
            wanted = normalize_time(start_time)
        except ValueError:
            return None
        for entry in self.templates:
            if template_id is not None and entry.template.id != str(template_id):
                continue
            for slot in entry.slots:
                if slot.start_time == wanted:
                    return entry.template, slot
        return None
