from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from availability_engine.slots import Slot


class SelectionField(str, Enum):
    LOCATION = "location"
    MODALITY = "modality"
    DATE = "date"
    TIME = "time"


# fields cleared when the key field changes
DEPENDENTS: dict[SelectionField, tuple[SelectionField, ...]] = {
    SelectionField.LOCATION: (SelectionField.DATE, SelectionField.TIME),
    SelectionField.MODALITY: (SelectionField.DATE, SelectionField.TIME),
    SelectionField.DATE: (SelectionField.TIME,),
    SelectionField.TIME: (),
}

_ATTRIBUTES = {
    SelectionField.LOCATION: "location_id",
    SelectionField.MODALITY: "modality_id",
    SelectionField.DATE: "date",
    SelectionField.TIME: "time",
}


class Selection(BaseModel):
    """One in-progress booking attempt."""

    location_id: str | None = None
    modality_id: str | None = None
    date: str | None = None
    time: str | None = None

    # derived from the picked slot
    template_id: str | None = None
    selected_slot: Slot | None = None

    def get(self, field: SelectionField) -> str | None:
        return getattr(self, _ATTRIBUTES[field])

    def apply(self, field: SelectionField, value: str | None) -> list[SelectionField]:
        """Set ``field`` and clear its dependents; return the fields cleared."""
        setattr(self, _ATTRIBUTES[field], value)
        cleared = [dep for dep in DEPENDENTS[field] if self.get(dep) is not None]
        for dep in DEPENDENTS[field]:
            setattr(self, _ATTRIBUTES[dep], None)
        self.template_id = None
        self.selected_slot = None
        return cleared

    @property
    def has_any(self) -> bool:
        return any(self.get(f) for f in SelectionField)

    @property
    def missing(self) -> list[SelectionField]:
        return [f for f in SelectionField if not self.get(f)]

    @property
    def is_complete(self) -> bool:
        return not self.missing
