"""Real-time booking validation rules and the pipeline composing them.

The three rules are independent: each can be awaited on its own, and the
pipeline runs them as parallel branches of a LangGraph state machine joined by
an aggregate node that rebuilds the whole validation state from scratch.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum, auto
from typing import TypedDict

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from availability_engine.errors import (
    BookingValidationError,
    IncompatibleModalityError,
    InvalidDateError,
    NoCapacityError,
    PastDateError,
    SlotNotFoundError,
)
from availability_engine.fetcher import SlotFetcher
from availability_engine.selection import Selection
from availability_engine.slots import Slot, TimeTemplate

FAR_FUTURE_DAYS = 30
FAR_DATE_WARNING = "Fecha muy lejana, considera seleccionar una fecha más próxima"
LAST_SLOT_WARNING = "Último cupo disponible"
AVAILABILITY_ERROR = "Error al validar disponibilidad"

RULES = ("date_rule", "compatibility_rule", "capacity_rule")


class RuleStatus(Enum):
    PASSED = auto()
    FAILED = auto()
    ABSTAINED = auto()


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    rule: str
    status: RuleStatus
    error: BookingValidationError | None = None
    warning: str | None = None
    template: TimeTemplate | None = None
    slot: Slot | None = None

    @property
    def passed(self) -> bool:
        return self.status is RuleStatus.PASSED

    @property
    def abstained(self) -> bool:
        return self.status is RuleStatus.ABSTAINED


class ValidationState(BaseModel):
    """What the booking form renders: button enablement, inline errors, warnings."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    is_validating: bool = False
    errors: dict[str, str | list[str]] = {}
    warnings: dict[str, str] = {}
    is_valid: bool = False
    availability_unknown: bool = False

    @classmethod
    def validating(cls) -> ValidationState:
        return cls(is_validating=True)

    @classmethod
    def unavailable(cls, message: str = AVAILABILITY_ERROR) -> ValidationState:
        """Availability could not be determined; distinct from "unavailable"."""
        return cls(errors={"api": message}, availability_unknown=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
#  Rules
# ---------------------------------------------------------------------------
def check_date(date_iso: str | None, today: date | None = None, *, far_future_days: int = FAR_FUTURE_DAYS) -> RuleOutcome:
    """Reject past dates; warn, without blocking, about far-away ones."""
    if not date_iso:
        return RuleOutcome("date", RuleStatus.ABSTAINED)
    try:
        selected = date.fromisoformat(date_iso)
    except ValueError:
        return RuleOutcome("date", RuleStatus.FAILED, error=InvalidDateError())

    today = today or date.today()
    if selected < today:
        return RuleOutcome("date", RuleStatus.FAILED, error=PastDateError())
    warning = FAR_DATE_WARNING if selected > today + timedelta(days=far_future_days) else None
    return RuleOutcome("date", RuleStatus.PASSED, warning=warning)


async def check_compatibility(fetcher: SlotFetcher, location_id: str | None, modality_id: str | None) -> RuleOutcome:
    """Check that ``location_id`` offers ``modality_id``.

    A missing id is an incomplete selection, not a bad one: the rule abstains
    without a message.
    """
    if not (location_id and modality_id):
        return RuleOutcome("compatibility", RuleStatus.ABSTAINED)
    locations = await fetcher.fetch_available_locations(modality_id)
    if str(location_id) not in locations:
        return RuleOutcome("compatibility", RuleStatus.FAILED, error=IncompatibleModalityError())
    return RuleOutcome("compatibility", RuleStatus.PASSED)


async def check_capacity(
    fetcher: SlotFetcher,
    location_id: str | None,
    modality_id: str | None,
    date_iso: str | None,
    time: str | None,
    *,
    refresh: bool = False,
) -> RuleOutcome:
    """Check that a slot starts at ``time`` and still has capacity.

    Capacity is the only outcome another agent can change behind our back, so
    submission re-runs this rule with ``refresh=True``.
    """
    if not (location_id and modality_id and date_iso and time):
        return RuleOutcome("capacity", RuleStatus.ABSTAINED)

    snapshot = await fetcher.fetch_slots(location_id, modality_id, date_iso, refresh=refresh)
    match = snapshot.find_slot(time)
    if match is None:
        return RuleOutcome("capacity", RuleStatus.FAILED, error=SlotNotFoundError())

    template, slot = match
    if slot.available_capacity <= 0:
        return RuleOutcome("capacity", RuleStatus.FAILED, error=NoCapacityError(), template=template, slot=slot)
    warning = LAST_SLOT_WARNING if slot.is_last else None
    return RuleOutcome("capacity", RuleStatus.PASSED, warning=warning, template=template, slot=slot)


def aggregate(outcomes: list[RuleOutcome]) -> ValidationState:
    """Fold rule outcomes into a fresh validation state.

    Abstaining rules neither block nor count as passing. With nothing to
    check the state is not valid.
    """
    applicable = [o for o in outcomes if not o.abstained]
    errors: dict[str, str | list[str]] = {}
    warnings: dict[str, str] = {}
    for outcome in applicable:
        if outcome.error is not None:
            errors[outcome.error.rule] = outcome.error.message
        if outcome.warning:
            warnings[outcome.rule] = outcome.warning
    is_valid = bool(applicable) and all(o.passed for o in applicable)
    return ValidationState(errors=errors, warnings=warnings, is_valid=is_valid)


# ---------------------------------------------------------------------------
#  Pipeline
# ---------------------------------------------------------------------------
class PipelineState(TypedDict, total=False):
    location_id: str | None
    modality_id: str | None
    date: str | None
    time: str | None
    today: date
    refresh: bool

    date_outcome: RuleOutcome
    compatibility_outcome: RuleOutcome
    capacity_outcome: RuleOutcome
    result: ValidationState


@dataclass(frozen=True, slots=True)
class PipelineResult:
    state: ValidationState
    outcomes: dict[str, RuleOutcome]

    @property
    def slot(self) -> Slot | None:
        return self.outcomes["capacity"].slot


class ValidationPipeline:
    """Runs every rule against one selection and aggregates the outcomes.

    Rule failures end up in the returned state; only NetworkError from the
    slot fetcher propagates.
    """

    def __init__(
        self,
        fetcher: SlotFetcher,
        *,
        today: Callable[[], date] = date.today,
        far_future_days: int = FAR_FUTURE_DAYS,
    ) -> None:
        self.fetcher = fetcher
        self.today = today
        self.far_future_days = far_future_days
        self.executor = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        g = StateGraph(PipelineState)

        g.add_node("date_rule", self._date_rule)
        g.add_node("compatibility_rule", self._compatibility_rule)
        g.add_node("capacity_rule", self._capacity_rule)
        g.add_node("aggregate", self._aggregate)

        for rule in RULES:
            g.add_edge(START, rule)
        g.add_edge(list(RULES), "aggregate")
        g.add_edge("aggregate", END)
        return g

    def _date_rule(self, state: PipelineState) -> dict:
        outcome = check_date(state.get("date"), state["today"], far_future_days=self.far_future_days)
        return {"date_outcome": outcome}

    async def _compatibility_rule(self, state: PipelineState) -> dict:
        outcome = await check_compatibility(self.fetcher, state.get("location_id"), state.get("modality_id"))
        return {"compatibility_outcome": outcome}

    async def _capacity_rule(self, state: PipelineState) -> dict:
        outcome = await check_capacity(
            self.fetcher,
            state.get("location_id"),
            state.get("modality_id"),
            state.get("date"),
            state.get("time"),
            refresh=state.get("refresh", False),
        )
        return {"capacity_outcome": outcome}

    def _aggregate(self, state: PipelineState) -> dict:
        outcomes = [state["date_outcome"], state["compatibility_outcome"], state["capacity_outcome"]]
        return {"result": aggregate(outcomes)}

    async def evaluate(self, selection: Selection, *, refresh: bool = False) -> PipelineResult:
        final = await self.executor.ainvoke(
            {
                "location_id": selection.location_id,
                "modality_id": selection.modality_id,
                "date": selection.date,
                "time": selection.time,
                "today": self.today(),
                "refresh": refresh,
            }
        )
        outcomes = {
            "date": final["date_outcome"],
            "compatibility": final["compatibility_outcome"],
            "capacity": final["capacity_outcome"],
        }
        return PipelineResult(state=final["result"], outcomes=outcomes)

    async def run(self, selection: Selection, *, refresh: bool = False) -> ValidationState:
        return (await self.evaluate(selection, refresh=refresh)).state
