from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date
from enum import Enum, auto
from typing import Any

from availability_engine import calendar_resolver
from availability_engine.calendar_resolver import CalendarCell, CalendarView
from availability_engine.debounce import Scheduler, debounce
from availability_engine.errors import NetworkError
from availability_engine.fetcher import SlotFetcher
from availability_engine.selection import Selection, SelectionField
from availability_engine.slots import AvailabilitySnapshot, Slot, normalize_time
from availability_engine.validation import PipelineResult, ValidationPipeline, ValidationState

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 400

MISSING_LABELS = {
    SelectionField.LOCATION: "Selecciona una sede",
    SelectionField.MODALITY: "Selecciona una modalidad",
    SelectionField.DATE: "Selecciona una fecha",
    SelectionField.TIME: "Selecciona un horario",
}


class PanelState(Enum):
    IDLE = auto()
    PARTIAL_SELECTION = auto()
    AWAITING_VALIDATION = auto()
    VALIDATED = auto()


# listeners receive the event name ("validation" or "slots") and the coordinator
Listener = Callable[[str, "SelectionCoordinator"], None]


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SelectionCoordinator:
    """Owns the selection of one booking panel and drives its validation.

    Every field change clears the published validation state immediately and
    schedules one debounced validation cycle. Each cycle is tagged with a
    sequence number; a cycle whose number is no longer the latest is
    discarded when it resolves.
    """

    def __init__(
        self,
        fetcher: SlotFetcher,
        pipeline: ValidationPipeline | None = None,
        *,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        scheduler: Scheduler | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.fetcher = fetcher
        self.pipeline = pipeline or ValidationPipeline(fetcher, today=today)
        self.today = today

        self.selection = Selection()
        self.snapshot = AvailabilitySnapshot.empty()
        self.view: CalendarView = "month"
        self.anchor = today()

        self._state = PanelState.IDLE
        self._validation = ValidationState()
        self._sequence = 0
        self._closed = False
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._debounced = debounce(self._start_cycle, debounce_ms, scheduler)

    # ------------------------------------------------------------------ #
    #  Read side
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> PanelState:
        return self._state

    @property
    def validation_state(self) -> ValidationState:
        return self._validation

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def can_book(self) -> bool:
        return (
            self._state is PanelState.VALIDATED
            and self._validation.is_valid
            and self.selection.is_complete
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------ #
    #  Input
    # ------------------------------------------------------------------ #
    def on_selection_change(self, field: SelectionField | str, value: Any) -> None:
        """Apply one field change coming from the booking form."""
        self._ensure_open()
        field = SelectionField(field)
        value = _clean(value)
        if field is SelectionField.TIME and value is not None:
            try:
                value = normalize_time(value)
            except ValueError:
                logger.debug("Keeping unparsable time %r for validation to reject", value)

        cleared = self.selection.apply(field, value)
        if cleared:
            logger.debug("Changing %s cleared %s", field.value, [f.value for f in cleared])

        if field is SelectionField.TIME:
            if value is not None and (match := self.snapshot.find_slot(value)):
                template, slot = match
                self.selection.template_id = template.id
                self.selection.selected_slot = slot
        else:
            self._set_snapshot(AvailabilitySnapshot.empty())
        self._restart()

    def on_slot_pick(self, slot: Slot, template_id: str | None = None) -> None:
        """Commit a concrete slot; the terminal trigger of a validation cycle."""
        self._ensure_open()
        self.selection.apply(SelectionField.TIME, slot.start_time)
        self.selection.template_id = template_id
        self.selection.selected_slot = slot
        self._restart()

    def reset(self) -> None:
        """Forget the selection, e.g. after a booking completed."""
        self._ensure_open()
        self.selection = Selection()
        self._set_snapshot(AvailabilitySnapshot.empty())
        self._restart()

    def close(self) -> None:
        """Tear down the panel; in-flight results are never applied afterwards."""
        if self._closed:
            return
        self._debounced.teardown()
        self._sequence += 1
        self._closed = True
        self._state = PanelState.IDLE
        self._listeners.clear()
        logger.debug("Booking panel closed with %d validation(s) in flight", len(self._tasks))

    # ------------------------------------------------------------------ #
    #  Calendar
    # ------------------------------------------------------------------ #
    def calendar(self, view: CalendarView | None = None) -> list[CalendarCell]:
        return calendar_resolver.resolve(self.anchor, view or self.view, self.today())

    def set_view(self, view: CalendarView) -> list[CalendarCell]:
        if view not in ("month", "week"):
            raise ValueError(f"Unknown calendar view: {view!r}")
        self.view = view
        return self.calendar()

    def navigate(self, direction: int) -> list[CalendarCell]:
        self.anchor = calendar_resolver.navigate(self.anchor, direction, self.view)
        return self.calendar()

    @property
    def default_date(self) -> date:
        return calendar_resolver.default_selected_date(self.today())

    # ------------------------------------------------------------------ #
    #  Submission gate
    # ------------------------------------------------------------------ #
    async def validate_for_submit(self) -> ValidationState:
        """Re-run every rule against fresh capacity data right before booking.

        This narrows the window in which another agent can take the slot; the
        Scheduling API still has the final word.
        """
        self._ensure_open()
        self._debounced.cancel()
        self._sequence += 1
        seq = self._sequence
        selection = self.selection.model_copy()

        if not selection.is_complete:
            incomplete = ValidationState(errors={"form": [MISSING_LABELS[f] for f in selection.missing]})
            self._settle(incomplete)
            return incomplete

        self._publish(ValidationState.validating())
        state: ValidationState | None = None
        try:
            result = await self._evaluate(seq, selection, refresh=True)
            state = result.state
        except NetworkError as exc:
            logger.warning("Could not re-check availability before submit: %s", exc)
            state = ValidationState.unavailable()
        finally:
            if self._is_current(seq):
                self._settle(state or ValidationState())
        return state

    async def wait_for_validation(self) -> None:
        """Wait until every validation cycle started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    #  Validation cycle
    # ------------------------------------------------------------------ #
    def _restart(self) -> None:
        self._sequence += 1
        if not self.selection.has_any:
            self._debounced.cancel()
            self._state = PanelState.IDLE
        elif self.selection.is_complete:
            self._state = PanelState.AWAITING_VALIDATION
        else:
            self._state = PanelState.PARTIAL_SELECTION
        self._publish(ValidationState())
        if self._state is not PanelState.IDLE:
            self._debounced()

    def _start_cycle(self) -> None:
        if self._closed:
            return
        self._sequence += 1
        seq = self._sequence
        self._publish(ValidationState.validating())
        task = asyncio.get_running_loop().create_task(self._run_cycle(seq, self.selection.model_copy()))
        self._tasks.add(task)
        task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            logger.error("Validation cycle failed", exc_info=exc)

    async def _run_cycle(self, seq: int, selection: Selection) -> None:
        state: ValidationState | None = None
        try:
            state = (await self._evaluate(seq, selection)).state
        except NetworkError as exc:
            logger.warning(
                "Could not determine availability for %s/%s/%s: %s",
                selection.location_id,
                selection.modality_id,
                selection.date,
                exc,
            )
            state = ValidationState.unavailable()
        finally:
            if self._is_current(seq):
                self._settle(state or ValidationState())
            else:
                logger.debug("Discarding stale validation #%d (latest is #%d)", seq, self._sequence)

    async def _evaluate(self, seq: int, selection: Selection, *, refresh: bool = False) -> PipelineResult:
        if selection.location_id and selection.modality_id and selection.date:
            snapshot = await self.fetcher.fetch_slots(
                selection.location_id, selection.modality_id, selection.date, refresh=refresh
            )
            if self._is_current(seq):
                self._set_snapshot(snapshot)

        result = await self.pipeline.evaluate(selection, refresh=False)
        if self._is_current(seq) and result.slot is not None:
            self.selection.selected_slot = result.slot
            self.selection.template_id = result.outcomes["capacity"].template.id
        return result

    def _is_current(self, seq: int) -> bool:
        return not self._closed and seq == self._sequence

    def _settle(self, state: ValidationState) -> None:
        if not self.selection.has_any:
            self._state = PanelState.IDLE
        elif self.selection.is_complete:
            self._state = PanelState.VALIDATED
        else:
            self._state = PanelState.PARTIAL_SELECTION
        self._publish(state)

    def _set_snapshot(self, snapshot: AvailabilitySnapshot) -> None:
        if snapshot == self.snapshot:
            return
        self.snapshot = snapshot
        self._notify("slots")

    def _publish(self, state: ValidationState) -> None:
        self._validation = state
        self._notify("validation")

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event, self)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("booking panel is closed")
