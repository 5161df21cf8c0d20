"""Selectable-date resolution for the month and week calendar views."""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Literal

MONTH_CELLS = 42  # 6 weeks * 7 days
WEEK_CELLS = 7

CalendarView = Literal["month", "week"]


@dataclass(frozen=True, slots=True)
class CalendarCell:
    date: date
    is_current_period: bool
    is_today: bool
    is_selectable: bool

    @property
    def iso(self) -> str:
        return self.date.isoformat()


def _start_of_week(day: date) -> date:
    # weeks start on Sunday
    return day - timedelta(days=(day.weekday() + 1) % 7)


def resolve_month(anchor: date, today: date | None = None) -> list[CalendarCell]:
    """Return the 6-week grid containing ``anchor``'s month.

    Cells outside the month pad the first and last weeks; they are never
    selectable nor flagged as today.
    """
    today = today or date.today()
    first = anchor.replace(day=1)
    start = _start_of_week(first)

    cells: list[CalendarCell] = []
    for offset in range(MONTH_CELLS):
        day = start + timedelta(days=offset)
        in_month = day.month == first.month and day.year == first.year
        cells.append(
            CalendarCell(
                date=day,
                is_current_period=in_month,
                is_today=in_month and day == today,
                is_selectable=in_month and day >= today,
            )
        )
    return cells


def resolve_week(anchor: date, today: date | None = None) -> list[CalendarCell]:
    """Return the Sunday-to-Saturday week containing ``anchor``."""
    today = today or date.today()
    start = _start_of_week(anchor)
    days = (start + timedelta(days=offset) for offset in range(WEEK_CELLS))
    return [
        CalendarCell(date=day, is_current_period=True, is_today=day == today, is_selectable=day >= today)
        for day in days
    ]


def resolve(anchor: date, view: CalendarView = "month", today: date | None = None) -> list[CalendarCell]:
    if view == "week":
        return resolve_week(anchor, today)
    if view == "month":
        return resolve_month(anchor, today)
    raise ValueError(f"Unknown calendar view: {view!r}")


def shift_month(anchor: date, direction: int) -> date:
    """Move ``anchor`` by ``direction`` months, clamping the day to the target month."""
    months = anchor.year * 12 + (anchor.month - 1) + direction
    year, month = divmod(months, 12)
    month += 1
    last_day = _calendar.monthrange(year, month)[1]
    return anchor.replace(year=year, month=month, day=min(anchor.day, last_day))


def shift_week(anchor: date, direction: int) -> date:
    return anchor + timedelta(days=7 * direction)


def navigate(anchor: date, direction: int, view: CalendarView = "month") -> date:
    return shift_week(anchor, direction) if view == "week" else shift_month(anchor, direction)


def default_selected_date(today: date | None = None) -> date:
    """The booking panel preselects tomorrow."""
    return (today or date.today()) + timedelta(days=1)
