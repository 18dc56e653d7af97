"""Fetch windows and month-grid date arithmetic"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta


@dataclass(frozen=True)
class Window:
    """Inclusive date range used to page fetches"""

    start: date
    end: date
    label: Optional[str] = None
    # (year, month) whose days this window was fetched for; padding days lie outside it
    period: Optional[tuple[int, int]] = None

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def owns(self, day: date) -> bool:
        if self.period is None:
            return self.contains(day)
        return (day.year, day.month) == self.period

    def to_params(self) -> dict[str, str]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}

    def __str__(self) -> str:
        return self.label or f"{self.start.isoformat()}..{self.end.isoformat()}"


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def month_window(year: int, month: int) -> Window:
    first, last = month_bounds(year, month)
    return Window(first, last, label=f"{year:04d}-{month:02d}", period=(year, month))


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta months"""
    shifted = date(year, month, 1) + relativedelta(months=delta)
    return shifted.year, shifted.month


def grid_range(year: int, month: int) -> tuple[date, date]:
    """
    First and last date of the week-aligned grid for a month.

    The grid starts on the Sunday on/before the 1st and ends on the Saturday
    on/after the last day of the month.
    """
    first, last = month_bounds(year, month)
    # date.weekday(): Monday=0 .. Sunday=6
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    end = last + timedelta(days=(5 - last.weekday()) % 7)
    return start, end


def grid_window(year: int, month: int) -> Window:
    """Single fetch window covering every day of the month's padded grid"""
    start, end = grid_range(year, month)
    return Window(start, end, label=f"{year:04d}-{month:02d}", period=(year, month))
