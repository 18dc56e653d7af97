"""
Calendar projector

Builds the week-aligned month grid (Sunday..Saturday rows) with per-day
rollups. Padding days outside the month are populated like any other day and
only flagged with is_current_month_period=False.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from ...shared.validators import finite_or_zero, today_local
from .merger import AggregateKey
from .schemas import AmountMode, CalendarDay, CalendarGrid, DayAggregate, Record
from .windows import grid_range


def record_revenue(record: Record) -> float:
    """amount x participants for per-person pricing, amount for per-stay; bad numbers count as 0"""
    amount = finite_or_zero(record.amount)
    if record.amount_mode == AmountMode.PER_PERSON:
        return amount * finite_or_zero(record.participant_count)
    return amount


def record_participants(record: Record) -> int:
    return int(finite_or_zero(record.participant_count))


def project(
    records: Iterable[Record],
    year: int,
    month: int,
    day_aggregates: Optional[dict[AggregateKey, DayAggregate]] = None,
    today: Optional[date] = None,
) -> CalendarGrid:
    """
    Project records onto the month grid.

    Where the source supplied an authoritative DayAggregate for an
    (entity, day), it replaces the local recomputation of that entity's
    contribution to the day.
    """
    today = today or today_local()
    day_aggregates = day_aggregates or {}
    start, end = grid_range(year, month)

    by_day: dict[date, list[Record]] = defaultdict(list)
    for record in records:
        if start <= record.start_date <= end:
            by_day[record.start_date].append(record)

    # Authoritative rollups per day, keyed by entity
    sourced: dict[date, dict[str, DayAggregate]] = defaultdict(dict)
    for (entity_id, day), aggregate in day_aggregates.items():
        if start <= day <= end:
            sourced[day][entity_id] = aggregate

    weeks: list[list[CalendarDay]] = []
    day = start
    while day <= end:
        week = []
        for _ in range(7):
            day_records = by_day.get(day, [])
            count, revenue = _rollup(day_records, sourced.get(day, {}))
            week.append(
                CalendarDay(
                    date=day,
                    records=day_records,
                    aggregate_count=count,
                    aggregate_revenue=revenue,
                    is_today=day == today,
                    is_current_month_period=day.year == year and day.month == month,
                )
            )
            day += timedelta(days=1)
        weeks.append(week)

    return CalendarGrid(year=year, month=month, weeks=weeks)


def _rollup(
    day_records: list[Record], sourced: dict[str, DayAggregate]
) -> tuple[int, float]:
    count = 0
    revenue = 0.0
    for aggregate in sourced.values():
        count += aggregate.count
        revenue += finite_or_zero(aggregate.revenue)
    for record in day_records:
        if record.entity_id in sourced:
            continue
        count += record_participants(record)
        revenue += record_revenue(record)
    return count, revenue
