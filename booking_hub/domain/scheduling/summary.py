"""Summary aggregator - dashboard rollups over a (filtered) record collection"""

from datetime import date
from typing import Iterable, Optional

from ...shared.validators import finite_or_zero, today_local
from .projection import record_participants, record_revenue
from .schemas import KNOWN_STATUSES, Record, SummaryStats

UPCOMING_STATUSES = ("pending", "confirmed")


def summarize(
    records: Iterable[Record],
    today: Optional[date] = None,
    failed_sources: int = 0,
    total_sources: int = 0,
) -> SummaryStats:
    """Pure rollup; the input is only read"""
    today = today or today_local()
    by_status = {status: 0 for status in (*KNOWN_STATUSES, "other")}

    total = 0
    revenue = 0.0
    commission = 0.0
    today_count = 0
    upcoming = 0
    participants = 0

    for record in records:
        total += 1
        status = record.status.lower() if isinstance(record.status, str) else "other"
        by_status[status if status in KNOWN_STATUSES else "other"] += 1
        revenue += record_revenue(record)
        commission += finite_or_zero(record.commission_amount)
        participants += record_participants(record)
        if record.start_date == today:
            today_count += 1
        if record.start_date >= today and status in UPCOMING_STATUSES:
            upcoming += 1

    return SummaryStats(
        total=total,
        by_status=by_status,
        revenue=revenue,
        commission=commission,
        today_count=today_count,
        upcoming_count=upcoming,
        total_participants=participants,
        failed_sources=failed_sources,
        total_sources=total_sources,
    )


def failure_warning(failed_sources: int, total_sources: int) -> Optional[str]:
    """Non-fatal indicator shown next to partial data"""
    if not failed_sources:
        return None
    return f"{failed_sources} of {total_sources} sources failed"
