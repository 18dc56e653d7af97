"""
Ingestion boundary for upstream booking payloads

Property bookings, tour bookings and schedule slots name the same concepts
differently (guests vs numberOfParticipants vs totalSlots, checkIn vs
schedule.startDate, ...). Everything is mapped into one canonical Record here
so nothing downstream has to guess.
"""

import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from ...shared.validators import (
    count_or_none,
    finite_or_none,
    finite_or_zero,
    normalize_id,
    parse_date,
    parse_timestamp,
)
from ..entities.schemas import Entity
from .schemas import AmountMode, DayAggregate, Record

logger = logging.getLogger(__name__)

ID_KEYS = ("id", "_id", "bookingId", "scheduleId")
START_KEYS = ("schedule.startDate", "startTimestamp", "startDate", "checkIn", "checkInDate", "start", "date")
END_KEYS = ("schedule.endDate", "endTimestamp", "endDate", "checkOut", "checkOutDate", "end")
PARTICIPANT_KEYS = (
    "participantCount",
    "numberOfParticipants",
    "numberOfGuests",
    "guests",
    "bookedSlots",
    "totalSlots",
    "count",
)
AMOUNT_KEYS = ("amount", "totalAmount", "totalPrice", "price")
COMMISSION_KEYS = ("commissionAmount", "commission", "agentCommission")
AMOUNT_MODE_KEYS = ("amountMode", "pricingMode")
CREATED_KEYS = ("createdAt", "created_at", "bookingDate")
MODIFIED_KEYS = ("lastModified", "updatedAt", "updated_at")
NOTES_KEYS = ("notes", "specialRequests")

# Day aggregates
AGG_DATE_KEYS = ("date", "day")
AGG_COUNT_KEYS = ("aggregateCount", "count", "bookedSlots", "totalGuests", "participants")
AGG_REVENUE_KEYS = ("aggregateRevenue", "revenue", "totalRevenue")


def _lookup(raw: dict[str, Any], key: str) -> Any:
    """Read a possibly dotted key ("schedule.startDate") from a raw payload"""
    value: Any = raw
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _first(raw: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = _lookup(raw, key)
        if value is not None and value != "":
            return value
    return None


def _title(raw: dict[str, Any]) -> Optional[str]:
    """Guest name for bookings, tour/slot title for schedule entries"""
    for key in ("guestName", "title", "tour.title", "tourTitle"):
        value = _lookup(raw, key)
        if value:
            return str(value)
    user = raw.get("user") or raw.get("guest")
    if isinstance(user, dict):
        name = " ".join(
            part for part in (user.get("firstName"), user.get("lastName")) if part
        ) or user.get("name")
        if name:
            return str(name)
    return None


def _notes(raw: dict[str, Any]) -> Optional[str]:
    value = _first(raw, NOTES_KEYS)
    if isinstance(value, list):
        return "; ".join(str(v) for v in value) or None
    return str(value) if value is not None else None


def resolve_amount_mode(raw: dict[str, Any], entity: Entity) -> AmountMode:
    """
    Explicit field on the record, else the entity's configured mode, else per stay.
    """
    for candidate in (_first(raw, AMOUNT_MODE_KEYS), entity.attributes.get("amountMode")):
        if candidate is None:
            continue
        try:
            return AmountMode(candidate)
        except ValueError:
            logger.warning(f"⚠️ Unknown amount mode {candidate!r} for entity {entity.id}")
    return AmountMode.PER_STAY


def to_record(raw: dict[str, Any], entity: Entity) -> Record:
    """
    Map one raw upstream booking into a Record.

    Raises:
        ValueError: If the id or start timestamp is missing or invalid
    """
    record_id = normalize_id(_first(raw, ID_KEYS))
    if record_id is None:
        raise ValueError("Record has no id")

    start = parse_timestamp(_first(raw, START_KEYS))
    if start is None:
        raise ValueError(f"Record {record_id} has no start timestamp")
    end = parse_timestamp(_first(raw, END_KEYS)) or start

    status = _first(raw, ("status",))
    try:
        return Record(
            id=record_id,
            entity_id=entity.id,
            entity_display_name=entity.display_name,
            record_type=entity.relationship_kind,
            title=_title(raw),
            start=start,
            end=end,
            participant_count=count_or_none(_first(raw, PARTICIPANT_KEYS)),
            amount=finite_or_none(_first(raw, AMOUNT_KEYS)),
            amount_mode=resolve_amount_mode(raw, entity),
            commission_amount=finite_or_none(_first(raw, COMMISSION_KEYS)),
            status=str(status).strip().lower() if status else "pending",
            notes=_notes(raw),
            created_at=parse_timestamp(_first(raw, CREATED_KEYS)),
            last_modified=parse_timestamp(_first(raw, MODIFIED_KEYS) or _first(raw, CREATED_KEYS)),
        )
    except PydanticValidationError as e:
        raise ValueError(f"Record {record_id} is invalid: {e}") from e


def to_records(raws: Iterable[Any], entity: Entity) -> list[Record]:
    """Normalize a batch; malformed entries are skipped, never fail the batch"""
    records = []
    skipped = 0
    for raw in raws:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        try:
            records.append(to_record(raw, entity))
        except ValueError as e:
            skipped += 1
            logger.warning(f"⚠️ Skipping malformed record for entity {entity.id}: {e}")
    if skipped:
        logger.warning(f"⚠️ Skipped {skipped} malformed record(s) for entity {entity.id}")
    return records


def to_day_aggregate(raw: dict[str, Any], entity: Entity) -> Optional[DayAggregate]:
    try:
        day = parse_date(_first(raw, AGG_DATE_KEYS))
    except ValueError:
        day = None
    if day is None:
        logger.warning(f"⚠️ Skipping day aggregate without date for entity {entity.id}")
        return None
    return DayAggregate(
        entity_id=entity.id,
        date=day,
        count=int(finite_or_zero(_first(raw, AGG_COUNT_KEYS))),
        revenue=finite_or_zero(_first(raw, AGG_REVENUE_KEYS)),
    )


def to_day_aggregates(raws: Iterable[Any], entity: Entity) -> list[DayAggregate]:
    aggregates = []
    for raw in raws or []:
        if isinstance(raw, dict):
            aggregate = to_day_aggregate(raw, entity)
            if aggregate is not None:
                aggregates.append(aggregate)
    return aggregates
