"""Filter, sort and paginate engine for the bookings list view"""

import locale
import logging
import math
from typing import Any, Callable, Iterable, Optional

from ...config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SORT_LOCALE
from ...shared.validators import finite_or_none
from .schemas import FilterCriteria, Page, Record, SortDirection, SortField, SortSpec

logger = logging.getLogger(__name__)


def _matches_search(record: Record, needle: str) -> bool:
    haystacks = (record.entity_display_name, record.title)
    return any(needle in text.casefold() for text in haystacks if text)


def apply_filters(records: Iterable[Record], criteria: Optional[FilterCriteria]) -> list[Record]:
    """Keep records matching every active criterion"""
    records = list(records)
    if criteria is None:
        return records

    needle = criteria.search_text.casefold() if criteria.search_text else None
    filtered = []
    for record in records:
        if needle and not _matches_search(record, needle):
            continue
        if criteria.entity_id and record.entity_id != criteria.entity_id:
            continue
        if criteria.status and record.status != criteria.status:
            continue
        if criteria.record_type and record.record_type != criteria.record_type:
            continue
        if criteria.date_from and record.start_date < criteria.date_from:
            continue
        if criteria.date_to and record.start_date > criteria.date_to:
            continue
        filtered.append(record)
    return filtered


def configure_collation(name: str = SORT_LOCALE) -> str:
    """
    Select the LC_COLLATE locale used for text sort keys.

    An unavailable locale is logged and the current collation is kept
    (the C locale compares by code point).

    Returns:
        The collation locale in effect afterwards
    """
    try:
        return locale.setlocale(locale.LC_COLLATE, name)
    except locale.Error as e:
        logger.warning(f"⚠️ Sort locale {name!r} unavailable, keeping current collation: {e}")
        return locale.setlocale(locale.LC_COLLATE)


def _text_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return locale.strxfrm(value.casefold())


# field -> key extractor; None means the record has no value for the field
_SORT_KEYS: dict[SortField, Callable[[Record], Any]] = {
    SortField.START: lambda r: r.start,
    SortField.END: lambda r: r.end,
    SortField.CREATED_AT: lambda r: r.created_at,
    SortField.ENTITY: lambda r: _text_key(r.entity_display_name),
    SortField.TITLE: lambda r: _text_key(r.title),
    SortField.STATUS: lambda r: _text_key(r.status),
    SortField.TYPE: lambda r: _text_key(r.record_type),
    SortField.AMOUNT: lambda r: finite_or_none(r.amount),
    SortField.PARTICIPANTS: lambda r: finite_or_none(r.participant_count),
    SortField.COMMISSION: lambda r: finite_or_none(r.commission_amount),
}


def sort_records(records: Iterable[Record], spec: Optional[SortSpec]) -> list[Record]:
    """
    Stable sort by one field.

    Records with equal keys keep their input order in both directions.
    Records without a value for the field go last.
    """
    records = list(records)
    if spec is None:
        return records

    key_of = _SORT_KEYS[spec.field]
    keyed = [(key_of(r), r) for r in records]
    present = [pair for pair in keyed if pair[0] is not None]
    missing = [r for key, r in keyed if key is None]

    # sorted(reverse=True) keeps equal elements in their original order
    present.sort(key=lambda pair: pair[0], reverse=spec.direction == SortDirection.DESC)
    return [r for _, r in present] + missing


def total_pages_for(total_items: int, page_size: int) -> int:
    return math.ceil(total_items / page_size) if total_items else 0


def clamp_page(page_number: int, total_items: int, page_size: int) -> int:
    return min(max(1, page_number), max(1, total_pages_for(total_items, page_size)))


def paginate(records: Iterable[Record], page_number: int, page_size: int) -> Page[Record]:
    """Return the requested slice with page_number clamped into range"""
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    records = list(records)
    total = len(records)
    page = clamp_page(page_number, total, page_size)
    offset = (page - 1) * page_size
    return Page[Record](
        items=records[offset : offset + page_size],
        page_number=page,
        page_size=page_size,
        total_items=total,
        total_pages=total_pages_for(total, page_size),
    )


def distinct_entities(records: Iterable[Record]) -> list[tuple[str, str]]:
    """(entity_id, display name) pairs in first-seen order, for filter dropdowns"""
    seen: dict[str, str] = {}
    for record in records:
        seen.setdefault(record.entity_id, record.entity_display_name)
    return list(seen.items())


class ListViewState:
    """
    Criteria, sort and page of one list view.

    Changing the criteria or the sort resets the page to 1.
    """

    def __init__(
        self,
        criteria: Optional[FilterCriteria] = None,
        sort: Optional[SortSpec] = None,
        page_number: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.criteria = criteria or FilterCriteria()
        self.sort = sort or SortSpec()
        self.page_number = max(1, page_number)
        self.page_size = min(max(1, page_size), MAX_PAGE_SIZE)

    def set_criteria(self, criteria: FilterCriteria) -> None:
        if criteria != self.criteria:
            self.criteria = criteria
            self.page_number = 1

    def set_sort(self, sort: SortSpec) -> None:
        if sort != self.sort:
            self.sort = sort
            self.page_number = 1

    def set_page_size(self, page_size: int) -> None:
        page_size = min(max(1, page_size), MAX_PAGE_SIZE)
        if page_size != self.page_size:
            self.page_size = page_size
            self.page_number = 1

    def go_to_page(self, page_number: int) -> None:
        self.page_number = max(1, page_number)

    def render(self, records: Iterable[Record]) -> Page[Record]:
        filtered = apply_filters(records, self.criteria)
        page = paginate(sort_records(filtered, self.sort), self.page_number, self.page_size)
        self.page_number = page.page_number
        return page
