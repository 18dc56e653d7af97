"""
Deduplicating merger

Folds fetch outcomes into one id-unique record collection. The same booking
can surface from overlapping windows (calendar padding across month
boundaries); the later lastModified wins. The result does not depend on the
order fetches completed in, and merging twice gives the same output.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from ...errors import MergeInvariantViolation, PerWindowFetchError
from .orchestrator import FetchResult
from .schemas import DayAggregate, Record

logger = logging.getLogger(__name__)

AggregateKey = tuple[str, date]
# (entity id, window label) of one fetch
SourceKey = tuple[str, str]


@dataclass
class MergeResult:
    records: list[Record] = field(default_factory=list)
    day_aggregates: dict[AggregateKey, DayAggregate] = field(default_factory=dict)
    # aggregates that came from a window owning their date rather than its padding
    owned_days: set[AggregateKey] = field(default_factory=set)
    # latest outcome per source, True when it succeeded
    sources: dict[SourceKey, bool] = field(default_factory=dict)
    failed_sources: int = 0
    total_sources: int = 0
    failures: list[PerWindowFetchError] = field(default_factory=list)


def _precedence(record: Record) -> tuple:
    """Sort key for collision resolution: greatest key wins"""
    modified = record.last_modified
    return (
        modified is not None,
        modified or datetime.min,
        record.model_dump_json(),
    )


def _aggregate_precedence(aggregate: DayAggregate, owned: bool) -> tuple:
    return (owned, aggregate.count, aggregate.revenue)


def pick_winner(current: Optional[Record], candidate: Record) -> Record:
    if current is None:
        return candidate
    return candidate if _precedence(candidate) > _precedence(current) else current


def _fold_records(records: Iterable[Record], by_id: dict[str, Record]) -> None:
    for record in records:
        by_id[record.id] = pick_winner(by_id.get(record.id), record)


def _fold_aggregates(
    aggregates: Iterable[DayAggregate],
    owns: Callable[[AggregateKey], bool],
    by_day: dict[AggregateKey, DayAggregate],
    owned_days: set[AggregateKey],
    newer: bool = False,
) -> None:
    """
    A rollup from the window owning its date beats a padding one.

    Among equally owned rollups the larger wins, unless newer is set: a
    refreshed rollup then replaces the cached one.
    """
    for aggregate in aggregates:
        key = (aggregate.entity_id, aggregate.date)
        owned = owns(key)
        current = by_day.get(key)
        if current is not None:
            current_owned = key in owned_days
            if newer:
                if current_owned and not owned:
                    continue
            elif _aggregate_precedence(aggregate, owned) <= _aggregate_precedence(
                current, current_owned
            ):
                continue
        by_day[key] = aggregate
        if owned:
            owned_days.add(key)
        else:
            owned_days.discard(key)


def _ordered(by_id: dict[str, Record]) -> list[Record]:
    records = sorted(by_id.values(), key=lambda r: (r.start, r.id))
    if len({r.id for r in records}) != len(records):
        raise MergeInvariantViolation("Merged collection contains a duplicated record id")
    return records


def merge(results: Iterable[FetchResult]) -> MergeResult:
    """Fold all successful fetch results into one deduplicated collection"""
    by_id: dict[str, Record] = {}
    by_day: dict[AggregateKey, DayAggregate] = {}
    owned_days: set[AggregateKey] = set()
    sources: dict[SourceKey, bool] = {}
    failures: list[PerWindowFetchError] = []
    total = 0
    seen_records = 0

    for result in results:
        total += 1
        key = (result.entity.id, str(result.window))
        if not result.ok or result.payload is None:
            sources[key] = False
            if isinstance(result.error, PerWindowFetchError):
                failures.append(result.error)
            else:
                failures.append(
                    PerWindowFetchError(
                        str(result.error or "Fetch failed"),
                        entity_id=result.entity.id,
                        window_label=str(result.window),
                    )
                )
            continue
        sources[key] = True
        seen_records += len(result.payload.records)
        _fold_records(result.payload.records, by_id)
        window = result.window
        _fold_aggregates(
            result.payload.day_aggregates, lambda k: window.owns(k[1]), by_day, owned_days
        )

    records = _ordered(by_id)
    duplicates = seen_records - len(records)
    if duplicates:
        logger.debug(f"Merged {duplicates} duplicate record(s) across overlapping windows")

    return MergeResult(
        records=records,
        day_aggregates=by_day,
        owned_days=owned_days,
        sources=sources,
        failed_sources=len(failures),
        total_sources=total,
        failures=failures,
    )


def merge_into(existing: MergeResult, incoming: MergeResult) -> MergeResult:
    """
    Union a new merge result with an already cached collection.

    Source outcomes are tracked per (entity, window): a refreshed source
    replaces its own earlier outcome and leaves every other source's
    outcome, failures included, in place.
    """
    by_id: dict[str, Record] = {}
    by_day: dict[AggregateKey, DayAggregate] = {}
    owned_days: set[AggregateKey] = set()

    _fold_records(existing.records, by_id)
    _fold_aggregates(
        existing.day_aggregates.values(), existing.owned_days.__contains__, by_day, owned_days
    )
    _fold_records(incoming.records, by_id)
    _fold_aggregates(
        incoming.day_aggregates.values(),
        incoming.owned_days.__contains__,
        by_day,
        owned_days,
        newer=True,
    )

    sources = {**existing.sources, **incoming.sources}
    failures = [
        failure
        for failure in existing.failures
        if (failure.entity_id, failure.window_label) not in incoming.sources
    ]
    failures.extend(incoming.failures)

    return MergeResult(
        records=_ordered(by_id),
        day_aggregates=by_day,
        owned_days=owned_days,
        sources=sources,
        failed_sources=sum(1 for ok in sources.values() if not ok),
        total_sources=len(sources),
        failures=failures,
    )
