"""
Session-scoped record cache

Single writer: only apply(), upsert() and remove() mutate the cache. Every
window load bumps the request epoch; a merge result is installed only if its
epoch is still the latest (latest request wins, stale responses are dropped).
A per-entity refresh joins the current epoch and is unioned into the cache.
"""

import logging
from typing import Optional

from ...errors import PerWindowFetchError
from .merger import AggregateKey, MergeResult, SourceKey, merge_into
from .schemas import DayAggregate, Record

logger = logging.getLogger(__name__)


class RecordStore:
    """Owned cache of merged records for one principal session"""

    def __init__(self):
        self._records: dict[str, Record] = {}
        self._day_aggregates: dict[AggregateKey, DayAggregate] = {}
        self._owned_days: set[AggregateKey] = set()
        self._sources: dict[SourceKey, bool] = {}
        self.failures: list[PerWindowFetchError] = []
        self._epoch = 0
        self._applied_epoch = 0
        self.failed_sources = 0
        self.total_sources = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def applied_epoch(self) -> int:
        return self._applied_epoch

    def begin_request(self) -> int:
        """Start a new load; any older in-flight load becomes stale"""
        self._epoch += 1
        return self._epoch

    def is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def apply(self, epoch: int, result: MergeResult, replace: bool = True) -> bool:
        """
        Install a merge result if it belongs to the latest request.

        Returns:
            False when the result was superseded and discarded
        """
        if not self.is_current(epoch):
            logger.info(f"🗑️ Discarding stale results for epoch {epoch} (current {self._epoch})")
            return False

        if not replace:
            result = merge_into(self.snapshot(), result)

        self._records = {record.id: record for record in result.records}
        self._day_aggregates = dict(result.day_aggregates)
        self._owned_days = set(result.owned_days)
        self._sources = dict(result.sources)
        self.failures = list(result.failures)
        self.failed_sources = result.failed_sources
        self.total_sources = result.total_sources
        self._applied_epoch = epoch
        logger.debug(f"Applied epoch {epoch}: {len(self._records)} records")
        return True

    def _invalidate_day(self, record: Optional[Record]) -> None:
        # A patched record makes the source-computed rollup for its day stale
        if record is not None:
            self._day_aggregates.pop((record.entity_id, record.start_date), None)
            self._owned_days.discard((record.entity_id, record.start_date))

    def upsert(self, record: Record) -> None:
        """Patch exactly one record in place"""
        self._invalidate_day(self._records.get(record.id))
        self._invalidate_day(record)
        self._records[record.id] = record

    def remove(self, record_id: str) -> Optional[Record]:
        removed = self._records.pop(record_id, None)
        self._invalidate_day(removed)
        return removed

    def get(self, record_id: str) -> Optional[Record]:
        return self._records.get(record_id)

    def records(self) -> list[Record]:
        """Snapshot of the cached records ordered by start time"""
        return sorted(self._records.values(), key=lambda r: (r.start, r.id))

    def day_aggregates(self) -> dict[AggregateKey, DayAggregate]:
        return dict(self._day_aggregates)

    def snapshot(self) -> MergeResult:
        """The cached state in the shape merge_into() unions against"""
        return MergeResult(
            records=self.records(),
            day_aggregates=dict(self._day_aggregates),
            owned_days=set(self._owned_days),
            sources=dict(self._sources),
            failed_sources=self.failed_sources,
            total_sources=self.total_sources,
            failures=list(self.failures),
        )
