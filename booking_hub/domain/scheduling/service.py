"""Scheduling service - Aggregation pipeline and views for one principal session"""

import csv
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from io import StringIO
from typing import Optional

from ...errors import NotFoundError, ValidationError
from ...services.api_client import ApiClient
from ...shared.validators import today_local
from ..entities.repository import EntityRegistry
from ..entities.schemas import Entity
from .filters import ListViewState, apply_filters, distinct_entities, sort_records
from .merger import MergeResult, merge
from .orchestrator import FetchOrchestrator
from .projection import project, record_revenue
from .repository import RecordRepository
from .schemas import (
    CalendarGrid,
    FilterCriteria,
    Page,
    Record,
    RecordCreate,
    RecordUpdate,
    SortSpec,
    SummaryStats,
)
from .store import RecordStore
from .summary import failure_warning, summarize
from .windows import Window, grid_window

logger = logging.getLogger(__name__)


@dataclass
class LoadOutcome:
    epoch: int
    applied: bool
    record_count: int = 0
    failed_sources: int = 0
    total_sources: int = 0

    @property
    def warning(self) -> Optional[str]:
        return failure_warning(self.failed_sources, self.total_sources)


@dataclass
class BookingViews:
    """Everything derived from the cache, recomputed after each mutation"""

    page: Page[Record]
    calendar: CalendarGrid
    summary: SummaryStats
    record: Optional[Record] = None


class SchedulingService:
    """Service layer wiring registry, fetch fan-out, merge, cache and views"""

    def __init__(
        self,
        client: ApiClient,
        registry: Optional[EntityRegistry] = None,
        repo: Optional[RecordRepository] = None,
        orchestrator: Optional[FetchOrchestrator] = None,
        store: Optional[RecordStore] = None,
    ):
        self.client = client
        self.registry = registry or EntityRegistry(client)
        self.repo = repo or RecordRepository(client)
        self.orchestrator = orchestrator or FetchOrchestrator(self.repo)
        self.store = store or RecordStore()
        self.view = ListViewState()
        today = today_local()
        self.year, self.month = today.year, today.month
        # Month whose grid is actually in the cache, set only once a load is applied
        self.loaded_month: Optional[tuple[int, int]] = None

    # ========================================================================
    # LOADING
    # ========================================================================

    async def load_entities(self, refresh: bool = False) -> list[Entity]:
        return await self.registry.load(refresh=refresh)

    async def load_month(self, year: int, month: int) -> LoadOutcome:
        """
        Fetch the padded grid window of a month for every entity.

        A newer load started before this one finishes wins; this one's
        results are then discarded.
        """
        window = grid_window(year, month)
        epoch = self.store.begin_request()
        logger.info(f"📅 Loading {window} (epoch {epoch})")

        entities = await self.registry.load()
        if not entities:
            logger.info("ℹ️ No entities for this principal, nothing to aggregate")
            applied = self.store.apply(epoch, MergeResult())
            if applied:
                self._mark_loaded(year, month)
            return LoadOutcome(epoch=epoch, applied=applied)

        report = await self.orchestrator.fetch_all(entities, [window])
        result = merge(report.results)
        applied = self.store.apply(epoch, result)
        if applied:
            self._mark_loaded(year, month)
        if applied and result.failed_sources:
            logger.warning(
                f"⚠️ {failure_warning(result.failed_sources, result.total_sources)} for {window}"
            )
        return LoadOutcome(
            epoch=epoch,
            applied=applied,
            record_count=len(result.records),
            failed_sources=result.failed_sources,
            total_sources=result.total_sources,
        )

    def _mark_loaded(self, year: int, month: int) -> None:
        self.year, self.month = year, month
        self.loaded_month = (year, month)

    async def load_entity(self, entity_id: str, window: Window) -> LoadOutcome:
        """
        On-demand fetch for one entity, unioned into the cached collection.

        Does not start a new request: a month load in flight stays current
        and still installs its full result. A month load started after this
        one supersedes it.
        """
        await self.registry.load()
        entity = self._entity(entity_id)
        epoch = self.store.epoch

        report = await self.orchestrator.fetch_all([entity], [window])
        result = merge(report.results)
        applied = self.store.apply(epoch, result, replace=False)
        return LoadOutcome(
            epoch=epoch,
            applied=applied,
            record_count=len(result.records),
            failed_sources=self.store.failed_sources if applied else result.failed_sources,
            total_sources=self.store.total_sources if applied else result.total_sources,
        )

    # ========================================================================
    # VIEWS
    # ========================================================================

    def filtered(self, criteria: Optional[FilterCriteria] = None) -> list[Record]:
        return apply_filters(self.store.records(), criteria or self.view.criteria)

    def list_page(
        self,
        criteria: Optional[FilterCriteria] = None,
        sort: Optional[SortSpec] = None,
        page_number: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Page[Record]:
        """Render the list view; new criteria or sort reset the page to 1"""
        if criteria is not None:
            self.view.set_criteria(criteria)
        if sort is not None:
            self.view.set_sort(sort)
        if page_size is not None:
            self.view.set_page_size(page_size)
        if page_number is not None:
            self.view.go_to_page(page_number)
        return self.view.render(self.store.records())

    def calendar(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        criteria: Optional[FilterCriteria] = None,
    ) -> CalendarGrid:
        criteria = criteria or self.view.criteria
        year = year or self.year
        month = month or self.month

        # Source rollups only describe unfiltered days
        aggregates = None
        if criteria.only_entity():
            aggregates = {
                key: value
                for key, value in self.store.day_aggregates().items()
                if criteria.entity_id is None or key[0] == criteria.entity_id
            }
        return project(self.filtered(criteria), year, month, day_aggregates=aggregates)

    def summary(self, criteria: Optional[FilterCriteria] = None) -> SummaryStats:
        return summarize(
            self.filtered(criteria),
            failed_sources=self.store.failed_sources,
            total_sources=self.store.total_sources,
        )

    def entity_options(self) -> list[tuple[str, str]]:
        return distinct_entities(self.store.records())

    def views(self, record: Optional[Record] = None) -> BookingViews:
        return BookingViews(
            page=self.list_page(),
            calendar=self.calendar(),
            summary=self.summary(),
            record=record,
        )

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def _entity(self, entity_id: str) -> Entity:
        entity = self.registry.get(entity_id)
        if entity is None:
            raise ValidationError(f"Unknown entity {entity_id}")
        return entity

    def _cached(self, record_id: str) -> Record:
        record = self.store.get(record_id)
        if record is None:
            raise NotFoundError(f"Booking {record_id} not found")
        return record

    async def create_record(self, data: RecordCreate) -> BookingViews:
        await self.registry.load()
        entity = self._entity(data.entityId)
        record = await self.repo.create_record(entity, data)
        self.store.upsert(record)
        logger.info(f"✅ Created booking {record.id} for entity {entity.id}")
        return self.views(record)

    async def update_record(self, record_id: str, data: RecordUpdate) -> BookingViews:
        current = self._cached(record_id)
        entity = self._entity(current.entity_id)
        record = await self.repo.update_record(record_id, entity, data)
        self.store.upsert(record)
        logger.info(f"✅ Updated booking {record_id}")
        return self.views(record)

    async def cancel_record(self, record_id: str, reason: Optional[str] = None) -> BookingViews:
        current = self._cached(record_id)
        entity = self._entity(current.entity_id)
        record = await self.repo.cancel_record(record_id, entity, reason)
        self.store.upsert(record)
        logger.info(f"🗑️ Cancelled booking {record_id}")
        return self.views(record)

    async def delete_record(self, record_id: str) -> BookingViews:
        self._cached(record_id)
        await self.repo.delete_record(record_id)
        self.store.remove(record_id)
        logger.info(f"🗑️ Deleted booking {record_id}")
        return self.views()

    # ========================================================================
    # EXPORT
    # ========================================================================

    def export_csv(
        self, criteria: Optional[FilterCriteria] = None, sort: Optional[SortSpec] = None
    ) -> tuple[str, str]:
        """Render the filtered, sorted list as CSV. Returns (filename, content)"""
        records = sort_records(self.filtered(criteria), sort or self.view.sort)

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(
            [
                "ID",
                "Entity",
                "Type",
                "Title",
                "Start",
                "End",
                "Participants",
                "Amount",
                "Amount Mode",
                "Revenue",
                "Commission",
                "Status",
                "Notes",
            ]
        )
        for record in records:
            writer.writerow(
                [
                    record.id,
                    record.entity_display_name,
                    record.record_type,
                    record.title or "",
                    record.start.isoformat(),
                    record.end.isoformat(),
                    record.participant_count if record.participant_count is not None else "",
                    record.amount if record.amount is not None else "",
                    record.amount_mode.value,
                    f"{record_revenue(record):.2f}",
                    record.commission_amount if record.commission_amount is not None else "",
                    record.status,
                    record.notes or "",
                ]
            )

        filename = f"bookings_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        logger.info(f"📊 CSV export prepared: {filename} ({len(records)} bookings)")
        return filename, output.getvalue()

    async def aclose(self) -> None:
        await self.client.aclose()


class SessionManager:
    """Owns one SchedulingService per bearer token"""

    def __init__(self, max_sessions: int = 256, client_factory=None):
        self.max_sessions = max_sessions
        self._client_factory = client_factory or (lambda token: ApiClient(token=token))
        self._sessions: "OrderedDict[str, SchedulingService]" = OrderedDict()

    def get(self, token: str) -> SchedulingService:
        service = self._sessions.get(token)
        if service is None:
            service = SchedulingService(self._client_factory(token))
            self._sessions[token] = service
            logger.debug(f"Opened session ({len(self._sessions)} active)")
        self._sessions.move_to_end(token)
        return service

    async def evict_overflow(self) -> None:
        while len(self._sessions) > self.max_sessions:
            _, service = self._sessions.popitem(last=False)
            await service.aclose()

    async def close_all(self) -> None:
        while self._sessions:
            _, service = self._sessions.popitem()
            await service.aclose()

    def __len__(self) -> int:
        return len(self._sessions)
