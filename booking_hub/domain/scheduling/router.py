"""Scheduling router - FastAPI endpoints for aggregated bookings"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from ...auth import Principal, get_current_principal
from ...config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ...shared.validators import today_local
from ..entities.schemas import EntityResponse
from .schemas import (
    BookingListResponse,
    BookingViewsResponse,
    CalendarGrid,
    CalendarResponse,
    CalendarDayResponse,
    CancelRequest,
    EntityOption,
    FilterCriteria,
    Page,
    PageResponse,
    Record,
    RecordCreate,
    RecordResponse,
    RecordUpdate,
    SortDirection,
    SortField,
    SortSpec,
    SummaryResponse,
    SummaryStats,
)
from .service import BookingViews, SchedulingService
from .summary import failure_warning
from .windows import month_window, shift_month

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])
entities_router = APIRouter(prefix="/entities", tags=["Entities"])


async def get_scheduling_service(
    request: Request, principal: Principal = Depends(get_current_principal)
) -> SchedulingService:
    """Dependency injection for the principal's SchedulingService"""
    sessions = request.app.state.sessions
    service = sessions.get(principal.token)
    await sessions.evict_overflow()
    return service


def get_filter_criteria(
    search: Optional[str] = Query(None),
    entityId: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    type_: Optional[str] = Query(None, alias="type"),
    dateFrom: Optional[date] = Query(None),
    dateTo: Optional[date] = Query(None),
) -> FilterCriteria:
    return FilterCriteria(
        search_text=search,
        entity_id=entityId,
        status=status,
        record_type=type_,
        date_from=dateFrom,
        date_to=dateTo,
    )


def get_sort_spec(
    sortField: SortField = Query(SortField.START),
    sortDirection: SortDirection = Query(SortDirection.DESC),
) -> SortSpec:
    return SortSpec(field=sortField, direction=sortDirection)


# ============================================================================
# RESPONSE MAPPING
# ============================================================================


def to_record_response(r: Record) -> RecordResponse:
    return RecordResponse(
        id=r.id,
        entityId=r.entity_id,
        entityDisplayName=r.entity_display_name,
        recordType=r.record_type,
        title=r.title,
        start=r.start,
        end=r.end,
        participantCount=r.participant_count,
        amount=r.amount,
        amountMode=r.amount_mode,
        commissionAmount=r.commission_amount,
        status=r.status,
        notes=r.notes,
        createdAt=r.created_at,
        lastModified=r.last_modified,
    )


def to_page_response(page: Page[Record]) -> PageResponse:
    return PageResponse(
        items=[to_record_response(r) for r in page.items],
        pageNumber=page.page_number,
        pageSize=page.page_size,
        totalItems=page.total_items,
        totalPages=page.total_pages,
    )


def to_summary_response(stats: SummaryStats) -> SummaryResponse:
    return SummaryResponse(
        total=stats.total,
        byStatus=stats.by_status,
        revenue=stats.revenue,
        commission=stats.commission,
        todayCount=stats.today_count,
        upcomingCount=stats.upcoming_count,
        totalParticipants=stats.total_participants,
        failedSources=stats.failed_sources,
        totalSources=stats.total_sources,
        warning=failure_warning(stats.failed_sources, stats.total_sources),
    )


def to_calendar_response(grid: CalendarGrid, service: SchedulingService) -> CalendarResponse:
    failed, total = service.store.failed_sources, service.store.total_sources
    prev_year, prev_month = shift_month(grid.year, grid.month, -1)
    next_year, next_month = shift_month(grid.year, grid.month, 1)
    return CalendarResponse(
        year=grid.year,
        month=grid.month,
        previousMonth=f"{prev_year:04d}-{prev_month:02d}",
        nextMonth=f"{next_year:04d}-{next_month:02d}",
        weeks=[
            [
                CalendarDayResponse(
                    date=day.date,
                    records=[to_record_response(r) for r in day.records],
                    aggregateCount=day.aggregate_count,
                    aggregateRevenue=day.aggregate_revenue,
                    isToday=day.is_today,
                    isCurrentMonthPeriod=day.is_current_month_period,
                )
                for day in week
            ]
            for week in grid.weeks
        ],
        failedSources=failed,
        totalSources=total,
        warning=failure_warning(failed, total),
    )


def to_list_response(page: Page[Record], service: SchedulingService) -> BookingListResponse:
    return BookingListResponse(
        page=to_page_response(page),
        summary=to_summary_response(service.summary(service.view.criteria)),
        entityOptions=[
            EntityOption(id=entity_id, displayName=name)
            for entity_id, name in service.entity_options()
        ],
    )


def to_views_response(views: BookingViews, service: SchedulingService) -> BookingViewsResponse:
    return BookingViewsResponse(
        record=to_record_response(views.record) if views.record else None,
        page=to_page_response(views.page),
        calendar=to_calendar_response(views.calendar, service),
        summary=to_summary_response(views.summary),
    )


async def _ensure_month(service: SchedulingService, year: Optional[int], month: Optional[int]):
    """Load the requested month unless it is already the cached one"""
    today = today_local()
    year = year or service.year or today.year
    month = month or service.month or today.month
    if service.loaded_month != (year, month):
        await service.load_month(year, month)
    return year, month


# ============================================================================
# READ ENDPOINTS
# ============================================================================


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    page: int = Query(1, ge=1),
    pageSize: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    refresh: bool = Query(False),
    criteria: FilterCriteria = Depends(get_filter_criteria),
    sort: SortSpec = Depends(get_sort_spec),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Filtered, sorted and paginated bookings across all entities"""
    if refresh:
        await service.load_month(year or service.year, month or service.month)
    else:
        await _ensure_month(service, year, month)

    # Page resets to 1 when the criteria or sort change
    criteria_changed = criteria != service.view.criteria or sort != service.view.sort
    result = service.list_page(
        criteria=criteria,
        sort=sort,
        page_number=None if criteria_changed else page,
        page_size=pageSize,
    )
    return to_list_response(result, service)


@router.get("/calendar", response_model=CalendarResponse)
async def get_calendar(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    criteria: FilterCriteria = Depends(get_filter_criteria),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Month grid with per-day rollups"""
    year, month = await _ensure_month(service, year, month)
    grid = service.calendar(year, month, criteria)
    return to_calendar_response(grid, service)


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    criteria: FilterCriteria = Depends(get_filter_criteria),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Dashboard rollups for the filtered collection"""
    await _ensure_month(service, year, month)
    return to_summary_response(service.summary(criteria))


@router.get("/export")
async def export_bookings_csv(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    criteria: FilterCriteria = Depends(get_filter_criteria),
    sort: SortSpec = Depends(get_sort_spec),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Export the filtered bookings as CSV"""
    await _ensure_month(service, year, month)
    filename, content = service.export_csv(criteria, sort)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Cache-Control": "no-cache",
        },
    )


# ============================================================================
# MUTATIONS
# ============================================================================


@router.post("", response_model=BookingViewsResponse)
async def create_booking(
    data: RecordCreate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create a booking and patch it into the cached views"""
    views = await service.create_record(data)
    return to_views_response(views, service)


@router.put("/{record_id}", response_model=BookingViewsResponse)
async def update_booking(
    record_id: str,
    data: RecordUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Update a booking"""
    views = await service.update_record(record_id, data)
    return to_views_response(views, service)


@router.post("/{record_id}/cancel", response_model=BookingViewsResponse)
async def cancel_booking(
    record_id: str,
    data: Optional[CancelRequest] = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Cancel a booking"""
    views = await service.cancel_record(record_id, data.reason if data else None)
    return to_views_response(views, service)


@router.delete("/{record_id}", response_model=BookingViewsResponse)
async def delete_booking(
    record_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Delete a booking"""
    views = await service.delete_record(record_id)
    return to_views_response(views, service)


# ============================================================================
# ENTITIES
# ============================================================================


@entities_router.get("", response_model=list[EntityResponse])
async def list_entities(
    refresh: bool = Query(False),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Entities the current principal aggregates over"""
    entities = await service.load_entities(refresh=refresh)
    return [
        EntityResponse(
            id=e.id,
            displayName=e.display_name,
            relationshipKind=e.relationship_kind,
            attributes=e.attributes,
        )
        for e in entities
    ]


@entities_router.post("/{entity_id}/refresh", response_model=BookingListResponse)
async def refresh_entity(
    entity_id: str,
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Re-fetch one entity's month and union it into the cached bookings"""
    outcome = await service.load_entity(
        entity_id, month_window(year or service.year, month or service.month)
    )
    if outcome.warning:
        logger.warning(f"⚠️ Refresh of entity {entity_id}: {outcome.warning}")
    return to_list_response(service.list_page(), service)
