"""Scheduling domain schemas - Pydantic models for records and the views derived from them"""

import datetime as dt
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")


class AmountMode(str, Enum):
    PER_STAY = "perStay"
    PER_PERSON = "perPerson"


# Statuses the summary knows by name; anything else is bucketed into "other"
KNOWN_STATUSES = ("pending", "confirmed", "completed", "cancelled")


class Record(BaseModel):
    """A booking or schedule entry tied to one entity"""

    model_config = ConfigDict(frozen=True)

    id: str
    entity_id: str
    entity_display_name: str
    record_type: str = "property"
    title: Optional[str] = None
    start: dt.datetime
    end: dt.datetime
    participant_count: Optional[int] = None
    amount: Optional[float] = None
    amount_mode: AmountMode = AmountMode.PER_STAY
    commission_amount: Optional[float] = None
    status: str = "pending"
    notes: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    last_modified: Optional[dt.datetime] = None

    @model_validator(mode="after")
    def check_time_order(self):
        if self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    @property
    def start_date(self) -> dt.date:
        return self.start.date()


class DayAggregate(BaseModel):
    """Source-computed rollup for one entity on one day"""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    date: dt.date
    count: int = 0
    revenue: float = 0.0


class RecordsPayload(BaseModel):
    """Normalized result of one GetRecords(entity, window) call"""

    records: list[Record] = Field(default_factory=list)
    day_aggregates: list[DayAggregate] = Field(default_factory=list)


# ============================================================================
# VIEW MODELS
# ============================================================================


class FilterCriteria(BaseModel):
    """All present criteria are ANDed; "all" means no criterion"""

    model_config = ConfigDict(frozen=True)

    search_text: Optional[str] = None
    entity_id: Optional[str] = None
    status: Optional[str] = None
    record_type: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None

    @field_validator("search_text", "entity_id", "status", "record_type", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        if not v or v.lower() == "all":
            return None
        return v

    # Statuses and types are stored lowercased
    @field_validator("status", "record_type")
    @classmethod
    def lowercase_code(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    def only_entity(self) -> bool:
        """True when no criterion other than entity_id is active"""
        return not any(
            (self.search_text, self.status, self.record_type, self.date_from, self.date_to)
        )


class SortField(str, Enum):
    START = "start"
    END = "end"
    CREATED_AT = "createdAt"
    ENTITY = "entityDisplayName"
    TITLE = "title"
    STATUS = "status"
    TYPE = "recordType"
    AMOUNT = "amount"
    PARTICIPANTS = "participantCount"
    COMMISSION = "commissionAmount"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: SortField = SortField.START
    direction: SortDirection = SortDirection.DESC


class Page(BaseModel, Generic[T]):
    items: list[T]
    page_number: int
    page_size: int
    total_items: int
    total_pages: int


class CalendarDay(BaseModel):
    date: dt.date
    records: list[Record] = Field(default_factory=list)
    aggregate_count: int = 0
    aggregate_revenue: float = 0.0
    is_today: bool = False
    is_current_month_period: bool = True


class CalendarGrid(BaseModel):
    year: int
    month: int
    weeks: list[list[CalendarDay]]

    @property
    def days(self) -> list[CalendarDay]:
        return [day for week in self.weeks for day in week]


class SummaryStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    revenue: float = 0.0
    commission: float = 0.0
    today_count: int = 0
    upcoming_count: int = 0
    total_participants: int = 0
    failed_sources: int = 0
    total_sources: int = 0


# ============================================================================
# REQUEST / RESPONSE SCHEMAS
# ============================================================================


class RecordCreate(BaseModel):
    """Schema for creating a new booking"""

    entityId: str
    title: Optional[str] = None
    start: dt.datetime
    end: Optional[dt.datetime] = None
    participantCount: Optional[int] = None
    amount: Optional[float] = None
    amountMode: Optional[AmountMode] = None
    commissionAmount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("entityId", mode="before")
    @classmethod
    def coerce_entity_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("participantCount")
    @classmethod
    def validate_participants(cls, v):
        if v is not None and v < 0:
            raise ValueError("participantCount must not be negative")
        return v


class RecordUpdate(BaseModel):
    """Schema for updating an existing booking"""

    title: Optional[str] = None
    start: Optional[dt.datetime] = None
    end: Optional[dt.datetime] = None
    participantCount: Optional[int] = None
    amount: Optional[float] = None
    amountMode: Optional[AmountMode] = None
    commissionAmount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class RecordResponse(BaseModel):
    """Schema for booking response"""

    id: str
    entityId: str
    entityDisplayName: str
    recordType: str
    title: Optional[str] = None
    start: dt.datetime
    end: dt.datetime
    participantCount: Optional[int] = None
    amount: Optional[float] = None
    amountMode: AmountMode
    commissionAmount: Optional[float] = None
    status: str
    notes: Optional[str] = None
    createdAt: Optional[dt.datetime] = None
    lastModified: Optional[dt.datetime] = None


class PageResponse(BaseModel):
    items: list[RecordResponse]
    pageNumber: int
    pageSize: int
    totalItems: int
    totalPages: int


class SummaryResponse(BaseModel):
    total: int
    byStatus: dict[str, int]
    revenue: float
    commission: float
    todayCount: int
    upcomingCount: int
    totalParticipants: int
    failedSources: int
    totalSources: int
    warning: Optional[str] = None


class EntityOption(BaseModel):
    id: str
    displayName: str


class BookingListResponse(BaseModel):
    page: PageResponse
    summary: SummaryResponse
    entityOptions: list[EntityOption] = Field(default_factory=list)


class CalendarDayResponse(BaseModel):
    date: dt.date
    records: list[RecordResponse]
    aggregateCount: int
    aggregateRevenue: float
    isToday: bool
    isCurrentMonthPeriod: bool


class CalendarResponse(BaseModel):
    year: int
    month: int
    previousMonth: str
    nextMonth: str
    weeks: list[list[CalendarDayResponse]]
    failedSources: int
    totalSources: int
    warning: Optional[str] = None


class BookingViewsResponse(BaseModel):
    """Recomputed views returned after a mutation"""

    record: Optional[RecordResponse] = None
    page: PageResponse
    calendar: CalendarResponse
    summary: SummaryResponse
