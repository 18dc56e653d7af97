"""Record repository - Upstream reads and mutations for bookings"""

import logging
from typing import Any, Optional

from ...config import BOOKINGS_ENDPOINT, RECORDS_ENDPOINT
from ...errors import TransportError
from ...services.api_client import ApiClient, unwrap
from ..entities.schemas import Entity
from .normalizer import to_day_aggregates, to_record, to_records
from .schemas import Record, RecordCreate, RecordsPayload, RecordUpdate
from .windows import Window

logger = logging.getLogger(__name__)

_RECORD_LIST_KEYS = ("records", "bookings", "schedules", "items", "results")
_AGGREGATE_KEYS = ("dayAggregates", "dailyStats", "aggregates")


class RecordRepository:
    """Repository for booking reads and writes against the upstream API"""

    def __init__(
        self,
        client: ApiClient,
        records_endpoint: str = RECORDS_ENDPOINT,
        bookings_endpoint: str = BOOKINGS_ENDPOINT,
    ):
        self.client = client
        self.records_endpoint = records_endpoint
        self.bookings_endpoint = bookings_endpoint.rstrip("/")

    async def get_records(self, entity: Entity, window: Window) -> RecordsPayload:
        """GetRecords(entityId, window) -> {records, dayAggregates?}"""
        body = await self.client.get(
            self.records_endpoint.format(entity_id=entity.id), params=window.to_params()
        )
        data = unwrap(body)

        raw_records: Any = []
        raw_aggregates: Any = []
        if isinstance(data, list):
            raw_records = data
        elif isinstance(data, dict):
            raw_records = next(
                (data[k] for k in _RECORD_LIST_KEYS if isinstance(data.get(k), list)), []
            )
            raw_aggregates = next(
                (data[k] for k in _AGGREGATE_KEYS if isinstance(data.get(k), list)), []
            )
        elif data is not None:
            raise TransportError(f"Unexpected records payload for entity {entity.id}")

        return RecordsPayload(
            records=to_records(raw_records, entity),
            day_aggregates=to_day_aggregates(raw_aggregates, entity),
        )

    async def create_record(self, entity: Entity, data: RecordCreate) -> Record:
        payload = data.model_dump(mode="json", exclude_none=True)
        body = await self.client.post(self.bookings_endpoint, json=payload)
        return self._to_record(body, entity)

    async def update_record(self, record_id: str, entity: Entity, data: RecordUpdate) -> Record:
        payload = data.model_dump(mode="json", exclude_none=True)
        body = await self.client.put(f"{self.bookings_endpoint}/{record_id}", json=payload)
        return self._to_record(body, entity)

    async def cancel_record(
        self, record_id: str, entity: Entity, reason: Optional[str] = None
    ) -> Record:
        payload = {"status": "cancelled"}
        if reason:
            payload["reason"] = reason
        body = await self.client.put(f"{self.bookings_endpoint}/{record_id}", json=payload)
        return self._to_record(body, entity)

    async def delete_record(self, record_id: str) -> None:
        await self.client.delete(f"{self.bookings_endpoint}/{record_id}")

    @staticmethod
    def _to_record(body: Any, entity: Entity) -> Record:
        data = unwrap(body)
        if isinstance(data, dict) and isinstance(data.get("booking"), dict):
            data = data["booking"]
        if not isinstance(data, dict):
            raise TransportError("Upstream did not return the saved booking")
        try:
            return to_record(data, entity)
        except ValueError as e:
            raise TransportError(f"Upstream returned an unreadable booking: {e}") from e
