import asyncio
import json
from datetime import datetime

import httpx
import pytest

from booking_hub.domain.entities.schemas import Entity
from booking_hub.domain.scheduling.schemas import AmountMode, Record, RecordsPayload
from booking_hub.services.api_client import ApiClient

UPSTREAM_URL = "http://upstream.test/api"


class FakeSource:
    """In-memory RecordSource: per-entity payloads, exceptions and delays"""

    def __init__(self, responses=None, delays=None):
        self.responses = responses or {}
        self.delays = delays or {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_records(self, entity, window):
        self.calls.append((entity.id, str(window)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(entity.id)
            if delay:
                await asyncio.sleep(delay)
            response = self.responses.get(entity.id, RecordsPayload())
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1


class FakeUpstream:
    """
    Routes httpx requests to canned bookings API responses.

    bookings maps entity id -> list of raw booking dicts, or an exception
    instance to raise for that entity's fetch.
    """

    def __init__(self, entities, bookings=None):
        self.entities = entities
        self.bookings = bookings or {}
        self.entities_status = 200
        self.bookings_status = 200
        self.mutation_status = 200
        self.requests = []
        self.saved = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]

        if path == "/entities/mine":
            if self.entities_status != 200:
                return httpx.Response(self.entities_status, json={"detail": "Upstream said no"})
            return httpx.Response(200, json={"success": True, "data": self.entities})

        if path.startswith("/entities/") and path.endswith("/bookings"):
            if self.bookings_status != 200:
                return httpx.Response(self.bookings_status, json={"detail": "Upstream said no"})
            entity_id = path.split("/")[2]
            response = self.bookings.get(entity_id, [])
            if isinstance(response, Exception):
                raise response
            return httpx.Response(200, json={"success": True, "data": {"bookings": response}})

        if path.startswith("/bookings"):
            if self.mutation_status != 200:
                return httpx.Response(
                    self.mutation_status,
                    json={"message": "Booking rejected", "errors": [{"field": "start"}]},
                )
            if request.method == "DELETE":
                return httpx.Response(204)
            body = json.loads(request.content or b"{}")
            if request.method == "POST":
                booking = {"id": "new-1", "lastModified": "2024-03-20T10:00:00Z", **body}
            else:
                record_id = path.rsplit("/", 1)[-1]
                booking = {
                    **self.saved.get(record_id, {}),
                    "id": record_id,
                    "start": "2024-03-05T10:00:00Z",
                    "lastModified": "2024-03-21T10:00:00Z",
                    **body,
                }
            self.saved[booking["id"]] = booking
            return httpx.Response(200, json={"success": True, "data": {"booking": booking}})

        return httpx.Response(404, json={"detail": "Not found"})


@pytest.fixture
def make_entity():
    def _make(entity_id="1", display_name="Beach House", kind="property", **attributes):
        return Entity(
            id=entity_id,
            display_name=display_name,
            relationship_kind=kind,
            attributes=attributes,
        )

    return _make


@pytest.fixture
def make_record():
    def _make(record_id, start="2024-03-05T10:00:00", **overrides):
        start_dt = datetime.fromisoformat(start) if isinstance(start, str) else start
        values = {
            "id": record_id,
            "entity_id": "1",
            "entity_display_name": "Beach House",
            "record_type": "property",
            "title": None,
            "start": start_dt,
            "end": start_dt,
            "participant_count": 2,
            "amount": 100.0,
            "amount_mode": AmountMode.PER_STAY,
            "status": "confirmed",
        }
        values.update(overrides)
        return Record(**values)

    return _make


@pytest.fixture
def entity_payloads():
    return [
        {"id": 1, "name": "Beach House", "type": "property"},
        {"id": 2, "title": "City Tour", "entityType": "TOUR", "amountMode": "perPerson"},
    ]


@pytest.fixture
def upstream(entity_payloads):
    return FakeUpstream(entity_payloads)


@pytest.fixture
def api_client_factory(upstream):
    def _make(token="test-token"):
        return ApiClient(
            token=token,
            base_url=UPSTREAM_URL,
            transport=httpx.MockTransport(upstream),
        )

    return _make


@pytest.fixture
def fake_source():
    return FakeSource
