"""Tests for the deduplicating merger and the session record store."""

from datetime import date, datetime

import pytest

from booking_hub.domain.scheduling.merger import MergeResult, merge, merge_into, pick_winner
from booking_hub.domain.scheduling.orchestrator import FetchResult
from booking_hub.domain.scheduling.schemas import DayAggregate, RecordsPayload
from booking_hub.domain.scheduling.store import RecordStore
from booking_hub.domain.scheduling.windows import grid_window, month_window
from booking_hub.errors import PerWindowFetchError


def ok_result(entity, window, records, aggregates=()):
    return FetchResult(
        entity=entity,
        window=window,
        ok=True,
        payload=RecordsPayload(records=list(records), day_aggregates=list(aggregates)),
    )


def failed_result(entity, window):
    error = PerWindowFetchError("HTTP 500", entity_id=entity.id, window_label=str(window))
    return FetchResult(entity=entity, window=window, ok=False, error=error)


class TestMerge:
    @pytest.fixture
    def entity(self, make_entity):
        return make_entity("1", "Beach House")

    def test_overlapping_windows_keep_latest_modification(self, entity, make_record):
        old = make_record("r9", start="2024-02-29T10:00:00", last_modified=datetime(2024, 2, 1))
        new = make_record(
            "r9",
            start="2024-02-29T10:00:00",
            status="cancelled",
            last_modified=datetime(2024, 2, 20),
        )
        results = [
            ok_result(entity, month_window(2024, 2), [new]),
            ok_result(entity, month_window(2024, 3), [old]),
        ]

        merged = merge(results)

        assert [r.id for r in merged.records] == ["r9"]
        assert merged.records[0].status == "cancelled"

    def test_result_does_not_depend_on_arrival_order(self, entity, make_record):
        a = make_record("r1", start="2024-03-05T10:00:00", amount=100.0)
        b = make_record("r1", start="2024-03-05T10:00:00", amount=120.0)
        c = make_record("r2", start="2024-03-01T10:00:00")
        results = [
            ok_result(entity, month_window(2024, 2), [a, c]),
            ok_result(entity, month_window(2024, 3), [b]),
        ]

        forward = merge(results)
        backward = merge(list(reversed(results)))

        assert forward.records == backward.records
        assert [r.id for r in forward.records] == ["r2", "r1"]

    def test_merging_is_idempotent(self, entity, make_record):
        records = [make_record("r1"), make_record("r2", start="2024-03-06T10:00:00")]
        once = merge([ok_result(entity, month_window(2024, 3), records)])
        twice = merge([ok_result(entity, month_window(2024, 3), once.records + records)])
        assert once.records == twice.records

    def test_record_with_modification_time_beats_one_without(self, make_record):
        unknown = make_record("r1")
        known = make_record("r1", last_modified=datetime(2024, 1, 1))
        assert pick_winner(unknown, known) is known
        assert pick_winner(known, unknown) is known

    def test_failures_are_counted_not_raised(self, entity, make_entity, make_record):
        other = make_entity("2", "City Tour")
        march = month_window(2024, 3)

        merged = merge(
            [ok_result(entity, march, [make_record("r1")]), failed_result(other, march)]
        )

        assert merged.total_sources == 2
        assert merged.failed_sources == 1
        assert merged.failures[0].entity_id == "2"
        assert [r.id for r in merged.records] == ["r1"]

    def test_owning_window_rollup_beats_padding_rollup(self, entity):
        day = date(2024, 3, 1)
        owned = DayAggregate(entity_id="1", date=day, count=2, revenue=50)
        padding = DayAggregate(entity_id="1", date=day, count=7, revenue=700)
        # February's grid runs through Saturday March 2nd
        results = [
            ok_result(entity, grid_window(2024, 2), [], [padding]),
            ok_result(entity, grid_window(2024, 3), [], [owned]),
        ]

        forward = merge(results)
        backward = merge(list(reversed(results)))

        assert forward.day_aggregates[("1", day)] == owned
        assert backward.day_aggregates[("1", day)] == owned
        assert forward.owned_days == {("1", day)}

    def test_equally_owned_rollups_keep_the_larger(self, entity):
        march = month_window(2024, 3)
        small = DayAggregate(entity_id="1", date=date(2024, 3, 1), count=2, revenue=50)
        large = DayAggregate(entity_id="1", date=date(2024, 3, 1), count=3, revenue=10)

        merged = merge(
            [ok_result(entity, march, [], [large]), ok_result(entity, march, [], [small])]
        )

        assert merged.day_aggregates[("1", date(2024, 3, 1))].count == 3

    def test_merge_into_unions_with_cached(self, entity, make_record):
        cached = [make_record("r1"), make_record("r2", start="2024-03-06T10:00:00")]
        incoming = merge(
            [
                ok_result(
                    entity,
                    month_window(2024, 3),
                    [make_record("r2", start="2024-03-06T10:00:00", status="cancelled",
                                 last_modified=datetime(2024, 3, 2)),
                     make_record("r3", start="2024-03-07T10:00:00")],
                )
            ]
        )

        merged = merge_into(MergeResult(records=cached), incoming)

        assert [r.id for r in merged.records] == ["r1", "r2", "r3"]
        assert merged.records[1].status == "cancelled"

    def test_merge_into_recounts_sources(self, entity, make_entity, make_record):
        other = make_entity("2", "City Tour")
        march = month_window(2024, 3)
        cached = merge([ok_result(entity, march, [make_record("r1")]), failed_result(other, march)])

        healthy_refresh = merge_into(cached, merge([ok_result(entity, march, [make_record("r1")])]))

        assert (healthy_refresh.failed_sources, healthy_refresh.total_sources) == (1, 2)
        assert [f.entity_id for f in healthy_refresh.failures] == ["2"]

        recovered = merge_into(
            healthy_refresh,
            merge([ok_result(other, march, [make_record("t1", entity_id="2")])]),
        )

        assert (recovered.failed_sources, recovered.total_sources) == (0, 2)
        assert recovered.failures == []
        assert [r.id for r in recovered.records] == ["r1", "t1"]

    def test_refreshed_rollup_replaces_cached_one(self, entity):
        day = date(2024, 3, 5)
        march = month_window(2024, 3)
        stale = DayAggregate(entity_id="1", date=day, count=6, revenue=600)
        fresh = DayAggregate(entity_id="1", date=day, count=2, revenue=200)
        cached = merge([ok_result(entity, grid_window(2024, 3), [], [stale])])

        merged = merge_into(cached, merge([ok_result(entity, march, [], [fresh])]))

        assert merged.day_aggregates[("1", day)] == fresh

    def test_padding_refresh_does_not_replace_owned_rollup(self, entity):
        day = date(2024, 3, 1)
        owned = DayAggregate(entity_id="1", date=day, count=2, revenue=50)
        padding = DayAggregate(entity_id="1", date=day, count=7, revenue=700)
        cached = merge([ok_result(entity, grid_window(2024, 3), [], [owned])])

        merged = merge_into(cached, merge([ok_result(entity, grid_window(2024, 2), [], [padding])]))

        assert merged.day_aggregates[("1", day)] == owned


class TestRecordStore:
    def test_stale_epoch_is_discarded(self, make_entity, make_record):
        entity = make_entity()
        store = RecordStore()
        first = store.begin_request()
        second = store.begin_request()

        newer = merge([ok_result(entity, month_window(2024, 4), [make_record("april")])])
        older = merge([ok_result(entity, month_window(2024, 3), [make_record("march")])])

        assert store.apply(second, newer) is True
        assert store.apply(first, older) is False
        assert [r.id for r in store.records()] == ["april"]
        assert store.applied_epoch == second

    def test_apply_records_source_counts(self, make_entity, make_record):
        entity = make_entity()
        store = RecordStore()
        epoch = store.begin_request()
        result = merge(
            [
                ok_result(entity, month_window(2024, 3), [make_record("r1")]),
                failed_result(make_entity("2", "City Tour"), month_window(2024, 3)),
            ]
        )

        store.apply(epoch, result)

        assert (store.failed_sources, store.total_sources) == (1, 2)

    def test_union_keeps_failures_of_untouched_sources(self, make_entity, make_record):
        entity, other = make_entity(), make_entity("2", "City Tour")
        march = month_window(2024, 3)
        store = RecordStore()
        epoch = store.begin_request()
        store.apply(
            epoch,
            merge([ok_result(entity, march, [make_record("r1")]), failed_result(other, march)]),
        )

        store.apply(
            store.epoch,
            merge([ok_result(entity, march, [make_record("r2", start="2024-03-06T10:00:00")])]),
            replace=False,
        )

        assert (store.failed_sources, store.total_sources) == (1, 2)
        assert [r.id for r in store.records()] == ["r1", "r2"]

    def test_upsert_patches_one_record_and_drops_stale_rollup(self, make_entity, make_record):
        entity = make_entity()
        store = RecordStore()
        epoch = store.begin_request()
        aggregate = DayAggregate(entity_id="1", date=date(2024, 3, 5), count=9, revenue=900)
        store.apply(
            epoch,
            merge(
                [
                    ok_result(
                        entity,
                        month_window(2024, 3),
                        [make_record("r1"), make_record("r2", start="2024-03-06T10:00:00")],
                        [aggregate],
                    )
                ]
            ),
        )

        store.upsert(make_record("r1", status="cancelled"))

        assert store.get("r1").status == "cancelled"
        assert store.get("r2").status == "confirmed"
        assert ("1", date(2024, 3, 5)) not in store.day_aggregates()

    def test_remove(self, make_record):
        store = RecordStore()
        store.upsert(make_record("r1"))
        assert store.remove("r1").id == "r1"
        assert store.remove("r1") is None
        assert store.records() == []
