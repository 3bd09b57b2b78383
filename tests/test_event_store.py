"""Tests for the day-partitioned JSON event store."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from log_prioritization.data.event_store import (
    JsonEventStore,
    PartitionCorruptError,
    day_bounds,
    partition_key_for,
)
from log_prioritization.models.event import Priority, Severity

from factories import dt, make_analyzed, make_event


class TestPartitionKey:
    def test_date(self):
        assert partition_key_for(date(2024, 1, 15)) == "logs-2024-01-15"

    def test_datetime_uses_utc_day(self):
        # 23:30 at UTC-05:00 is already the next day in UTC
        local = datetime(2024, 1, 15, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert partition_key_for(local) == "logs-2024-01-16"

    def test_naive_datetime_treated_as_utc(self):
        assert partition_key_for(datetime(2024, 1, 15, 23, 59)) == "logs-2024-01-15"

    def test_available_on_store(self, store):
        assert store.partition_key_for(date(2024, 2, 29)) == "logs-2024-02-29"


class TestLoadAndSave:
    def test_missing_partition_loads_empty(self, store):
        assert store.exists("logs-2024-01-15") is False
        assert store.load("logs-2024-01-15") == []

    def test_empty_file_loads_empty(self, store):
        store.path_for("logs-2024-01-15").write_text("   ", encoding="utf-8")
        assert store.load("logs-2024-01-15") == []

    def test_corrupt_file_loads_empty(self, store, caplog):
        store.path_for("logs-2024-01-15").write_text("[{not json", encoding="utf-8")
        assert store.load("logs-2024-01-15") == []
        assert "Error loading events" in caplog.text

    def test_save_then_load(self, store):
        events = [
            make_event("a", dt(2024, 1, 15, 8)),
            make_analyzed("b", dt(2024, 1, 15, 9)),
        ]
        store.save("logs-2024-01-15", events)

        assert store.exists("logs-2024-01-15")
        assert store.load("logs-2024-01-15") == events

    def test_file_layout_is_camel_case_json_array(self, store):
        store.save("logs-2024-01-15", [make_event("a", dt(2024, 1, 15, 8))])

        data = json.loads(store.path_for("logs-2024-01-15").read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert data[0]["id"] == "a"
        assert data[0]["stackTrace"] == "at Orders.Create()"
        assert data[0]["isAnalyzed"] is False
        assert data[0]["analyzedAt"] is None
        assert data[0]["resolutionStatus"] == "Pending"

    def test_reads_legacy_blank_severity(self, store):
        legacy = [
            {
                "id": "a",
                "timestamp": "2024-01-15T08:00:00",
                "source": "Svc",
                "message": "boom",
                "stackTrace": None,
                "severity": "",
                "priority": "",
                "aiReasoning": "",
                "potentialFix": "",
                "analyzedAt": None,
                "isAnalyzed": False,
            }
        ]
        store.path_for("logs-2024-01-15").write_text(json.dumps(legacy), encoding="utf-8")

        [event] = store.load("logs-2024-01-15")
        assert event.severity is None
        assert event.stack_trace == ""
        assert event.timestamp == dt(2024, 1, 15, 8)

    def test_save_creates_directories(self, tmp_path):
        store = JsonEventStore(tmp_path / "nested" / "logs")
        store.save("logs-2024-01-15", [make_event("a", dt(2024, 1, 15))])
        assert (tmp_path / "nested" / "logs" / "logs-2024-01-15.json").is_file()

    def test_save_leaves_no_temp_files(self, store):
        store.save("logs-2024-01-15", [make_event("a", dt(2024, 1, 15))])
        store.save("logs-2024-01-15", [make_event("b", dt(2024, 1, 15))])
        assert [p.name for p in store.base_path.iterdir()] == ["logs-2024-01-15.json"]

    def test_failed_save_propagates_and_keeps_old_content(self, store, monkeypatch):
        store.save("logs-2024-01-15", [make_event("a", dt(2024, 1, 15))])

        def boom(*_args, **_kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("log_prioritization.data.event_store.os.replace", boom)
        with pytest.raises(OSError, match="disk full"):
            store.save("logs-2024-01-15", [make_event("b", dt(2024, 1, 15))])

        assert [e.id for e in store.load("logs-2024-01-15")] == ["a"]
        assert [p.name for p in store.base_path.iterdir()] == ["logs-2024-01-15.json"]


class TestAppendAndUpdate:
    def test_append_to_new_and_existing_partition(self, store):
        store.append("logs-2024-01-15", make_event("a", dt(2024, 1, 15, 8)))
        store.append("logs-2024-01-15", make_event("b", dt(2024, 1, 15, 9)))
        assert [e.id for e in store.load("logs-2024-01-15")] == ["a", "b"]

    def test_update_refuses_to_overwrite_corrupt_partition(self, store):
        path = store.path_for("logs-2024-01-15")
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(PartitionCorruptError):
            store.append("logs-2024-01-15", make_event("a", dt(2024, 1, 15)))

        assert path.read_text(encoding="utf-8") == "{broken"


class TestLoadRange:
    @pytest.fixture
    def three_days(self, store):
        store.save(
            "logs-2024-01-15",
            [
                make_event("d1-early", dt(2024, 1, 15, 0, 0)),
                make_event("d1-late", dt(2024, 1, 15, 18, 0)),
            ],
        )
        store.save(
            "logs-2024-01-16",
            [
                make_event("d2-noon", dt(2024, 1, 16, 12, 0)),
                make_event("d2-last", dt(2024, 1, 16, 23, 59, 30)),
            ],
        )
        store.save("logs-2024-01-17", [make_event("d3", dt(2024, 1, 17, 1, 0))])
        return store

    def test_returns_days_one_and_two_only(self, three_days):
        events = three_days.load_range(dt(2024, 1, 15, 0, 0), dt(2024, 1, 16, 23, 59))
        assert [e.id for e in events] == ["d1-early", "d1-late", "d2-noon"]

    def test_bounds_are_inclusive(self, three_days):
        events = three_days.load_range(dt(2024, 1, 15, 18, 0), dt(2024, 1, 16, 12, 0))
        assert [e.id for e in events] == ["d1-late", "d2-noon"]

    def test_time_of_day_window_excludes_outside_events(self, three_days):
        events = three_days.load_range(dt(2024, 1, 15, 6, 0), dt(2024, 1, 16, 6, 0))
        assert [e.id for e in events] == ["d1-late"]

    def test_missing_days_are_skipped(self, three_days):
        events = three_days.load_range(dt(2024, 1, 10), dt(2024, 1, 15, 1))
        assert [e.id for e in events] == ["d1-early"]

    def test_full_day_bounds(self, three_days):
        start, end = day_bounds(date(2024, 1, 16))
        assert [e.id for e in three_days.load_range(start, end)] == ["d2-noon", "d2-last"]


def test_partition_keys_lists_existing_days(store):
    analyzed = make_analyzed(
        "a", dt(2024, 1, 16), severity=Severity.LOW, priority=Priority.LOW
    )
    store.save("logs-2024-01-16", [analyzed])
    store.save("logs-2024-01-15", [])
    assert store.partition_keys() == ["logs-2024-01-15", "logs-2024-01-16"]


def test_append_replaces_event_with_same_id(store):
    store.append("logs-2024-01-15", make_event("a", dt(2024, 1, 15, 8)))
    store.append("logs-2024-01-15", make_event("b", dt(2024, 1, 15, 9)))
    store.append("logs-2024-01-15", make_event("a", dt(2024, 1, 15, 8), "resent"))

    events = store.load("logs-2024-01-15")
    assert [e.id for e in events] == ["a", "b"]
    assert events[0].message == "resent"
