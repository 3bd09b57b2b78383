"""
log_prioritization.data

Thin facade over the day-partitioned event store so the rest of the app can do:
    from log_prioritization.data import JsonEventStore, collect_events, query_events

Environment:
- LOGS_PATH: directory holding logs-YYYY-MM-DD.json partitions (default "Data/Logs")

Exports:
- Store: JsonEventStore, partition_key_for, day_bounds, upsert_events,
  PartitionCorruptError
- Ingestion/serving helpers: collect_events, query_events, compute_statistics,
  update_resolution_status
"""
from __future__ import annotations

from .event_store import (
    JsonEventStore,
    PartitionCorruptError,
    day_bounds,
    partition_key_for,
    upsert_events,
)
from .ingest import (
    collect_events,
    compute_statistics,
    query_events,
    update_resolution_status,
)

__all__ = [
    "JsonEventStore",
    "PartitionCorruptError",
    "day_bounds",
    "partition_key_for",
    "upsert_events",
    "collect_events",
    "compute_statistics",
    "query_events",
    "update_resolution_status",
]
