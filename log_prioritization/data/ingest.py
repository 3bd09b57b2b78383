# log_prioritization/data/ingest.py

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from log_prioritization.app.schemas import DateRange, EventStatistics
from log_prioritization.data.event_store import (
    JsonEventStore,
    partition_key_for,
    upsert_events,
)
from log_prioritization.models.base import as_utc, utcnow
from log_prioritization.models.event import ErrorEvent, ResolutionStatus

logger = logging.getLogger(__name__)

DEFAULT_QUERY_WINDOW = timedelta(days=30)
RESOLUTION_SEARCH_WINDOW = timedelta(days=90)


def _window(
    start: Optional[datetime], end: Optional[datetime], now: Optional[datetime] = None
) -> tuple[datetime, datetime]:
    end = as_utc(end) if end else (as_utc(now) if now else utcnow())
    start = as_utc(start) if start else end - DEFAULT_QUERY_WINDOW
    return start, end


def collect_events(store: JsonEventStore, events: Iterable[ErrorEvent]) -> int:
    """
    Store a batch of incoming events in their day partitions, one write per
    day. A re-sent event replaces the stored one with the same id.
    """
    by_partition: Dict[str, List[ErrorEvent]] = defaultdict(list)
    for event in events:
        by_partition[partition_key_for(event.timestamp)].append(event)

    if not by_partition:
        logger.warning("No events provided for collection")
        return 0

    total = 0
    for key, batch in sorted(by_partition.items()):
        store.update(key, lambda existing, batch=batch: upsert_events(existing, batch))
        total += len(batch)
        logger.info("Collected %d events into %s", len(batch), key)
    return total


def _matches(value, wanted: Optional[str]) -> bool:
    if not wanted:
        return True
    if value is None:
        return False
    return str(value.value).lower() == wanted.lower()


def query_events(
    store: JsonEventStore,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    severity: Optional[str] = None,
    priority: Optional[str] = None,
) -> List[ErrorEvent]:
    """Events in the window (default: last 30 days), newest first."""
    start, end = _window(start, end)
    events = [
        e
        for e in store.load_range(start, end)
        if _matches(e.severity, severity) and _matches(e.priority, priority)
    ]
    events.sort(key=lambda e: e.timestamp, reverse=True)
    logger.info("Retrieved %d filtered events", len(events))
    return events


def compute_statistics(
    store: JsonEventStore,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> EventStatistics:
    now = as_utc(now) if now else utcnow()
    start, end = _window(start, end, now)
    events = store.load_range(start, end)

    severity = Counter(e.severity.value for e in events if e.severity)
    priority = Counter(e.priority.value for e in events if e.priority)
    analyzed = sum(1 for e in events if e.is_analyzed)

    today = now.date()
    week_ago = today - timedelta(days=7)
    month_ago = today - timedelta(days=30)

    stats = EventStatistics(
        total_logs=len(events),
        analyzed_logs=analyzed,
        unanalyzed_logs=len(events) - analyzed,
        severity_breakdown=dict(severity),
        priority_breakdown=dict(priority),
        today_count=sum(1 for e in events if e.timestamp.date() == today),
        week_count=sum(1 for e in events if e.timestamp.date() >= week_ago),
        month_count=sum(1 for e in events if e.timestamp.date() >= month_ago),
        date_range=DateRange(from_date=start, to_date=end),
        generated_at=now,
    )
    logger.info("Generated statistics for %d events", len(events))
    return stats


def update_resolution_status(
    store: JsonEventStore,
    event_id: str,
    status: ResolutionStatus,
    resolved_at: datetime,
    resolved_by: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Mark an event resolved (or back to pending). Looks back 90 days for the
    event, then rewrites it inside its own day partition. Analysis fields
    are never touched here.
    """
    if not event_id:
        logger.warning("Event id cannot be empty for resolution status update")
        return False

    now = as_utc(now) if now else utcnow()
    found = next(
        (e for e in store.load_range(now - RESOLUTION_SEARCH_WINDOW, now) if e.id == event_id),
        None,
    )
    if found is None:
        logger.warning("Event %s not found for resolution status update", event_id)
        return False

    key = partition_key_for(found.timestamp)
    changed = False

    def _apply(events: List[ErrorEvent]) -> List[ErrorEvent]:
        nonlocal changed
        out = []
        for e in events:
            if e.id == event_id:
                e = e.model_copy(
                    update={
                        "resolution_status": ResolutionStatus(status),
                        "resolved_at": as_utc(resolved_at),
                        "resolved_by": resolved_by,
                    }
                )
                changed = True
            out.append(e)
        return out

    store.update(key, _apply)
    if not changed:
        logger.warning("Event %s not found in partition %s", event_id, key)
        return False

    logger.info(
        "Updated resolution status for event %s to %s",
        event_id,
        ResolutionStatus(status).value,
    )
    return True
