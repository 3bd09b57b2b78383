# log_prioritization/data/event_store.py
from __future__ import annotations

import logging
import os
import tempfile
import threading
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from log_prioritization.app.config import get_settings
from log_prioritization.models.base import as_utc
from log_prioritization.models.event import ErrorEvent

logger = logging.getLogger(__name__)

PARTITION_PREFIX = "logs-"
PARTITION_SUFFIX = ".json"

_EVENTS = TypeAdapter(List[ErrorEvent])


class PartitionCorruptError(ValueError):
    """A partition could not be parsed while a write depended on its contents."""

    def __init__(self, partition_key: str, cause: Exception):
        super().__init__(f"Partition {partition_key} is unreadable: {cause}")
        self.partition_key = partition_key


def partition_key_for(day: Union[date, datetime]) -> str:
    """logs-YYYY-MM-DD for the UTC calendar day of `day`."""
    if isinstance(day, datetime):
        day = as_utc(day).date()
    return f"{PARTITION_PREFIX}{day:%Y-%m-%d}"


class JsonEventStore:
    """
    One JSON file per UTC day under `base_path`, holding the events of
    that day sorted by timestamp.

    Reads never raise: missing, empty or corrupt partitions load as [].
    Writes raise. Writers in this process are serialized per partition;
    separate processes writing the same partition must be coordinated
    by the caller.
    """

    def __init__(self, base_path: Optional[Union[str, Path]] = None):
        self.base_path = Path(base_path or get_settings().logs_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

        self._locks: Dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()

    # ---------- keys & paths ----------

    partition_key_for = staticmethod(partition_key_for)

    def path_for(self, partition_key: str) -> Path:
        return self.base_path / f"{partition_key}{PARTITION_SUFFIX}"

    def exists(self, partition_key: str) -> bool:
        return self.path_for(partition_key).is_file()

    def _lock(self, partition_key: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks[partition_key]

    # ---------- reads ----------

    def _read(self, partition_key: str) -> List[ErrorEvent]:
        path = self.path_for(partition_key)
        if not path.is_file():
            return []
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return []
        return _EVENTS.validate_json(raw)

    def load(self, partition_key: str) -> List[ErrorEvent]:
        try:
            events = self._read(partition_key)
        except (OSError, ValidationError, ValueError) as e:
            logger.error("Error loading events from %s: %s", partition_key, e)
            return []
        if not events:
            logger.debug("Partition %s is missing or empty", partition_key)
        return events

    def load_range(self, start: datetime, end: datetime) -> List[ErrorEvent]:
        """
        Events with start <= timestamp <= end, walking every day partition
        between the two dates. Partition order, not globally re-sorted.
        """
        start, end = as_utc(start), as_utc(end)
        events: List[ErrorEvent] = []

        day = start.date()
        while day <= end.date():
            for event in self.load(partition_key_for(day)):
                if start <= event.timestamp <= end:
                    events.append(event)
            day += timedelta(days=1)

        return events

    # ---------- writes ----------

    def save(self, partition_key: str, events: List[ErrorEvent]) -> None:
        """Replace the whole partition. Temp file + rename, so readers never see half a file."""
        path = self.path_for(partition_key)
        payload = _EVENTS.dump_json(events, by_alias=True, indent=2)

        with self._lock(partition_key):
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{partition_key}.", suffix=".tmp", dir=path.parent
            )
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                logger.error("Error saving events to %s", path)
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.info("Saved %d events to %s", len(events), path)

    def update(
        self,
        partition_key: str,
        mutate: Callable[[List[ErrorEvent]], List[ErrorEvent]],
    ) -> List[ErrorEvent]:
        """
        Locked read-modify-write. Unlike load(), a corrupt partition raises
        PartitionCorruptError here instead of being overwritten.
        """
        with self._lock(partition_key):
            try:
                current = self._read(partition_key)
            except (ValidationError, ValueError) as e:
                raise PartitionCorruptError(partition_key, e) from e
            updated = mutate(current)
            self.save(partition_key, updated)
            return updated

    def append(self, partition_key: str, event: ErrorEvent) -> None:
        self.update(partition_key, lambda events: upsert_events(events, [event]))

    def partition_keys(self) -> List[str]:
        return sorted(
            p.name[: -len(PARTITION_SUFFIX)]
            for p in self.base_path.glob(f"{PARTITION_PREFIX}*{PARTITION_SUFFIX}")
        )


def upsert_events(
    existing: List[ErrorEvent], incoming: Iterable[ErrorEvent]
) -> List[ErrorEvent]:
    """Existing events with same-id arrivals replaced in place, new ids appended."""
    merged = list(existing)
    position = {e.id: i for i, e in enumerate(merged)}
    for event in incoming:
        if event.id in position:
            merged[position[event.id]] = event
        else:
            position[event.id] = len(merged)
            merged.append(event)
    return merged


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last representable UTC instants of `day`."""
    start = as_utc(datetime.combine(day, time.min))
    return start, start + timedelta(days=1) - timedelta(microseconds=1)
