# log_prioritization/app/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from log_prioritization.app.schemas import ErrorPattern, HistoricalContext
from log_prioritization.app.signatures import error_signature
from log_prioritization.data.event_store import JsonEventStore, day_bounds
from log_prioritization.models.base import as_utc, utcnow
from log_prioritization.models.event import ErrorEvent

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 7
MAX_PATTERNS = 20
MAX_PREVIOUS_RESULTS = 100

# (signature, priority value or "")
PatternKey = Tuple[str, str]


@dataclass
class _PatternStats:
    frequency: int
    last_occurrence: datetime


class HistoricalContextBuilder:
    def __init__(
        self,
        store: JsonEventStore,
        lookback_days: int = LOOKBACK_DAYS,
        max_patterns: int = MAX_PATTERNS,
        max_previous_results: int = MAX_PREVIOUS_RESULTS,
    ):
        self.store = store
        self.lookback_days = lookback_days
        self.max_patterns = max_patterns
        self.max_previous_results = max_previous_results

    def window(self, as_of: datetime) -> Tuple[datetime, datetime]:
        """The whole days [as_of - lookback, as_of - 1 day]."""
        as_of_day = as_utc(as_of).date()
        start, _ = day_bounds(as_of_day - timedelta(days=self.lookback_days))
        _, end = day_bounds(as_of_day - timedelta(days=1))
        return start, end

    def build(self, as_of: Optional[datetime] = None) -> Optional[HistoricalContext]:
        """
        Summarize recently analyzed events. Returns None when there is no
        history or when anything goes wrong; context only improves the
        analysis, it is never required for it.
        """
        as_of = as_utc(as_of) if as_of else utcnow()
        try:
            start, end = self.window(as_of)
            analyzed = [e for e in self.store.load_range(start, end) if e.is_analyzed]
            if not analyzed:
                logger.info("No historical analyzed events found for context")
                return None

            context = HistoricalContext(
                previous_analysis_results=self._most_recent(analyzed),
                error_patterns=self._patterns(analyzed),
                analysis_date=as_of,
            )
        except Exception as e:
            logger.warning(
                "Failed to build historical context, proceeding without context: %s", e
            )
            return None

        logger.info(
            "Built historical context with %d previous events and %d error patterns",
            len(context.previous_analysis_results),
            len(context.error_patterns),
        )
        return context

    def _most_recent(self, events: List[ErrorEvent]) -> List[ErrorEvent]:
        ordered = sorted(events, key=lambda e: e.timestamp, reverse=True)
        return ordered[: self.max_previous_results]

    def _patterns(self, events: List[ErrorEvent]) -> List[ErrorPattern]:
        stats: Dict[PatternKey, _PatternStats] = {}
        for event in events:
            priority = event.priority.value if event.priority else ""
            key = (error_signature(event.message), priority)
            current = stats.get(key)
            if current is None:
                stats[key] = _PatternStats(frequency=1, last_occurrence=event.timestamp)
            else:
                current.frequency += 1
                current.last_occurrence = max(current.last_occurrence, event.timestamp)

        ranked = sorted(
            stats.items(),
            key=lambda item: (item[1].frequency, item[1].last_occurrence),
            reverse=True,
        )
        return [
            ErrorPattern(
                pattern=signature,
                priority=priority or None,
                frequency=s.frequency,
                last_occurrence=s.last_occurrence,
            )
            for (signature, priority), s in ranked[: self.max_patterns]
        ]
