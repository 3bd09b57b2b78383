# log_prioritization/app/orchestrator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from log_prioritization.app.clients.analysis import AnalysisClient
from log_prioritization.app.context import HistoricalContextBuilder
from log_prioritization.app.scheduler import NoopRescheduler, Rescheduler
from log_prioritization.data.event_store import JsonEventStore, partition_key_for
from log_prioritization.models.base import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = timedelta(minutes=30)


class PipelineState(str, Enum):
    IDLE = "Idle"
    COLLECTING_LOGS = "CollectingLogs"
    BUILDING_CONTEXT = "BuildingContext"
    ANALYZING = "Analyzing"
    PERSISTING = "Persisting"
    DONE = "Done"
    FAILED = "Failed"


@dataclass
class RunReport:
    partition_key: str
    state: PipelineState = PipelineState.IDLE
    total_events: int = 0
    unanalyzed_events: int = 0
    results_received: int = 0
    newly_analyzed: int = 0
    context_available: bool = False
    skipped_reason: Optional[str] = None


class DailyAnalysisPipeline:
    """
    Analyze yesterday's still-unanalyzed events.

    Idle -> CollectingLogs -> BuildingContext -> Analyzing -> Persisting -> Done,
    with Failed reachable from any step. A failed analysis asks the
    rescheduler for a whole-run retry and is re-raised to the caller.
    """

    def __init__(
        self,
        store: JsonEventStore,
        client: AnalysisClient,
        context_builder: Optional[HistoricalContextBuilder] = None,
        rescheduler: Optional[Rescheduler] = None,
        retry_delay: timedelta = DEFAULT_RETRY_DELAY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.client = client
        self.context_builder = context_builder or HistoricalContextBuilder(store)
        self.rescheduler = rescheduler or NoopRescheduler()
        self.retry_delay = retry_delay
        self.clock = clock

    def _advance(self, report: RunReport, state: PipelineState) -> None:
        logger.debug("%s: %s -> %s", report.partition_key, report.state.value, state.value)
        report.state = state

    def _schedule_retry(self, key: str, as_of: datetime) -> None:
        try:
            self.rescheduler.schedule(lambda: self.run(as_of), self.retry_delay)
        except Exception:
            logger.exception("Could not schedule a retry for %s", key)

    async def run(self, as_of: Optional[datetime] = None) -> RunReport:
        as_of = as_utc(as_of) if as_of else self.clock()
        key = partition_key_for(as_of.date() - timedelta(days=1))
        report = RunReport(partition_key=key)
        logger.info("Starting daily analysis for %s at %s", key, as_of.isoformat())

        # --- collect ---
        self._advance(report, PipelineState.COLLECTING_LOGS)
        if not self.store.exists(key):
            logger.warning("Skipped, no logs: partition %s does not exist", key)
            report.skipped_reason = "missing partition"
            self._advance(report, PipelineState.DONE)
            return report

        events = self.store.load(key)
        pending = [e for e in events if not e.is_analyzed]
        report.total_events = len(events)
        report.unanalyzed_events = len(pending)
        logger.info(
            "Loaded %d events, %d unanalyzed for %s", len(events), len(pending), key
        )
        if not pending:
            logger.info("No unanalyzed events in %s. Skipping analysis.", key)
            report.skipped_reason = "nothing to analyze"
            self._advance(report, PipelineState.DONE)
            return report

        # --- context (never fatal) ---
        self._advance(report, PipelineState.BUILDING_CONTEXT)
        context = self.context_builder.build(as_of)
        report.context_available = context is not None

        # --- analyze ---
        self._advance(report, PipelineState.ANALYZING)
        try:
            response = await self.client.analyze(pending, context)
        except Exception as e:
            self._advance(report, PipelineState.FAILED)
            logger.error("Daily analysis for %s failed: %s", key, e)
            self._schedule_retry(key, as_of)
            raise

        if response is None:
            logger.warning("Analysis returned no response for %s; nothing persisted", key)
            self._advance(report, PipelineState.DONE)
            return report

        report.results_received = len(response.analyzed_logs)

        # --- persist ---
        self._advance(report, PipelineState.PERSISTING)
        try:
            analyzed = self.client.process_results(pending, response)
            self.client.update_store(analyzed, key)
        except Exception:
            self._advance(report, PipelineState.FAILED)
            logger.exception("Persisting analysis results for %s failed", key)
            raise

        report.newly_analyzed = sum(1 for e in analyzed if e.is_analyzed)
        self._advance(report, PipelineState.DONE)
        logger.info(
            "Daily analysis for %s completed: %d of %d events analyzed",
            key,
            report.newly_analyzed,
            report.unanalyzed_events,
        )
        return report
