# log_prioritization/app/clients/analysis.py

from __future__ import annotations

import json
import logging
from datetime import datetime
from types import TracebackType
from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from log_prioritization.app.config import Settings, get_settings
from log_prioritization.app.errors import (
    AnalysisHTTPError,
    AnalysisResponseError,
    AnalysisTimeoutError,
)
from log_prioritization.app.retry import BackoffExecutor
from log_prioritization.app.schemas import (
    AnalysisParameters,
    AnalysisRequest,
    AnalysisResponse,
    AnalyzedLog,
    HistoricalContext,
    LogEntry,
)
from log_prioritization.app.signatures import frequent_signatures
from log_prioritization.data.event_store import JsonEventStore
from log_prioritization.models.base import utcnow
from log_prioritization.models.event import ErrorEvent, Priority, Severity

logger = logging.getLogger(__name__)

ANALYZE_PATH = "/api/analyze"


def _validated(result: AnalyzedLog) -> Optional[tuple[Severity, Priority]]:
    """Parsed severity/priority when the result is fully usable, else None."""
    try:
        severity = Severity(result.severity)
    except ValueError:
        logger.warning("Invalid severity value: %r", result.severity)
        return None
    try:
        priority = Priority(result.priority)
    except ValueError:
        logger.warning("Invalid priority value: %r", result.priority)
        return None
    if result.confidence_score is None or not 0.0 <= result.confidence_score <= 1.0:
        logger.warning("Invalid confidence score: %s", result.confidence_score)
        return None
    if not (result.reasoning or "").strip():
        logger.warning("Missing reasoning for analysis result %s", result.log_id)
        return None
    return severity, priority


class AnalysisClient:
    """
    Client for the external classification endpoint.

    Owns an httpx.AsyncClient unless one is passed in; use it as an async
    context manager (or call aclose()) to release connections.
    """

    def __init__(
        self,
        store: JsonEventStore,
        *,
        settings: Optional[Settings] = None,
        executor: Optional[BackoffExecutor] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.executor = executor or BackoffExecutor()

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.settings.analysis_base_url,
            timeout=httpx.Timeout(self.settings.analysis_timeout_seconds),
        )

    @property
    def endpoint(self) -> str:
        return f"{str(self._client.base_url).rstrip('/')}{ANALYZE_PATH}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.analysis_api_key:
            headers["Authorization"] = f"Bearer {self.settings.analysis_api_key}"
        return headers

    # ---- lifecycle --------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AnalysisClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ---- request ----------------------------------------------------------

    def build_request(
        self,
        events: List[ErrorEvent],
        context: Optional[HistoricalContext] = None,
    ) -> AnalysisRequest:
        if context is None:
            # nothing from previous days; at least flag repeats inside this batch
            context = HistoricalContext(
                frequent_errors=frequent_signatures(e.message for e in events),
                analysis_date=utcnow(),
            )

        request = AnalysisRequest(
            logs=[LogEntry.from_event(e) for e in events],
            context=context,
            parameters=AnalysisParameters(
                max_response_time_seconds=self.settings.analysis_timeout_seconds,
            ),
        )
        logger.debug(
            "Built analysis request for %d events with %d historical events",
            len(request.logs),
            len(context.previous_analysis_results),
        )
        return request

    async def _post(self, body: bytes) -> httpx.Response:
        try:
            response = await self._client.post(
                ANALYZE_PATH, content=body, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            raise AnalysisTimeoutError(
                f"Analysis request timed out after {self.settings.analysis_timeout_seconds}s",
                self.endpoint,
            ) from e

        if not response.is_success:
            logger.error(
                "Analysis API returned error: %s - %s",
                response.status_code,
                response.text,
            )
            raise AnalysisHTTPError(
                f"Analysis API error: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                endpoint=self.endpoint,
            )
        return response

    async def analyze(
        self,
        events: List[ErrorEvent],
        context: Optional[HistoricalContext] = None,
    ) -> Optional[AnalysisResponse]:
        """
        POST the batch for classification. Transient failures and non-2xx
        answers are retried with backoff; the last error is raised once the
        budget is spent. Cancelling the awaiting task aborts the request.
        """
        logger.info("Starting analysis for %d events", len(events))
        request = self.build_request(events, context)
        body = json.dumps(request.to_json_dict()).encode("utf-8")

        response = await self.executor.execute(
            lambda: self._post(body),
            max_attempts=self.settings.analysis_max_retries,
            base_delay=self.settings.analysis_retry_base_delay_seconds,
        )

        try:
            payload = response.json()
            if payload is None:
                logger.warning("Analysis API returned an empty response")
                return None
            parsed = AnalysisResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise AnalysisResponseError(
                f"Unreadable analysis response: {e}", self.endpoint
            ) from e

        logger.info(
            "Analysis completed with %d results for %d events",
            len(parsed.analyzed_logs),
            len(events),
        )
        return parsed

    # ---- results ----------------------------------------------------------

    def process_results(
        self,
        original_events: List[ErrorEvent],
        response: Optional[AnalysisResponse],
        analyzed_at: Optional[datetime] = None,
    ) -> List[ErrorEvent]:
        """
        New list of events with valid results applied. An event without a
        result, or with an invalid one, comes back unchanged; a result is
        applied completely or not at all.
        """
        results = response.results_by_log_id() if response else {}
        if not results:
            logger.warning("No analysis results received")
            return [e.model_copy() for e in original_events]

        analyzed_at = analyzed_at or utcnow()
        processed: List[ErrorEvent] = []
        applied = 0

        for event in original_events:
            result = results.get(event.id)
            if result is None:
                logger.warning("No analysis result found for event %s", event.id)
                processed.append(event.model_copy())
                continue

            checked = _validated(result)
            if checked is None:
                logger.warning("Invalid analysis result for event %s, skipping", event.id)
                processed.append(event.model_copy())
                continue

            severity, priority = checked
            processed.append(
                event.with_analysis(
                    severity=severity,
                    priority=priority,
                    reasoning=result.reasoning,
                    potential_fix=result.potential_fix or "",
                    analyzed_at=analyzed_at,
                )
            )
            applied += 1
            logger.debug(
                "Updated event %s: severity=%s priority=%s",
                event.id,
                severity.value,
                priority.value,
            )

        logger.info(
            "Processed analysis results: %d of %d events analyzed",
            applied,
            len(original_events),
        )
        return processed

    def update_store(self, analyzed_events: List[ErrorEvent], partition_key: str) -> None:
        """
        Merge analysis fields into the stored partition. Existing events keep
        everything but their analysis fields, unknown ids are added, and
        untouched events stay as they are. Applying the same input twice
        gives the same partition.
        """
        logger.info(
            "Updating partition %s with analysis results for %d events",
            partition_key,
            len(analyzed_events),
        )
        incoming = {e.id: e for e in analyzed_events}

        def _merge(existing: List[ErrorEvent]) -> List[ErrorEvent]:
            merged: List[ErrorEvent] = []
            seen = set()
            for current in existing:
                update = incoming.get(current.id)
                if update is not None:
                    current = current.model_copy(update=update.analysis_update())
                    seen.add(current.id)
                merged.append(current)
            merged.extend(e for e_id, e in incoming.items() if e_id not in seen)
            merged.sort(key=lambda e: e.timestamp)
            return merged

        self.store.update(partition_key, _merge)
