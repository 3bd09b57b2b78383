# log_prioritization/app/schemas.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError, field_validator

from log_prioritization.models.base import CamelModel, as_utc, utcnow
from log_prioritization.models.event import ErrorEvent

logger = logging.getLogger(__name__)


# ----------------------------
# Historical context sent with every request
# ----------------------------

class ErrorPattern(CamelModel):
    pattern: str
    priority: Optional[str] = None
    frequency: int = 0
    last_occurrence: datetime


class HistoricalContext(CamelModel):
    previous_analyses: List[str] = Field(default_factory=list)
    frequent_errors: List[str] = Field(default_factory=list)
    resolved_issues: List[str] = Field(default_factory=list)
    previous_analysis_results: List[ErrorEvent] = Field(default_factory=list)
    error_patterns: List[ErrorPattern] = Field(default_factory=list)
    analysis_date: datetime = Field(default_factory=utcnow)


# ----------------------------
# Outbound request
# ----------------------------

class LogEntry(CamelModel):
    id: str
    timestamp: datetime
    message: str = ""
    stack_trace: str = ""
    source: str = ""

    @classmethod
    def from_event(cls, event: ErrorEvent) -> "LogEntry":
        return cls(
            id=event.id,
            timestamp=event.timestamp,
            message=event.message,
            stack_trace=event.stack_trace or "",
            source=event.source,
        )


class AnalysisParameters(CamelModel):
    include_severity_classification: bool = True
    include_priority_assignment: bool = True
    include_reasoning_explanation: bool = True
    max_response_time_seconds: int = Field(default=30, alias="maxResponseTime")


class AnalysisRequest(CamelModel):
    logs: List[LogEntry] = Field(default_factory=list)
    context: HistoricalContext = Field(default_factory=HistoricalContext)
    parameters: AnalysisParameters = Field(default_factory=AnalysisParameters)


# ----------------------------
# Inbound response
# ----------------------------

class AnalyzedLog(CamelModel):
    # Only the id is required. Everything else is checked per event when
    # results are applied, so one bad entry cannot reject the response.
    log_id: str
    severity: Optional[str] = None
    priority: Optional[str] = None
    reasoning: Optional[str] = None
    potential_fix: Optional[str] = None
    confidence_score: Optional[float] = None


class AnalysisResponse(CamelModel):
    analyzed_logs: List[AnalyzedLog] = Field(default_factory=list)
    overall_assessment: str = ""
    recommendations: List[str] = Field(default_factory=list)
    analysis_timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("analyzed_logs", mode="before")
    @classmethod
    def _skip_unreadable_results(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return v
        readable = []
        for raw in v:
            try:
                readable.append(AnalyzedLog.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable analysis result: %s", e.errors(include_url=False)
                )
        return readable

    @field_validator("recommendations", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("analysis_timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def results_by_log_id(self) -> Dict[str, AnalyzedLog]:
        # last entry wins on duplicate ids
        return {result.log_id: result for result in self.analyzed_logs}


# ----------------------------
# Statistics for dashboards
# ----------------------------

class DateRange(CamelModel):
    from_date: datetime
    to_date: datetime


class EventStatistics(CamelModel):
    total_logs: int = 0
    analyzed_logs: int = 0
    unanalyzed_logs: int = 0
    severity_breakdown: Dict[str, int] = Field(default_factory=dict)
    priority_breakdown: Dict[str, int] = Field(default_factory=dict)
    today_count: int = 0
    week_count: int = 0
    month_count: int = 0
    date_range: DateRange
    generated_at: datetime = Field(default_factory=utcnow)
