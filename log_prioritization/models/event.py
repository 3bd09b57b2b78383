# log_prioritization/models/event.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import Field, field_validator, model_validator

from log_prioritization.models.base import CamelModel, as_utc, optional_utc


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ResolutionStatus(str, Enum):
    PENDING = "Pending"
    RESOLVED = "Resolved"


# Fields owned by the analysis merge; nothing else may overwrite them.
ANALYSIS_FIELDS = (
    "severity",
    "priority",
    "ai_reasoning",
    "potential_fix",
    "analyzed_at",
    "is_analyzed",
)


class ErrorEvent(CamelModel):
    """
    One application error, as stored in a day partition.

    Created unanalyzed by ingestion. The daily pipeline fills in the
    analysis fields; resolution fields are set by operators.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime
    source: str = ""
    message: str = ""
    stack_trace: str = ""

    # analysis
    severity: Optional[Severity] = None
    priority: Optional[Priority] = None
    ai_reasoning: str = ""
    potential_fix: str = ""
    analyzed_at: Optional[datetime] = None
    is_analyzed: bool = False

    # resolution
    resolution_status: ResolutionStatus = ResolutionStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @field_validator("severity", "priority", mode="before")
    @classmethod
    def _blank_is_unset(cls, v: Any) -> Any:
        # older partitions store "" for "not analyzed yet"
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("stack_trace", "ai_reasoning", "potential_fix", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator("analyzed_at", "resolved_at")
    @classmethod
    def _optional_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return optional_utc(v)

    @model_validator(mode="after")
    def _analyzed_means_complete(self) -> "ErrorEvent":
        if self.is_analyzed:
            missing = [
                name
                for name, value in (
                    ("analyzedAt", self.analyzed_at),
                    ("severity", self.severity),
                    ("priority", self.priority),
                    ("aiReasoning", self.ai_reasoning.strip()),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"event {self.id} is marked analyzed but lacks {', '.join(missing)}"
                )
        return self

    def with_analysis(
        self,
        *,
        severity: Severity,
        priority: Priority,
        reasoning: str,
        potential_fix: str,
        analyzed_at: datetime,
    ) -> "ErrorEvent":
        """Return a copy carrying a complete analysis; self is left untouched."""
        return self.model_copy(
            update={
                "severity": severity,
                "priority": priority,
                "ai_reasoning": reasoning,
                "potential_fix": potential_fix or "",
                "analyzed_at": as_utc(analyzed_at),
                "is_analyzed": True,
            }
        )

    def analysis_update(self) -> dict[str, Any]:
        """The analysis fields of this event, keyed by attribute name."""
        return {name: getattr(self, name) for name in ANALYSIS_FIELDS}
