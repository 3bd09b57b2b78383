# log_prioritization/app/errors.py

from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint


class AnalysisHTTPError(AnalysisError):
    """Non-2xx answer from the analysis endpoint. Retryable."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        endpoint: Optional[str] = None,
    ):
        super().__init__(message, endpoint)
        self.status_code = status_code
        self.body = body


class AnalysisTimeoutError(AnalysisError, TimeoutError):
    """The analysis request exceeded the configured timeout."""


class AnalysisResponseError(AnalysisError):
    """The endpoint answered 2xx but the body could not be understood."""
