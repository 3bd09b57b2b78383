# log_prioritization/app/clients/__init__.py

from .analysis import AnalysisClient
from log_prioritization.app.errors import (
    AnalysisError,
    AnalysisHTTPError,
    AnalysisResponseError,
    AnalysisTimeoutError,
)

__all__ = [
    "AnalysisClient",
    "AnalysisError",
    "AnalysisHTTPError",
    "AnalysisResponseError",
    "AnalysisTimeoutError",
]
