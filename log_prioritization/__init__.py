"""Daily AI prioritization of application error logs."""

__version__ = "0.1.0"
