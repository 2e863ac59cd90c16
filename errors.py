"""
errors.py - Exceptions and failure classes for the search engine.
"""

from typing import Optional

# Failure classes for fetch errors
TRANSIENT = "transient"  # retry same strategy with backoff
BLOCKED = "blocked"      # fall back to the next strategy
FATAL = "fatal"          # abort the source

RETRYABLE = (TRANSIENT,)


class SearchError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(SearchError):
    """Search criteria rejected before any source is contacted."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "code": "VALIDATION_ERROR", "field": self.field}


class FetchError(SearchError):
    """A classified failure from one fetch attempt (or a whole fallback chain)."""

    def __init__(
        self,
        message: str,
        kind: str = TRANSIENT,
        strategy: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.strategy = strategy
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE

    def __str__(self):
        prefix = f"{self.strategy}: " if self.strategy else ""
        return f"{prefix}{self.kind}: {self.message}"


class StrategyUnavailable(FetchError):
    """The strategy is not configured (e.g. no API key); try the next one."""

    def __init__(self, message: str, strategy: Optional[str] = None):
        super().__init__(message, kind=BLOCKED, strategy=strategy)


class FetchCancelled(SearchError):
    """The job was cancelled while a source was waiting to fetch."""


class JobNotFoundError(SearchError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobAccessDenied(SearchError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} belongs to another user")
        self.job_id = job_id
