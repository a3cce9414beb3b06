"""Error taxonomy for the workflow health pipeline."""

from __future__ import annotations


class WorkflowHealthError(Exception):
    """Base exception for pipeline failures."""


class ConfigurationError(WorkflowHealthError):
    """Raised at startup when required configuration is missing or invalid."""


class InvalidInputError(WorkflowHealthError):
    """Raised when the requested repository identifier is malformed."""


class UpstreamError(WorkflowHealthError):
    """Raised when the GitHub API answers with a non-2xx status or is unreachable."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        rate_limited: bool = False,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.rate_limited = rate_limited
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        """Transport failures, 5xx responses and rate limits may succeed later."""
        if self.rate_limited or self.status is None:
            return True
        return self.status >= 500

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"GitHub API returned {self.status}: {self.message}"


class SchemaError(WorkflowHealthError):
    """Raised when an external payload does not match the expected shape."""


class InsightUnavailableError(WorkflowHealthError):
    """Raised when narrative generation fails or times out."""


class AnalysisTimeoutError(WorkflowHealthError):
    """Raised when a whole analysis request exceeds its time budget."""
