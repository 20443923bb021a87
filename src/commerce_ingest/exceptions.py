"""Exception hierarchy for the ingestion pipeline.

Setup errors abort a run before any work item starts. Everything else is
raised per item and counted by the backfill driver.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all pipeline errors."""


class SetupError(IngestError):
    """Missing or unusable configuration detected before the main loop."""


class CredentialsError(SetupError):
    """Credentials are missing, undecryptable or malformed."""


class AuthError(SetupError):
    """OAuth token refresh was rejected by the provider."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ApiError(IngestError):
    """Non-2xx response from an upstream API."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class RateLimitedError(ApiError):
    """HTTP 429 from an upstream API."""


class ReportCreationError(ApiError):
    """The create-async-report call was rejected."""


class ReportFailedError(IngestError):
    """The provider reported that an async report failed."""

    def __init__(self, report_id: str, status: str, reason: str | None = None) -> None:
        message = f"Report {report_id} failed with status {status}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.report_id = report_id
        self.status = status
        self.reason = reason


class ReportTimeoutError(IngestError):
    """The report was not ready within the poll budget."""


class DownloadError(IngestError):
    """The report document could not be downloaded or parsed."""


class IncompleteItemError(IngestError):
    """Some rows of a work item could not be stored.

    The rows that did store are removed again so the item stays missing and
    is picked up by the next run.
    """

    def __init__(self, message: str, row_errors: int = 0) -> None:
        super().__init__(message)
        self.row_errors = row_errors
