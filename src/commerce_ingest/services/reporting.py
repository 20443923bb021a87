"""Async report pipeline: create, poll, download.

Amazon Ads and SP-API both expose a create / status / download triad.
Each has a report source here; ReportPoller drives either one.
"""

from __future__ import annotations

import gzip
import json
import logging
import time
from typing import Any, Callable, Protocol

import httpx

from commerce_ingest.client import AdsApiClient, CONTENT_TYPES, SpApiClient
from commerce_ingest.exceptions import (
    ApiError,
    DownloadError,
    ReportCreationError,
    ReportFailedError,
    ReportTimeoutError,
)
from commerce_ingest.models.reports import (
    CreateReportRequest,
    ReadyReport,
    ReportConfiguration,
    ReportSpec,
    ReportStatus,
    SP_CAMPAIGNS,
    SpApiReportRequest,
)
from commerce_ingest.retry import RetryPolicy

logger = logging.getLogger(__name__)

REPORT_CT_REQUEST = CONTENT_TYPES["reports_request"]

READY_STATUSES = {"COMPLETED", "DONE"}
FAILED_STATUSES = {"FAILURE", "FAILED", "CANCELLED", "FATAL"}

SALES_AND_TRAFFIC = "GET_SALES_AND_TRAFFIC_REPORT"
FBA_INVENTORY = "GET_FBA_MYI_UNSUPPRESSED_INVENTORY_DATA"


class ReportSource(Protocol):
    def create_report(self, start_date: str | None = None, end_date: str | None = None) -> str: ...

    def get_status(self, report_id: str) -> ReportStatus: ...

    def resolve_download(self, status: ReportStatus) -> ReadyReport: ...


def _creation_error(error: ApiError) -> ReportCreationError:
    return ReportCreationError(
        f"Create report failed (HTTP {error.status}): {error.body or error}",
        status=error.status,
        body=error.body,
    )


class AdsReportSource:
    """Amazon Ads reporting v3, one ReportSpec per source."""

    def __init__(self, client: AdsApiClient, spec: ReportSpec = SP_CAMPAIGNS) -> None:
        self._client = client
        self._spec = spec

    def create_report(self, start_date: str | None = None, end_date: str | None = None) -> str:
        if start_date is None:
            raise ValueError("Amazon Ads reports need a start date")
        request = CreateReportRequest(
            name=f"{self._spec.report_type_id} {start_date}",
            start_date=start_date,
            end_date=end_date or start_date,
            configuration=ReportConfiguration.from_spec(self._spec),
        )
        try:
            response = self._client.post(
                "/reporting/reports",
                body=request.model_dump(by_alias=True, exclude_none=True),
                content_type=REPORT_CT_REQUEST,
            )
        except ApiError as e:
            raise _creation_error(e) from e
        return str(response.json()["reportId"])

    def get_status(self, report_id: str) -> ReportStatus:
        data = self._client.get(f"/reporting/reports/{report_id}").json()
        return ReportStatus(
            report_id=report_id,
            status=data.get("status", "UNKNOWN"),
            url=data.get("url"),
            failure_reason=data.get("failureReason"),
        )

    def resolve_download(self, status: ReportStatus) -> ReadyReport:
        if not status.url:
            raise DownloadError(f"Report {status.report_id} completed but no download URL provided")
        compression = "GZIP" if self._spec.format.startswith("GZIP") else None
        return ReadyReport(report_id=status.report_id, url=status.url, compression=compression)


class SpApiReportSource:
    """SP-API Reports 2021-06-30."""

    def __init__(
        self,
        client: SpApiClient,
        marketplace_id: str,
        report_type: str = SALES_AND_TRAFFIC,
        report_options: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._marketplace_id = marketplace_id
        self._report_type = report_type
        if report_options is None and report_type == SALES_AND_TRAFFIC:
            report_options = {"dateGranularity": "DAY", "asinGranularity": "CHILD"}
        self._report_options = report_options

    def create_report(self, start_date: str | None = None, end_date: str | None = None) -> str:
        request = SpApiReportRequest(
            report_type=self._report_type,
            marketplace_ids=[self._marketplace_id],
            data_start_time=f"{start_date}T00:00:00Z" if start_date else None,
            data_end_time=f"{end_date or start_date}T23:59:59Z" if start_date else None,
            report_options=self._report_options,
        )
        try:
            response = self._client.post(
                "/reports/2021-06-30/reports",
                body=request.model_dump(by_alias=True, exclude_none=True),
            )
        except ApiError as e:
            raise _creation_error(e) from e
        return str(response.json()["reportId"])

    def get_status(self, report_id: str) -> ReportStatus:
        data = self._client.get(f"/reports/2021-06-30/reports/{report_id}").json()
        return ReportStatus(
            report_id=report_id,
            status=data.get("processingStatus", "UNKNOWN"),
            document_id=data.get("reportDocumentId"),
        )

    def resolve_download(self, status: ReportStatus) -> ReadyReport:
        if not status.document_id:
            raise DownloadError(f"Report {status.report_id} is done but has no document id")
        data = self._client.get(f"/reports/2021-06-30/documents/{status.document_id}").json()
        if not data.get("url"):
            raise DownloadError(f"Report document {status.document_id} has no download URL")
        return ReadyReport(
            report_id=status.report_id,
            url=data["url"],
            compression=data.get("compressionAlgorithm"),
        )


class ReportPoller:
    """Polls a report until it is ready, failed, or out of budget.

    A 429 during a status check is retried under rate_limit_policy and does
    not count against max_polls.
    """

    def __init__(
        self,
        poll_interval: float,
        max_polls: int,
        rate_limit_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._rate_limit_policy = rate_limit_policy or RetryPolicy.linear(10.0, max_attempts=10)
        self._sleep = sleep

    def poll_until_ready(self, source: ReportSource, report_id: str) -> ReadyReport:
        """Sleep, check, repeat.

        Raises:
            ReportFailedError: The provider reported failure.
            ReportTimeoutError: Still not ready after max_polls checks.
            RateLimitedError: 429s outlasted the rate-limit policy.
        """
        for attempt in range(1, self._max_polls + 1):
            self._sleep(self._poll_interval)
            status = self._rate_limit_policy.call(
                lambda: source.get_status(report_id),
                sleep=self._sleep,
                description=f"Status check for report {report_id}",
            )

            if status.status in READY_STATUSES:
                return source.resolve_download(status)
            if status.status in FAILED_STATUSES:
                raise ReportFailedError(report_id, status.status, status.failure_reason)

            logger.info("Report %s is %s (poll %d/%d)", report_id, status.status, attempt, self._max_polls)

        raise ReportTimeoutError(
            f"Report {report_id} timed out after {self._max_polls} polls "
            f"({self._max_polls * self._poll_interval:.0f}s)"
        )


def _download(url: str, compression: str | None) -> bytes:
    try:
        with httpx.Client(timeout=120.0) as http:
            response = http.get(url)
    except httpx.HTTPError as e:
        raise DownloadError(f"Download failed: {e}") from e

    if not 200 <= response.status_code < 300:
        raise DownloadError(f"Download failed (HTTP {response.status_code})")

    content = response.content
    if compression and compression.upper() == "GZIP":
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as e:
            raise DownloadError(f"Could not decompress report: {e}") from e
    return content


def download_and_parse(url: str, compression: str | None = None) -> Any:
    """Download a pre-signed report URL and parse it as JSON."""
    content = _download(url, compression)
    try:
        return json.loads(content)
    except ValueError as e:
        raise DownloadError(f"Report is not valid JSON: {e}") from e


def download_text(url: str, compression: str | None = None) -> str:
    """Download a pre-signed report URL as text (e.g. TSV reports)."""
    content = _download(url, compression)
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DownloadError(f"Report is not valid UTF-8: {e}") from e


def fetch_report(source: ReportSource, poller: ReportPoller, start_date: str | None = None, end_date: str | None = None) -> Any:
    """Create, poll and download one JSON report."""
    report_id = source.create_report(start_date, end_date)
    ready = poller.poll_until_ready(source, report_id)
    return download_and_parse(ready.url, ready.compression)
