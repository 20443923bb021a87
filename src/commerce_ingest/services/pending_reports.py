"""Two-phase Amazon Ads collection.

``request`` creates reports for a fixed set of lookback days and records
them as pending. ``collect`` runs later, checks each pending report once,
and ingests the ones that are ready. Nothing blocks on a poll loop.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable

from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from commerce_ingest.client import AdsApiClient
from commerce_ingest.db.models import AmazonAdsPendingReport, utcnow
from commerce_ingest.exceptions import IngestError, RateLimitedError
from commerce_ingest.services.amazon_ads import store_report_rows
from commerce_ingest.services.reporting import (
    AdsReportSource,
    FAILED_STATUSES,
    READY_STATUSES,
    download_and_parse,
)

logger = logging.getLogger(__name__)

LOOKBACK_OFFSETS = (1, 3, 7, 14, 30)
RETENTION = timedelta(hours=24)


class RequestResult(BaseModel):
    requested: list[dict[str, str]] = Field(default_factory=list)
    errors: list[dict[str, str]] = Field(default_factory=list)


class CollectResult(BaseModel):
    collected: list[dict[str, Any]] = Field(default_factory=list)
    failures: list[dict[str, str]] = Field(default_factory=list)
    still_processing: list[str] = Field(default_factory=list)
    rate_limited: bool = False
    cleaned_up: int = 0


def lookback_dates(today: date | None = None, offsets: tuple[int, ...] = LOOKBACK_OFFSETS) -> list[str]:
    today = today or date.today()
    return [(today - timedelta(days=n)).isoformat() for n in offsets]


class PendingReportService:
    def __init__(
        self,
        client: AdsApiClient,
        session: Session,
        org_id: int,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._org_id = org_id
        self._source = AdsReportSource(client)
        self._now = now

    def request(self, dates: list[str] | None = None) -> RequestResult:
        """Create one report per lookback day and store it as pending."""
        result = RequestResult()
        for report_date in dates or lookback_dates(self._now().date()):
            try:
                report_id = self._source.create_report(report_date, report_date)
            except IngestError as e:
                logger.warning("Report request for %s failed: %s", report_date, e)
                result.errors.append({"reportDate": report_date, "error": str(e)})
                continue

            self._session.add(
                AmazonAdsPendingReport(
                    org_id=self._org_id,
                    report_id=report_id,
                    report_date=date.fromisoformat(report_date),
                    status="pending",
                    created_at=self._now(),
                )
            )
            self._session.commit()
            result.requested.append({"reportDate": report_date, "reportId": report_id})
        return result

    def pending(self) -> list[AmazonAdsPendingReport]:
        return list(
            self._session.scalars(
                select(AmazonAdsPendingReport)
                .where(AmazonAdsPendingReport.org_id == self._org_id, AmazonAdsPendingReport.status == "pending")
                .order_by(AmazonAdsPendingReport.id)
            )
        )

    def collect(self) -> CollectResult:
        """Check every pending report once.

        Ready reports are ingested and marked completed, failed ones are
        marked failed, anything else stays pending. A 429 stops the run so
        the rest are picked up next time.
        """
        result = CollectResult()
        for report in self.pending():
            report_date = report.report_date.isoformat()
            try:
                status = self._source.get_status(report.report_id)
                if status.status in READY_STATUSES and status.url:
                    ready = self._source.resolve_download(status)
                    rows = download_and_parse(ready.url, ready.compression)
                    stored = store_report_rows(self._session, rows if isinstance(rows, list) else [], self._org_id, report_date)
                    self._mark(report, "completed")
                    collected: dict[str, Any] = {"reportDate": report_date, "rows": stored.upserted}
                    if stored.errors:
                        collected["rowErrors"] = stored.errors
                    result.collected.append(collected)
                elif status.status in FAILED_STATUSES:
                    self._mark(report, "failed")
                    result.failures.append({"reportDate": report_date, "reason": status.failure_reason or "Unknown"})
                else:
                    result.still_processing.append(report_date)
            except RateLimitedError:
                logger.warning("Rate limited by Amazon Ads API, stopping collection")
                result.still_processing.append(report_date)
                result.rate_limited = True
                break
            except IngestError as e:
                self._mark(report, "failed")
                result.failures.append({"reportDate": report_date, "reason": str(e)})

        result.cleaned_up = self.cleanup()
        return result

    def cleanup(self) -> int:
        """Delete pending-report rows older than the retention window."""
        cutoff = self._now() - RETENTION
        deleted = self._session.execute(
            delete(AmazonAdsPendingReport)
            .where(AmazonAdsPendingReport.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        self._session.commit()
        return deleted.rowcount or 0

    def _mark(self, report: AmazonAdsPendingReport, status: str) -> None:
        report.status = status
        self._session.commit()
