"""SP-API Sales & Traffic (by child ASIN) ingestion."""

from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from commerce_ingest.client import SpApiClient
from commerce_ingest.config import Pacing
from commerce_ingest.db.models import AmazonSalesTraffic
from commerce_ingest.db.upsert import upsert_rows
from commerce_ingest.exceptions import IncompleteItemError
from commerce_ingest.normalize import normalize_sales_traffic_entry, to_date
from commerce_ingest.retry import RetryPolicy
from commerce_ingest.services.reporting import (
    ReportPoller,
    SALES_AND_TRAFFIC,
    SpApiReportSource,
    download_and_parse,
)

logger = logging.getLogger(__name__)


class SalesTrafficService:
    """Requests one single-day report per date and stores its ASIN rows."""

    def __init__(
        self,
        client: SpApiClient,
        session: Session,
        org_id: int,
        marketplace_id: str,
        pacing: Pacing | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        pacing = pacing or Pacing()
        self._session = session
        self._org_id = org_id
        self._source = SpApiReportSource(client, marketplace_id, SALES_AND_TRAFFIC)
        self._poller = ReportPoller(
            poll_interval=pacing.sp_poll_interval,
            max_polls=pacing.sp_max_polls,
            rate_limit_policy=RetryPolicy.linear(pacing.rate_limit_sleep, 10),
            sleep=sleep,
        )

    def existing_dates(self) -> set[str]:
        dates = self._session.scalars(
            select(AmazonSalesTraffic.date).where(AmazonSalesTraffic.org_id == self._org_id).distinct()
        ).all()
        return {d.isoformat() for d in dates}

    def ingest_date(self, report_date: str) -> int:
        report_id = self._source.create_report(report_date, report_date)
        logger.info("Sales & Traffic report %s created for %s", report_id, report_date)
        ready = self._poller.poll_until_ready(self._source, report_id)
        document = download_and_parse(ready.url, ready.compression)

        entries = (document.get("salesAndTrafficByAsin") or []) if isinstance(document, dict) else []
        values = [normalize_sales_traffic_entry(entry, report_date, self._org_id) for entry in entries]
        result = upsert_rows(self._session, AmazonSalesTraffic, values)
        if result.errors:
            logger.warning("%d of %d ASIN rows for %s failed to upsert", result.errors, len(values), report_date)
            self._discard(report_date)
            raise IncompleteItemError(
                f"{result.errors} of {len(values)} ASIN rows failed to store: {result.error_messages[0]}",
                row_errors=result.errors,
            )
        return result.upserted

    def _discard(self, report_date: str) -> None:
        self._session.execute(
            delete(AmazonSalesTraffic)
            .where(AmazonSalesTraffic.org_id == self._org_id, AmazonSalesTraffic.date == to_date(report_date))
            .execution_options(synchronize_session=False)
        )
        self._session.commit()
