"""Amazon Ads Sponsored Products ingestion and reporting."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from commerce_ingest.client import AdsApiClient
from commerce_ingest.config import Pacing
from commerce_ingest.db.models import AmazonSpAd
from commerce_ingest.db.upsert import UpsertResult, upsert_rows
from commerce_ingest.exceptions import IncompleteItemError
from commerce_ingest.models.reports import ReportSpec, SP_CAMPAIGNS
from commerce_ingest.normalize import normalize_sp_ads_row, to_date
from commerce_ingest.retry import RetryPolicy
from commerce_ingest.services.reporting import (
    AdsReportSource,
    ReportPoller,
    download_and_parse,
)

logger = logging.getLogger(__name__)

# Consecutive 429s tolerated on a single status check
MAX_RATE_LIMIT_RETRIES = 10


def ads_poller(pacing: Pacing, sleep: Callable[[float], None] = time.sleep) -> ReportPoller:
    return ReportPoller(
        poll_interval=pacing.ads_poll_interval,
        max_polls=pacing.ads_max_polls,
        rate_limit_policy=RetryPolicy.linear(pacing.rate_limit_sleep, MAX_RATE_LIMIT_RETRIES),
        sleep=sleep,
    )


def existing_dates(session: Session, org_id: int) -> set[str]:
    """Dates that already have at least one amazon_sp_ads row for the org."""
    dates = session.scalars(select(AmazonSpAd.date).where(AmazonSpAd.org_id == org_id).distinct()).all()
    return {d.isoformat() for d in dates}


def store_report_rows(session: Session, rows: list[dict[str, Any]], org_id: int, report_date: str | date) -> UpsertResult:
    """Normalize and upsert one day of spCampaigns rows."""
    values = [normalize_sp_ads_row(row, org_id, report_date) for row in rows]
    result = upsert_rows(session, AmazonSpAd, values)
    if result.errors:
        logger.warning("%d of %d rows for %s failed to upsert", result.errors, len(values), report_date)
    return result


def discard_date(session: Session, org_id: int, report_date: str | date) -> None:
    session.execute(
        delete(AmazonSpAd)
        .where(AmazonSpAd.org_id == org_id, AmazonSpAd.date == to_date(report_date))
        .execution_options(synchronize_session=False)
    )
    session.commit()


class AmazonAdsService:
    """Fetches one day of campaign metrics at a time and stores them."""

    def __init__(
        self,
        client: AdsApiClient,
        session: Session,
        org_id: int,
        pacing: Pacing | None = None,
        spec: ReportSpec = SP_CAMPAIGNS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._session = session
        self._org_id = org_id
        self._source = AdsReportSource(client, spec)
        self._poller = ads_poller(pacing or Pacing(), sleep)

    def existing_dates(self) -> set[str]:
        return existing_dates(self._session, self._org_id)

    def ingest_date(self, report_date: str) -> int:
        """Request, wait for, download and store the report for one day.

        If any row fails the whole day is removed again and IncompleteItemError
        is raised, so the date still counts as missing on the next run.
        """
        report_id = self._source.create_report(report_date, report_date)
        logger.info("Report %s created for %s", report_id, report_date)
        ready = self._poller.poll_until_ready(self._source, report_id)
        rows = download_and_parse(ready.url, ready.compression)
        if not isinstance(rows, list):
            rows = []
        result = store_report_rows(self._session, rows, self._org_id, report_date)
        if result.errors:
            discard_date(self._session, self._org_id, report_date)
            raise IncompleteItemError(
                f"{result.errors} of {len(rows)} rows failed to store: {result.error_messages[0]}",
                row_errors=result.errors,
            )
        return result.upserted


def resolve_timeframe(
    timeframe: str,
    start_date: str | None = None,
    end_date: str | None = None,
    today: date | None = None,
) -> tuple[str, str]:
    """Turn daily / monthly / yearly / custom into an inclusive date range."""
    today = today or date.today()
    if timeframe == "daily":
        return today.isoformat(), today.isoformat()
    if timeframe == "monthly":
        return today.replace(day=1).isoformat(), today.isoformat()
    if timeframe == "yearly":
        return today.replace(month=1, day=1).isoformat(), today.isoformat()
    if timeframe == "custom":
        if not start_date or not end_date:
            raise ValueError("start_date and end_date required for custom timeframe")
        return start_date, end_date
    raise ValueError(f"Invalid timeframe: {timeframe}")


def _acos(cost: float, sales: float) -> float:
    return round((cost / sales) * 100, 2) if sales > 0 else 0.0


def performance_summary(session: Session, org_id: int, start_date: str, end_date: str) -> dict[str, Any]:
    """Totals and ACoS over stored campaign rows.

    Returns:
        Summary dict with totals and ACoS.
    """
    start, end = to_date(start_date), to_date(end_date)
    totals = session.execute(
        select(
            func.coalesce(func.sum(AmazonSpAd.cost), 0),
            func.coalesce(func.sum(AmazonSpAd.sales_7d), 0),
            func.coalesce(func.sum(AmazonSpAd.impressions), 0),
            func.coalesce(func.sum(AmazonSpAd.clicks), 0),
            func.coalesce(func.sum(AmazonSpAd.purchases_7d), 0),
            func.count(func.distinct(AmazonSpAd.campaign_id)),
        ).where(AmazonSpAd.org_id == org_id, AmazonSpAd.date >= start, AmazonSpAd.date <= end)
    ).one()

    total_cost, total_sales, impressions, clicks, orders, campaigns = totals
    return {
        "orgId": org_id,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "totalCost": round(float(total_cost), 2),
        "totalSales": round(float(total_sales), 2),
        "totalImpressions": int(impressions),
        "totalClicks": int(clicks),
        "totalOrders": int(orders),
        "acos": _acos(float(total_cost), float(total_sales)),
        "campaignCount": int(campaigns),
    }


def campaign_breakdown(session: Session, org_id: int, start_date: str, end_date: str) -> list[dict[str, Any]]:
    """Per-campaign totals and ACoS, highest spend first."""
    start, end = to_date(start_date), to_date(end_date)
    cost = func.coalesce(func.sum(AmazonSpAd.cost), 0)
    rows = session.execute(
        select(
            AmazonSpAd.campaign_id,
            func.max(AmazonSpAd.campaign_name),
            cost,
            func.coalesce(func.sum(AmazonSpAd.sales_7d), 0),
            func.coalesce(func.sum(AmazonSpAd.impressions), 0),
            func.coalesce(func.sum(AmazonSpAd.clicks), 0),
        )
        .where(AmazonSpAd.org_id == org_id, AmazonSpAd.date >= start, AmazonSpAd.date <= end)
        .group_by(AmazonSpAd.campaign_id)
        .order_by(cost.desc())
    ).all()

    return [
        {
            "campaignId": campaign_id,
            "campaignName": name or campaign_id,
            "cost": round(float(spend), 2),
            "sales": round(float(sales), 2),
            "impressions": int(impressions),
            "clicks": int(clicks),
            "acos": _acos(float(spend), float(sales)),
        }
        for campaign_id, name, spend, sales, impressions, clicks in rows
    ]
