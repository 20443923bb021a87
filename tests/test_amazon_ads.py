"""Tests for services/amazon_ads.py — ingestion, timeframes, summaries."""
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from commerce_ingest.db.models import AmazonSpAd, Organization
from commerce_ingest.exceptions import IncompleteItemError, ReportTimeoutError
from commerce_ingest.services.amazon_ads import (
    AmazonAdsService,
    campaign_breakdown,
    existing_dates,
    performance_summary,
    resolve_timeframe,
)


def _json_resp(data):
    r = MagicMock()
    r.json.return_value = data
    return r


def _rows():
    return [
        {"campaignId": 1001, "campaignName": "Brand", "impressions": 120, "clicks": 6, "cost": 3.2, "sales7d": 12.0},
        {"campaignId": 1002, "campaignName": "Generic", "impressions": 80, "clicks": 1, "cost": 0.4},
    ]


# ── ingest_date ──────────────────────────────────────────────────────

def test_ingest_date(mock_client, session, fake_pacing):
    mock_client.post.return_value = _json_resp({"reportId": "r1"})
    mock_client.get.side_effect = [
        _json_resp({"status": "PENDING"}),
        _json_resp({"status": "COMPLETED", "url": "https://s3/r1.json.gz"}),
    ]
    service = AmazonAdsService(mock_client, session, 1, pacing=fake_pacing, sleep=MagicMock())

    with patch("commerce_ingest.services.amazon_ads.download_and_parse", return_value=_rows()) as dl:
        stored = service.ingest_date("2025-03-01")

    assert stored == 2
    dl.assert_called_once_with("https://s3/r1.json.gz", "GZIP")
    row = session.scalar(select(AmazonSpAd).where(AmazonSpAd.campaign_id == "1001"))
    assert row.date == date(2025, 3, 1)
    assert row.sales_7d == 12.0
    assert service.existing_dates() == {"2025-03-01"}


def test_ingest_date_twice_is_idempotent(mock_client, session, fake_pacing):
    service = AmazonAdsService(mock_client, session, 1, pacing=fake_pacing, sleep=MagicMock())
    for _ in range(2):
        mock_client.post.return_value = _json_resp({"reportId": "r1"})
        mock_client.get.side_effect = [_json_resp({"status": "COMPLETED", "url": "u"})]
        with patch("commerce_ingest.services.amazon_ads.download_and_parse", return_value=_rows()):
            service.ingest_date("2025-03-01")

    assert len(session.scalars(select(AmazonSpAd)).all()) == 2


def test_ingest_date_row_failure_discards_the_day(mock_client, session, fake_pacing):
    mock_client.post.return_value = _json_resp({"reportId": "r1"})
    mock_client.get.side_effect = [_json_resp({"status": "COMPLETED", "url": "u"})]
    rows = [
        {"campaignId": 1, "campaignName": "Good", "impressions": 5},
        {"campaignId": 2, "campaignName": "Bad", "impressions": {"bad": 1}},
    ]
    service = AmazonAdsService(mock_client, session, 1, pacing=fake_pacing, sleep=MagicMock())

    with patch("commerce_ingest.services.amazon_ads.download_and_parse", return_value=rows):
        with pytest.raises(IncompleteItemError, match="1 of 2 rows failed") as exc:
            service.ingest_date("2025-03-01")

    assert exc.value.row_errors == 1
    assert session.scalars(select(AmazonSpAd)).all() == []
    assert service.existing_dates() == set()


def test_ingest_date_timeout(mock_client, session, fake_pacing):
    pacing = fake_pacing.model_copy(update={"ads_max_polls": 2})
    mock_client.post.return_value = _json_resp({"reportId": "r1"})
    mock_client.get.return_value = _json_resp({"status": "PENDING"})
    service = AmazonAdsService(mock_client, session, 1, pacing=pacing, sleep=MagicMock())

    with pytest.raises(ReportTimeoutError):
        service.ingest_date("2025-03-01")
    assert mock_client.get.call_count == 2


def test_existing_dates_scoped_to_org(session):
    session.add(Organization(id=2, name="Other"))
    session.add(AmazonSpAd(org_id=1, date=date(2025, 3, 1), campaign_id="c1"))
    session.add(AmazonSpAd(org_id=2, date=date(2025, 3, 2), campaign_id="c1"))
    session.commit()

    assert existing_dates(session, 1) == {"2025-03-01"}


# ── resolve_timeframe ────────────────────────────────────────────────

TODAY = date(2025, 3, 15)


@pytest.mark.parametrize("timeframe,expected", [
    ("daily", ("2025-03-15", "2025-03-15")),
    ("monthly", ("2025-03-01", "2025-03-15")),
    ("yearly", ("2025-01-01", "2025-03-15")),
])
def test_resolve_timeframe(timeframe, expected):
    assert resolve_timeframe(timeframe, today=TODAY) == expected


def test_resolve_custom():
    assert resolve_timeframe("custom", "2025-02-01", "2025-02-28") == ("2025-02-01", "2025-02-28")


def test_resolve_custom_requires_dates():
    with pytest.raises(ValueError, match="required for custom"):
        resolve_timeframe("custom", "2025-02-01")


def test_resolve_invalid():
    with pytest.raises(ValueError, match="Invalid timeframe"):
        resolve_timeframe("weekly")


# ── summaries ────────────────────────────────────────────────────────

def _seed(session):
    for cid, name, day, cost, sales in [
        ("c1", "Brand", date(2025, 3, 1), 10.0, 40.0),
        ("c2", "Generic", date(2025, 3, 1), 6.0, 0.0),
        ("c2", "Generic", date(2025, 3, 20), 99.0, 1.0),
    ]:
        session.add(AmazonSpAd(org_id=1, campaign_id=cid, campaign_name=name, date=day, cost=cost, sales_7d=sales))
    session.commit()


def test_performance_summary(session):
    _seed(session)
    summary = performance_summary(session, 1, "2025-03-01", "2025-03-15")

    assert summary["totalCost"] == 16.0
    assert summary["totalSales"] == 40.0
    assert summary["acos"] == 40.0
    assert summary["campaignCount"] == 2


def test_performance_summary_empty_range(session):
    summary = performance_summary(session, 1, "2024-01-01", "2024-01-31")
    assert summary["totalCost"] == 0.0
    assert summary["acos"] == 0.0
    assert summary["campaignCount"] == 0


def test_campaign_breakdown_zero_sales(session):
    _seed(session)
    rows = campaign_breakdown(session, 1, "2025-03-01", "2025-03-15")

    assert [r["campaignId"] for r in rows] == ["c1", "c2"]
    assert rows[1]["acos"] == 0.0
