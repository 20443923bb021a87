"""Tests for services/reporting.py — report sources, poller, download."""
import gzip
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from commerce_ingest.client import CONTENT_TYPES
from commerce_ingest.exceptions import (
    ApiError,
    DownloadError,
    RateLimitedError,
    ReportCreationError,
    ReportFailedError,
    ReportTimeoutError,
)
from commerce_ingest.models.reports import ReadyReport, ReportStatus
from commerce_ingest.retry import RetryPolicy
from commerce_ingest.services.reporting import (
    FBA_INVENTORY,
    AdsReportSource,
    ReportPoller,
    SpApiReportSource,
    download_and_parse,
    download_text,
    fetch_report,
)


def _json_resp(data):
    r = MagicMock()
    r.json.return_value = data
    return r


class FakeSource:
    """Report source returning a scripted sequence of statuses (or exceptions)."""

    def __init__(self, statuses):
        self._statuses = list(statuses)
        self.status_calls = 0

    def create_report(self, start_date=None, end_date=None):
        return "r1"

    def get_status(self, report_id):
        self.status_calls += 1
        item = self._statuses.pop(0)
        if isinstance(item, Exception):
            raise item
        return ReportStatus(report_id=report_id, status=item, url="https://s3/report.json.gz" if item == "COMPLETED" else None)

    def resolve_download(self, status):
        return ReadyReport(report_id=status.report_id, url=status.url, compression="GZIP")


# ── AdsReportSource ──────────────────────────────────────────────────

def test_ads_create_report_body(mock_client):
    mock_client.post.return_value = _json_resp({"reportId": "abc-123"})

    report_id = AdsReportSource(mock_client).create_report("2025-03-01", "2025-03-01")

    assert report_id == "abc-123"
    path = mock_client.post.call_args[0][0]
    kwargs = mock_client.post.call_args[1]
    assert path == "/reporting/reports"
    assert kwargs["content_type"] == CONTENT_TYPES["reports_request"]
    body = kwargs["body"]
    assert body["name"] == "spCampaigns 2025-03-01"
    assert body["startDate"] == body["endDate"] == "2025-03-01"
    assert body["configuration"]["reportTypeId"] == "spCampaigns"
    assert body["configuration"]["groupBy"] == ["campaign"]
    assert body["configuration"]["timeUnit"] == "DAILY"
    assert body["configuration"]["format"] == "GZIP_JSON"
    assert "campaignId" in body["configuration"]["columns"]


def test_ads_create_report_error(mock_client):
    mock_client.post.side_effect = ApiError("API error (HTTP 400): bad", status=400, body="bad columns")

    with pytest.raises(ReportCreationError, match="HTTP 400") as exc:
        AdsReportSource(mock_client).create_report("2025-03-01")
    assert exc.value.status == 400


def test_ads_create_report_requires_date(mock_client):
    with pytest.raises(ValueError):
        AdsReportSource(mock_client).create_report()


def test_ads_get_status(mock_client):
    mock_client.get.return_value = _json_resp({"status": "COMPLETED", "url": "https://s3/x"})

    status = AdsReportSource(mock_client).get_status("r1")
    assert status.status == "COMPLETED"
    assert status.url == "https://s3/x"
    mock_client.get.assert_called_once_with("/reporting/reports/r1")


def test_ads_resolve_download_is_gzip(mock_client):
    ready = AdsReportSource(mock_client).resolve_download(ReportStatus(report_id="r1", status="COMPLETED", url="u"))
    assert ready.compression == "GZIP"


def test_ads_resolve_download_without_url(mock_client):
    with pytest.raises(DownloadError, match="no download URL"):
        AdsReportSource(mock_client).resolve_download(ReportStatus(report_id="r1", status="COMPLETED"))


# ── SpApiReportSource ────────────────────────────────────────────────

def test_sp_create_sales_traffic(mock_client):
    mock_client.post.return_value = _json_resp({"reportId": 555})

    report_id = SpApiReportSource(mock_client, "A1F83G8C2ARO7P").create_report("2025-03-01", "2025-03-01")

    assert report_id == "555"
    body = mock_client.post.call_args[1]["body"]
    assert body["reportType"] == "GET_SALES_AND_TRAFFIC_REPORT"
    assert body["marketplaceIds"] == ["A1F83G8C2ARO7P"]
    assert body["dataStartTime"] == "2025-03-01T00:00:00Z"
    assert body["dataEndTime"] == "2025-03-01T23:59:59Z"
    assert body["reportOptions"] == {"dateGranularity": "DAY", "asinGranularity": "CHILD"}


def test_sp_create_inventory_has_no_dates(mock_client):
    mock_client.post.return_value = _json_resp({"reportId": "9"})

    SpApiReportSource(mock_client, "A1F83G8C2ARO7P", FBA_INVENTORY).create_report()

    body = mock_client.post.call_args[1]["body"]
    assert body["reportType"] == FBA_INVENTORY
    assert "dataStartTime" not in body
    assert "reportOptions" not in body


def test_sp_status_and_document(mock_client):
    mock_client.get.side_effect = [
        _json_resp({"processingStatus": "DONE", "reportDocumentId": "doc-1"}),
        _json_resp({"url": "https://s3/doc", "compressionAlgorithm": "GZIP"}),
    ]
    source = SpApiReportSource(mock_client, "A1F83G8C2ARO7P")

    status = source.get_status("r1")
    ready = source.resolve_download(status)

    assert status.status == "DONE"
    assert ready.url == "https://s3/doc"
    assert ready.compression == "GZIP"
    assert mock_client.get.call_args_list[1][0][0] == "/reports/2021-06-30/documents/doc-1"


def test_sp_resolve_without_document_id(mock_client):
    source = SpApiReportSource(mock_client, "A1F83G8C2ARO7P")
    with pytest.raises(DownloadError, match="no document id"):
        source.resolve_download(ReportStatus(report_id="r1", status="DONE"))


# ── ReportPoller ─────────────────────────────────────────────────────

def test_ready_after_n_pending_checks_makes_n_plus_one_calls():
    sleep = MagicMock()
    source = FakeSource(["PENDING", "PROCESSING", "PENDING", "COMPLETED"])

    ready = ReportPoller(poll_interval=5.0, max_polls=30, sleep=sleep).poll_until_ready(source, "r1")

    assert ready.url == "https://s3/report.json.gz"
    assert source.status_calls == 4
    assert sleep.call_count == 4
    sleep.assert_called_with(5.0)


def test_timeout_makes_no_extra_calls():
    sleep = MagicMock()
    source = FakeSource(["PENDING"] * 3)

    with pytest.raises(ReportTimeoutError, match="timed out after 3 polls"):
        ReportPoller(poll_interval=5.0, max_polls=3, sleep=sleep).poll_until_ready(source, "r1")
    assert source.status_calls == 3


def test_failed_status_raises():
    source = FakeSource(["PENDING", "FAILURE"])

    with pytest.raises(ReportFailedError, match="r1 failed with status FAILURE"):
        ReportPoller(poll_interval=0, max_polls=5, sleep=MagicMock()).poll_until_ready(source, "r1")


def test_fatal_status_raises():
    source = FakeSource(["FATAL"])

    with pytest.raises(ReportFailedError):
        ReportPoller(poll_interval=0, max_polls=5, sleep=MagicMock()).poll_until_ready(source, "r1")


def test_rate_limit_does_not_consume_a_poll():
    sleep = MagicMock()
    throttled = RateLimitedError("429", status=429)
    source = FakeSource(["PENDING", throttled, throttled, "COMPLETED"])
    poller = ReportPoller(
        poll_interval=5.0, max_polls=2,
        rate_limit_policy=RetryPolicy.linear(10.0, max_attempts=10),
        sleep=sleep,
    )

    ready = poller.poll_until_ready(source, "r1")

    assert ready.report_id == "r1"
    assert source.status_calls == 4
    assert [c.args[0] for c in sleep.call_args_list] == [5.0, 5.0, 10.0, 10.0]


def test_rate_limit_retries_are_bounded():
    throttled = RateLimitedError("429", status=429)
    source = FakeSource([throttled] * 3)
    poller = ReportPoller(
        poll_interval=0, max_polls=30,
        rate_limit_policy=RetryPolicy.linear(0, max_attempts=3),
        sleep=MagicMock(),
    )

    with pytest.raises(RateLimitedError):
        poller.poll_until_ready(source, "r1")
    assert source.status_calls == 3


# ── download ─────────────────────────────────────────────────────────

def _patch_http(response=None, error=None):
    http = MagicMock()
    http.__enter__.return_value = http
    if error:
        http.get.side_effect = error
    else:
        http.get.return_value = response
    return patch("commerce_ingest.services.reporting.httpx.Client", return_value=http)


def _http_resp(status_code=200, content=b""):
    r = MagicMock()
    r.status_code = status_code
    r.content = content
    return r


def test_download_gzip_json():
    rows = [{"campaignId": "1", "clicks": 3}]
    with _patch_http(_http_resp(200, gzip.compress(json.dumps(rows).encode()))):
        assert download_and_parse("https://s3/x", "GZIP") == rows


def test_download_plain_json():
    with _patch_http(_http_resp(200, b'{"a": 1}')):
        assert download_and_parse("https://s3/x") == {"a": 1}


def test_download_http_error_status():
    with _patch_http(_http_resp(403, b"denied")):
        with pytest.raises(DownloadError, match="HTTP 403"):
            download_and_parse("https://s3/x")


def test_download_network_error():
    with _patch_http(error=httpx.ConnectError("refused")):
        with pytest.raises(DownloadError, match="Download failed"):
            download_and_parse("https://s3/x")


def test_download_bad_gzip():
    with _patch_http(_http_resp(200, b"not gzip")):
        with pytest.raises(DownloadError, match="decompress"):
            download_and_parse("https://s3/x", "GZIP")


def test_download_bad_json():
    with _patch_http(_http_resp(200, b"<html>")):
        with pytest.raises(DownloadError, match="not valid JSON"):
            download_and_parse("https://s3/x")


def test_download_text():
    with _patch_http(_http_resp(200, "sku\tafn-total-quantity\n".encode())):
        assert download_text("https://s3/x").startswith("sku")


# ── fetch_report ─────────────────────────────────────────────────────

def test_fetch_report_chains_steps():
    source = FakeSource(["COMPLETED"])
    poller = ReportPoller(poll_interval=0, max_polls=3, sleep=MagicMock())

    with patch("commerce_ingest.services.reporting.download_and_parse", return_value=[{"x": 1}]) as dl:
        assert fetch_report(source, poller, "2025-03-01", "2025-03-01") == [{"x": 1}]
    dl.assert_called_once_with("https://s3/report.json.gz", "GZIP")
