"""CLI tests for the ads-reports command group."""
import json
from unittest.mock import MagicMock, patch

from sqlalchemy import select
from typer.testing import CliRunner

from commerce_ingest.commands.ads_reports_cmd import app
from commerce_ingest.db.models import SyncLog
from commerce_ingest.exceptions import CredentialsError
from commerce_ingest.services.pending_reports import CollectResult, RequestResult

runner = CliRunner()


def _json(stdout):
    return json.loads(stdout[stdout.index("["):])


def test_request_dates(session):
    svc = MagicMock()
    svc.request.return_value = RequestResult(
        requested=[{"reportDate": "2025-03-01", "reportId": "r1"}],
        errors=[{"reportDate": "2025-03-02", "error": "HTTP 425"}],
    )

    with patch("commerce_ingest.commands.ads_reports_cmd._build_client", return_value=(session, MagicMock(), svc)):
        result = runner.invoke(app, ["request", "--date", "2025-03-01", "--date", "2025-03-02", "-o", "json"])

    assert result.exit_code == 0
    svc.request.assert_called_once_with(["2025-03-01", "2025-03-02"])
    rows = _json(result.stdout)
    assert rows[0] == {"reportDate": "2025-03-01", "reportId": "r1"}
    assert rows[1]["error"] == "HTTP 425"
    assert session.scalar(select(SyncLog.status)) == "partial"


def test_request_default_lookback(session):
    svc = MagicMock()
    svc.request.return_value = RequestResult()

    with patch("commerce_ingest.commands.ads_reports_cmd._build_client", return_value=(session, MagicMock(), svc)):
        result = runner.invoke(app, ["request"])

    assert result.exit_code == 0
    svc.request.assert_called_once_with(None)


def test_collect(session):
    svc = MagicMock()
    svc.collect.return_value = CollectResult(
        collected=[{"reportDate": "2025-03-30", "rows": 12}],
        failures=[{"reportDate": "2025-03-28", "reason": "Internal"}],
        still_processing=["2025-03-24"],
        rate_limited=True,
        cleaned_up=2,
    )

    with patch("commerce_ingest.commands.ads_reports_cmd._build_client", return_value=(session, MagicMock(), svc)):
        result = runner.invoke(app, ["collect", "-o", "json"])

    assert result.exit_code == 0
    statuses = {r["reportDate"]: r["status"] for r in _json(result.stdout)}
    assert statuses == {"2025-03-30": "completed", "2025-03-28": "failed", "2025-03-24": "pending"}
    assert session.scalar(select(SyncLog.source)) == "amazon_ads_collect"


def test_collect_setup_error():
    with patch(
        "commerce_ingest.commands.ads_reports_cmd._build_client",
        side_effect=CredentialsError("Could not decrypt credentials"),
    ):
        result = runner.invoke(app, ["collect"])
    assert result.exit_code == 1
