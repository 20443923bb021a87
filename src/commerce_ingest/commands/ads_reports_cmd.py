"""CLI commands for the request-now, collect-later Amazon Ads flow."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from commerce_ingest.client import AdsApiClient
from commerce_ingest.commands.context import ads_client, open_session
from commerce_ingest.exceptions import IngestError, SetupError
from commerce_ingest.services.pending_reports import PendingReportService
from commerce_ingest.services.sync_log import record_sync
from commerce_ingest.utils.errors import handle_error
from commerce_ingest.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="ads-reports", help="Request Amazon Ads reports now and collect them on a later run.")


def _build_client(org_id: int, verbose: bool = False) -> tuple[Session, AdsApiClient, PendingReportService]:
    session = open_session()
    client = ads_client(session, org_id, verbose)
    return session, client, PendingReportService(client, session, org_id)


def _stored(collected: dict) -> str:
    detail = f"{collected['rows']} rows"
    if collected.get("rowErrors"):
        detail += f", {collected['rowErrors']} failed to store"
    return detail


@app.command("request")
def request_reports(
    date: Annotated[list[str] | None, typer.Option("--date", "-d", help="Report date (repeatable), default the lookback days")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Create one report per lookback day (1, 3, 7, 14 and 30 days ago) and store it as pending."""
    try:
        session, client, service = _build_client(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        result = service.request(date or None)
        console.print(f"Requested {len(result.requested)} reports, {len(result.errors)} errors")
        record_sync(
            session, org, "amazon_ads_request",
            "success" if not result.errors else "partial",
            {"requested": len(result.requested), "errors": result.errors},
        )
        rows = result.requested + [{"reportDate": e["reportDate"], "reportId": "", "error": e["error"]} for e in result.errors]
        print_output(rows, output, columns=["reportDate", "reportId", "error"], title="Requested Reports")
    finally:
        client.close()
        session.close()


@app.command("collect")
def collect_reports(
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Check each pending report once and ingest the ones that are ready.

    Stops early on a 429; the remaining reports are picked up next run.
    Pending rows older than 24 hours are deleted.
    """
    try:
        session, client, service = _build_client(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        result = service.collect()
        console.print(
            f"Collected {len(result.collected)}, failed {len(result.failures)}, "
            f"still processing {len(result.still_processing)}, cleaned up {result.cleaned_up}"
        )
        if result.rate_limited:
            console.print("[yellow]Rate limited: remaining reports will be collected next run[/yellow]")
        status = "success" if not result.failures else "partial"
        record_sync(session, org, "amazon_ads_collect", status, result.model_dump())

        rows = (
            [{"reportDate": c["reportDate"], "status": "completed", "detail": _stored(c)} for c in result.collected]
            + [{"reportDate": f["reportDate"], "status": "failed", "detail": f["reason"]} for f in result.failures]
            + [{"reportDate": d, "status": "pending", "detail": ""} for d in result.still_processing]
        )
        print_output(rows, output, columns=["reportDate", "status", "detail"], title="Collected Reports")
    except IngestError as e:
        record_sync(session, org, "amazon_ads_collect", "error", str(e))
        handle_error(e)
        raise typer.Exit(1)
    finally:
        client.close()
        session.close()
