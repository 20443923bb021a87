"""CLI commands for recurring SP-API syncs."""

from __future__ import annotations

from datetime import date
from typing import Annotated

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from commerce_ingest.client import SpApiClient
from commerce_ingest.commands.context import open_session, sp_client
from commerce_ingest.config import get_config
from commerce_ingest.exceptions import IngestError, SetupError
from commerce_ingest.services.finances import FinancesService, posted_window
from commerce_ingest.services.inventory import InventoryService
from commerce_ingest.services.sync_log import record_sync
from commerce_ingest.utils.errors import handle_error
from commerce_ingest.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="sync", help="Sync Amazon finances and inventory.")


def _build_finances(org_id: int, verbose: bool = False) -> tuple[Session, SpApiClient, FinancesService]:
    session = open_session()
    client, _ = sp_client(session, org_id, verbose)
    return session, client, FinancesService(client, session, org_id)


def _build_inventory(org_id: int, verbose: bool = False) -> tuple[Session, SpApiClient, InventoryService]:
    session = open_session()
    client, credentials = sp_client(session, org_id, verbose)
    service = InventoryService(client, session, org_id, credentials.marketplace_id, pacing=get_config().pacing)
    return session, client, service


@app.command("amazon-finances")
def sync_finances(
    days: Annotated[int, typer.Option("--days", help="Look back this many days")] = 7,
    start: Annotated[str | None, typer.Option("--start", help="Posted on or after (YYYY-MM-DD)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="Posted on or before (YYYY-MM-DD)")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Fetch finance transactions and upsert them by transaction id."""
    try:
        session, client, service = _build_finances(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        posted_after, posted_before = posted_window(days, start, end)
        console.print(f"Fetching transactions posted {posted_after} to {posted_before}...")
        result = service.sync(posted_after, posted_before)
        summary = {
            "postedAfter": posted_after,
            "postedBefore": posted_before,
            "upserted": result.upserted,
            "errors": result.errors,
        }
        record_sync(session, org, "amazon_finances", "success" if not result.errors else "partial", summary)
        print_output(summary, output, title="Finance Sync")
    except IngestError as e:
        record_sync(session, org, "amazon_finances", "error", str(e))
        handle_error(e)
        raise typer.Exit(1)
    finally:
        client.close()
        session.close()


@app.command("amazon-inventory")
def sync_inventory(
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    snapshot_date: Annotated[str | None, typer.Option("--date", help="Snapshot date (YYYY-MM-DD), default today")] = None,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Snapshot FBA stock per SKU from the unsuppressed inventory report."""
    try:
        day = date.fromisoformat(snapshot_date) if snapshot_date else date.today()
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        session, client, service = _build_inventory(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        console.print(f"Requesting FBA inventory report for org {org}...")
        result = service.sync(day)
        summary = {"date": day.isoformat(), "upserted": result.upserted, "errors": result.errors}
        record_sync(session, org, "amazon_inventory", "success" if not result.errors else "partial", summary)
        print_output(summary, output, title="Inventory Sync")
    except IngestError as e:
        record_sync(session, org, "amazon_inventory", "error", str(e))
        handle_error(e)
        raise typer.Exit(1)
    finally:
        client.close()
        session.close()
