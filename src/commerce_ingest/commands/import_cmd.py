"""CLI commands for importing manual CSV exports."""

from __future__ import annotations

from typing import Annotated, Callable

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from commerce_ingest.commands.context import open_session
from commerce_ingest.db.upsert import UpsertResult
from commerce_ingest.services.csv_import import (
    import_ads_csv,
    import_campaigns_csv,
    import_financials_csv,
    import_products_csv,
    import_sales_traffic_csv,
)
from commerce_ingest.services.sync_log import record_sync
from commerce_ingest.utils.csv_parsing import read_csv
from commerce_ingest.utils.errors import handle_error

console = Console(stderr=True)
app = typer.Typer(name="import", help="Import CSV exports into the database.")


def _build_session() -> Session:
    return open_session()


def _read(path: str) -> list[dict[str, str]]:
    try:
        rows = read_csv(path)
    except (FileNotFoundError, UnicodeDecodeError) as e:
        handle_error(e)
        raise typer.Exit(1)
    console.print(f"Read {len(rows)} rows from {path}")
    return rows


def _run_import(
    source: str,
    path: str,
    org: int,
    importer: Callable[[Session, int, list[dict[str, str]]], UpsertResult],
) -> None:
    rows = _read(path)
    session = _build_session()
    try:
        result = importer(session, org, rows)
        status = "success" if not result.errors else "partial"
        record_sync(session, org, source, status, {"file": path, "upserted": result.upserted, "errors": result.errors})
    finally:
        session.close()


@app.command("ads-csv")
def import_ads(
    file: Annotated[str, typer.Option("--file", "-f", help="Sponsored Products campaign report CSV")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Parse and preview without writing")] = False,
) -> None:
    """Import an Amazon Ads campaign export, aggregated per campaign per day.

    Dates already covered by the API backfill are skipped. Exports carry no
    campaign id, so the campaign name is stored as the id.
    """
    rows = _read(file)
    session = _build_session()
    try:
        result = import_ads_csv(session, org, rows, dry_run=dry_run)
        if not dry_run:
            status = "success" if not result.errors else "partial"
            record_sync(session, org, "amazon_ads_csv", status, result.model_dump(exclude={"preview"}))
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)
    finally:
        session.close()


@app.command("sales-traffic")
def import_sales_traffic(
    file: Annotated[str, typer.Option("--file", "-f", help="Sales & Traffic CSV with snake_case headers")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Import Sales & Traffic rows, upserting on (date, child_asin)."""
    _run_import("amazon_sales_traffic_csv", file, org, import_sales_traffic_csv)


@app.command("products")
def import_products(
    file: Annotated[str, typer.Option("--file", "-f", help="Product catalogue CSV")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Import the product catalogue, upserting on SKU."""
    _run_import("products_csv", file, org, import_products_csv)


@app.command("financials")
def import_financials(
    file: Annotated[str, typer.Option("--file", "-f", help="Financial events CSV")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Import financial events, upserting on transaction id."""
    _run_import("amazon_financials_csv", file, org, import_financials_csv)


@app.command("campaigns")
def import_campaigns(
    file: Annotated[str, typer.Option("--file", "-f", help="Marketing campaigns CSV")] = ...,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Append marketing campaign lookup rows used for order attribution."""
    _run_import("campaigns_csv", file, org, import_campaigns_csv)
