"""commerce-ingest CLI entry point.

Backfills Amazon Ads, Amazon SP-API and Shopify data into a multi-tenant
analytics database, and imports manual CSV exports.
"""

from __future__ import annotations

import logging

import typer

from commerce_ingest.commands.ads_reports_cmd import app as ads_reports_app
from commerce_ingest.commands.backfill_cmd import app as backfill_app
from commerce_ingest.commands.credentials_cmd import app as credentials_app
from commerce_ingest.commands.db_cmd import app as db_app
from commerce_ingest.commands.import_cmd import app as import_app
from commerce_ingest.commands.products_cmd import app as products_app
from commerce_ingest.commands.reports_cmd import app as reports_app
from commerce_ingest.commands.sync_cmd import app as sync_app

app = typer.Typer(
    name="commerce-ingest",
    help="Ingest Amazon Ads, Amazon SP-API and Shopify data into the analytics database.",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(backfill_app, name="backfill")
app.add_typer(sync_app, name="sync")
app.add_typer(import_app, name="import")
app.add_typer(ads_reports_app, name="ads-reports")
app.add_typer(credentials_app, name="credentials")
app.add_typer(products_app, name="products")
app.add_typer(reports_app, name="reports")
app.add_typer(db_app, name="db")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """commerce-ingest: backfill and sync commerce data."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


if __name__ == "__main__":
    app()
