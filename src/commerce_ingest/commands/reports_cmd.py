"""CLI commands for reporting over stored data."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from commerce_ingest.commands.context import open_session
from commerce_ingest.services.amazon_ads import campaign_breakdown, performance_summary, resolve_timeframe
from commerce_ingest.utils.errors import handle_error
from commerce_ingest.utils.output import OutputFormat, print_output

console = Console(stderr=True)
app = typer.Typer(name="reports", help="Summaries over ingested data.")

SUMMARY_COLUMNS = [
    "startDate", "endDate", "totalCost", "totalSales", "totalImpressions",
    "totalClicks", "totalOrders", "acos", "campaignCount",
]
CAMPAIGN_COLUMNS = ["campaignName", "cost", "sales", "impressions", "clicks", "acos"]


def _build_session() -> Session:
    return open_session()


@app.command("ads-summary")
def ads_summary(
    timeframe: Annotated[str, typer.Option("--timeframe", "-t", help="daily, monthly, yearly, or custom")] = "custom",
    start: Annotated[str | None, typer.Option("--start", help="Start date (YYYY-MM-DD)")] = None,
    end: Annotated[str | None, typer.Option("--end", help="End date (YYYY-MM-DD)")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    by_campaign: Annotated[bool, typer.Option("--by-campaign", help="One row per campaign")] = False,
    output: Annotated[OutputFormat, typer.Option("--output", "-o")] = OutputFormat.TABLE,
) -> None:
    """Sponsored Products totals with ACoS (cost / sales * 100).

    With --start and --end the timeframe defaults to custom; without them
    use --timeframe daily, monthly or yearly.
    """
    if timeframe.lower() == "custom" and not (start and end):
        timeframe = "monthly"

    try:
        start_date, end_date = resolve_timeframe(timeframe.lower(), start, end)
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)

    session = _build_session()
    try:
        if by_campaign:
            rows = campaign_breakdown(session, org, start_date, end_date)
            print_output(rows, output, columns=CAMPAIGN_COLUMNS, title=f"Campaigns {start_date} to {end_date}")
        else:
            summary = performance_summary(session, org, start_date, end_date)
            print_output(summary, output, columns=SUMMARY_COLUMNS, title="Ads Performance Summary")
    finally:
        session.close()
