"""CLI commands for historical backfills."""

from __future__ import annotations

from datetime import date
from typing import Annotated

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from commerce_ingest.client import AdsApiClient, ShopifyClient, SpApiClient
from commerce_ingest.commands.context import ads_client, open_session, shopify_client, sp_client
from commerce_ingest.config import get_config
from commerce_ingest.exceptions import IngestError, SetupError
from commerce_ingest.services.amazon_ads import AmazonAdsService
from commerce_ingest.services.amazon_orders import ORDERS_RATE_LIMIT_POLICY, AmazonOrdersService
from commerce_ingest.services.backfill import BackfillDriver, BackfillResult, date_range, default_window
from commerce_ingest.services.sales_traffic import SalesTrafficService
from commerce_ingest.services.shopify import RepeatRecalcResult, ShopifyService, recalculate_repeat_customers
from commerce_ingest.services.sync_log import record_sync
from commerce_ingest.utils.errors import handle_error

console = Console(stderr=True)
app = typer.Typer(name="backfill", help="Backfill historical data one date (or order) at a time.")

SALES_TRAFFIC_START = "2025-01-01"
ORDERS_SINCE = "2025-01-01"


def _build_ads(org_id: int, verbose: bool = False) -> tuple[Session, AdsApiClient, AmazonAdsService]:
    session = open_session()
    client = ads_client(session, org_id, verbose)
    return session, client, AmazonAdsService(client, session, org_id, pacing=get_config().pacing)


def _build_sales_traffic(org_id: int, verbose: bool = False) -> tuple[Session, SpApiClient, SalesTrafficService]:
    session = open_session()
    client, credentials = sp_client(session, org_id, verbose)
    service = SalesTrafficService(client, session, org_id, credentials.marketplace_id, pacing=get_config().pacing)
    return session, client, service


def _build_orders(org_id: int, verbose: bool = False) -> tuple[Session, SpApiClient, AmazonOrdersService]:
    session = open_session()
    client, credentials = sp_client(session, org_id, verbose, rate_limit_policy=ORDERS_RATE_LIMIT_POLICY)
    page_delay = get_config().pacing.orders_page_delay_ms / 1000
    service = AmazonOrdersService(client, session, org_id, credentials.marketplace_id, page_delay=page_delay)
    return session, client, service


def _build_session() -> Session:
    return open_session()


def _build_shopify(org_id: int, verbose: bool = False) -> tuple[Session, ShopifyClient, ShopifyService]:
    session = open_session()
    client = shopify_client(session, org_id, verbose)
    return session, client, ShopifyService(client, session, org_id)


def _dates(start: str, end: str) -> list[str]:
    try:
        return date_range(start, end)
    except ValueError as e:
        handle_error(e)
        raise typer.Exit(1)


def _delay_seconds(delay_ms: int | None, pacing_field: str) -> float:
    """--delay wins; otherwise the configured pacing for this job."""
    if delay_ms is None:
        delay_ms = getattr(get_config().pacing, pacing_field)
    return delay_ms / 1000


def _log_result(session: Session, org_id: int, source: str, result: BackfillResult) -> None:
    status = "success" if not result.failed else "partial"
    record_sync(session, org_id, source, status, result.model_dump(exclude={"failures"}))


def _print_repeat(result: RepeatRecalcResult) -> None:
    console.print(
        f"Repeat flags: {result.repeat_customers} repeat, {result.new_customers} new "
        f"over {result.total_orders} orders ({result.changed} changed)"
    )


@app.command("ads")
def backfill_ads(
    start: Annotated[str | None, typer.Option("--start", help="First date (YYYY-MM-DD), default 30 days ago")] = None,
    end: Annotated[str | None, typer.Option("--end", help="Last date (YYYY-MM-DD), default yesterday")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    delay: Annotated[int | None, typer.Option("--delay", help="Delay between dates in ms, default pacing.ads_delay_ms")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Backfill Sponsored Products campaign metrics, one report per day.

    Dates that already have rows are skipped, so an interrupted run can be
    restarted with the same arguments.
    """
    default_start, default_end = default_window()
    dates = _dates(start or default_start, end or default_end)

    try:
        session, client, service = _build_ads(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        console.print(f"Amazon Ads backfill for org {org}: {dates[0]} to {dates[-1]}")
        driver = BackfillDriver(service.ingest_date, delay=_delay_seconds(delay, "ads_delay_ms"))
        result = driver.run(dates, service.existing_dates())
        _log_result(session, org, "amazon_ads_backfill", result)
    finally:
        client.close()
        session.close()


@app.command("sales-traffic")
def backfill_sales_traffic(
    start: Annotated[str, typer.Option("--start", help="First date (YYYY-MM-DD)")] = SALES_TRAFFIC_START,
    end: Annotated[str | None, typer.Option("--end", help="Last date (YYYY-MM-DD), default today")] = None,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    delay: Annotated[int | None, typer.Option("--delay", help="Delay between dates in ms, default pacing.sales_traffic_delay_ms")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Backfill SP-API Sales & Traffic by child ASIN, one report per day.

    The Reports API allows roughly one report a minute, hence the long
    default delay.
    """
    dates = _dates(start, end or date.today().isoformat())

    try:
        session, client, service = _build_sales_traffic(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        console.print(f"Sales & Traffic backfill for org {org}: {dates[0]} to {dates[-1]}")
        driver = BackfillDriver(service.ingest_date, delay=_delay_seconds(delay, "sales_traffic_delay_ms"))
        result = driver.run(dates, service.existing_dates())
        _log_result(session, org, "amazon_sales_traffic_backfill", result)
    finally:
        client.close()
        session.close()


@app.command("orders")
def backfill_orders(
    since: Annotated[str, typer.Option("--since", help="Orders created on or after (YYYY-MM-DD)")] = ORDERS_SINCE,
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    delay: Annotated[int | None, typer.Option("--delay", help="Delay between orders in ms, default pacing.orders_delay_ms")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Backfill Amazon orders and their items, newest first.

    Orders already stored are skipped. Status, quantities and price are
    refreshed when an order is seen again.
    """
    try:
        session, client, service = _build_orders(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        console.print(f"Fetching Amazon orders since {since} for org {org}...")
        orders = service.list_orders(since)
        order_ids = [o["AmazonOrderId"] for o in orders if o.get("AmazonOrderId")]
        driver = BackfillDriver(
            service.ingest_order,
            delay=_delay_seconds(delay, "orders_delay_ms"),
            label="orders",
            sort_key=service.purchase_date,
        )
        result = driver.run(order_ids, service.existing_order_ids())
        _log_result(session, org, "amazon_orders_backfill", result)
    except IngestError as e:
        record_sync(session, org, "amazon_orders_backfill", "error", str(e))
        handle_error(e)
        raise typer.Exit(1)
    finally:
        client.close()
        session.close()


@app.command("shopify-orders")
def backfill_shopify_orders(
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
    page_size: Annotated[int, typer.Option("--page-size", help="Orders per GraphQL page")] = 50,
    max_pages: Annotated[int | None, typer.Option("--max-pages", help="Stop after this many pages")] = None,
    cursor: Annotated[str | None, typer.Option("--cursor", help="Resume after this page cursor")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Backfill Shopify orders with attribution, newest first.

    Attribution already stored on an order is never overwritten. Repeat
    customer flags are recomputed over all stored orders at the end.
    """
    try:
        session, client, service = _build_shopify(org, verbose)
    except SetupError as e:
        handle_error(e)
        raise typer.Exit(1)

    try:
        console.print(f"Shopify order backfill for org {org} ({page_size} per page)...")
        result = service.backfill(page_size=page_size, max_pages=max_pages, cursor=cursor)
        console.print(
            f"Done! {result.upserted} upserted, {result.failed} failed "
            f"({result.fetched} fetched over {result.pages} pages)"
        )
        if result.has_next_page and result.end_cursor:
            console.print(f"More orders remain. Resume with --cursor {result.end_cursor}")
        if result.upserted:
            _print_repeat(recalculate_repeat_customers(session, org))
        status = "success" if not result.failed else "partial"
        record_sync(session, org, "shopify_orders_backfill", status, result.model_dump(exclude={"errors"}))
    except IngestError as e:
        record_sync(session, org, "shopify_orders_backfill", "error", str(e))
        handle_error(e)
        raise typer.Exit(1)
    finally:
        client.close()
        session.close()


@app.command("recalculate-repeat")
def backfill_recalculate_repeat(
    org: Annotated[int, typer.Option("--org", help="Organization ID")] = 1,
) -> None:
    """Recompute is_repeat_customer for every stored Shopify order, oldest first.

    An order is a repeat when the same email placed an earlier order. Run
    after a backfill; shopify-orders already does this at the end.
    """
    session = _build_session()
    try:
        result = recalculate_repeat_customers(session, org)
        _print_repeat(result)
        record_sync(session, org, "shopify_repeat_recalc", "success", result.model_dump())
    finally:
        session.close()
