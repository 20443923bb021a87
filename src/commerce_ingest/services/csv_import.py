"""Imports from manual CSV exports.

Each importer takes rows already parsed by utils.csv_parsing (dicts keyed
by header) and writes them with the shared upserter in batches of 50,
reporting progress after each batch.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commerce_ingest.db.models import (
    AmazonFinancialEvent,
    AmazonSalesTraffic,
    AmazonSpAd,
    CampaignFcb,
    Product,
)
from commerce_ingest.db.upsert import UpsertResult, upsert_rows
from commerce_ingest.normalize import to_date, to_datetime
from commerce_ingest.services.amazon_ads import existing_dates
from commerce_ingest.utils.csv_parsing import (
    find_column,
    parse_date,
    parse_number,
    to_bool,
    to_int,
    to_num,
    to_text,
)

logger = logging.getLogger(__name__)

console = Console(stderr=True)

BATCH_SIZE = 50

# Metric header fragments in Amazon Ads "Sponsored Products Campaign" exports
ADS_CSV_METRICS = {
    "impressions": "Impressions",
    "clicks": "Clicks",
    "spend": "Spend",
    "sales_7d": "7 Day Total Sales",
    "purchases_7d": "7 Day Total Orders",
    "units_sold_clicks_7d": "7 Day Total Units",
    "units_sold_same_sku_7d": "7 Day Advertised SKU Units",
    "attributed_sales_same_sku_7d": "7 Day Advertised SKU Sales",
}


class AdsCsvResult(BaseModel):
    total_rows: int = 0
    skipped_no_date: int = 0
    skipped_existing: int = 0
    records: int = 0
    date_range: tuple[str, str] | None = None
    preview: list[dict[str, Any]] = Field(default_factory=list)
    upserted: int = 0
    errors: int = 0
    dry_run: bool = False


def progress_printer(total: int, out: Console = console) -> Callable[[int, UpsertResult], None]:
    def report(processed: int, result: UpsertResult) -> None:
        pct = processed / total * 100 if total else 100.0
        out.print(f"  {processed}/{total} ({pct:.1f}%) | {result.upserted} upserted, {result.errors} errors")
    return report


# ── Amazon Ads campaign export ────────────────────────────────────────


def aggregate_ads_csv(
    rows: list[dict[str, str]],
    skip_dates: set[str],
) -> tuple[dict[tuple[str, str], dict[str, Any]], AdsCsvResult]:
    """Sum an Ads export by (date, campaign name).

    Rows with no readable date, or whose date already has data, are
    skipped and counted.

    Raises:
        ValueError: If the Date or Campaign Name column is missing.
    """
    headers = list(rows[0].keys()) if rows else []
    date_col = find_column(headers, "Date") or find_column(headers, "Start date")
    campaign_col = find_column(headers, "Campaign Name")
    if not date_col or not campaign_col:
        raise ValueError("Required columns (Date, Campaign Name) not found")

    currency_col = find_column(headers, "Currency")
    metric_cols = {field: find_column(headers, name) for field, name in ADS_CSV_METRICS.items()}
    for field, column in metric_cols.items():
        if column is None:
            logger.warning('Column "%s" not found in CSV', ADS_CSV_METRICS[field])

    result = AdsCsvResult()
    aggregated: dict[tuple[str, str], dict[str, Any]] = defaultdict(lambda: dict.fromkeys(ADS_CSV_METRICS, 0.0))

    for row in rows:
        day = parse_date(row.get(date_col))
        if not day:
            result.skipped_no_date += 1
            continue
        if day in skip_dates:
            result.skipped_existing += 1
            continue

        result.total_rows += 1
        entry = aggregated[(day, row.get(campaign_col) or "Unknown")]
        entry["currency"] = (row.get(currency_col) if currency_col else None) or "GBP"
        for field, column in metric_cols.items():
            if column:
                entry[field] += parse_number(row.get(column))

    result.records = len(aggregated)
    return dict(aggregated), result


def ads_csv_values(org_id: int, day: str, campaign_name: str, data: dict[str, Any]) -> dict[str, Any]:
    """One aggregated campaign-day as amazon_sp_ads values.

    Exports carry no campaign id, so the name stands in for it.
    """
    spend = data["spend"]
    sales = data["sales_7d"]
    impressions = data["impressions"]
    clicks = data["clicks"]
    ctr = clicks / impressions * 100 if impressions > 0 else 0
    cpc = spend / clicks if clicks > 0 else 0
    acos = round(spend / sales * 100, 2) if sales > 0 else None
    roas = round(sales / spend, 2) if spend > 0 else None

    return {
        "org_id": org_id,
        "date": to_date(day),
        "campaign_id": campaign_name,
        "campaign_name": campaign_name,
        "campaign_budget_currency_code": data.get("currency", "GBP"),
        "impressions": round(impressions),
        "clicks": round(clicks),
        "cost": round(spend, 2),
        "spend": round(spend, 2),
        "cost_per_click": round(cpc, 2),
        "click_through_rate": round(ctr, 2),
        "sales_7d": round(sales, 2),
        "attributed_sales_same_sku_7d": round(data["attributed_sales_same_sku_7d"], 2),
        "purchases_7d": round(data["purchases_7d"]),
        "units_sold_clicks_7d": round(data["units_sold_clicks_7d"]),
        "units_sold_same_sku_7d": round(data["units_sold_same_sku_7d"]),
        "acos_clicks_14d": acos,
        "roas_clicks_14d": roas,
    }


def import_ads_csv(
    session: Session,
    org_id: int,
    rows: list[dict[str, str]],
    dry_run: bool = False,
    out: Console = console,
) -> AdsCsvResult:
    """Aggregate an Ads export and upsert it, skipping dates the API already covers."""
    skip = existing_dates(session, org_id)
    out.print(f"Found {len(skip)} dates already in the database (will skip)")

    aggregated, result = aggregate_ads_csv(rows, skip)
    result.dry_run = dry_run

    out.print(f"Parsed {result.total_rows} data rows -> {result.records} campaign-day records")
    if result.skipped_no_date:
        out.print(f"  Skipped {result.skipped_no_date} rows with no date")
    if result.skipped_existing:
        out.print(f"  Skipped {result.skipped_existing} rows for dates already in the database")

    entries = sorted(aggregated.items(), key=lambda item: item[0], reverse=True)
    if entries:
        days = sorted({day for day, _ in aggregated})
        result.date_range = (days[0], days[-1])
        out.print(f"  Date range: {days[0]} -> {days[-1]}")

    for (day, campaign), data in entries[:5]:
        result.preview.append({"date": day, "campaign": campaign, "spend": round(data["spend"], 2), "sales": round(data["sales_7d"], 2)})
        out.print(f"  {day} | {escape(campaign[:40]):<40} | spend: {data['spend']:.2f} | sales: {data['sales_7d']:.2f}")

    if dry_run:
        out.print("[yellow]DRY RUN: stopping here. Remove --dry-run to import.[/yellow]")
        return result

    values = [ads_csv_values(org_id, day, campaign, data) for (day, campaign), data in entries]
    upserted = upsert_rows(session, AmazonSpAd, values, BATCH_SIZE, progress_printer(len(values), out))
    result.upserted = upserted.upserted
    result.errors = upserted.errors
    out.print(f"Done! {result.upserted} campaign-day records upserted, {result.errors} errors")
    return result


# ── Snake-case exports ────────────────────────────────────────────────


def sales_traffic_csv_values(org_id: int, row: dict[str, str]) -> dict[str, Any] | None:
    day = parse_date(row.get("date"))
    child_asin = to_text(row.get("child_asin"))
    if not day or not child_asin:
        return None

    def i(key: str) -> int:
        return to_int(row.get(key)) or 0

    def f(key: str) -> float:
        return to_num(row.get(key)) or 0.0

    return {
        "org_id": org_id,
        "date": to_date(day),
        "parent_asin": to_text(row.get("parent_asin")),
        "child_asin": child_asin,
        "units_ordered": i("units_ordered"),
        "units_ordered_b2b": i("units_ordered_b2b"),
        "ordered_product_sales": f("ordered_product_sales"),
        "ordered_product_sales_b2b": f("ordered_product_sales_b2b"),
        "total_order_items": i("total_order_items"),
        "total_order_items_b2b": i("total_order_items_b2b"),
        "browser_sessions": i("browser_sessions"),
        "mobile_sessions": i("mobile_sessions"),
        "sessions": i("sessions"),
        "browser_session_percentage": f("browser_session_percentage"),
        "mobile_session_percentage": f("mobile_session_percentage"),
        "session_percentage": f("session_percentage"),
        "browser_page_views": i("browser_page_views"),
        "mobile_page_views": i("mobile_page_views"),
        "page_views": i("page_views"),
        "browser_page_views_percentage": f("browser_page_views_percentage"),
        "mobile_page_views_percentage": f("mobile_page_views_percentage"),
        "page_views_percentage": f("page_views_percentage"),
        "buy_box_percentage": f("buy_box_percentage"),
        "unit_session_percentage": f("unit_session_percentage"),
        "unit_session_percentage_b2b": f("unit_session_percentage_b2b"),
    }


def financial_csv_values(org_id: int, row: dict[str, str]) -> dict[str, Any] | None:
    transaction_id = to_text(row.get("transaction_id"))
    if not transaction_id:
        return None
    return {
        "org_id": org_id,
        "transaction_id": transaction_id,
        "transaction_type": to_text(row.get("transaction_type")),
        "posted_date": to_datetime(to_text(row.get("posted_date"))),
        "total_amount": to_num(row.get("total_amount")),
        "total_currency": to_text(row.get("total_currency")),
        "related_identifiers": to_text(row.get("related_identifiers")),
        "items": to_text(row.get("items")),
        "breakdowns": to_text(row.get("breakdowns")),
    }


_PRODUCT_TEXT = (
    "product_name", "brand", "unit_barcode", "asin", "parent_asin", "shippo_sku", "carton_barcode",
)
_PRODUCT_INT = ("pieces_per_pack", "units_per_master_carton", "pieces_per_master_carton")
_PRODUCT_NUM = (
    "pack_weight_kg", "pack_length_cm", "pack_width_cm", "pack_height_cm", "unit_cbm",
    "dimensional_weight", "unit_price_usd", "unit_price_gbp", "pack_cost_gbp", "landed_cost",
    "unit_lcogs", "dtc_rrp", "pp_unit", "dtc_rrp_ex_vat", "amazon_rrp", "fba_fee",
    "referral_percent", "dtc_fulfillment_fee", "dtc_courier", "gross_weight_kg",
    "carton_width_cm", "carton_length_cm", "carton_height_cm", "carton_cbm",
)


def product_csv_values(org_id: int, row: dict[str, str]) -> dict[str, Any] | None:
    sku = to_text(row.get("sku"))
    if not sku:
        return None
    values: dict[str, Any] = {"org_id": org_id, "sku": sku, "active": to_bool(row.get("active"))}
    values.update({column: to_text(row.get(column)) for column in _PRODUCT_TEXT})
    values.update({column: to_int(row.get(column)) for column in _PRODUCT_INT})
    values.update({column: to_num(row.get(column)) for column in _PRODUCT_NUM})
    return values


def _import(
    session: Session,
    model: type,
    rows: list[dict[str, str]],
    to_values: Callable[[int, dict[str, str]], dict[str, Any] | None],
    org_id: int,
    label: str,
    out: Console,
) -> UpsertResult:
    values = []
    skipped = 0
    for row in rows:
        converted = to_values(org_id, row)
        if converted is None:
            skipped += 1
        else:
            values.append(converted)

    out.print(f"Importing {len(values)} {label}")
    if skipped:
        out.print(f"  Skipped {skipped} rows missing their key column")
    result = upsert_rows(session, model, values, BATCH_SIZE, progress_printer(len(values), out))
    out.print(f"Done! {result.upserted} {label} upserted, {result.errors} errors")
    return result


def import_sales_traffic_csv(session: Session, org_id: int, rows: list[dict[str, str]], out: Console = console) -> UpsertResult:
    return _import(session, AmazonSalesTraffic, rows, sales_traffic_csv_values, org_id, "sales/traffic rows", out)


def import_financials_csv(session: Session, org_id: int, rows: list[dict[str, str]], out: Console = console) -> UpsertResult:
    return _import(session, AmazonFinancialEvent, rows, financial_csv_values, org_id, "financial events", out)


def import_products_csv(session: Session, org_id: int, rows: list[dict[str, str]], out: Console = console) -> UpsertResult:
    return _import(session, Product, rows, product_csv_values, org_id, "products", out)


# ── Marketing campaigns lookup ────────────────────────────────────────

# Header: Campaign, Ad Group, Ad, product_name, product_url, sku_suffix, skus,
# discount code, utm_source, utm_medium, utm_campaign, utm_term, product_template, Status
CAMPAIGN_COLUMNS = (
    "campaign", "ad_group", "ad", "product_name", "product_url", "sku_suffix", "skus",
    "discount_code", "utm_source", "utm_medium", "utm_campaign", "utm_term", "product_template",
)


def import_campaigns_csv(session: Session, org_id: int, rows: list[dict[str, str]], out: Console = console) -> UpsertResult:
    """Append campaign lookup rows. Columns are read by position.

    Rows with no campaign, ad group or utm_campaign are skipped. A Status of
    "on" marks the row active.
    """
    result = UpsertResult()
    for row in rows:
        cells = list(row.values())
        cells += [""] * (len(CAMPAIGN_COLUMNS) + 1 - len(cells))
        if not cells[0] and not cells[1] and not cells[10]:
            continue

        values: dict[str, Any] = {column: cells[i] or None for i, column in enumerate(CAMPAIGN_COLUMNS)}
        values["status"] = "active" if cells[13].lower() == "on" else "inactive"
        try:
            session.add(CampaignFcb(org_id=org_id, **values))
            session.commit()
            result.upserted += 1
        except SQLAlchemyError as e:
            session.rollback()
            result.errors += 1
            result.error_messages.append(str(e))
            logger.warning("Campaign row failed: %s", e)
            continue
        out.print(f"Inserted: {escape(values['campaign'] or '')} / {escape(values['ad_group'] or '')} / {escape(values['utm_campaign'] or '(no utm)')}")

    out.print(f"Done! {result.upserted} campaigns inserted, {result.errors} errors")
    return result
