"""Map upstream report rows onto table columns.

Each table is described by a field list of (source key, column, default).
Count-like metrics default to 0 so they take part in sums; derived or
optional metrics default to None so aggregates skip them. Values are
passed through without validation.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

# Amazon Ads spCampaigns row -> amazon_sp_ads
SP_ADS_FIELDS: list[tuple[str, str, Any]] = [
    ("campaignName", "campaign_name", None),
    ("campaignStatus", "campaign_status", None),
    ("campaignBudgetAmount", "campaign_budget_amount", None),
    ("campaignBudgetType", "campaign_budget_type", None),
    ("campaignBudgetCurrencyCode", "campaign_budget_currency_code", None),
    ("campaignRuleBasedBudgetAmount", "campaign_rule_based_budget_amount", None),
    ("campaignBiddingStrategy", "campaign_bidding_strategy", None),
    ("campaignApplicableBudgetRuleId", "campaign_applicable_budget_rule_id", None),
    ("campaignApplicableBudgetRuleName", "campaign_applicable_budget_rule_name", None),
    ("impressions", "impressions", 0),
    ("clicks", "clicks", 0),
    ("cost", "cost", 0),
    ("spend", "spend", None),
    ("costPerClick", "cost_per_click", None),
    ("clickThroughRate", "click_through_rate", None),
    ("topOfSearchImpressionShare", "top_of_search_impression_share", None),
    ("sales1d", "sales_1d", None),
    ("sales7d", "sales_7d", None),
    ("sales14d", "sales_14d", None),
    ("sales30d", "sales_30d", None),
    ("attributedSalesSameSku1d", "attributed_sales_same_sku_1d", None),
    ("attributedSalesSameSku7d", "attributed_sales_same_sku_7d", None),
    ("attributedSalesSameSku14d", "attributed_sales_same_sku_14d", None),
    ("attributedSalesSameSku30d", "attributed_sales_same_sku_30d", None),
    ("purchases1d", "purchases_1d", None),
    ("purchases7d", "purchases_7d", None),
    ("purchases14d", "purchases_14d", None),
    ("purchases30d", "purchases_30d", None),
    ("purchasesSameSku1d", "purchases_same_sku_1d", None),
    ("purchasesSameSku7d", "purchases_same_sku_7d", None),
    ("purchasesSameSku14d", "purchases_same_sku_14d", None),
    ("purchasesSameSku30d", "purchases_same_sku_30d", None),
    ("unitsSoldClicks1d", "units_sold_clicks_1d", None),
    ("unitsSoldClicks7d", "units_sold_clicks_7d", None),
    ("unitsSoldClicks14d", "units_sold_clicks_14d", None),
    ("unitsSoldClicks30d", "units_sold_clicks_30d", None),
    ("unitsSoldSameSku1d", "units_sold_same_sku_1d", None),
    ("unitsSoldSameSku7d", "units_sold_same_sku_7d", None),
    ("unitsSoldSameSku14d", "units_sold_same_sku_14d", None),
    ("unitsSoldSameSku30d", "units_sold_same_sku_30d", None),
    ("acosClicks14d", "acos_clicks_14d", None),
    ("roasClicks14d", "roas_clicks_14d", None),
    ("addToList", "add_to_list", None),
]

# Sales & Traffic salesByAsin -> amazon_sales_traffic
SALES_FIELDS: list[tuple[str, str, Any]] = [
    ("unitsOrdered", "units_ordered", 0),
    ("unitsOrderedB2B", "units_ordered_b2b", 0),
    ("totalOrderItems", "total_order_items", 0),
    ("totalOrderItemsB2B", "total_order_items_b2b", 0),
]

# Sales & Traffic trafficByAsin -> amazon_sales_traffic
TRAFFIC_FIELDS: list[tuple[str, str, Any]] = [
    ("browserSessions", "browser_sessions", 0),
    ("mobileAppSessions", "mobile_sessions", 0),
    ("sessions", "sessions", 0),
    ("browserSessionPercentage", "browser_session_percentage", 0),
    ("mobileAppSessionPercentage", "mobile_session_percentage", 0),
    ("sessionPercentage", "session_percentage", 0),
    ("browserPageViews", "browser_page_views", 0),
    ("mobileAppPageViews", "mobile_page_views", 0),
    ("pageViews", "page_views", 0),
    ("browserPageViewsPercentage", "browser_page_views_percentage", 0),
    ("mobileAppPageViewsPercentage", "mobile_page_views_percentage", 0),
    ("pageViewsPercentage", "page_views_percentage", 0),
    ("buyBoxPercentage", "buy_box_percentage", 0),
    ("unitSessionPercentage", "unit_session_percentage", 0),
    ("unitSessionPercentageB2B", "unit_session_percentage_b2b", 0),
]


def _apply(fields: list[tuple[str, str, Any]], source: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for key, column, default in fields:
        value = source.get(key)
        out[column] = default if value is None else value
    return out


def to_date(value: str | date | datetime) -> date:
    """Coerce an ISO date (or timestamp) string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing Z."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def normalize_sp_ads_row(row: dict[str, Any], org_id: int, report_date: str | date | None = None) -> dict[str, Any]:
    """One spCampaigns report row -> amazon_sp_ads values."""
    values: dict[str, Any] = {
        "org_id": org_id,
        "date": to_date(row.get("date") or report_date),
        "campaign_id": str(row.get("campaignId")),
    }
    values.update(_apply(SP_ADS_FIELDS, row))
    return values


def normalize_sales_traffic_entry(entry: dict[str, Any], report_date: str | date, org_id: int) -> dict[str, Any]:
    """One salesAndTrafficByAsin entry -> amazon_sales_traffic values.

    The report aggregates over its whole range, so rows are stamped with
    the requested (single) day.
    """
    sales = entry.get("salesByAsin") or {}
    traffic = entry.get("trafficByAsin") or {}
    values: dict[str, Any] = {
        "org_id": org_id,
        "date": to_date(report_date),
        "parent_asin": str(entry.get("parentAsin") or ""),
        "child_asin": str(entry.get("childAsin") or ""),
        "ordered_product_sales": float((sales.get("orderedProductSales") or {}).get("amount") or 0),
        "ordered_product_sales_b2b": float((sales.get("orderedProductSalesB2B") or {}).get("amount") or 0),
    }
    values.update(_apply(SALES_FIELDS, sales))
    values.update(_apply(TRAFFIC_FIELDS, traffic))
    return values


def normalize_order_item(order: dict[str, Any], item: dict[str, Any], org_id: int) -> dict[str, Any]:
    """An SP-API order plus one of its items -> amazon_orders values."""
    price = item.get("ItemPrice") or {}
    return {
        "org_id": org_id,
        "amazon_order_id": order["AmazonOrderId"],
        "order_item_id": item["OrderItemId"],
        "purchase_date": to_datetime(order.get("PurchaseDate")),
        "last_update_date": to_datetime(order.get("LastUpdateDate")),
        "order_status": order.get("OrderStatus"),
        "fulfillment_channel": order.get("FulfillmentChannel"),
        "asin": item.get("ASIN"),
        "seller_sku": item.get("SellerSKU"),
        "title": item.get("Title"),
        "quantity_ordered": item.get("QuantityOrdered") or 0,
        "quantity_shipped": item.get("QuantityShipped") or 0,
        "item_price": float(price.get("Amount") or 0),
        "item_currency": price.get("CurrencyCode") or "GBP",
        "is_prime": bool(order.get("IsPrime", False)),
        "is_business_order": bool(order.get("IsBusinessOrder", False)),
    }


def normalize_financial_transaction(txn: dict[str, Any], org_id: int, position: int = 0) -> dict[str, Any]:
    """A Finances API transaction -> amazon_financial_events values.

    Transactions without an id get a synthetic one from posted date, type
    and position in the response.
    """
    total = txn.get("totalAmount") or {}
    transaction_id = txn.get("transactionId") or (
        f"txn-{txn.get('postedDate')}-{txn.get('transactionType')}-{position}"
    )
    return {
        "org_id": org_id,
        "transaction_id": transaction_id,
        "transaction_type": txn.get("transactionType") or "",
        "posted_date": to_datetime(txn.get("postedDate")),
        "total_amount": float(total.get("amount") or 0),
        "total_currency": total.get("currencyCode") or "GBP",
        "related_identifiers": json.dumps(txn.get("relatedIdentifiers") or []),
        "items": json.dumps(txn.get("items") or []),
        "breakdowns": json.dumps(txn.get("breakdowns") or []),
    }
