"""Tests for normalize.py — mapping upstream rows onto columns."""
import json
from datetime import date, datetime, timezone

from commerce_ingest.normalize import (
    normalize_financial_transaction,
    normalize_order_item,
    normalize_sales_traffic_entry,
    normalize_sp_ads_row,
    to_date,
    to_datetime,
)


# ── amazon_sp_ads ────────────────────────────────────────────────────

def test_sp_ads_row_maps_columns():
    row = {
        "date": "2025-03-01",
        "campaignId": 123456,
        "campaignName": "Brand - Exact",
        "impressions": 1000,
        "clicks": 25,
        "cost": 12.5,
        "sales7d": 80.0,
        "purchases7d": 4,
        "acosClicks14d": 15.6,
    }
    values = normalize_sp_ads_row(row, org_id=1)

    assert values["org_id"] == 1
    assert values["date"] == date(2025, 3, 1)
    assert values["campaign_id"] == "123456"
    assert values["campaign_name"] == "Brand - Exact"
    assert values["clicks"] == 25
    assert values["sales_7d"] == 80.0
    assert values["purchases_7d"] == 4
    assert values["acos_clicks_14d"] == 15.6


def test_sp_ads_count_metrics_default_to_zero():
    values = normalize_sp_ads_row({"date": "2025-03-01", "campaignId": "1"}, org_id=1)

    assert values["impressions"] == 0
    assert values["clicks"] == 0
    assert values["cost"] == 0


def test_sp_ads_optional_metrics_default_to_none():
    values = normalize_sp_ads_row({"date": "2025-03-01", "campaignId": "1"}, org_id=1)

    assert values["sales_7d"] is None
    assert values["acos_clicks_14d"] is None
    assert values["top_of_search_impression_share"] is None


def test_sp_ads_falls_back_to_report_date():
    values = normalize_sp_ads_row({"campaignId": "1"}, org_id=1, report_date="2025-02-28")
    assert values["date"] == date(2025, 2, 28)


# ── amazon_sales_traffic ─────────────────────────────────────────────

def test_sales_traffic_entry():
    entry = {
        "parentAsin": "B0PARENT",
        "childAsin": "B0CHILD",
        "salesByAsin": {
            "unitsOrdered": 3,
            "orderedProductSales": {"amount": 59.97, "currencyCode": "GBP"},
            "totalOrderItems": 3,
        },
        "trafficByAsin": {
            "sessions": 40,
            "mobileAppSessions": 25,
            "pageViews": 55,
            "buyBoxPercentage": 100.0,
        },
    }
    values = normalize_sales_traffic_entry(entry, "2025-03-01", org_id=2)

    assert values["org_id"] == 2
    assert values["date"] == date(2025, 3, 1)
    assert values["child_asin"] == "B0CHILD"
    assert values["units_ordered"] == 3
    assert values["ordered_product_sales"] == 59.97
    assert values["mobile_sessions"] == 25
    assert values["page_views"] == 55
    assert values["buy_box_percentage"] == 100.0


def test_sales_traffic_missing_sections_default_to_zero():
    values = normalize_sales_traffic_entry({"childAsin": "B0X"}, "2025-03-01", org_id=1)

    assert values["parent_asin"] == ""
    assert values["units_ordered"] == 0
    assert values["ordered_product_sales"] == 0.0
    assert values["ordered_product_sales_b2b"] == 0.0
    assert values["sessions"] == 0
    assert values["unit_session_percentage_b2b"] == 0


# ── amazon_orders ────────────────────────────────────────────────────

def test_order_item():
    order = {
        "AmazonOrderId": "202-1234567-1234567",
        "PurchaseDate": "2025-03-01T10:15:00Z",
        "OrderStatus": "Shipped",
        "FulfillmentChannel": "AFN",
        "IsPrime": True,
    }
    item = {
        "OrderItemId": "111",
        "ASIN": "B0CHILD",
        "SellerSKU": "SKU-1",
        "QuantityOrdered": 2,
        "ItemPrice": {"Amount": "39.98", "CurrencyCode": "GBP"},
    }
    values = normalize_order_item(order, item, org_id=1)

    assert values["amazon_order_id"] == "202-1234567-1234567"
    assert values["order_item_id"] == "111"
    assert values["purchase_date"] == datetime(2025, 3, 1, 10, 15, tzinfo=timezone.utc)
    assert values["item_price"] == 39.98
    assert values["quantity_shipped"] == 0
    assert values["is_prime"] is True
    assert values["is_business_order"] is False


def test_order_item_defaults_currency():
    values = normalize_order_item({"AmazonOrderId": "A"}, {"OrderItemId": "1"}, org_id=1)

    assert values["item_price"] == 0.0
    assert values["item_currency"] == "GBP"
    assert values["purchase_date"] is None


# ── amazon_financial_events ──────────────────────────────────────────

def test_financial_transaction():
    txn = {
        "transactionId": "T-1",
        "transactionType": "Shipment",
        "postedDate": "2025-03-02T08:00:00Z",
        "totalAmount": {"amount": 12.34, "currencyCode": "GBP"},
        "relatedIdentifiers": [{"relatedIdentifierName": "ORDER_ID", "relatedIdentifierValue": "202-1"}],
    }
    values = normalize_financial_transaction(txn, org_id=1)

    assert values["transaction_id"] == "T-1"
    assert values["total_amount"] == 12.34
    assert json.loads(values["related_identifiers"])[0]["relatedIdentifierValue"] == "202-1"
    assert values["items"] == "[]"


def test_financial_transaction_synthetic_id():
    txn = {"transactionType": "Refund", "postedDate": "2025-03-02T08:00:00Z"}
    values = normalize_financial_transaction(txn, org_id=1, position=4)

    assert values["transaction_id"] == "txn-2025-03-02T08:00:00Z-Refund-4"
    assert values["total_currency"] == "GBP"


# ── coercion ─────────────────────────────────────────────────────────

def test_to_date_variants():
    assert to_date("2025-03-01") == date(2025, 3, 1)
    assert to_date("2025-03-01T23:59:59Z") == date(2025, 3, 1)
    assert to_date(datetime(2025, 3, 1, 5)) == date(2025, 3, 1)
    assert to_date(date(2025, 3, 1)) == date(2025, 3, 1)


def test_to_datetime():
    assert to_datetime(None) is None
    assert to_datetime("") is None
    assert to_datetime("2025-03-01T00:00:00Z").tzinfo is not None
