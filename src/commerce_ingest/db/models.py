"""SQLAlchemy models for the analytics schema.

Every upsert-able model declares its upsert policy next to its columns:
``__upsert_keys__`` is the conflict target and ``__insert_only__`` lists
columns that are written on insert and never overwritten on conflict.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(precision: int = 12) -> Numeric:
    return Numeric(precision, 2, asdecimal=False)


class Base(DeclarativeBase):
    __upsert_keys__ = ()
    __insert_only__ = ("created_at",)


class Organization(Base):
    """A tenant. Every data row is scoped to one."""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Setting(Base):
    """One encrypted JSON credential blob per (org, integration)."""

    __tablename__ = "settings"
    __upsert_keys__ = ("org_id", "key")

    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    key = Column(Text, nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (PrimaryKeyConstraint("org_id", "key"),)


class AmazonSpAd(Base):
    """Sponsored Products campaign metrics, one row per campaign per day."""

    __tablename__ = "amazon_sp_ads"
    __upsert_keys__ = ("org_id", "date", "campaign_id")

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    date = Column(Date, nullable=False)

    # Dimensions
    campaign_id = Column(Text, nullable=False)
    campaign_name = Column(Text)
    campaign_status = Column(Text)
    campaign_budget_amount = Column(Float)
    campaign_budget_type = Column(Text)
    campaign_budget_currency_code = Column(Text)
    campaign_rule_based_budget_amount = Column(Float)
    campaign_bidding_strategy = Column(Text)
    campaign_applicable_budget_rule_id = Column(Text)
    campaign_applicable_budget_rule_name = Column(Text)

    # Core metrics
    impressions = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    cost = Column(Float, default=0)
    spend = Column(Float)
    cost_per_click = Column(Float)
    click_through_rate = Column(Float)
    top_of_search_impression_share = Column(Float)

    # Sales
    sales_1d = Column(Float)
    sales_7d = Column(Float)
    sales_14d = Column(Float)
    sales_30d = Column(Float)
    attributed_sales_same_sku_1d = Column(Float)
    attributed_sales_same_sku_7d = Column(Float)
    attributed_sales_same_sku_14d = Column(Float)
    attributed_sales_same_sku_30d = Column(Float)

    # Purchases
    purchases_1d = Column(Integer)
    purchases_7d = Column(Integer)
    purchases_14d = Column(Integer)
    purchases_30d = Column(Integer)
    purchases_same_sku_1d = Column(Integer)
    purchases_same_sku_7d = Column(Integer)
    purchases_same_sku_14d = Column(Integer)
    purchases_same_sku_30d = Column(Integer)

    # Units sold
    units_sold_clicks_1d = Column(Integer)
    units_sold_clicks_7d = Column(Integer)
    units_sold_clicks_14d = Column(Integer)
    units_sold_clicks_30d = Column(Integer)
    units_sold_same_sku_1d = Column(Integer)
    units_sold_same_sku_7d = Column(Integer)
    units_sold_same_sku_14d = Column(Integer)
    units_sold_same_sku_30d = Column(Integer)

    # Efficiency
    acos_clicks_14d = Column(Float)
    roas_clicks_14d = Column(Float)
    add_to_list = Column(Integer)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "date", "campaign_id", name="amazon_sp_ads_org_date_campaign_idx"),
    )


class AmazonSalesTraffic(Base):
    """Sales & Traffic by child ASIN per day."""

    __tablename__ = "amazon_sales_traffic"
    __upsert_keys__ = ("org_id", "date", "child_asin")
    __insert_only__ = ()

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    date = Column(Date, nullable=False)
    parent_asin = Column(Text)
    child_asin = Column(Text, nullable=False)
    units_ordered = Column(Integer, default=0)
    units_ordered_b2b = Column(Integer, default=0)
    ordered_product_sales = Column(_money(), default=0)
    ordered_product_sales_b2b = Column(_money(), default=0)
    total_order_items = Column(Integer, default=0)
    total_order_items_b2b = Column(Integer, default=0)
    browser_sessions = Column(Integer, default=0)
    mobile_sessions = Column(Integer, default=0)
    sessions = Column(Integer, default=0)
    browser_session_percentage = Column(Float, default=0)
    mobile_session_percentage = Column(Float, default=0)
    session_percentage = Column(Float, default=0)
    browser_page_views = Column(Integer, default=0)
    mobile_page_views = Column(Integer, default=0)
    page_views = Column(Integer, default=0)
    browser_page_views_percentage = Column(Float, default=0)
    mobile_page_views_percentage = Column(Float, default=0)
    page_views_percentage = Column(Float, default=0)
    buy_box_percentage = Column(Float, default=0)
    unit_session_percentage = Column(Float, default=0)
    unit_session_percentage_b2b = Column(Float, default=0)

    __table_args__ = (
        UniqueConstraint("org_id", "date", "child_asin", name="amazon_sales_traffic_org_date_asin_idx"),
    )


class AmazonOrder(Base):
    """One row per Amazon order item.

    Only status, quantities and price move after the first insert.
    """

    __tablename__ = "amazon_orders"
    __upsert_keys__ = ("org_id", "amazon_order_id", "order_item_id")
    __insert_only__ = (
        "purchase_date", "fulfillment_channel", "asin", "seller_sku", "title",
        "is_prime", "is_business_order", "created_at",
    )

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    amazon_order_id = Column(Text, nullable=False)
    order_item_id = Column(Text, nullable=False)
    purchase_date = Column(DateTime(timezone=True), nullable=False)
    last_update_date = Column(DateTime(timezone=True))
    order_status = Column(Text)
    fulfillment_channel = Column(Text)
    asin = Column(Text)
    seller_sku = Column(Text)
    title = Column(Text)
    quantity_ordered = Column(Integer, default=0)
    quantity_shipped = Column(Integer, default=0)
    item_price = Column(_money(), default=0)
    item_currency = Column(Text, default="GBP")
    is_prime = Column(Boolean, default=False)
    is_business_order = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "amazon_order_id", "order_item_id", name="amazon_orders_org_order_item_idx"),
    )


class AmazonFinancialEvent(Base):
    """A finance transaction from the SP-API Finances API or a CSV export."""

    __tablename__ = "amazon_financial_events"
    __upsert_keys__ = ("org_id", "transaction_id")

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    transaction_id = Column(Text, nullable=False)
    transaction_type = Column(Text)
    posted_date = Column(DateTime(timezone=True))
    total_amount = Column(_money())
    total_currency = Column(Text)
    related_identifiers = Column(Text)
    items = Column(Text)
    breakdowns = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "transaction_id", name="amazon_financial_events_org_transaction_idx"),
    )


class AmazonAdsPendingReport(Base):
    """An Ads report requested in one run and collected in a later one."""

    __tablename__ = "amazon_ads_pending_reports"

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    report_id = Column(Text, nullable=False)
    report_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # pending, completed, failed
    created_at = Column(DateTime(timezone=True), default=utcnow)


class InventorySnapshot(Base):
    """Daily stock level per SKU."""

    __tablename__ = "inventory_snapshots"
    __upsert_keys__ = ("org_id", "sku", "date")
    __insert_only__ = ("warehouse_qty",)

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    sku = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    amazon_qty = Column(Integer, default=0)
    warehouse_qty = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "sku", "date", name="inventory_snapshots_org_sku_date_idx"),
    )


class Product(Base):
    """Physical, cost and per-channel pricing attributes for one SKU."""

    __tablename__ = "products"
    __upsert_keys__ = ("org_id", "sku")

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    sku = Column(Text, nullable=False)
    product_name = Column(Text)
    brand = Column(Text)
    unit_barcode = Column(Text)
    asin = Column(Text)
    parent_asin = Column(Text)
    shippo_sku = Column(Text)
    pieces_per_pack = Column(Integer)
    pack_weight_kg = Column(Numeric(10, 3, asdecimal=False))
    pack_length_cm = Column(Numeric(10, 2, asdecimal=False))
    pack_width_cm = Column(Numeric(10, 2, asdecimal=False))
    pack_height_cm = Column(Numeric(10, 2, asdecimal=False))
    unit_cbm = Column(Numeric(12, 6, asdecimal=False))
    dimensional_weight = Column(Numeric(10, 3, asdecimal=False))
    unit_price_usd = Column(Numeric(10, 4, asdecimal=False))
    unit_price_gbp = Column(Numeric(10, 4, asdecimal=False))
    pack_cost_gbp = Column(Numeric(10, 4, asdecimal=False))
    landed_cost = Column(_money(10))
    unit_lcogs = Column(Numeric(10, 4, asdecimal=False))
    pp_unit = Column(Numeric(10, 4, asdecimal=False))

    # DTC channel
    dtc_rrp = Column(_money(10))
    dtc_rrp_ex_vat = Column(_money(10))
    dtc_fulfillment_fee = Column(_money(10))
    dtc_courier = Column(_money(10))

    # Amazon channel
    amazon_rrp = Column(_money(10))
    fba_fee = Column(_money(10))
    referral_percent = Column(Numeric(5, 2, asdecimal=False))

    # Cartons
    carton_barcode = Column(Text)
    units_per_master_carton = Column(Integer)
    pieces_per_master_carton = Column(Integer)
    gross_weight_kg = Column(Numeric(10, 3, asdecimal=False))
    carton_width_cm = Column(Numeric(10, 2, asdecimal=False))
    carton_length_cm = Column(Numeric(10, 2, asdecimal=False))
    carton_height_cm = Column(Numeric(10, 2, asdecimal=False))
    carton_cbm = Column(Numeric(12, 6, asdecimal=False))

    active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (UniqueConstraint("org_id", "sku", name="products_org_sku_idx"),)


class Customer(Base):
    """A Shopify customer, resolved by email within an org."""

    __tablename__ = "customers"
    __upsert_keys__ = ("org_id", "email")

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    shopify_customer_id = Column(Text)
    first_name = Column(Text)
    last_name = Column(Text)
    email = Column(Text)
    email_marketing_consent = Column(Boolean, default=False)
    phone = Column(Text)
    total_spent = Column(Numeric(10, 2, asdecimal=False), default=0)
    orders_count = Column(Integer, default=0)
    tags = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_order_at = Column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("org_id", "email", name="customers_org_email_idx"),)


class Order(Base):
    """A Shopify order.

    Attribution source, medium and campaign are insert-only so that manual
    edits made after the first ingestion survive re-ingestion.
    """

    __tablename__ = "orders"
    __upsert_keys__ = ("org_id", "shopify_id")
    __insert_only__ = ("utm_source", "utm_medium", "utm_campaign")

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    shopify_id = Column(Text, nullable=False)
    order_number = Column(Text)
    email = Column(Text)
    customer_name = Column(Text)
    phone = Column(Text)
    customer_id = Column(Integer, ForeignKey("customers.id"))
    created_at = Column(DateTime(timezone=True))
    fulfillment_status = Column(Text)
    fulfilled_at = Column(DateTime(timezone=True))
    subtotal = Column(Numeric(10, 2, asdecimal=False))
    shipping = Column(Numeric(10, 2, asdecimal=False))
    tax = Column(Numeric(10, 2, asdecimal=False))
    total = Column(Numeric(10, 2, asdecimal=False))
    discount_codes = Column(Text)
    skus = Column(Text)
    quantity = Column(Integer, default=0)
    utm_source = Column(Text)
    utm_medium = Column(Text)
    utm_campaign = Column(Text)
    utm_content = Column(Text)
    utm_term = Column(Text)
    tracking_number = Column(Text)
    tags = Column(Text)
    has_conversion_data = Column(Boolean, default=False)
    is_repeat_customer = Column(Boolean, default=False)

    __table_args__ = (UniqueConstraint("org_id", "shopify_id", name="orders_org_shopify_idx"),)


class CampaignFcb(Base):
    """Marketing campaign lookup used to attribute orders without journey data."""

    __tablename__ = "campaigns_fcb"

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    campaign = Column(Text)
    ad_group = Column(Text)
    ad = Column(Text)
    product_name = Column(Text)
    product_url = Column(Text)
    sku_suffix = Column(Text)
    skus = Column(Text)
    discount_code = Column(Text)
    utm_source = Column(Text)
    utm_medium = Column(Text)
    utm_campaign = Column(Text)
    utm_term = Column(Text)
    product_template = Column(Text)
    status = Column(Text, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class SyncLog(Base):
    """One row per ingestion job run."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    source = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    synced_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    details = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
