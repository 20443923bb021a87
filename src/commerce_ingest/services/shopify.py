"""Shopify order ingestion with UTM attribution.

Orders are read through the Admin GraphQL API and converted to the REST
order payload shape, which is also what order webhooks deliver, so a single
upsert path handles both.

Attribution order of precedence:
  1. The order's customer journey (first visit UTM parameters).
  2. A campaigns_fcb row whose discount code matches the order's.
  3. A campaigns_fcb row sharing a SKU with the order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from commerce_ingest.client import ShopifyClient
from commerce_ingest.db.models import CampaignFcb, Customer, Order
from commerce_ingest.db.upsert import upsert
from commerce_ingest.exceptions import ApiError
from commerce_ingest.normalize import to_datetime

logger = logging.getLogger(__name__)

ORDERS_QUERY = """
query Orders($first: Int!, $after: String) {
  orders(first: $first, sortKey: CREATED_AT, reverse: true, after: $after) {
    edges {
      node {
        id
        legacyResourceId
        name
        email
        createdAt
        displayFulfillmentStatus
        totalPriceSet { shopMoney { amount } }
        subtotalPriceSet { shopMoney { amount } }
        totalShippingPriceSet { shopMoney { amount } }
        totalTaxSet { shopMoney { amount } }
        tags
        customer { id email firstName lastName phone }
        shippingAddress { firstName lastName phone }
        discountCodes
        lineItems(first: 50) {
          edges { node { sku title quantity } }
        }
        fulfillments { trackingInfo { number } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

JOURNEY_QUERY = """
query Journey($id: ID!) {
  order(id: $id) {
    customerJourneySummary {
      firstVisit {
        utmParameters { source medium campaign content term }
      }
    }
  }
}
"""


class Attribution(BaseModel):
    source: str = ""
    medium: str = ""
    campaign: str = ""
    content: str = ""
    term: str = ""

    @property
    def has_conversion_data(self) -> bool:
        return bool(self.source or self.campaign or self.medium)


class ShopifyBackfillResult(BaseModel):
    pages: int = 0
    fetched: int = 0
    upserted: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    end_cursor: str | None = None
    has_next_page: bool = False


# ── Payload helpers ───────────────────────────────────────────────────


def _money(money_set: dict[str, Any] | None) -> str | None:
    return ((money_set or {}).get("shopMoney") or {}).get("amount")


def convert_node(node: dict[str, Any]) -> dict[str, Any]:
    """A GraphQL order node in REST order payload shape."""
    customer = node.get("customer")
    shipping = node.get("shippingAddress")
    name = node.get("name") or ""
    return {
        "id": int(node["legacyResourceId"]),
        "order_number": name.replace("#", "") or None,
        "email": node.get("email"),
        "customer": {
            "id": customer.get("id"),
            "email": customer.get("email"),
            "first_name": customer.get("firstName"),
            "last_name": customer.get("lastName"),
            "phone": customer.get("phone"),
        } if customer else None,
        "shipping_address": {
            "first_name": shipping.get("firstName"),
            "last_name": shipping.get("lastName"),
            "phone": shipping.get("phone"),
        } if shipping else None,
        "created_at": node.get("createdAt"),
        "fulfillment_status": (node.get("displayFulfillmentStatus") or "").lower() or None,
        "total_price": _money(node.get("totalPriceSet")),
        "subtotal_price": _money(node.get("subtotalPriceSet")),
        "total_shipping_price_set": {"shop_money": {"amount": _money(node.get("totalShippingPriceSet"))}},
        "total_tax": _money(node.get("totalTaxSet")),
        "tags": ", ".join(node.get("tags") or []),
        "discount_codes": [{"code": code} for code in node.get("discountCodes") or []],
        "line_items": [
            {"sku": edge["node"].get("sku"), "title": edge["node"].get("title"), "quantity": edge["node"].get("quantity") or 0}
            for edge in (node.get("lineItems") or {}).get("edges") or []
        ],
        "fulfillments": [
            {"tracking_number": info.get("number")}
            for fulfillment in node.get("fulfillments") or []
            for info in fulfillment.get("trackingInfo") or []
        ],
    }


def get_customer_name(order: dict[str, Any]) -> str:
    for person in (order.get("customer"), order.get("shipping_address")):
        if person and (person.get("first_name") or person.get("last_name")):
            return f"{person.get('first_name') or ''} {person.get('last_name') or ''}".strip()
    return ""


def get_phone(order: dict[str, Any]) -> str:
    for source in ("customer", "shipping_address", "billing_address"):
        phone = (order.get(source) or {}).get("phone")
        if phone:
            return phone
    return ""


def get_discount_codes(order: dict[str, Any]) -> str:
    return ", ".join(d["code"] for d in order.get("discount_codes") or [] if d.get("code"))


def get_line_item_skus(order: dict[str, Any]) -> str:
    return ", ".join(item.get("sku") or item.get("title") or "" for item in order.get("line_items") or [])


def get_line_item_quantity(order: dict[str, Any]) -> int:
    return sum(int(item.get("quantity") or 0) for item in order.get("line_items") or [])


def get_tracking_number(order: dict[str, Any]) -> str:
    return ", ".join(f["tracking_number"] for f in order.get("fulfillments") or [] if f.get("tracking_number"))


def _split_skus(text: str) -> list[str]:
    return [s.strip() for s in text.lower().split(",") if s.strip()]


def _utc(value: str | None) -> datetime | None:
    parsed = to_datetime(value)
    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed


def _amount(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


# ── Service ───────────────────────────────────────────────────────────


class ShopifyService:
    """Fetches orders for one store and upserts them into an org."""

    def __init__(self, client: ShopifyClient, session: Session, org_id: int) -> None:
        self._client = client
        self._session = session
        self._org_id = org_id

    def fetch_orders_page(self, first: int = 50, after: str | None = None) -> dict[str, Any]:
        variables: dict[str, Any] = {"first": first}
        if after:
            variables["after"] = after
        data = self._client.graphql(ORDERS_QUERY, variables)
        return data.get("orders") or {"edges": [], "pageInfo": {"hasNextPage": False}}

    def get_customer_journey(self, order_id: int | str) -> dict[str, Any]:
        """First-visit UTM parameters, or {} if Shopify has none or the call fails."""
        try:
            data = self._client.graphql(JOURNEY_QUERY, {"id": f"gid://shopify/Order/{order_id}"})
        except ApiError as e:
            logger.warning("Customer journey lookup failed for order %s: %s", order_id, e)
            return {}
        summary = (data.get("order") or {}).get("customerJourneySummary") or {}
        return ((summary.get("firstVisit") or {}).get("utmParameters")) or {}

    def attribution_from_campaigns(self, discount_codes: str, skus: str) -> Attribution | None:
        """Fallback attribution from campaigns_fcb, by discount code then by SKU."""
        if discount_codes:
            row = self._session.scalars(
                select(CampaignFcb)
                .where(
                    CampaignFcb.org_id == self._org_id,
                    func.lower(CampaignFcb.discount_code) == discount_codes.lower(),
                )
                .limit(1)
            ).first()
            if row is not None:
                return _campaign_attribution(row)

        order_skus = _split_skus(skus)
        if order_skus:
            campaigns = self._session.scalars(
                select(CampaignFcb)
                .where(CampaignFcb.org_id == self._org_id, CampaignFcb.skus.is_not(None), CampaignFcb.skus != "")
                .order_by(CampaignFcb.id)
            ).all()
            for campaign in campaigns:
                campaign_skus = set(_split_skus(campaign.skus or ""))
                if any(sku in campaign_skus for sku in order_skus):
                    return _campaign_attribution(campaign)

        return None

    def is_repeat_customer(self, email: str | None, order_date: datetime | None) -> bool:
        if not email or order_date is None:
            return False
        earlier = self._session.scalar(
            select(Order.id)
            .where(Order.org_id == self._org_id, Order.email == email, Order.created_at < order_date)
            .limit(1)
        )
        return earlier is not None

    def resolve_customer(self, order: dict[str, Any], email: str | None, order_date: datetime | None) -> int | None:
        """Find or create the customer row for this email and return its id.

        last_order_at only ever moves forward, so walking orders newest first
        leaves it on the most recent order.
        """
        if not email:
            return None
        customer = order.get("customer") or {}
        values: dict[str, Any] = {"org_id": self._org_id, "email": email}
        for column, key in (("first_name", "first_name"), ("last_name", "last_name"), ("phone", "phone")):
            if customer.get(key):
                values[column] = customer[key]
        if customer.get("id"):
            values["shopify_customer_id"] = str(customer["id"]).rsplit("/", 1)[-1]
        upsert(self._session, Customer, values)

        if order_date is not None:
            self._session.execute(
                update(Customer)
                .where(
                    Customer.org_id == self._org_id,
                    Customer.email == email,
                    or_(Customer.last_order_at.is_(None), Customer.last_order_at < order_date),
                )
                .values(last_order_at=order_date)
                .execution_options(synchronize_session=False)
            )
        return self._session.scalar(
            select(Customer.id).where(Customer.org_id == self._org_id, Customer.email == email)
        )

    def upsert_order(self, order: dict[str, Any]) -> dict[str, Any]:
        """Attribute, link and upsert one REST-shaped order payload.

        On conflict the stored utm_source, utm_medium and utm_campaign are
        kept; everything else is refreshed.
        """
        journey = self.get_customer_journey(order["id"])
        attribution = Attribution(
            source=journey.get("source") or "",
            medium=journey.get("medium") or "",
            campaign=journey.get("campaign") or "",
            content=journey.get("content") or "",
            term=journey.get("term") or "",
        )
        has_conversion_data = attribution.has_conversion_data

        if not has_conversion_data:
            fallback = self.attribution_from_campaigns(get_discount_codes(order), get_line_item_skus(order))
            if fallback is not None:
                attribution = fallback

        email = (order.get("customer") or {}).get("email") or order.get("email") or None
        order_date = _utc(order.get("created_at"))
        is_repeat = self.is_repeat_customer(email, order_date)

        values = {
            "org_id": self._org_id,
            "shopify_id": str(order["id"]),
            "order_number": str(order["order_number"]) if order.get("order_number") else None,
            "email": email,
            "customer_name": get_customer_name(order) or None,
            "phone": get_phone(order) or None,
            "customer_id": self.resolve_customer(order, email, order_date),
            "created_at": order_date,
            "fulfillment_status": order.get("fulfillment_status") or "unfulfilled",
            "fulfilled_at": _utc(order.get("fulfilled_at")),
            "subtotal": _amount(order.get("subtotal_price")),
            "shipping": _amount(((order.get("total_shipping_price_set") or {}).get("shop_money") or {}).get("amount")),
            "tax": _amount(order.get("total_tax")),
            "total": _amount(order.get("total_price")),
            "discount_codes": get_discount_codes(order) or None,
            "skus": get_line_item_skus(order) or None,
            "quantity": get_line_item_quantity(order),
            "utm_source": attribution.source or None,
            "utm_medium": attribution.medium or None,
            "utm_campaign": attribution.campaign or None,
            "utm_content": attribution.content or None,
            "utm_term": attribution.term or None,
            "tracking_number": get_tracking_number(order) or None,
            "tags": order.get("tags") or None,
            "has_conversion_data": has_conversion_data,
            "is_repeat_customer": is_repeat,
        }
        upsert(self._session, Order, values)
        self._session.commit()
        return values

    def backfill(
        self,
        page_size: int = 50,
        max_pages: int | None = None,
        cursor: str | None = None,
    ) -> ShopifyBackfillResult:
        """Walk the order list newest first, upserting every order.

        A failing order is rolled back and counted; the walk continues.
        """
        result = ShopifyBackfillResult(end_cursor=cursor)
        while max_pages is None or result.pages < max_pages:
            page = self.fetch_orders_page(page_size, result.end_cursor)
            edges = page.get("edges") or []
            result.pages += 1
            result.fetched += len(edges)

            for edge in edges:
                node = edge.get("node") or {}
                try:
                    self.upsert_order(convert_node(node))
                    result.upserted += 1
                except Exception as e:
                    self._session.rollback()
                    result.failed += 1
                    result.errors.append(f"Order {node.get('name')}: {e}")
                    logger.warning("Failed to upsert order %s: %s", node.get("name"), e)

            page_info = page.get("pageInfo") or {}
            result.has_next_page = bool(page_info.get("hasNextPage"))
            result.end_cursor = page_info.get("endCursor") or result.end_cursor
            logger.info("Page %d: %d orders", result.pages, len(edges))
            if not result.has_next_page:
                break
        return result


class RepeatRecalcResult(BaseModel):
    total_orders: int = 0
    repeat_customers: int = 0
    new_customers: int = 0
    changed: int = 0


def recalculate_repeat_customers(session: Session, org_id: int) -> RepeatRecalcResult:
    """Recompute is_repeat_customer for every stored order of an org.

    An order is a repeat when the same email has an order strictly earlier
    than it. Needed after a newest-first backfill, where each order was
    flagged before its predecessors were stored.
    """
    result = RepeatRecalcResult()
    first_seen: dict[str, datetime] = {}
    rows = session.execute(
        select(Order.id, Order.email, Order.created_at, Order.is_repeat_customer)
        .where(Order.org_id == org_id)
        .order_by(Order.created_at, Order.id)
    ).all()

    for order_id, email, created_at, stored in rows:
        result.total_orders += 1
        if not email or created_at is None:
            continue
        first = first_seen.setdefault(email, created_at)
        is_repeat = first < created_at
        if is_repeat:
            result.repeat_customers += 1
        else:
            result.new_customers += 1
        if bool(stored) != is_repeat:
            session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(is_repeat_customer=is_repeat)
                .execution_options(synchronize_session=False)
            )
            result.changed += 1

    session.commit()
    logger.info(
        "Repeat flags for org %s: %d orders, %d repeat, %d changed",
        org_id, result.total_orders, result.repeat_customers, result.changed,
    )
    return result


def _campaign_attribution(row: CampaignFcb) -> Attribution:
    return Attribution(
        source=row.utm_source or "",
        medium=row.utm_medium or "",
        campaign=row.utm_campaign or "",
        content="",
        term=row.utm_term or "",
    )
