"""SP-API Orders backfill: order list plus per-order items."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from commerce_ingest.client import SpApiClient
from commerce_ingest.db.models import AmazonOrder
from commerce_ingest.db.upsert import upsert_rows
from commerce_ingest.exceptions import IncompleteItemError
from commerce_ingest.normalize import normalize_order_item
from commerce_ingest.retry import RetryPolicy
from commerce_ingest.utils.pagination import paginate

logger = logging.getLogger(__name__)

ORDER_STATUSES = "Pending,Unshipped,PartiallyShipped,Shipped,InvoiceUnconfirmed,Canceled"

# The orders endpoints have a lower burst limit than reports
ORDERS_RATE_LIMIT_POLICY = RetryPolicy.capped_exponential(base=2.0, cap=32.0, max_attempts=6)


def _payload(response_json: dict[str, Any]) -> dict[str, Any]:
    return response_json.get("payload") or response_json


class AmazonOrdersService:
    def __init__(
        self,
        client: SpApiClient,
        session: Session,
        org_id: int,
        marketplace_id: str,
        page_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._session = session
        self._org_id = org_id
        self._marketplace_id = marketplace_id
        self._page_delay = page_delay
        self._sleep = sleep
        self._orders: dict[str, dict[str, Any]] = {}

    def existing_order_ids(self) -> set[str]:
        ids = self._session.scalars(
            select(AmazonOrder.amazon_order_id).where(AmazonOrder.org_id == self._org_id).distinct()
        ).all()
        return set(ids)

    def list_orders(self, since: str) -> list[dict[str, Any]]:
        """Every order created since the given date, across all pages.

        The orders are also remembered so ingest_order can look them up by id.
        """
        params = {
            "MarketplaceIds": self._marketplace_id,
            "CreatedAfter": f"{since}T00:00:00Z",
            "OrderStatuses": ORDER_STATUSES,
        }

        def fetch(page_params: dict[str, Any]) -> dict[str, Any]:
            response = self._client.get("/orders/v0/orders", params=page_params)
            return _payload(response.json())

        orders = paginate(
            fetch,
            params,
            results_key="Orders",
            token_key="NextToken",
            delay=self._page_delay,
            sleep=self._sleep,
        )
        self._orders = {o["AmazonOrderId"]: o for o in orders if o.get("AmazonOrderId")}
        logger.info("Fetched %d orders since %s", len(self._orders), since)
        return orders

    def purchase_date(self, order_id: str) -> str:
        """Sort key for the backfill driver."""
        return self._orders.get(order_id, {}).get("PurchaseDate") or ""

    def order_items(self, order_id: str) -> list[dict[str, Any]]:
        def fetch(page_params: dict[str, Any]) -> dict[str, Any]:
            response = self._client.get(f"/orders/v0/orders/{order_id}/orderItems", params=page_params or None)
            return _payload(response.json())

        return paginate(fetch, {}, results_key="OrderItems", token_key="NextToken")

    def ingest_order(self, order_id: str) -> int:
        """Fetch one order's items and upsert a row per item. Returns items stored.

        An order with any failed item is removed again so it is retried.
        """
        order = self._orders.get(order_id) or {"AmazonOrderId": order_id}
        items = self.order_items(order_id)
        values = [normalize_order_item(order, item, self._org_id) for item in items]
        result = upsert_rows(self._session, AmazonOrder, values)
        if result.errors:
            self._session.execute(
                delete(AmazonOrder)
                .where(AmazonOrder.org_id == self._org_id, AmazonOrder.amazon_order_id == order_id)
                .execution_options(synchronize_session=False)
            )
            self._session.commit()
            raise IncompleteItemError(
                f"{result.errors} of {len(values)} items failed to store: {result.error_messages[0]}",
                row_errors=result.errors,
            )
        return result.upserted
