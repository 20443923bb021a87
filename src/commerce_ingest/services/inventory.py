"""FBA inventory snapshot from the unsuppressed-inventory report (TSV)."""

from __future__ import annotations

import csv
import io
import logging
import time
from datetime import date
from typing import Any, Callable

from sqlalchemy.orm import Session

from commerce_ingest.client import SpApiClient
from commerce_ingest.config import Pacing
from commerce_ingest.db.models import InventorySnapshot
from commerce_ingest.db.upsert import UpsertResult, upsert_rows
from commerce_ingest.retry import RetryPolicy
from commerce_ingest.services.reporting import (
    FBA_INVENTORY,
    ReportPoller,
    SpApiReportSource,
    download_text,
)

logger = logging.getLogger(__name__)


def parse_inventory_tsv(content: str) -> list[dict[str, Any]]:
    """Rows of (sku, total FBA quantity) from the report's TSV body."""
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter="\t", quoting=csv.QUOTE_NONE)
    items = []
    for row in reader:
        sku = (row.get("sku") or "").strip()
        if not sku:
            continue
        try:
            quantity = int(float((row.get("afn-total-quantity") or "0").strip() or 0))
        except ValueError:
            quantity = 0
        items.append({"sku": sku, "amazon_qty": quantity})
    return items


class InventoryService:
    def __init__(
        self,
        client: SpApiClient,
        session: Session,
        org_id: int,
        marketplace_id: str,
        pacing: Pacing | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        pacing = pacing or Pacing()
        self._session = session
        self._org_id = org_id
        self._source = SpApiReportSource(client, marketplace_id, FBA_INVENTORY)
        self._poller = ReportPoller(
            poll_interval=pacing.inventory_poll_interval,
            max_polls=pacing.inventory_max_polls,
            rate_limit_policy=RetryPolicy.linear(pacing.rate_limit_sleep, 10),
            sleep=sleep,
        )

    def fetch(self) -> list[dict[str, Any]]:
        report_id = self._source.create_report()
        ready = self._poller.poll_until_ready(self._source, report_id)
        return parse_inventory_tsv(download_text(ready.url, ready.compression))

    def sync(self, snapshot_date: date | None = None) -> UpsertResult:
        """Store today's (or the given day's) Amazon quantity per SKU."""
        snapshot_date = snapshot_date or date.today()
        items = self.fetch()
        logger.info("Inventory report returned %d SKUs", len(items))
        values = [
            {"org_id": self._org_id, "sku": item["sku"], "date": snapshot_date, "amazon_qty": item["amazon_qty"]}
            for item in items
        ]
        return upsert_rows(self._session, InventorySnapshot, values)
