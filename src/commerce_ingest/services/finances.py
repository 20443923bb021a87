"""SP-API Finances (2024-06-19) transactions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from commerce_ingest.client import SpApiClient
from commerce_ingest.db.models import AmazonFinancialEvent
from commerce_ingest.db.upsert import UpsertResult, upsert_rows
from commerce_ingest.normalize import normalize_financial_transaction
from commerce_ingest.utils.pagination import paginate

logger = logging.getLogger(__name__)

# postedBefore must be at least two minutes in the past
POSTED_BEFORE_LAG = timedelta(minutes=3)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def posted_window(
    days: int = 7,
    start: str | None = None,
    end: str | None = None,
    now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> tuple[str, str]:
    """(postedAfter, postedBefore) for a lookback or an explicit date range."""
    current = now()
    posted_after = f"{start}T00:00:00Z" if start else _iso(current - timedelta(days=days))
    posted_before = f"{end}T23:59:59Z" if end else _iso(current - POSTED_BEFORE_LAG)
    return posted_after, posted_before


class FinancesService:
    def __init__(self, client: SpApiClient, session: Session, org_id: int) -> None:
        self._client = client
        self._session = session
        self._org_id = org_id

    def fetch_transactions(self, posted_after: str, posted_before: str) -> list[dict[str, Any]]:
        def fetch(params: dict[str, Any]) -> dict[str, Any]:
            data = self._client.get("/finances/2024-06-19/transactions", params=params).json()
            return data.get("payload") or data

        return paginate(
            fetch,
            {"postedAfter": posted_after, "postedBefore": posted_before},
            results_key="transactions",
            token_key="nextToken",
        )

    def sync(self, posted_after: str, posted_before: str) -> UpsertResult:
        transactions = self.fetch_transactions(posted_after, posted_before)
        logger.info("Fetched %d transactions (%s to %s)", len(transactions), posted_after, posted_before)
        values = [normalize_financial_transaction(txn, self._org_id, i) for i, txn in enumerate(transactions)]
        return upsert_rows(self._session, AmazonFinancialEvent, values)
