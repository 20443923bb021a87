"""One sync_logs row per job run."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commerce_ingest.db.models import SyncLog, utcnow

logger = logging.getLogger(__name__)

MAX_DETAILS = 1000


def record_sync(
    session: Session,
    org_id: int,
    source: str,
    status: str,
    details: dict[str, Any] | str | None = None,
) -> SyncLog | None:
    """Write a sync_logs row and commit it.

    Error details are truncated. A failure to write the log is logged
    and does not abort the job that produced it.
    """
    if isinstance(details, dict):
        text = json.dumps({"job": source, **details}, default=str)
    else:
        text = (details or "")[:MAX_DETAILS]

    entry = SyncLog(org_id=org_id, source=source, status=status, synced_at=utcnow(), details=text)
    try:
        session.add(entry)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Could not write sync log for %s: %s", source, e)
        return None
    return entry
