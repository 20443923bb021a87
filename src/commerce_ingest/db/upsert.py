"""Insert-or-update driven by each model's declared upsert policy."""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commerce_ingest.db.models import Base, utcnow
from commerce_ingest.utils.chunking import chunk_list

logger = logging.getLogger(__name__)


class UpsertResult(BaseModel):
    upserted: int = 0
    errors: int = 0
    error_messages: list[str] = Field(default_factory=list)


def _dialect_insert(session: Session):
    name = session.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"Upsert is not supported for dialect '{name}'")
    return insert


def updatable_columns(model: type[Base], values: dict[str, Any]) -> list[str]:
    """Columns from values that an ON CONFLICT update may overwrite."""
    protected = set(model.__upsert_keys__) | set(model.__insert_only__)
    protected |= {c.name for c in model.__table__.primary_key.columns}
    return [name for name in values if name not in protected]


def upsert(session: Session, model: type[Base], values: dict[str, Any]) -> None:
    """Insert one row, or update its non-protected columns on key conflict.

    Does not commit.
    """
    if not model.__upsert_keys__:
        raise ValueError(f"{model.__name__} has no upsert keys")

    values = dict(values)
    if "updated_at" in model.__table__.columns and "updated_at" not in values:
        values["updated_at"] = utcnow()

    stmt = _dialect_insert(session)(model).values(**values)
    update_cols = updatable_columns(model, values)
    if update_cols:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(model.__upsert_keys__),
            set_={name: stmt.excluded[name] for name in update_cols},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(model.__upsert_keys__))
    session.execute(stmt)


def upsert_rows(
    session: Session,
    model: type[Base],
    rows: list[dict[str, Any]],
    batch_size: int | None = None,
    on_batch: Callable[[int, UpsertResult], None] | None = None,
) -> UpsertResult:
    """Upsert rows one at a time, committing each.

    A failing row is rolled back, logged and counted; the rest continue.

    Args:
        session: Open session.
        model: Target model.
        rows: Normalized row dicts keyed by column name.
        batch_size: Report progress through on_batch every batch_size rows.
        on_batch: Called with (rows processed so far, running result).
    """
    result = UpsertResult()
    processed = 0
    for batch in chunk_list(rows, batch_size or max(len(rows), 1)):
        for row in batch:
            try:
                upsert(session, model, row)
                session.commit()
                result.upserted += 1
            except SQLAlchemyError as e:
                session.rollback()
                result.errors += 1
                message = f"{model.__tablename__} {_describe_key(model, row)}: {e.__class__.__name__}: {e}"
                result.error_messages.append(message)
                logger.warning("Row upsert failed: %s", message)
        processed += len(batch)
        if on_batch:
            on_batch(processed, result)
    return result


def _describe_key(model: type[Base], row: dict[str, Any]) -> str:
    return ", ".join(f"{k}={row.get(k)}" for k in model.__upsert_keys__)
