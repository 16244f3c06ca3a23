"""Guarded single-statement writes against the relational store.

Every mutation that must not race goes through ``conditional_update`` or
``conditional_delete``: the guard is part of the ``WHERE`` clause of one
``UPDATE``/``DELETE ... RETURNING`` statement, so the read, the check and the
write happen inside the database as one indivisible step. A guard that does
not hold simply matches zero rows.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import ColumnElement, delete, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionalUpdateResult:
    """Outcome of a guarded write.

    ``applied`` and ``found`` together distinguish the three outcomes the
    callers care about: committed, guard failed, and record missing.
    ``current`` is the row after the write when applied, the row as it was
    re-read when the guard failed, and ``None`` when the record is missing.
    """

    applied: bool
    found: bool
    current: Mapping[str, Any] | None = None

    @property
    def predicate_failed(self) -> bool:
        return self.found and not self.applied


async def _read_row(db: AsyncSession, table, key: UUID) -> Mapping[str, Any] | None:
    result = await db.execute(select(table).where(table.c.id == key))
    row = result.mappings().one_or_none()
    return dict(row) if row is not None else None


async def conditional_update(
    db: AsyncSession,
    model,
    key: UUID,
    values: Mapping[str, Any],
    predicate: ColumnElement[bool] | None = None,
) -> ConditionalUpdateResult:
    """
    Apply ``values`` to the row ``key`` only if ``predicate`` holds.

    Args:
        db: Database session
        model: Declarative model whose table is updated
        key: Primary key of the row
        values: Column name to value or SQL expression (evaluated in the store)
        predicate: Guard over the pre-update row; ``None`` means existence only

    Returns:
        ConditionalUpdateResult describing what happened

    Raises:
        StoreUnavailableError: If the store itself failed
    """
    table = model.__table__
    stmt = update(table).where(table.c.id == key)
    if predicate is not None:
        stmt = stmt.where(predicate)
    stmt = stmt.values(**values).returning(*table.c)

    try:
        result = await db.execute(stmt)
        row = result.mappings().one_or_none()
        if row is not None:
            current = dict(row)
            await db.commit()
            return ConditionalUpdateResult(applied=True, found=True, current=current)

        existing = await _read_row(db, table, key)
        await db.commit()
    except DBAPIError as e:
        await db.rollback()
        logger.error(
            "Conditional update failed in the store",
            extra={"table": table.name, "key": str(key), "error": str(e)}
        )
        raise StoreUnavailableError(operation=f"update {table.name}") from e

    return ConditionalUpdateResult(applied=False, found=existing is not None, current=existing)


async def conditional_delete(
    db: AsyncSession,
    model,
    key: UUID,
    predicate: ColumnElement[bool] | None = None,
) -> ConditionalUpdateResult:
    """Delete the row ``key`` only if ``predicate`` holds. Same result contract as updates."""
    table = model.__table__
    stmt = delete(table).where(table.c.id == key)
    if predicate is not None:
        stmt = stmt.where(predicate)
    stmt = stmt.returning(*table.c)

    try:
        result = await db.execute(stmt)
        row = result.mappings().one_or_none()
        if row is not None:
            deleted = dict(row)
            await db.commit()
            return ConditionalUpdateResult(applied=True, found=True, current=deleted)

        existing = await _read_row(db, table, key)
        await db.commit()
    except DBAPIError as e:
        await db.rollback()
        logger.error(
            "Conditional delete failed in the store",
            extra={"table": table.name, "key": str(key), "error": str(e)}
        )
        raise StoreUnavailableError(operation=f"delete {table.name}") from e

    return ConditionalUpdateResult(applied=False, found=existing is not None, current=existing)
