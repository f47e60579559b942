"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking helpers
- Conditional (compare-and-set) updates
- Dialect-native upsert statements
"""

import logging
from typing import Optional, TypeVar, Type

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except Exception:
        return False


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition,
    nowait: bool = False,
    skip_locked: bool = False
) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.

    Args:
        db: Database session
        model: SQLAlchemy model class
        filter_condition: Filter to find the row
        nowait: If True, raise error immediately if lock unavailable (PostgreSQL only)
        skip_locked: If True, skip locked rows (PostgreSQL only)

    Returns:
        The locked model instance, or None if not found

    Example:
        booking = acquire_row_lock(db, Booking, Booking.id == booking_id)
    """
    query = db.query(model).filter(filter_condition)

    # Only apply locking on PostgreSQL
    if is_postgres(db):
        if skip_locked:
            query = query.with_for_update(skip_locked=True)
        elif nowait:
            query = query.with_for_update(nowait=True)
        else:
            query = query.with_for_update()

    return query.first()


def get_pending_with_skip_locked(
    db: Session,
    model: Type[T],
    filter_condition,
    order_by=None,
    limit: int = 50
) -> list:
    """
    Get pending records with skip_locked to prevent worker race conditions.

    Useful for background workers processing queues.
    """
    query = db.query(model).filter(filter_condition)

    if order_by is not None:
        query = query.order_by(order_by)

    # Only apply skip_locked on PostgreSQL
    if is_postgres(db):
        query = query.with_for_update(skip_locked=True)

    return query.limit(limit).all()


def compare_and_set(
    db: Session,
    model: Type[T],
    filter_condition,
    expected: dict,
    values: dict
) -> bool:
    """
    Conditionally update a row: only if every column in ``expected`` still
    holds the given value.

    Returns True when exactly one row was changed. The UPDATE takes the row
    lock on PostgreSQL, so a concurrent caller blocks until the first
    transaction ends and then sees zero affected rows.

    Example:
        claimed = compare_and_set(
            db, SyncConflict, SyncConflict.id == conflict_id,
            expected={"resolved": False}, values={"resolved": True}
        )
    """
    stmt = update(model).where(filter_condition)
    for column_name, value in expected.items():
        stmt = stmt.where(getattr(model, column_name) == value)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = db.execute(stmt)
    return result.rowcount == 1


def dialect_insert(db: Session):
    """Return the insert() construct that supports ON CONFLICT for this dialect."""
    if is_postgres(db):
        return pg_insert
    return sqlite_insert
