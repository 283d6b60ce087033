# Overview: Locking, retry, and guarded stock-decrement helpers shared by the ledger services.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import PurchaseBatch


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError
    (version_id conflicts). Ledger errors are not retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def decrement_remaining(purchase_id: int, quantity: int, *, shrink_quantity: bool = False) -> bool:
    """
    Guarded stock decrement:

        UPDATE purchases SET remaining_quantity = remaining_quantity - :q
        WHERE id = :id AND remaining_quantity >= :q

    Returns False when no row matched (batch gone or not enough left); the
    caller raises and rolls back. With shrink_quantity the batch's quantity is
    reduced too (units leaving the shop for the supplier, not sold).
    """
    values = {"remaining_quantity": PurchaseBatch.remaining_quantity - quantity}
    if shrink_quantity:
        values["quantity"] = PurchaseBatch.quantity - quantity

    stmt = (
        update(PurchaseBatch)
        .where(PurchaseBatch.id == purchase_id)
        .where(PurchaseBatch.remaining_quantity >= quantity)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def restore_remaining(purchase_id: int, quantity: int) -> bool:
    """Give units back to a batch (sale reverted). Never exceeds quantity."""
    stmt = (
        update(PurchaseBatch)
        .where(PurchaseBatch.id == purchase_id)
        .where(PurchaseBatch.remaining_quantity + quantity <= PurchaseBatch.quantity)
        .values(remaining_quantity=PurchaseBatch.remaining_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
