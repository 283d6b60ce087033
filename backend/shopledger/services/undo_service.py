# Overview: Service-layer operations for undoing purchases and sales with an append-only audit trail.

"""
Undo / audit log

Every undo writes its log row in the same transaction that reverts the
ledger, so either both happen or neither does. Log rows are snapshots: they
do not depend on the reverted rows still existing.

"Undo last purchase" is scoped to the acting user's own batches created
within PURCHASE_UNDO_WINDOW_HOURS; one cashier cannot undo another's intake.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product, PurchaseBatch, PurchaseUndoLog, SaleUndoLog, Supplier, User, Invoice
from ..models.audit import SALE_UNDO_REASON_TYPES
from ..pagination import paginate
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents
from . import inventory_service, purchase_service, sales_service
from .concurrency import lock_for_update, run_with_retry


PURCHASE_UNDO_CSV_HEADER = [
    "Purchase ID", "Product", "Supplier", "Quantity", "Buying Price",
    "Date Purchased", "Date Undone", "Undone By", "Reason",
]

SALE_UNDO_CSV_HEADER = [
    "ID", "Invoice No", "User", "Undo Date", "Reason Type", "Reason Details",
    "Customer", "Total Amount", "Items Count", "Sale Date",
]


def _actor_name(actor: User | None) -> str:
    return actor.username if actor is not None else "system"


def _undo_batch_locked(batch: PurchaseBatch, actor: User | None, reason: str | None) -> PurchaseUndoLog:
    if purchase_service.has_sales(batch.id):
        raise ConflictError("Cannot undo purchase with associated sales")
    if purchase_service.has_supplier_returns(batch.id):
        raise ConflictError("Cannot undo purchase with associated supplier returns")

    log = PurchaseUndoLog(
        purchase_id=batch.id,
        product_id=batch.product_id,
        supplier_id=batch.product.supplier_id if batch.product else None,
        quantity=batch.quantity,
        remaining_quantity=batch.remaining_quantity,
        buying_price_cents=batch.buying_price_cents,
        selling_price_cents=batch.selling_price_cents,
        warranty_months=batch.warranty_months,
        date_purchased=batch.purchased_at,
        date_undone=utcnow(),
        undone_by_user_id=actor.id if actor is not None else None,
        undone_by=_actor_name(actor),
        reason=(reason or "").strip() or None,
    )
    db.session.add(log)

    product_id = batch.product_id
    db.session.delete(batch)
    db.session.flush()
    inventory_service.recompute(product_id)
    return log


def undo_purchase(purchase_id: int, *, actor: User | None = None, reason: str | None = None) -> PurchaseUndoLog:
    def _op():
        batch = lock_for_update(db.session.query(PurchaseBatch).filter_by(id=purchase_id)).first()
        if batch is None:
            raise NotFoundError("No purchase found with that ID")
        log = _undo_batch_locked(batch, actor, reason)
        db.session.commit()
        return log

    try:
        log = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Purchase %s undone by %s", purchase_id, _actor_name(actor))
    return log


def undo_last_purchase(*, actor: User, reason: str | None = None) -> PurchaseUndoLog:
    if actor is None:
        raise ValidationError("An acting user is required to undo a purchase")
    window_hours = current_app.config["PURCHASE_UNDO_WINDOW_HOURS"]

    def _op():
        since = utcnow() - timedelta(hours=window_hours)
        query = (
            db.session.query(PurchaseBatch)
            .filter(PurchaseBatch.created_by_user_id == actor.id)
            .filter(PurchaseBatch.created_at >= since)
            .order_by(PurchaseBatch.created_at.desc(), PurchaseBatch.id.desc())
        )
        batch = lock_for_update(query).first()
        if batch is None:
            raise NotFoundError(f"No purchase by you in the last {window_hours} hours to undo")
        log = _undo_batch_locked(batch, actor, reason)
        db.session.commit()
        return log

    try:
        log = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Last purchase (%s) undone by %s", log.purchase_id, actor.username)
    return log


def undo_sale(
    invoice_no: int,
    *,
    actor: User | None = None,
    reason_type: str | None = None,
    reason_details: str | None = None,
) -> SaleUndoLog:
    reason_type = (reason_type or "").strip()
    if reason_type not in SALE_UNDO_REASON_TYPES:
        raise ValidationError(
            f"reason_type must be one of: {', '.join(SALE_UNDO_REASON_TYPES)}",
        )

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(invoice_no=invoice_no)).first()
        if invoice is None:
            raise NotFoundError("Sale not found")
        blocker = sales_service.deletion_blocker(invoice)
        if blocker:
            raise ConflictError(blocker)

        snapshot = sales_service.sale_detail(invoice)
        log = SaleUndoLog(
            invoice_no=invoice.invoice_no,
            user_id=actor.id if actor is not None else None,
            undo_date=utcnow(),
            reason_type=reason_type,
            reason_details=(reason_details or "").strip() or None,
            sale_data=json.dumps(snapshot),
        )
        db.session.add(log)

        product_ids = sales_service.revert_sale_locked(invoice)
        inventory_service.recompute_many(product_ids)
        db.session.commit()
        return log

    try:
        log = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Sale %s undone by %s (%s)", invoice_no, _actor_name(actor), reason_type,
    )
    return log


def _purchase_log_query(search=None, start=None, end=None):
    query = (
        db.session.query(PurchaseUndoLog)
        .outerjoin(Product, PurchaseUndoLog.product_id == Product.id)
        .outerjoin(Supplier, PurchaseUndoLog.supplier_id == Supplier.id)
    )
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(Product.name.ilike(like), Supplier.name.ilike(like), PurchaseUndoLog.undone_by.ilike(like))
        )
    if start is not None:
        query = query.filter(PurchaseUndoLog.date_undone >= start)
    if end is not None:
        query = query.filter(PurchaseUndoLog.date_undone <= end)
    return query.order_by(PurchaseUndoLog.date_undone.desc(), PurchaseUndoLog.id.desc())


def list_purchase_undo_logs(*, page=None, per_page=None, search=None, start=None, end=None) -> dict:
    return paginate(_purchase_log_query(search, start, end), page or 1, per_page)


def purchase_undo_logs_csv(*, search=None, start=None, end=None) -> str:
    limit = current_app.config["UNDO_LOG_EXPORT_LIMIT"]
    logs = _purchase_log_query(search, start, end).limit(limit).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(PURCHASE_UNDO_CSV_HEADER)
    for log in logs:
        writer.writerow([
            log.purchase_id,
            log.product.name if log.product else "",
            log.supplier.name if log.supplier else "",
            log.quantity,
            format_cents(log.buying_price_cents),
            to_utc_z(log.date_purchased),
            to_utc_z(log.date_undone),
            log.undone_by,
            log.reason or "",
        ])
    return buffer.getvalue()


def _sale_log_query(start=None, end=None, user_id=None, reason_type=None):
    query = db.session.query(SaleUndoLog)
    if start is not None:
        query = query.filter(SaleUndoLog.undo_date >= start)
    if end is not None:
        query = query.filter(SaleUndoLog.undo_date <= end)
    if user_id is not None:
        query = query.filter(SaleUndoLog.user_id == user_id)
    if reason_type:
        query = query.filter(SaleUndoLog.reason_type == reason_type)
    return query.order_by(SaleUndoLog.undo_date.desc(), SaleUndoLog.id.desc())


def list_sale_undo_logs(*, page=None, per_page=None, start=None, end=None, user_id=None, reason_type=None) -> dict:
    return paginate(_sale_log_query(start, end, user_id, reason_type), page or 1, per_page)


def get_sale_undo_log(log_id: int) -> SaleUndoLog:
    log = db.session.get(SaleUndoLog, log_id)
    if log is None:
        raise NotFoundError("Sale undo log not found")
    return log


def sale_undo_logs_csv(*, start=None, end=None, user_id=None, reason_type=None) -> str:
    limit = current_app.config["UNDO_LOG_EXPORT_LIMIT"]
    logs = _sale_log_query(start, end, user_id, reason_type).limit(limit).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(SALE_UNDO_CSV_HEADER)
    for log in logs:
        sale = log.sale_snapshot
        writer.writerow([
            log.id,
            log.invoice_no,
            log.user.username if log.user else "",
            to_utc_z(log.undo_date),
            log.reason_type,
            log.reason_details or "",
            sale.get("customer_name") or "",
            sale.get("total") or "",
            len(sale.get("items") or []),
            sale.get("date") or "",
        ])
    return buffer.getvalue()
