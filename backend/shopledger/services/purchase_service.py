# Overview: Service-layer operations for purchase batches (stock intake).

"""
Purchase Batch Store

Each purchase is one batch: quantity received, remaining_quantity still on the
shelf, and the prices sales snapshot from. A batch with sale lines attached is
frozen; update and delete refuse it so remaining_quantity never has to be
reconciled against edited quantities.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product, PurchaseBatch, SaleLine, Supplier, SupplierReturn
from ..time_utils import utcnow
from ..validation import (
    MAX_LINE_QUANTITY,
    parse_datetime,
    parse_int,
    parse_money_cents,
    parse_positive_int,
)
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry


DEFAULT_WARRANTY_MONTHS = 12

_WARRANTY_RE = re.compile(r"^\s*(\d+)\s*(months?|m)?\s*$", re.IGNORECASE)


def parse_warranty_months(value) -> int:
    """
    Accepts 12, "12", "12 months", "No warranty". Missing means the default
    twelve months.
    """
    if value is None or value == "":
        return DEFAULT_WARRANTY_MONTHS
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in ("no warranty", "none", "n/a"):
            return 0
        match = _WARRANTY_RE.match(text)
        if not match:
            raise ValidationError("warranty must be a number of months")
        months = int(match.group(1))
    else:
        months = parse_int(value, "warranty")
    if months < 0:
        raise ValidationError("warranty cannot be negative")
    return months


def _parse_batch_fields(payload: dict, *, partial: bool) -> dict:
    """Validate purchase input into model fields. Raises ValidationError."""
    payload = payload or {}
    fields: dict = {}

    if not partial or "product_id" in payload:
        if payload.get("product_id") in (None, ""):
            raise ValidationError("Product ID is required")
        product_id = parse_int(payload["product_id"], "product_id")
        if db.session.get(Product, product_id) is None:
            raise ValidationError("Product not found", details={"product_id": product_id})
        fields["product_id"] = product_id

    if not partial or "quantity" in payload:
        fields["quantity"] = parse_positive_int(payload.get("quantity"), "quantity", maximum=MAX_LINE_QUANTITY)

    if not partial or "buying_price" in payload:
        fields["buying_price_cents"] = parse_money_cents(payload.get("buying_price"), "buying_price")

    if not partial or "selling_price" in payload:
        fields["selling_price_cents"] = parse_money_cents(payload.get("selling_price"), "selling_price")

    if not partial or "warranty" in payload:
        fields["warranty_months"] = parse_warranty_months(payload.get("warranty"))

    date_value = payload.get("date", payload.get("purchased_at"))
    if date_value not in (None, ""):
        fields["purchased_at"] = parse_datetime(date_value, "date")
    elif not partial:
        fields["purchased_at"] = utcnow()

    return fields


def get_batch(purchase_id: int) -> PurchaseBatch:
    batch = db.session.get(PurchaseBatch, purchase_id)
    if batch is None:
        raise NotFoundError("No purchase found with that ID")
    return batch


def list_batches(search: str | None = None) -> list[PurchaseBatch]:
    """All batches, newest first; search matches product or supplier name."""
    query = db.session.query(PurchaseBatch).join(Product, PurchaseBatch.product_id == Product.id)
    if search:
        like = f"%{search.strip()}%"
        query = query.outerjoin(Supplier, Product.supplier_id == Supplier.id).filter(
            or_(Product.name.ilike(like), Supplier.name.ilike(like))
        )
    return query.order_by(PurchaseBatch.purchased_at.desc(), PurchaseBatch.id.desc()).all()


def list_available(product_id: int) -> list[PurchaseBatch]:
    """Batches that still have stock, oldest first (FIFO)."""
    return (
        db.session.query(PurchaseBatch)
        .filter(PurchaseBatch.product_id == product_id, PurchaseBatch.remaining_quantity > 0)
        .order_by(PurchaseBatch.purchased_at.asc(), PurchaseBatch.id.asc())
        .all()
    )


def create_batch(payload: dict, *, actor_user_id: int | None = None) -> PurchaseBatch:
    fields = _parse_batch_fields(payload, partial=False)

    try:
        batch = PurchaseBatch(
            remaining_quantity=fields["quantity"],
            created_by_user_id=actor_user_id,
            **fields,
        )
        db.session.add(batch)
        db.session.flush()
        inventory_service.recompute(batch.product_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Purchase %s created: product=%s qty=%s by user=%s",
        batch.id, batch.product_id, batch.quantity, actor_user_id,
    )
    return batch


def has_sales(purchase_id: int) -> bool:
    return db.session.query(SaleLine.id).filter(SaleLine.purchase_id == purchase_id).first() is not None


def has_supplier_returns(purchase_id: int) -> bool:
    return (
        db.session.query(SupplierReturn.id).filter(SupplierReturn.purchase_id == purchase_id).first()
        is not None
    )


def update_batch(purchase_id: int, payload: dict) -> PurchaseBatch:
    """
    Overwrite a batch that has not been sold from.

    remaining_quantity is reset to the new quantity; only reachable while no
    sale line references the batch, so nothing sold is lost.
    """
    def _op():
        batch = lock_for_update(db.session.query(PurchaseBatch).filter_by(id=purchase_id)).first()
        if batch is None:
            raise NotFoundError("No purchase found with that ID")
        if has_sales(purchase_id):
            raise ConflictError("Cannot update purchase with associated sales")
        if has_supplier_returns(purchase_id):
            raise ConflictError("Cannot update purchase with associated supplier returns")

        fields = _parse_batch_fields(payload, partial=True)
        old_product_id = batch.product_id
        for key, value in fields.items():
            setattr(batch, key, value)
        batch.remaining_quantity = batch.quantity

        db.session.flush()
        inventory_service.recompute_many([old_product_id, batch.product_id])
        db.session.commit()
        return batch

    try:
        batch = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Purchase %s updated", purchase_id)
    return batch


def delete_batch(purchase_id: int) -> None:
    def _op():
        batch = lock_for_update(db.session.query(PurchaseBatch).filter_by(id=purchase_id)).first()
        if batch is None:
            raise NotFoundError("No purchase found with that ID")
        if has_sales(purchase_id):
            raise ConflictError("Cannot delete purchase with associated sales")
        if has_supplier_returns(purchase_id):
            raise ConflictError("Cannot delete purchase with associated supplier returns")

        product_id = batch.product_id
        db.session.delete(batch)
        db.session.flush()
        inventory_service.recompute(product_id)
        db.session.commit()

    try:
        run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Purchase %s deleted", purchase_id)
