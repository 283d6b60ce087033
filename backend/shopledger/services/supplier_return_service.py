# Overview: Service-layer operations for returning purchased units to the supplier.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product, PurchaseBatch, Supplier, SupplierReturn
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import MAX_LINE_QUANTITY, parse_datetime, parse_int, parse_positive_int, require_text
from . import inventory_service
from .concurrency import decrement_remaining, lock_for_update, run_with_retry


def purchase_details(purchase_id: int) -> dict:
    """Batch, product and supplier info the return form pre-fills from."""
    batch = db.session.get(PurchaseBatch, purchase_id)
    if batch is None:
        raise NotFoundError("Purchase not found")
    product = batch.product
    supplier = product.supplier if product else None
    data = batch.to_dict()
    data.update({
        "product_details": product.details if product else None,
        "supplier_phone": supplier.phone if supplier else None,
        "supplier_email": supplier.email if supplier else None,
        "supplier_address": supplier.address if supplier else None,
        "shop_name": (supplier.shop_name or "") if supplier else "",
    })
    return data


def create_return(payload: dict, *, actor_user_id: int | None = None) -> SupplierReturn:
    """
    Send units of a batch back to the supplier.

    The batch shrinks in both quantity and remaining_quantity; the refund is
    the batch buying price times the returned quantity.
    """
    payload = payload or {}
    if payload.get("purchase_id") in (None, ""):
        raise ValidationError("Purchase ID is required")
    purchase_id = parse_int(payload["purchase_id"], "purchase_id")
    quantity = parse_positive_int(payload.get("quantity", 1), "quantity", maximum=MAX_LINE_QUANTITY)
    reason = require_text(payload.get("return_reason"), "return_reason", max_length=255)
    return_date = (
        parse_datetime(payload["return_date"], "return_date")
        if payload.get("return_date") not in (None, "")
        else utcnow()
    )
    serial_number = (payload.get("serial_number") or "").strip() or None
    notes = payload.get("notes")

    def _op():
        batch = lock_for_update(db.session.query(PurchaseBatch).filter_by(id=purchase_id)).first()
        if batch is None:
            raise NotFoundError("Purchase not found")
        if batch.remaining_quantity < quantity:
            raise ConflictError(
                f"Not enough remaining quantity. Available: {batch.remaining_quantity}, Requested: {quantity}",
                details={"available": batch.remaining_quantity, "requested": quantity},
            )

        supplier_id = batch.product.supplier_id if batch.product else None
        record = SupplierReturn(
            purchase_id=batch.id,
            product_id=batch.product_id,
            supplier_id=supplier_id,
            return_date=return_date,
            return_reason=reason,
            quantity=quantity,
            refund_cents=batch.buying_price_cents * quantity,
            serial_number=serial_number,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(record)

        if not decrement_remaining(batch.id, quantity, shrink_quantity=True):
            db.session.rollback()
            raise ConflictError("Purchase stock changed while recording the return; try again")

        db.session.flush()
        inventory_service.recompute(batch.product_id)
        db.session.commit()
        return record

    try:
        record = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Supplier return %s: purchase=%s qty=%s", record.id, purchase_id, quantity,
    )
    return record


def get_return(return_id: int) -> SupplierReturn:
    record = db.session.get(SupplierReturn, return_id)
    if record is None:
        raise NotFoundError("Supplier return not found")
    return record


def list_returns(search: str | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = (
        db.session.query(SupplierReturn)
        .join(Product, SupplierReturn.product_id == Product.id)
        .outerjoin(Supplier, SupplierReturn.supplier_id == Supplier.id)
    )
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(like),
                Supplier.name.ilike(like),
                Supplier.shop_name.ilike(like),
                SupplierReturn.return_reason.ilike(like),
            )
        )
    query = query.order_by(SupplierReturn.created_at.desc(), SupplierReturn.id.desc())
    return paginate(query, page, per_page)


def update_return(return_id: int, payload: dict) -> SupplierReturn:
    """Only descriptive fields change; quantity and refund are fixed once stock moved."""
    payload = payload or {}
    for locked in ("quantity", "purchase_id", "refund_amount"):
        if locked in payload:
            raise ValidationError(f"{locked} cannot be changed on a supplier return")

    record = get_return(return_id)
    if payload.get("return_date") not in (None, ""):
        record.return_date = parse_datetime(payload["return_date"], "return_date")
    if "return_reason" in payload:
        record.return_reason = require_text(payload["return_reason"], "return_reason", max_length=255)
    if "notes" in payload:
        record.notes = payload["notes"]
    if "serial_number" in payload:
        record.serial_number = (payload["serial_number"] or "").strip() or None

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return record
