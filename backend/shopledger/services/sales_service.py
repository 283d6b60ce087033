"""
Sales Service - batch-backed checkout

A sale consumes stock from specific purchase batches. Checkout runs in two
phases:

1. Plan (read-only): resolve products and batches, check remaining
   quantities, serial counts and discounts, split batch-less lines FIFO
   across available batches. Nothing is written, so a rejected sale leaves
   the ledger untouched.
2. Commit (one transaction): insert invoice, lines and serials, and
   decrement each batch with a guarded UPDATE. If another checkout drained a
   batch between plan and commit the UPDATE matches no row, the whole
   transaction rolls back and InsufficientStockError is raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import exists, or_

from ..extensions import db
from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Customer, Invoice, Product, PurchaseBatch, SaleLine, SaleSerial, WarrantyClaim
from ..models.sales import PAYMENT_METHODS
from ..pagination import paginate
from ..time_utils import utcnow
from ..validation import (
    MAX_LINE_QUANTITY,
    discounted_line_total_cents,
    format_cents,
    parse_discount,
    parse_int,
    parse_optional_money_cents,
    parse_positive_int,
)
from . import customer_service, inventory_service, purchase_service
from .concurrency import decrement_remaining, lock_for_update, restore_remaining, run_with_retry


PAYMENT_STATUSES = ("PAID", "PARTIAL", "UNPAID", "REFUNDED")


@dataclass
class PlannedLine:
    product: Product
    batch: PurchaseBatch
    quantity: int
    discount: Decimal
    serial_numbers: list[str] = field(default_factory=list)

    @property
    def line_total_cents(self) -> int:
        return discounted_line_total_cents(self.batch.selling_price_cents, self.quantity, self.discount)


def _clean_serials(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("serial_numbers must be a list")
    return [str(s).strip() for s in raw if s is not None and str(s).strip()]


def _plan_item(item: dict, index: int, reserved: dict[int, int]) -> list[PlannedLine]:
    if not isinstance(item, dict):
        raise ValidationError(f"Item {index + 1} is malformed")

    if item.get("product_id") in (None, ""):
        raise ValidationError(f"Item {index + 1}: product_id is required")
    product_id = parse_int(item["product_id"], "product_id")
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})

    quantity = parse_positive_int(item.get("quantity"), "quantity", maximum=MAX_LINE_QUANTITY)
    discount = parse_discount(item.get("discount"))
    serials = _clean_serials(item.get("serial_numbers"))

    if product.requires_serial and len(serials) != quantity:
        raise ValidationError(
            f"Product {product.name} requires {quantity} serial number(s), got {len(serials)}",
            details={"product_id": product_id, "quantity": quantity, "serials": len(serials)},
        )
    if len(serials) > quantity:
        raise ValidationError(f"Too many serial numbers for product {product.name}")
    if len(set(serials)) != len(serials):
        raise ValidationError(f"Duplicate serial numbers for product {product.name}")

    purchase_id = item.get("purchase_id")
    if purchase_id not in (None, ""):
        purchase_id = parse_int(purchase_id, "purchase_id")
        batch = db.session.get(PurchaseBatch, purchase_id)
        if batch is None:
            raise NotFoundError("Purchase batch not found", details={"purchase_id": purchase_id})
        if batch.product_id != product_id:
            raise ValidationError(
                f"Purchase batch {purchase_id} does not belong to product {product.name}",
            )
        available = batch.remaining_quantity - reserved.get(batch.id, 0)
        if available < quantity:
            raise InsufficientStockError(product.name, max(available, 0), quantity, purchase_id=batch.id)
        reserved[batch.id] = reserved.get(batch.id, 0) + quantity
        return [PlannedLine(product, batch, quantity, discount, serials)]

    # No batch named: take the oldest stock first, one line per batch touched
    planned: list[PlannedLine] = []
    needed = quantity
    for batch in purchase_service.list_available(product_id):
        available = batch.remaining_quantity - reserved.get(batch.id, 0)
        if available <= 0:
            continue
        take = min(available, needed)
        taken_serials, serials = serials[:take], serials[take:]
        planned.append(PlannedLine(product, batch, take, discount, taken_serials))
        reserved[batch.id] = reserved.get(batch.id, 0) + take
        needed -= take
        if needed == 0:
            break

    if needed > 0:
        available_total = quantity - needed
        raise InsufficientStockError(product.name, available_total, quantity)
    if serials:
        planned[-1].serial_numbers.extend(serials)
    return planned


def plan_sale(items) -> list[PlannedLine]:
    """Validate checkout lines against current stock. Read-only."""
    if not items or not isinstance(items, list):
        raise ValidationError("At least one item is required")
    reserved: dict[int, int] = {}
    planned: list[PlannedLine] = []
    for index, item in enumerate(items):
        planned.extend(_plan_item(item, index, reserved))
    return planned


def _parse_payment_method(value) -> str:
    method = (str(value).strip() if value is not None else "") or "Cash"
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
        )
    return method


def create_sale(payload: dict, *, actor_user_id: int | None = None) -> dict:
    payload = payload or {}
    customer_data = payload.get("customer") or {}
    if not isinstance(customer_data, dict):
        raise ValidationError("customer must be an object")
    if not (customer_data.get("phone") or customer_data.get("contact")):
        raise ValidationError("Customer phone is required")
    customer_service.validate_phone(customer_data.get("phone") or customer_data.get("contact"))

    payment_method = _parse_payment_method(payload.get("payment_method"))
    amount_paid_cents = parse_optional_money_cents(payload.get("amount_paid"), "amount_paid")
    change_cents = parse_optional_money_cents(payload.get("change_amount"), "change_amount")
    notes = payload.get("notes")

    planned = plan_sale(payload.get("items"))

    def _op():
        customer = customer_service.resolve_for_sale(customer_data)
        now = utcnow()

        invoice = Invoice(
            customer_id=customer.id,
            sale_date=now,
            total_cents=sum(p.line_total_cents for p in planned),
            payment_method=payment_method,
            payment_status="PAID",
            amount_paid_cents=amount_paid_cents,
            change_cents=change_cents,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        db.session.add(invoice)
        db.session.flush()

        for p in planned:
            if not decrement_remaining(p.batch.id, p.quantity):
                db.session.rollback()
                current = db.session.get(PurchaseBatch, p.batch.id)
                available = current.remaining_quantity if current else 0
                raise InsufficientStockError(p.product.name, available, p.quantity, purchase_id=p.batch.id)

            line = SaleLine(
                invoice_no=invoice.invoice_no,
                product_id=p.product.id,
                purchase_id=p.batch.id,
                customer_id=customer.id,
                quantity=p.quantity,
                unit_price_cents=p.batch.selling_price_cents,
                discount_percent=p.discount,
                line_total_cents=p.line_total_cents,
                sold_at=now,
            )
            line.serials = [SaleSerial(serial_number=s) for s in p.serial_numbers]
            db.session.add(line)

        db.session.flush()
        inventory_service.recompute_many(p.product.id for p in planned)
        db.session.commit()
        return invoice.invoice_no

    try:
        invoice_no = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Sale %s created: %s line(s) by user=%s", invoice_no, len(planned), actor_user_id,
    )
    return get_sale(invoice_no)


def _get_invoice(invoice_no: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_no)
    if invoice is None:
        raise NotFoundError("Sale not found")
    return invoice


def sale_detail(invoice: Invoice) -> dict:
    """Invoice header plus joined lines and the undiscounted subtotal."""
    lines = list(invoice.lines)
    subtotal = sum(line.unit_price_cents * line.quantity for line in lines)
    data = invoice.to_dict()
    data["items"] = [line.to_dict() for line in lines]
    data["items_count"] = len(lines)
    data["subtotal"] = format_cents(subtotal)
    data["total_discount"] = format_cents(subtotal - invoice.total_cents)
    return data


def get_sale(invoice_no: int) -> dict:
    return sale_detail(_get_invoice(invoice_no))


def list_sales(
    *,
    start=None,
    end=None,
    customer_id: int | None = None,
    product_id: int | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Invoice)
    if start is not None:
        query = query.filter(Invoice.sale_date >= start)
    if end is not None:
        query = query.filter(Invoice.sale_date <= end)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    if product_id is not None:
        query = query.filter(
            exists().where(SaleLine.invoice_no == Invoice.invoice_no).where(SaleLine.product_id == product_id)
        )
    if search:
        text = search.strip()
        like = f"%{text}%"
        conditions = [Customer.name.ilike(like), Customer.phone.ilike(like)]
        if text.isdigit():
            conditions.append(Invoice.invoice_no == int(text))
        query = query.join(Customer, Invoice.customer_id == Customer.id).filter(or_(*conditions))

    query = query.order_by(Invoice.sale_date.desc(), Invoice.invoice_no.desc())

    def _row(invoice: Invoice) -> dict:
        data = invoice.to_dict()
        data["items_count"] = len(invoice.lines)
        return data

    return paginate(query, page, per_page, serializer=_row)


def update_sale(invoice_no: int, payload: dict) -> dict:
    """Only payment metadata is editable; lines and totals are fixed."""
    payload = payload or {}
    invoice = _get_invoice(invoice_no)

    if payload.get("payment_method") is not None:
        invoice.payment_method = _parse_payment_method(payload["payment_method"])
    if payload.get("payment_status") is not None:
        status = str(payload["payment_status"]).strip().upper()
        if status not in PAYMENT_STATUSES:
            db.session.rollback()
            raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
        invoice.payment_status = status
    if payload.get("notes") is not None:
        invoice.notes = str(payload["notes"])

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return sale_detail(invoice)


def deletion_blocker(invoice: Invoice) -> str | None:
    """Reason the invoice may not be reverted, or None."""
    has_claims = (
        db.session.query(WarrantyClaim.id)
        .join(SaleLine, WarrantyClaim.sale_line_id == SaleLine.id)
        .filter(SaleLine.invoice_no == invoice.invoice_no)
        .first()
        is not None
    )
    if has_claims:
        return "Cannot delete sale with existing warranty claims"

    window_hours = current_app.config["SALE_UNDO_WINDOW_HOURS"]
    if utcnow() - invoice.sale_date > timedelta(hours=window_hours):
        return f"Cannot delete sales older than {window_hours} hours"
    return None


def can_delete(invoice_no: int) -> dict:
    invoice = _get_invoice(invoice_no)
    reason = deletion_blocker(invoice)
    return {"invoice_no": invoice_no, "can_delete": reason is None, "reason": reason}


def revert_sale_locked(invoice: Invoice) -> set[int]:
    """
    Put every line's quantity back on its batch and remove the invoice.

    Caller holds the transaction; returns the product ids touched so the
    caller can recompute them.
    """
    product_ids: set[int] = set()
    for line in list(invoice.lines):
        if not restore_remaining(line.purchase_id, line.quantity):
            raise ConflictError(
                f"Purchase batch {line.purchase_id} cannot take back {line.quantity} unit(s)",
                details={"purchase_id": line.purchase_id},
            )
        product_ids.add(line.product_id)
        db.session.delete(line)
    db.session.flush()
    db.session.expire(invoice, ["lines"])
    db.session.delete(invoice)
    db.session.flush()
    return product_ids


def delete_sale(invoice_no: int, *, actor_user_id: int | None = None) -> None:
    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(invoice_no=invoice_no)).first()
        if invoice is None:
            raise NotFoundError("Sale not found")
        reason = deletion_blocker(invoice)
        if reason:
            raise ConflictError(reason)

        product_ids = revert_sale_locked(invoice)
        inventory_service.recompute_many(product_ids)
        db.session.commit()

    try:
        run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Sale %s deleted by user=%s", invoice_no, actor_user_id)
