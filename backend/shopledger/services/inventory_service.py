# Overview: Service-layer operations for inventory; derives per-product stock from the purchase ledger.

"""
Inventory invariants (authoritative)

- PurchaseBatch.remaining_quantity is the source of truth for what can be sold.
- InventorySummary.stock_quantity is a cache:
      SUM(batch.quantity) - SUM(sale_line.quantity over those batches)
  recompute() is its only writer. It reads ledger state and never touches
  batches or sales, so calling it twice in a row changes nothing.
- Conservation per batch: remaining = quantity - SUM(sold from batch).
  Supplier returns shrink quantity and remaining together, so the identity
  holds with quantity meaning "units still owned".
"""

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import NotFoundError
from ..models import InventorySummary, Product, PurchaseBatch, SaleLine
from ..models.catalog import Category
from ..time_utils import utcnow


def _totals(product_id: int) -> tuple[int, int]:
    total_purchased = (
        db.session.query(func.coalesce(func.sum(PurchaseBatch.quantity), 0))
        .filter(PurchaseBatch.product_id == product_id)
        .scalar()
    )
    total_sold = (
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(PurchaseBatch, SaleLine.purchase_id == PurchaseBatch.id)
        .filter(PurchaseBatch.product_id == product_id)
        .scalar()
    )
    return int(total_purchased), int(total_sold)


def recompute(product_id: int, *, commit: bool = False) -> InventorySummary:
    """
    Rebuild the cached stock row for one product from the ledger.

    Runs inside the caller's transaction unless commit=True.
    """
    total_purchased, total_sold = _totals(product_id)
    stock = total_purchased - total_sold

    summary = db.session.query(InventorySummary).filter_by(product_id=product_id).first()
    if summary is None:
        summary = InventorySummary(product_id=product_id, stock_quantity=stock, last_updated=utcnow())
        db.session.add(summary)
    elif summary.stock_quantity != stock:
        summary.stock_quantity = stock
        summary.last_updated = utcnow()

    db.session.flush()
    if commit:
        db.session.commit()
    return summary


def recompute_many(product_ids) -> None:
    for product_id in sorted({p for p in product_ids if p is not None}):
        recompute(product_id)


def rebuild_all() -> int:
    """Recompute every product that has ever been purchased. Returns the count."""
    product_ids = [
        row[0]
        for row in db.session.query(PurchaseBatch.product_id).distinct().all()
    ]
    product_ids += [
        row[0]
        for row in db.session.query(InventorySummary.product_id).all()
    ]
    try:
        recompute_many(product_ids)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(set(product_ids))


def remaining_total(product_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(PurchaseBatch.remaining_quantity), 0))
        .filter(PurchaseBatch.product_id == product_id)
        .scalar()
    )


def get_summary(product_id: int) -> dict:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    summary = db.session.query(InventorySummary).filter_by(product_id=product_id).first()
    live = remaining_total(product_id)
    cached = summary.stock_quantity if summary else 0
    return {
        "product_id": product_id,
        "product_name": product.name,
        "stock_quantity": cached,
        "available_quantity": live,
        "in_sync": cached == live,
        "last_updated": summary.to_dict()["last_updated"] if summary else None,
    }


def list_stock(search: str | None = None) -> list[dict]:
    """
    Active products with their on-hand quantity summed from batch remainders,
    plus the newest batch's selling price for the register screen.
    """
    on_hand = (
        db.session.query(
            PurchaseBatch.product_id.label("product_id"),
            func.sum(PurchaseBatch.remaining_quantity).label("on_hand"),
            func.count(PurchaseBatch.id).label("batches"),
        )
        .group_by(PurchaseBatch.product_id)
        .subquery()
    )

    query = (
        db.session.query(Product, on_hand.c.on_hand, on_hand.c.batches)
        .outerjoin(on_hand, on_hand.c.product_id == Product.id)
        .filter(Product.is_active.is_(True))
    )
    if search:
        like = f"%{search.strip()}%"
        query = query.outerjoin(Category, Product.category_id == Category.id).filter(
            or_(Product.name.ilike(like), Category.name.ilike(like))
        )

    rows = query.order_by(Product.name.asc(), Product.id.asc()).all()

    items = []
    for product, qty, batches in rows:
        latest = (
            db.session.query(PurchaseBatch)
            .filter(PurchaseBatch.product_id == product.id, PurchaseBatch.remaining_quantity > 0)
            .order_by(PurchaseBatch.purchased_at.desc(), PurchaseBatch.id.desc())
            .first()
        )
        items.append({
            "product_id": product.id,
            "product_name": product.name,
            "category": product.category_name,
            "requires_serial": product.requires_serial,
            "stock_quantity": int(qty or 0),
            "batches": int(batches or 0),
            "selling_price": latest.to_dict()["selling_price"] if latest else None,
        })
    return items


def product_batches(product_id: int) -> list[PurchaseBatch]:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")
    return (
        db.session.query(PurchaseBatch)
        .filter(PurchaseBatch.product_id == product_id)
        .order_by(PurchaseBatch.purchased_at.desc(), PurchaseBatch.id.desc())
        .all()
    )


def audit_ledger() -> dict:
    """
    Consistency report used by `flask ledger check-ledger`.

    bad_batches: rows outside 0 <= remaining <= quantity, or whose remaining
    differs from quantity - sold.
    drift: products whose cached stock differs from the ledger.
    """
    sold_by_batch = dict(
        db.session.query(SaleLine.purchase_id, func.sum(SaleLine.quantity))
        .group_by(SaleLine.purchase_id)
        .all()
    )

    bad_batches = []
    for batch in db.session.query(PurchaseBatch).order_by(PurchaseBatch.id.asc()).all():
        sold = int(sold_by_batch.get(batch.id) or 0)
        if (
            batch.remaining_quantity < 0
            or batch.remaining_quantity > batch.quantity
            or batch.remaining_quantity != batch.quantity - sold
        ):
            bad_batches.append({
                "purchase_id": batch.id,
                "quantity": batch.quantity,
                "remaining_quantity": batch.remaining_quantity,
                "sold": sold,
            })

    drift = []
    product_ids = {row[0] for row in db.session.query(PurchaseBatch.product_id).distinct().all()}
    product_ids |= {row[0] for row in db.session.query(InventorySummary.product_id).all()}
    for product_id in sorted(product_ids):
        total_purchased, total_sold = _totals(product_id)
        summary = db.session.query(InventorySummary).filter_by(product_id=product_id).first()
        cached = summary.stock_quantity if summary else None
        if cached != total_purchased - total_sold:
            drift.append({
                "product_id": product_id,
                "cached": cached,
                "expected": total_purchased - total_sold,
            })

    return {"bad_batches": bad_batches, "drift": drift, "ok": not bad_batches and not drift}
