from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_cents


class PurchaseBatch(db.Model):
    """
    One stock-intake event for a product.

    remaining_quantity is the ledger's source of truth for availability:
    sales and supplier returns decrement it, sale deletion restores it.
    The check constraint keeps 0 <= remaining_quantity <= quantity even if a
    caller bypasses the service layer.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="quantity_non_negative"),
        db.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="remaining_within_quantity",
        ),
        # FIFO lookups: available batches for a product, oldest first
        db.Index("ix_purchases_product_date", "product_id", "purchased_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)

    # Authoritative storage in cents
    buying_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    warranty_months = db.Column(db.Integer, nullable=False, default=0)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("purchases", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def __repr__(self) -> str:
        return (
            f"<PurchaseBatch id={self.id} product_id={self.product_id} "
            f"qty={self.quantity} remaining={self.remaining_quantity}>"
        )

    def to_dict(self) -> dict:
        product = self.product
        supplier = product.supplier if product else None
        return {
            "purchase_id": self.id,
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "supplier_id": supplier.id if supplier else None,
            "supplier_name": supplier.name if supplier else None,
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "warranty": self.warranty_months,
            "buying_price": format_cents(self.buying_price_cents),
            "buying_price_cents": self.buying_price_cents,
            "selling_price": format_cents(self.selling_price_cents),
            "selling_price_cents": self.selling_price_cents,
            "date": to_utc_z(self.purchased_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventorySummary(db.Model):
    """
    Materialized per-product stock count: SUM(batch.quantity) - SUM(sold).

    Read optimisation only. inventory_service.recompute() is the single writer;
    batch remaining_quantity stays the source of truth.
    """
    __tablename__ = "inventory"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product", backref=db.backref("inventory_summary", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "stock_quantity": self.stock_quantity,
            "last_updated": to_utc_z(self.last_updated),
        }


class SupplierReturn(db.Model):
    """
    Units sent back to the supplier out of a purchase batch.

    Creating a return reduces both quantity and remaining_quantity of the
    batch; refund is buying price x returned quantity.
    """
    __tablename__ = "supplier_returns"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False)
    return_reason = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)
    serial_number = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("PurchaseBatch", backref=db.backref("supplier_returns", lazy=True))
    product = db.relationship("Product")
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        purchase = self.purchase
        return {
            "return_id": self.id,
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "shop_name": (self.supplier.shop_name or "") if self.supplier else "",
            "return_date": to_utc_z(self.return_date),
            "return_reason": self.return_reason,
            "quantity": self.quantity,
            "refund_amount": format_cents(self.refund_cents),
            "refund_cents": self.refund_cents,
            "serial_number": self.serial_number,
            "notes": self.notes,
            "buying_price": format_cents(purchase.buying_price_cents) if purchase else None,
            "purchase_date": to_utc_z(purchase.purchased_at) if purchase else None,
            "created_at": to_utc_z(self.created_at),
        }
