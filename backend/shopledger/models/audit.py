from __future__ import annotations

import json

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents


class PurchaseUndoLog(db.Model):
    """
    Snapshot of a purchase batch taken at the moment it was undone.

    No foreign key to purchases: the batch row is deleted in the same
    transaction that writes this record.
    """
    __tablename__ = "purchase_undo_logs"
    __table_args__ = (
        db.Index("ix_purchase_undo_logs_date_undone", "date_undone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)
    buying_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    warranty_months = db.Column(db.Integer, nullable=False, default=0)
    date_purchased = db.Column(db.DateTime(timezone=True), nullable=False)

    date_undone = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    undone_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    undone_by = db.Column(db.String(64), nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "log_id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "buying_price": format_cents(self.buying_price_cents),
            "buying_price_cents": self.buying_price_cents,
            "selling_price": format_cents(self.selling_price_cents),
            "warranty": self.warranty_months,
            "date_purchased": to_utc_z(self.date_purchased),
            "date_undone": to_utc_z(self.date_undone),
            "undone_by": self.undone_by,
            "undone_by_user_id": self.undone_by_user_id,
            "reason": self.reason,
        }


SALE_UNDO_REASON_TYPES = (
    "customer_return",
    "entry_error",
    "duplicate",
    "price_correction",
    "other",
)


class SaleUndoLog(db.Model):
    """Full JSON snapshot of an invoice (header + lines) taken before it was reverted."""
    __tablename__ = "sale_undo_logs"
    __table_args__ = (
        db.Index("ix_sale_undo_logs_undo_date", "undo_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.Integer, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    undo_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reason_type = db.Column(db.String(32), nullable=False, index=True)
    reason_details = db.Column(db.Text, nullable=True)
    sale_data = db.Column(db.Text, nullable=False)

    user = db.relationship("User")

    @property
    def sale_snapshot(self) -> dict:
        return json.loads(self.sale_data)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_no": self.invoice_no,
            "user_id": self.user_id,
            "user_name": self.user.username if self.user else None,
            "undo_date": to_utc_z(self.undo_date),
            "reason_type": self.reason_type,
            "reason_details": self.reason_details,
            "sale_data": self.sale_snapshot,
        }


class ImmutableRecordError(RuntimeError):
    pass


def _forbid_mutation(mapper, connection, target):
    raise ImmutableRecordError(f"{target.__tablename__} rows are append-only")


for _model in (PurchaseUndoLog, SaleUndoLog):
    event.listen(_model, "before_update", _forbid_mutation)
    event.listen(_model, "before_delete", _forbid_mutation)
