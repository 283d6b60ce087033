from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents


PAYMENT_METHODS = ("Cash", "Card", "Bank Transfer", "Cheque")


class Invoice(db.Model):
    """
    One checkout transaction (header).

    total_cents is derived at creation time:
        SUM(line.quantity * batch.selling_price * (1 - line.discount/100))
    and is never edited afterwards; only payment metadata may change.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_sale_date", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    invoice_no = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    payment_status = db.Column(db.String(16), nullable=False, default="PAID")
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    lines = db.relationship(
        "SaleLine",
        backref="invoice",
        lazy=True,
        order_by="SaleLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "bill_no": self.invoice_no,
            "invoice_no": self.invoice_no,
            "date": to_utc_z(self.sale_date),
            "total": format_cents(self.total_cents),
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid": format_cents(self.amount_paid_cents),
            "change_amount": format_cents(self.change_cents),
            "notes": self.notes,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "customer_phone": self.customer.phone if self.customer else None,
            "customer_email": self.customer.email if self.customer else None,
            "created_by_user_id": self.created_by_user_id,
            "user_name": self.created_by.username if self.created_by else None,
        }


class SaleLine(db.Model):
    """
    One invoice line, tied to exactly one purchase batch.

    unit_price_cents snapshots batch.selling_price_cents at checkout; batches
    with sales attached cannot be edited, so the two never diverge.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.Integer, db.ForeignKey("invoices.invoice_no"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    purchase = db.relationship("PurchaseBatch", backref=db.backref("sale_lines", lazy=True))
    serials = db.relationship(
        "SaleSerial",
        backref="sale_line",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleSerial.id",
    )

    @property
    def serial_numbers(self) -> list[str]:
        return [s.serial_number for s in self.serials]

    def to_dict(self) -> dict:
        purchase = self.purchase
        gross = self.unit_price_cents * self.quantity
        return {
            "sale_id": self.id,
            "invoice_no": self.invoice_no,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "purchase_id": self.purchase_id,
            "warranty": purchase.warranty_months if purchase else None,
            "quantity": self.quantity,
            "serial_numbers": self.serial_numbers,
            "unit_price": format_cents(self.unit_price_cents),
            "unit_price_cents": self.unit_price_cents,
            "discount": float(self.discount_percent or 0),
            "discount_amount": format_cents(gross - self.line_total_cents),
            "total": format_cents(self.line_total_cents),
            "total_cents": self.line_total_cents,
        }


class SaleSerial(db.Model):
    __tablename__ = "sale_serials"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    serial_number = db.Column(db.String(255), nullable=False, index=True)


class WarrantyClaim(db.Model):
    """
    A warranty repair lodged against a sold unit.

    Any claim on a line blocks deletion/undo of its invoice.
    """
    __tablename__ = "warranty_claims"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=True, index=True)
    serial_number = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    claim_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale_line = db.relationship("SaleLine", backref=db.backref("warranty_claims", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_line_id": self.sale_line_id,
            "repair_id": self.repair_id,
            "serial_number": self.serial_number,
            "description": self.description,
            "claim_date": to_utc_z(self.claim_date),
        }
