from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents


STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In Progress"
STATUS_WAITING_FOR_PARTS = "Waiting for Parts"
STATUS_COMPLETED = "Completed"
STATUS_PICKED_UP = "Picked Up"
STATUS_CANCELLED = "Cancelled"

REPAIR_STATUSES = (
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_WAITING_FOR_PARTS,
    STATUS_COMPLETED,
    STATUS_PICKED_UP,
    STATUS_CANCELLED,
)


class Repair(db.Model):
    """Repair ticket for a customer's device."""
    __tablename__ = "repairs"
    __table_args__ = (
        db.Index("ix_repairs_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    device_type = db.Column(db.String(64), nullable=False)
    device_model = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(255), nullable=True, index=True)
    issue_description = db.Column(db.Text, nullable=False)
    technician = db.Column(db.String(64), nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default=STATUS_PENDING)
    date_received = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    date_completed = db.Column(db.DateTime(timezone=True), nullable=True)

    estimated_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    advance_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    extra_expenses_cents = db.Column(db.Integer, nullable=False, default=0)

    additional_notes = db.Column(db.Text, nullable=True)
    is_under_warranty = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("repairs", lazy=True))
    items = db.relationship(
        "RepairItem",
        backref="repair",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RepairItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        customer = self.customer
        return {
            "repair_id": self.id,
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": customer.name if customer else None,
            "phone": customer.phone if customer else None,
            "email": (customer.email or "Not Available") if customer else "Not Available",
            "device_type": self.device_type,
            "device_model": self.device_model,
            "serial_number": self.serial_number,
            "issue_description": self.issue_description,
            "technician": self.technician,
            "status": self.status,
            "date_received": to_utc_z(self.date_received),
            "deadline": to_utc_z(self.deadline),
            "date_completed": to_utc_z(self.date_completed),
            "estimated_cost": format_cents(self.estimated_cost_cents),
            "advance_payment": format_cents(self.advance_payment_cents),
            "extra_expenses": format_cents(self.extra_expenses_cents),
            "additional_notes": self.additional_notes or "",
            "is_under_warranty": self.is_under_warranty,
            "products": [item.name for item in self.items],
            "version_id": self.version_id,
        }


class RepairItem(db.Model):
    """Accessory or part left with the device (charger, bag, ...)."""
    __tablename__ = "repair_products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    repair_id = db.Column(db.Integer, db.ForeignKey("repairs.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    specifications = db.Column(db.String(255), nullable=True)
    condition_notes = db.Column(db.String(255), nullable=True)
