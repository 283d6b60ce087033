from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


WALK_IN_CUSTOMER = "Walk-in Customer"


class Customer(db.Model):
    """
    Customer record, keyed in practice by phone number.

    Checkout resolves the customer by phone and creates one on the fly when
    the number is new.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "date": to_utc_z(self.created_at),
        }
