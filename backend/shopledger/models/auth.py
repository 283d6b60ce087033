from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_ADMIN = "admin"
ROLE_CASHIER = "cashier"
ROLE_TECHNICIAN = "technician"
ROLES = (ROLE_ADMIN, ROLE_CASHIER, ROLE_TECHNICIAN)


class User(db.Model):
    """
    Shop staff member.

    Credentials live with the external auth gateway; this table only carries
    the identity the ledger attributes work to (created_by, undone_by, ...).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
