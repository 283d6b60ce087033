from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class Notification(db.Model):
    """In-app notification shown on the admin panel."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_read_created", "is_read", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    data = db.Column(db.Text, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        try:
            parsed = json.loads(self.data) if self.data else None
        except ValueError:
            parsed = {"error": "Invalid data format"}
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "data": parsed,
            "is_read": self.is_read,
            "isRead": self.is_read,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


OUTBOX_PENDING = "PENDING"
OUTBOX_DELIVERED = "DELIVERED"
OUTBOX_FAILED = "FAILED"


class OutboxEvent(db.Model):
    """
    Side effect recorded in the same transaction as the state change that
    caused it, delivered after commit.

    A FAILED row keeps last_error and is picked up again by
    `flask ledger dispatch-outbox`.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        db.Index("ix_outbox_events_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OUTBOX_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(512), nullable=True)
    result = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def payload_dict(self) -> dict:
        return json.loads(self.payload)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "payload": self.payload_dict,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "result": json.loads(self.result) if self.result else None,
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }
