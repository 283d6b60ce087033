# Overview: In-app notifications and the post-commit outbox dispatcher.

"""
Outbox flow for side effects of a ledger mutation:

    1. enqueue() adds an OutboxEvent inside the caller's transaction.
    2. The caller commits; the state change and the event land together.
    3. dispatch(event_id) runs after commit: creates the Notification, sends
       the email, and records the outcome on the event.

A dispatch failure never undoes step 2. FAILED and PENDING events are
retried by `flask ledger dispatch-outbox`.
"""

from __future__ import annotations

import json

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Notification, OutboxEvent
from ..models.notifications import OUTBOX_DELIVERED, OUTBOX_FAILED, OUTBOX_PENDING
from ..time_utils import utcnow
from . import email_service


EVENT_REPAIR_STATUS_CHANGED = "repair.status_changed"

NO_EMAIL = "Not Available"


def enqueue(event_type: str, payload: dict) -> OutboxEvent:
    """Stage an event on the current session. Caller commits."""
    event = OutboxEvent(event_type=event_type, payload=json.dumps(payload), status=OUTBOX_PENDING)
    db.session.add(event)
    db.session.flush()
    return event


def create_notification(
    *,
    title: str,
    message: str,
    type: str,
    reference_id: int | None = None,
    reference_type: str | None = None,
    data: dict | None = None,
    user_id: int | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        reference_id=reference_id,
        reference_type=reference_type,
        data=json.dumps(data) if data is not None else None,
    )
    db.session.add(notification)
    db.session.flush()
    return notification


def _handle_repair_status(payload: dict) -> dict:
    outcome = {
        "notificationCreated": False,
        "emailSent": False,
        "emailSkipped": False,
        "emailError": None,
    }

    device = " ".join(p for p in (payload.get("device_type"), payload.get("device_model")) if p)
    create_notification(
        title="Repair Status Updated",
        message=(
            f"Repair #{payload['repair_id']} for {payload.get('customer_name')} ({device}) "
            f"status changed from {payload['previous_status']} to {payload['new_status']}"
        ),
        type="repair",
        reference_id=payload["repair_id"],
        reference_type="repair",
        data=payload,
    )
    db.session.commit()
    outcome["notificationCreated"] = True

    email = (payload.get("email") or "").strip()
    if not email or email == NO_EMAIL:
        outcome["emailSkipped"] = True
        return outcome

    # The notification is committed; from here a failure is recorded on the
    # outcome, never raised, so a retry cannot post it twice.
    try:
        subject, body = email_service.repair_status_email(payload)
        email_service.send_email(email, subject, body)
        outcome["emailSent"] = True
    except Exception as exc:
        current_app.logger.exception("Failed to send repair status email for repair %s", payload["repair_id"])
        outcome["emailError"] = str(exc)
    return outcome


_HANDLERS = {
    EVENT_REPAIR_STATUS_CHANGED: _handle_repair_status,
}


def dispatch(event_id: int) -> dict:
    """
    Deliver one outbox event. Returns the outcome flags; never raises for
    handler failures (they are recorded on the event).
    """
    event = db.session.get(OutboxEvent, event_id)
    if event is None:
        raise NotFoundError("Outbox event not found")
    if event.status == OUTBOX_DELIVERED:
        return json.loads(event.result) if event.result else {}

    handler = _HANDLERS.get(event.event_type)
    event.attempts = (event.attempts or 0) + 1

    if handler is None:
        event.status = OUTBOX_FAILED
        event.last_error = f"No handler for {event.event_type}"
        db.session.commit()
        return {"notificationCreated": False, "emailSent": False, "emailSkipped": False, "emailError": event.last_error}

    # Count the attempt even if the handler fails and rolls back
    db.session.commit()

    try:
        outcome = handler(event.payload_dict)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to dispatch outbox event %s", event_id)
        event = db.session.get(OutboxEvent, event_id)
        event.status = OUTBOX_FAILED
        event.last_error = str(exc)[:512]
        db.session.commit()
        return {"notificationCreated": False, "emailSent": False, "emailSkipped": False, "emailError": str(exc)}

    event.result = json.dumps(outcome)
    event.status = OUTBOX_DELIVERED
    event.last_error = str(outcome["emailError"])[:512] if outcome.get("emailError") else None
    event.delivered_at = utcnow()
    db.session.commit()
    return outcome


def dispatch_pending(limit: int = 100) -> dict:
    """Retry PENDING and FAILED events, oldest first."""
    ids = [
        row[0]
        for row in db.session.query(OutboxEvent.id)
        .filter(OutboxEvent.status.in_((OUTBOX_PENDING, OUTBOX_FAILED)))
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
        .limit(limit)
        .all()
    ]
    delivered = 0
    for event_id in ids:
        dispatch(event_id)
        if db.session.get(OutboxEvent, event_id).status == OUTBOX_DELIVERED:
            delivered += 1
    return {"attempted": len(ids), "delivered": delivered, "failed": len(ids) - delivered}


def list_notifications(*, is_read=None, type: str | None = None, limit: int = 100) -> list[Notification]:
    query = db.session.query(Notification)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(bool(is_read)))
    if type:
        query = query.filter(Notification.type == type)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read() -> int:
    count = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return count


def unread_count() -> int:
    return int(
        db.session.query(func.count(Notification.id)).filter(Notification.is_read.is_(False)).scalar()
    )


def parse_is_read(value) -> bool | None:
    if value is None or value == "":
        return None
    text = str(value).strip().lower()
    if text in ("1", "true", "yes"):
        return True
    if text in ("0", "false", "no"):
        return False
    raise ValidationError("is_read must be true or false")
