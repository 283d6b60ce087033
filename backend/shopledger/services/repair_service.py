# Overview: Service-layer operations for repair tickets and their status workflow.

"""
Repair status workflow

    Pending            -> In Progress, Cancelled
    In Progress        -> Waiting for Parts, Completed, Cancelled
    Waiting for Parts  -> In Progress, Completed, Cancelled
    Completed          -> Picked Up, In Progress (reopened)
    Picked Up          terminal
    Cancelled          terminal

Every transition stages a repair.status_changed outbox event in the same
transaction; the event is dispatched after commit and its failure never
reverts the status.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, Repair, RepairItem, WarrantyClaim
from ..models.repairs import (
    REPAIR_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_PICKED_UP,
    STATUS_WAITING_FOR_PARTS,
)
from ..pagination import paginate
from ..time_utils import to_utc_z, utcnow
from ..validation import parse_datetime, parse_optional_money_cents, require_text
from . import customer_service, notification_service, warranty_service
from .concurrency import lock_for_update, run_with_retry


ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_IN_PROGRESS, STATUS_CANCELLED},
    STATUS_IN_PROGRESS: {STATUS_WAITING_FOR_PARTS, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_WAITING_FOR_PARTS: {STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: {STATUS_PICKED_UP, STATUS_IN_PROGRESS},
    STATUS_PICKED_UP: set(),
    STATUS_CANCELLED: set(),
}

_MONEY_FIELDS = {
    "estimated_cost": "estimated_cost_cents",
    "advance_payment": "advance_payment_cents",
    "extra_expenses": "extra_expenses_cents",
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def _parse_items(raw) -> list[RepairItem]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("products must be a list")
    items = []
    for entry in raw:
        if isinstance(entry, str):
            entry = {"name": entry}
        if not isinstance(entry, dict):
            raise ValidationError("products entries must be names or objects")
        items.append(RepairItem(
            name=require_text(entry.get("name"), "product name", max_length=255),
            specifications=entry.get("specifications"),
            condition_notes=entry.get("condition_notes"),
        ))
    return items


def _apply_details(repair: Repair, payload: dict) -> None:
    for key in ("device_model", "technician", "additional_notes"):
        if key in payload:
            value = payload[key]
            setattr(repair, key, str(value).strip() if value is not None else None)
    if "device_type" in payload:
        repair.device_type = require_text(payload["device_type"], "device_type", max_length=64)
    if "issue_description" in payload:
        repair.issue_description = require_text(payload["issue_description"], "issue_description")
    if "serial_number" in payload:
        repair.serial_number = (payload["serial_number"] or "").strip() or None
    if "deadline" in payload:
        value = payload["deadline"]
        repair.deadline = parse_datetime(value, "deadline") if value not in (None, "") else None
    for field, column in _MONEY_FIELDS.items():
        if field in payload:
            setattr(repair, column, parse_optional_money_cents(payload[field], field))
    if "products" in payload:
        repair.items = _parse_items(payload["products"])


def get_repair(repair_id: int) -> Repair:
    repair = db.session.get(Repair, repair_id)
    if repair is None:
        raise NotFoundError("No repair found with that ID")
    return repair


def list_repairs(
    search: str | None = None,
    *,
    status: str | None = None,
    technician: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Repair).join(Customer, Repair.customer_id == Customer.id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Customer.name.ilike(like),
                Customer.phone.ilike(like),
                Repair.device_type.ilike(like),
                Repair.device_model.ilike(like),
                Repair.serial_number.ilike(like),
            )
        )
    if status:
        query = query.filter(Repair.status == status)
    if technician:
        query = query.filter(Repair.technician == technician)
    query = query.order_by(Repair.date_received.desc(), Repair.id.desc())
    return paginate(query, page, per_page)


def create_repair(payload: dict, *, actor_user_id: int | None = None) -> Repair:
    payload = payload or {}
    customer_data = payload.get("customer") or {}
    if not isinstance(customer_data, dict):
        raise ValidationError("customer must be an object")
    customer_service.validate_phone(customer_data.get("phone"))
    require_text(payload.get("device_type"), "device_type", max_length=64)
    require_text(payload.get("issue_description"), "issue_description")

    try:
        customer = customer_service.resolve_for_sale(customer_data)
        repair = Repair(
            customer_id=customer.id,
            status=STATUS_PENDING,
            date_received=utcnow(),
            is_under_warranty=bool(payload.get("is_under_warranty")),
        )
        _apply_details(repair, payload)
        db.session.add(repair)
        db.session.flush()

        if repair.is_under_warranty and repair.serial_number:
            line = warranty_service.find_sale_line_for_serial(repair.serial_number)
            if line is not None:
                db.session.add(WarrantyClaim(
                    sale_line_id=line.id,
                    repair_id=repair.id,
                    serial_number=repair.serial_number,
                    description=repair.issue_description,
                    claim_date=utcnow(),
                ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Repair %s created for customer %s by user=%s", repair.id, customer.id, actor_user_id)
    return repair


def update_repair(repair_id: int, payload: dict) -> Repair:
    payload = dict(payload or {})
    if "status" in payload:
        raise ValidationError("Use the status endpoint to change repair status")

    def _op():
        repair = lock_for_update(db.session.query(Repair).filter_by(id=repair_id)).first()
        if repair is None:
            raise NotFoundError("No repair found with that ID")
        _apply_details(repair, payload)
        db.session.commit()
        return repair

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def delete_repair(repair_id: int) -> None:
    """Delete a repair and its received items; refused once a warranty claim points at it."""
    def _op():
        repair = lock_for_update(db.session.query(Repair).filter_by(id=repair_id)).first()
        if repair is None:
            raise NotFoundError("No repair found with that ID")
        claimed = db.session.query(WarrantyClaim.id).filter(WarrantyClaim.repair_id == repair_id).first()
        if claimed is not None:
            raise ConflictError("Cannot delete repair: a warranty claim references it")
        db.session.delete(repair)
        db.session.commit()

    try:
        run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Repair %s deleted", repair_id)


def change_status(repair_id: int, new_status: str, *, actor_user_id: int | None = None) -> tuple[Repair, dict]:
    """
    Move a repair to new_status and dispatch its notification.

    Returns (repair, outcome) where outcome carries notificationCreated,
    emailSent, emailSkipped and emailError.
    """
    new_status = (new_status or "").strip()
    if not new_status:
        raise ValidationError("Status is required")
    if new_status not in REPAIR_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(REPAIR_STATUSES)}")

    def _op():
        repair = lock_for_update(db.session.query(Repair).filter_by(id=repair_id)).first()
        if repair is None:
            raise NotFoundError("No repair found with that ID")
        previous = repair.status
        if not can_transition(previous, new_status):
            raise ConflictError(
                f"Cannot change repair status from {previous} to {new_status}",
                details={"from": previous, "to": new_status},
            )

        repair.status = new_status
        if new_status == STATUS_PICKED_UP:
            repair.date_completed = utcnow()

        customer = repair.customer
        event = notification_service.enqueue(
            notification_service.EVENT_REPAIR_STATUS_CHANGED,
            {
                "repair_id": repair.id,
                "customer_name": customer.name if customer else None,
                "email": customer.email if customer else None,
                "device_type": repair.device_type,
                "device_model": repair.device_model,
                "technician": repair.technician,
                "previous_status": previous,
                "new_status": new_status,
                "changed_by_user_id": actor_user_id,
                "timestamp": to_utc_z(utcnow()),
            },
        )
        db.session.commit()
        return repair, event.id

    try:
        repair, event_id = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Repair %s status -> %s by user=%s", repair_id, new_status, actor_user_id)

    try:
        outcome = notification_service.dispatch(event_id)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to dispatch status notification for repair %s", repair_id)
        outcome = {"notificationCreated": False, "emailSent": False, "emailSkipped": False, "emailError": str(exc)}

    return get_repair(repair_id), outcome
