# Overview: Service-layer operations for customers; phone lookup and validated creation.

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, Invoice, Repair
from ..models.customers import WALK_IN_CUSTOMER
from ..pagination import paginate


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(phone) -> str:
    # "077 123 4567" and "0771234567" are the same customer
    return re.sub(r"\s+", "", str(phone or ""))


def validate_phone(phone) -> str:
    phone = normalize_phone(phone)
    if not phone:
        raise ValidationError("Customer phone is required")
    pattern = current_app.config["CUSTOMER_PHONE_PATTERN"]
    if not re.match(pattern, phone):
        raise ValidationError(
            "Invalid phone number format. Use 07XXXXXXXX or +947XXXXXXXX",
            details={"phone": phone},
        )
    return phone


def _clean_email(email) -> str | None:
    email = (email or "").strip()
    if not email or email == "Not Available":
        return None
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email.lower()


def find_by_phone(phone) -> Customer | None:
    phone = normalize_phone(phone)
    if not phone:
        return None
    return db.session.query(Customer).filter(Customer.phone == phone).first()


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(search: str | None = None, *, page: int | None = None, per_page: int | None = None) -> dict:
    query = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(Customer.name.ilike(like), Customer.phone.ilike(like), Customer.email.ilike(like))
        )
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page, per_page)


def build_customer(name, phone, email=None, *, default_name: str | None = None) -> Customer:
    """
    Validate and stage a new customer on the session (flushed, not committed).

    Used directly by checkout so the customer row lands in the sale's
    transaction.
    """
    phone = validate_phone(phone)
    name = (str(name).strip() if name is not None else "") or default_name
    if not name:
        raise ValidationError("Customer name is required")
    email = _clean_email(email)

    if find_by_phone(phone) is not None:
        raise ConflictError("A customer with this phone number already exists")
    if email and db.session.query(Customer.id).filter(Customer.email == email).first() is not None:
        raise ConflictError("A customer with this email already exists")

    customer = Customer(name=name, phone=phone, email=email)
    db.session.add(customer)
    db.session.flush()
    return customer


def resolve_for_sale(payload: dict | None) -> Customer:
    """
    Checkout lookup: existing customer by phone, else a new one. A missing
    name falls back to the walk-in label.
    """
    payload = payload or {}
    phone = validate_phone(payload.get("phone") or payload.get("contact"))
    existing = find_by_phone(phone)
    if existing is not None:
        return existing
    try:
        return build_customer(
            payload.get("name"),
            phone,
            payload.get("email"),
            default_name=WALK_IN_CUSTOMER,
        )
    except IntegrityError:
        # A concurrent checkout inserted the same phone or email first
        db.session.rollback()
        raise ConflictError("Customer already exists")


def create_customer(payload: dict) -> Customer:
    payload = payload or {}
    try:
        customer = build_customer(payload.get("name"), payload.get("phone"), payload.get("email"))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Customer already exists")
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Customer %s created", customer.id)
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    """Name and phone stay required; phone and email stay unique."""
    payload = payload or {}
    customer = get_customer(customer_id)

    name = payload.get("name", customer.name)
    name = str(name).strip() if name is not None else ""
    if not name:
        raise ValidationError("Customer name is required")
    phone = validate_phone(payload.get("phone", customer.phone))
    email = _clean_email(payload["email"]) if "email" in payload else customer.email

    other = find_by_phone(phone)
    if other is not None and other.id != customer.id:
        raise ConflictError("A customer with this phone number already exists")
    if email:
        other_id = db.session.query(Customer.id).filter(Customer.email == email).scalar()
        if other_id is not None and other_id != customer.id:
            raise ConflictError("A customer with this email already exists")

    try:
        customer.name = name
        customer.phone = phone
        customer.email = email
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Customer already exists")
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Customer %s updated", customer.id)
    return customer


def _customer_references(customer_id: int) -> list[str]:
    found = []
    for label, model in (("sales", Invoice), ("repairs", Repair)):
        if db.session.query(model.customer_id).filter(model.customer_id == customer_id).first() is not None:
            found.append(label)
    return found


def delete_customer(customer_id: int) -> None:
    customer = get_customer(customer_id)
    references = _customer_references(customer_id)
    if references:
        raise ConflictError(
            "Cannot delete customer: it is referenced by " + ", ".join(references),
            details={"references": references},
        )
    try:
        db.session.delete(customer)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Customer %s deleted", customer_id)
