from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    if isinstance(coltype, DateTime):
        return parse_datetime(value, col.key)

    if isinstance(coltype, Date):
        return parse_datetime(value, col.key).date()

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Unknown keys are ignored rather than rejected; the register screens post
    whole form objects back.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_int(value: Any, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_positive_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    number = parse_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive number")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return number


def parse_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        # str() first so floats like 0.1 don't carry binary noise
        number = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    return number


def parse_money_cents(value: Any, field: str) -> int:
    """Decimal currency amount ("1,250.50", 1250.5) -> positive integer cents."""
    amount = parse_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be a positive number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_PRICE_CENTS)}")
    return cents


def parse_optional_money_cents(value: Any, field: str) -> int:
    """Like parse_money_cents but zero/blank is allowed (amount paid, change)."""
    if value is None or value == "":
        return 0
    amount = parse_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_discount(value: Any, field: str = "discount") -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    pct = parse_decimal(value, field)
    if pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return pct.quantize(_CENT, rounding=ROUND_HALF_UP)


def parse_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
        if dt is None:
            raise ValidationError(f"{field} is required")
        return dt
    raise ValidationError(f"{field} must be an ISO-8601 date or datetime")


def format_cents(cents: int | None) -> str | None:
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(_CENT))


def discounted_line_total_cents(unit_price_cents: int, quantity: int, discount_percent: Decimal) -> int:
    """
    unit price x quantity x (1 - discount/100), rounded half-up to the cent.
    """
    gross = Decimal(unit_price_cents) * quantity
    net = gross * (Decimal(100) - Decimal(discount_percent)) / Decimal(100)
    return int(net.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
