# Overview: Warranty lookups by serial number.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from ..extensions import db
from ..errors import NotFoundError
from ..models import Customer, Invoice, Product, PurchaseBatch, SaleLine, SaleSerial
from ..time_utils import as_date, today as current_date

# A warranty month is counted as 30 days.
DAYS_PER_WARRANTY_MONTH = 30
SERIAL_SEARCH_LIMIT = 10


@dataclass(frozen=True)
class WarrantyStatus:
    end_date: date
    remaining_days: int
    is_under_warranty: bool


def compute_warranty(purchase_date, warranty_months: int, today: date | None = None) -> WarrantyStatus:
    """
    end = purchase date + months x 30 days; remaining = max(0, end - today)
    in whole calendar days. Zero remaining days means expired.
    """
    start = as_date(purchase_date)
    today = as_date(today) or current_date()
    end = start + timedelta(days=(warranty_months or 0) * DAYS_PER_WARRANTY_MONTH)
    remaining = max(0, (end - today).days)
    return WarrantyStatus(end_date=end, remaining_days=remaining, is_under_warranty=remaining > 0)


def _serial_query():
    return (
        db.session.query(SaleSerial, SaleLine, Invoice, PurchaseBatch, Product, Customer)
        .join(SaleLine, SaleSerial.sale_line_id == SaleLine.id)
        .join(Invoice, SaleLine.invoice_no == Invoice.invoice_no)
        .join(PurchaseBatch, SaleLine.purchase_id == PurchaseBatch.id)
        .join(Product, SaleLine.product_id == Product.id)
        .join(Customer, Invoice.customer_id == Customer.id)
    )


def check_warranty_by_serial(serial_number: str, today: date | None = None) -> dict:
    serial_number = (serial_number or "").strip()
    row = (
        _serial_query()
        .filter(SaleSerial.serial_number == serial_number)
        .order_by(Invoice.sale_date.desc(), SaleLine.id.desc())
        .first()
    ) if serial_number else None
    if row is None:
        raise NotFoundError("Serial number not found", details={"serial_number": serial_number})

    serial, line, invoice, batch, product, customer = row
    status = compute_warranty(invoice.sale_date, batch.warranty_months, today)
    return {
        "serial_number": serial.serial_number,
        "product_id": product.id,
        "product_name": product.name,
        "category": product.category_name,
        "warranty": batch.warranty_months,
        "purchase_id": batch.id,
        "sale_id": line.id,
        "invoice_no": invoice.invoice_no,
        "purchase_date": as_date(invoice.sale_date).isoformat(),
        "customer_id": customer.id,
        "customer_name": customer.name,
        "phone": customer.phone,
        "email": customer.email or "Not Available",
        "warranty_end_date": status.end_date.isoformat(),
        "warranty_remaining_days": status.remaining_days,
        "is_under_warranty": status.is_under_warranty,
    }


def search_serial_numbers(query: str | None, today: date | None = None) -> list[dict]:
    query = (query or "").strip()
    if not query:
        return []
    rows = (
        _serial_query()
        .filter(SaleSerial.serial_number.ilike(f"%{query}%"))
        .order_by(SaleSerial.serial_number.asc(), SaleSerial.id.asc())
        .limit(SERIAL_SEARCH_LIMIT)
        .all()
    )
    results = []
    for serial, line, invoice, batch, product, customer in rows:
        status = compute_warranty(invoice.sale_date, batch.warranty_months, today)
        results.append({
            "serial_number": serial.serial_number,
            "product_name": product.name,
            "warranty": batch.warranty_months,
            "purchase_date": as_date(invoice.sale_date).isoformat(),
            "warranty_remaining_days": status.remaining_days,
            "is_under_warranty": status.is_under_warranty,
        })
    return results


def find_sale_line_for_serial(serial_number: str) -> SaleLine | None:
    serial_number = (serial_number or "").strip()
    if not serial_number:
        return None
    return (
        db.session.query(SaleLine)
        .join(SaleSerial, SaleSerial.sale_line_id == SaleLine.id)
        .join(Invoice, SaleLine.invoice_no == Invoice.invoice_no)
        .filter(SaleSerial.serial_number == serial_number)
        .order_by(Invoice.sale_date.desc(), SaleLine.id.desc())
        .first()
    )
