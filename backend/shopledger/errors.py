# Overview: Tagged error taxonomy shared by the ledger services and the HTTP layer.

"""
Ledger error kinds.

Services raise one of the LedgerError subclasses; routes map the error to an
HTTP status by its `kind`, never by inspecting the message text.

    VALIDATION          missing/malformed input                      400
    NOT_FOUND           referenced id absent                         404
    CONFLICT            business-rule violation (dependents exist,
                        expired undo window, duplicate unique key)   400
    INSUFFICIENT_STOCK  batch cannot cover the requested quantity    400
    INTERNAL            anything else                                500
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.INSUFFICIENT_STOCK: 400,
    ErrorKind.INTERNAL: 500,
}


class LedgerError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        body = {
            "status": "fail" if self.http_status < 500 else "error",
            "message": self.message,
            "error": self.kind.value,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """400-level input problem."""
    kind = ErrorKind.VALIDATION


class NotFoundError(LedgerError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(LedgerError):
    """Business rule conflict (dependent records, expired window, duplicates)."""
    kind = ErrorKind.CONFLICT


class InsufficientStockError(ConflictError):
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, product_name: str, available: int, requested: int, purchase_id: int | None = None):
        super().__init__(
            f"Not enough stock for product {product_name} ({available} available)",
            details={
                "product": product_name,
                "available": available,
                "requested": requested,
                "purchase_id": purchase_id,
            },
        )
        self.available = available
        self.requested = requested
