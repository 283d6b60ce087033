# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, Response, g, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import sales_service, undo_service
from .responses import (
    internal_error,
    json_body,
    ledger_error,
    query_date_range,
    query_int,
    success,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def create_sale_route():
    """
    Checkout.

    Body: {customer: {phone, name?, email?},
           items: [{product_id, purchase_id?, quantity, serial_numbers?, discount?}],
           payment_method, amount_paid, change_amount}

    Items without purchase_id are filled oldest batch first.
    """
    try:
        sale = sales_service.create_sale(json_body(), actor_user_id=g.current_user.id)
        return success({"sale": sale}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create sale")


@sales_bp.get("")
@require_actor
def list_sales_route():
    try:
        start, end = query_date_range()
        result = sales_service.list_sales(
            start=start,
            end=end,
            customer_id=query_int("customer_id"),
            product_id=query_int("product_id"),
            search=request.args.get("search"),
            page=query_int("page"),
            per_page=query_int("limit") or query_int("per_page"),
        )
        return success({"sales": result["items"]}, results=result["count"], pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list sales")


@sales_bp.get("/<int:invoice_no>")
@require_actor
def get_sale_route(invoice_no: int):
    try:
        return success({"sale": sales_service.get_sale(invoice_no)})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get sale")


@sales_bp.get("/<int:invoice_no>/can-delete")
@require_actor
def can_delete_sale_route(invoice_no: int):
    try:
        return success(sales_service.can_delete(invoice_no))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("check sale deletion")


@sales_bp.patch("/<int:invoice_no>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def update_sale_route(invoice_no: int):
    """Payment method, payment status and notes only."""
    try:
        return success({"sale": sales_service.update_sale(invoice_no, json_body())})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update sale")


@sales_bp.delete("/<int:invoice_no>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def delete_sale_route(invoice_no: int):
    """400 when the sale is outside the undo window or has warranty claims."""
    try:
        sales_service.delete_sale(invoice_no, actor_user_id=g.current_user.id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete sale")


@sales_bp.post("/<int:invoice_no>/undo")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def undo_sale_route(invoice_no: int):
    """Body: {reason_type, reason_details?}. Snapshots the sale before reverting it."""
    try:
        data = json_body()
        log = undo_service.undo_sale(
            invoice_no,
            actor=g.current_user,
            reason_type=data.get("reason_type"),
            reason_details=data.get("reason_details"),
        )
        return success({"undo_log": log.to_dict()}, message="Sale undone successfully")
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("undo sale")


@sales_bp.get("/undo-logs")
@require_actor
@require_role(ROLE_ADMIN)
def sale_undo_logs_route():
    try:
        start, end = query_date_range()
        result = undo_service.list_sale_undo_logs(
            page=query_int("page"),
            per_page=query_int("limit") or query_int("per_page"),
            start=start,
            end=end,
            user_id=query_int("user_id"),
            reason_type=request.args.get("reason_type"),
        )
        return success({"logs": result["items"]}, pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list sale undo logs")


@sales_bp.get("/undo-logs/<int:log_id>")
@require_actor
@require_role(ROLE_ADMIN)
def sale_undo_log_route(log_id: int):
    try:
        return success({"log": undo_service.get_sale_undo_log(log_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get sale undo log")


@sales_bp.get("/undo-logs/export-csv")
@require_actor
@require_role(ROLE_ADMIN)
def export_sale_undo_logs_route():
    try:
        start, end = query_date_range()
        body = undo_service.sale_undo_logs_csv(
            start=start,
            end=end,
            user_id=query_int("user_id"),
            reason_type=request.args.get("reason_type"),
        )
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=sale_undo_logs.csv"},
        )
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("export sale undo logs")
