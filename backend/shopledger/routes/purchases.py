# Overview: Flask API routes for purchase batches, purchase undo and the undo audit log.

# backend/shopledger/routes/purchases.py
"""Purchase batch API. All routes are admin-only."""

from flask import Blueprint, Response, g, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN
from ..services import purchase_service, undo_service
from ..validation import parse_int
from .responses import (
    internal_error,
    json_body,
    ledger_error,
    query_date_range,
    query_int,
    success,
)


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_actor
@require_role(ROLE_ADMIN)
def list_purchases():
    try:
        batches = purchase_service.list_batches(request.args.get("search"))
        return success({"purchases": [b.to_dict() for b in batches]}, results=len(batches))
    except Exception:
        return internal_error("list purchases")


@purchases_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_purchase_route():
    """
    Record a purchase batch.

    Body: {product_id, quantity, buying_price, selling_price, warranty?, date?}
    """
    try:
        batch = purchase_service.create_batch(json_body(), actor_user_id=g.current_user.id)
        return success({"purchase": batch.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create purchase")


@purchases_bp.get("/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN)
def get_purchase_route(purchase_id: int):
    try:
        return success({"purchase": purchase_service.get_batch(purchase_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get purchase")


@purchases_bp.put("/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_purchase_route(purchase_id: int):
    try:
        batch = purchase_service.update_batch(purchase_id, json_body())
        return success({"purchase": batch.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update purchase")


@purchases_bp.delete("/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_purchase_route(purchase_id: int):
    try:
        purchase_service.delete_batch(purchase_id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete purchase")


@purchases_bp.get("/available/<int:product_id>")
@require_actor
def available_batches_route(product_id: int):
    """Batches with stock left, oldest first; the register picks from these."""
    try:
        batches = purchase_service.list_available(product_id)
        return success({"purchases": [b.to_dict() for b in batches]}, results=len(batches))
    except Exception:
        return internal_error("list available purchases")


@purchases_bp.post("/undo-last")
@require_actor
@require_role(ROLE_ADMIN)
def undo_last_purchase_route():
    """
    Undo a purchase and log it.

    Body: {reason, purchase_id?}. Without purchase_id the acting user's most
    recent purchase inside the undo window is undone.
    """
    try:
        data = json_body()
        reason = data.get("reason")
        if data.get("purchase_id") not in (None, ""):
            log = undo_service.undo_purchase(
                parse_int(data["purchase_id"], "purchase_id"),
                actor=g.current_user,
                reason=reason,
            )
        else:
            log = undo_service.undo_last_purchase(actor=g.current_user, reason=reason)
        return success({"purchase": log.to_dict()}, message="Purchase undone successfully")
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("undo purchase")


@purchases_bp.get("/undo-logs")
@require_actor
@require_role(ROLE_ADMIN)
def purchase_undo_logs_route():
    try:
        start, end = query_date_range()
        result = undo_service.list_purchase_undo_logs(
            page=query_int("page"),
            per_page=query_int("limit") or query_int("per_page"),
            search=request.args.get("search"),
            start=start,
            end=end,
        )
        return success({"logs": result["items"]}, pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list purchase undo logs")


@purchases_bp.get("/undo-logs/export-csv")
@require_actor
@require_role(ROLE_ADMIN)
def export_purchase_undo_logs_route():
    try:
        start, end = query_date_range()
        body = undo_service.purchase_undo_logs_csv(
            search=request.args.get("search"),
            start=start,
            end=end,
        )
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=purchase_undo_logs.csv"},
        )
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("export purchase undo logs")
