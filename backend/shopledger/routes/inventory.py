# Overview: Flask API routes for derived stock levels.

from flask import Blueprint, request

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import inventory_service
from .responses import internal_error, ledger_error, success


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_actor
def list_stock_route():
    try:
        items = inventory_service.list_stock(request.args.get("search"))
        return success({"inventory": items}, results=len(items))
    except Exception:
        return internal_error("list inventory")


@inventory_bp.get("/<int:product_id>")
@require_actor
def product_stock_route(product_id: int):
    try:
        return success({"inventory": inventory_service.get_summary(product_id)})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get inventory")


@inventory_bp.get("/<int:product_id>/batches")
@require_actor
def product_batches_route(product_id: int):
    try:
        batches = inventory_service.product_batches(product_id)
        return success({"purchases": [b.to_dict() for b in batches]}, results=len(batches))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list product batches")
