# Overview: Flask API routes for supplier returns.

from flask import Blueprint, g, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN
from ..services import supplier_return_service
from .responses import internal_error, json_body, ledger_error, query_int, success


supplier_returns_bp = Blueprint("supplier_returns", __name__, url_prefix="/api/supplier-returns")


@supplier_returns_bp.get("")
@require_actor
@require_role(ROLE_ADMIN)
def list_returns_route():
    try:
        result = supplier_return_service.list_returns(
            request.args.get("search"),
            page=query_int("page"),
            per_page=query_int("per_page"),
        )
        return success({"returns": result["items"]}, results=result["count"], pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list supplier returns")


@supplier_returns_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_return_route():
    """Body: {purchase_id, quantity, return_reason, return_date?, serial_number?, notes?}"""
    try:
        record = supplier_return_service.create_return(json_body(), actor_user_id=g.current_user.id)
        return success({"return": record.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create supplier return")


@supplier_returns_bp.get("/<int:return_id>")
@require_actor
@require_role(ROLE_ADMIN)
def get_return_route(return_id: int):
    try:
        return success({"return": supplier_return_service.get_return(return_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get supplier return")


@supplier_returns_bp.patch("/<int:return_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_return_route(return_id: int):
    try:
        record = supplier_return_service.update_return(return_id, json_body())
        return success({"return": record.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update supplier return")


@supplier_returns_bp.get("/purchase/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN)
def purchase_details_route(purchase_id: int):
    try:
        return success({"purchase": supplier_return_service.purchase_details(purchase_id)})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get purchase details")
