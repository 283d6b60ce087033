# Overview: Flask API routes for suppliers.

from flask import Blueprint, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN
from ..services import catalog_service
from .responses import internal_error, json_body, ledger_error, success


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_actor
def list_suppliers():
    try:
        suppliers = catalog_service.list_suppliers(request.args.get("search"))
        return success({"suppliers": [s.to_dict() for s in suppliers]}, results=len(suppliers))
    except Exception:
        return internal_error("list suppliers")


@suppliers_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_supplier_route():
    try:
        supplier = catalog_service.create_supplier(json_body())
        return success({"supplier": supplier.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create supplier")


@suppliers_bp.get("/<int:supplier_id>")
@require_actor
def get_supplier_route(supplier_id: int):
    try:
        return success({"supplier": catalog_service.get_supplier(supplier_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get supplier")


@suppliers_bp.patch("/<int:supplier_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.update_supplier(supplier_id, json_body())
        return success({"supplier": supplier.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_supplier_route(supplier_id: int):
    try:
        catalog_service.delete_supplier(supplier_id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete supplier")
