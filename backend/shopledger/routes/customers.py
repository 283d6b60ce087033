# Overview: Flask API routes for customers.

from flask import Blueprint, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, NotFoundError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import customer_service
from .responses import internal_error, json_body, ledger_error, query_int, success


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_actor
def list_customers_route():
    try:
        result = customer_service.list_customers(
            request.args.get("search"),
            page=query_int("page"),
            per_page=query_int("per_page"),
        )
        return success({"customers": result["items"]}, results=result["count"], pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list customers")


@customers_bp.post("")
@require_actor
def create_customer_route():
    try:
        customer = customer_service.create_customer(json_body())
        return success({"customer": customer.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create customer")


@customers_bp.get("/<int:customer_id>")
@require_actor
def get_customer_route(customer_id: int):
    try:
        return success({"customer": customer_service.get_customer(customer_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get customer")


@customers_bp.get("/phone/<phone>")
@require_actor
def find_by_phone_route(phone: str):
    try:
        customer = customer_service.find_by_phone(phone)
        if customer is None:
            raise NotFoundError("No customer found with that phone number")
        return success({"customer": customer.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("find customer by phone")


@customers_bp.patch("/<int:customer_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, json_body())
        return success({"customer": customer.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update customer")


@customers_bp.delete("/<int:customer_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete customer")
