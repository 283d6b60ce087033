# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN
from ..services import catalog_service
from .responses import internal_error, json_body, ledger_error, query_int, success


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
def list_products():
    """
    List active products.

    Query params: search, category, include_inactive=1, page, per_page.
    """
    try:
        result = catalog_service.list_products(
            request.args.get("search"),
            category=request.args.get("category"),
            include_inactive=request.args.get("include_inactive") in ("1", "true"),
            page=query_int("page"),
            per_page=query_int("per_page"),
        )
        return success({"products": result["items"]}, results=result["count"], pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list products")


@products_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_product_route():
    try:
        product = catalog_service.create_product(json_body())
        return success({"product": product.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create product")


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        return success({"product": catalog_service.get_product(product_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get product")


@products_bp.put("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, json_body())
        return success({"product": product.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update product")


@products_bp.delete("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    """Refused with 400 while any purchase, sale, inventory row or supplier return references the product."""
    try:
        catalog_service.delete_product(product_id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete product")


@products_bp.get("/categories")
@require_actor
def list_categories_route():
    try:
        categories = catalog_service.list_categories()
        return success({"categories": [c.to_dict() for c in categories]})
    except Exception:
        return internal_error("list categories")


@products_bp.post("/categories")
@require_actor
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        category = catalog_service.create_category(json_body().get("name"))
        return success({"category": category.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create category")


@products_bp.patch("/categories/<name>")
@require_actor
@require_role(ROLE_ADMIN)
def rename_category_route(name: str):
    try:
        category = catalog_service.rename_category(name, json_body().get("name"))
        return success({"category": category.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("rename category")


@products_bp.delete("/categories/<name>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_category_route(name: str):
    try:
        catalog_service.delete_category(name)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete category")
