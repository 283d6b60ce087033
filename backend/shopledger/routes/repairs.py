# Overview: Flask API routes for repair tickets, status changes and warranty lookups.

from flask import Blueprint, g, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_TECHNICIAN
from ..services import repair_service, warranty_service
from .responses import internal_error, json_body, ledger_error, query_int, success


repairs_bp = Blueprint("repairs", __name__, url_prefix="/api/repairs")


@repairs_bp.get("")
@require_actor
def list_repairs_route():
    try:
        result = repair_service.list_repairs(
            request.args.get("search"),
            status=request.args.get("status"),
            technician=request.args.get("technician"),
            page=query_int("page"),
            per_page=query_int("per_page"),
        )
        return success({"repairs": result["items"]}, results=result["count"], pagination=result.get("pagination"))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list repairs")


@repairs_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_CASHIER, ROLE_TECHNICIAN)
def create_repair_route():
    try:
        repair = repair_service.create_repair(json_body(), actor_user_id=g.current_user.id)
        return success({"repair": repair.to_dict()}, 201)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("create repair")


@repairs_bp.get("/<int:repair_id>")
@require_actor
def get_repair_route(repair_id: int):
    try:
        return success({"repair": repair_service.get_repair(repair_id).to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("get repair")


@repairs_bp.put("/<int:repair_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_TECHNICIAN)
def update_repair_route(repair_id: int):
    try:
        repair = repair_service.update_repair(repair_id, json_body())
        return success({"repair": repair.to_dict()}, message="Repair updated successfully")
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update repair")


@repairs_bp.delete("/<int:repair_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_repair_route(repair_id: int):
    try:
        repair_service.delete_repair(repair_id)
        return "", 204
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("delete repair")


@repairs_bp.patch("/<int:repair_id>/status")
@require_actor
@require_role(ROLE_ADMIN, ROLE_TECHNICIAN)
def update_status_route(repair_id: int):
    """
    Body: {status}. The response carries notificationCreated, emailSent,
    emailSkipped and emailError from the post-commit dispatch.
    """
    try:
        repair, outcome = repair_service.change_status(
            repair_id,
            json_body().get("status"),
            actor_user_id=g.current_user.id,
        )
        if outcome.get("emailSent"):
            message = "Repair status updated successfully and notification email sent"
        elif outcome.get("emailSkipped"):
            message = "Repair status updated successfully (email notification skipped - no valid email)"
        elif outcome.get("emailError"):
            message = "Repair status updated successfully but failed to send notification email"
        else:
            message = "Repair status updated successfully"
        data = {"repair": repair.to_dict(), "message": message}
        data.update(outcome)
        return success(data)
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("update repair status")


@repairs_bp.get("/warranty/<path:serial_number>")
@require_actor
def warranty_route(serial_number: str):
    try:
        return success({"warranty": warranty_service.check_warranty_by_serial(serial_number)})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("check warranty")


@repairs_bp.get("/serials")
@require_actor
def search_serials_route():
    try:
        results = warranty_service.search_serial_numbers(request.args.get("q"))
        return success({"serials": results}, results=len(results))
    except Exception:
        return internal_error("search serial numbers")
