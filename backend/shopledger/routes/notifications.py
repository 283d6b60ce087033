# Overview: Flask API routes for in-app notifications.

from flask import Blueprint, request

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import notification_service
from .responses import internal_error, ledger_error, query_int, success


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_actor
def list_notifications_route():
    try:
        items = notification_service.list_notifications(
            is_read=notification_service.parse_is_read(request.args.get("is_read")),
            type=request.args.get("type"),
            limit=min(query_int("limit") or 100, 500),
        )
        return success({"notifications": [n.to_dict() for n in items]}, results=len(items))
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("list notifications")


@notifications_bp.patch("/<int:notification_id>/read")
@require_actor
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id)
        return success({"notification": notification.to_dict()})
    except LedgerError as e:
        return ledger_error(e)
    except Exception:
        return internal_error("mark notification read")


@notifications_bp.patch("/read-all")
@require_actor
def mark_all_read_route():
    try:
        return success({"updated": notification_service.mark_all_read()})
    except Exception:
        return internal_error("mark notifications read")


@notifications_bp.get("/unread-count")
@require_actor
def unread_count_route():
    try:
        return success({"count": notification_service.unread_count()})
    except Exception:
        return internal_error("count unread notifications")
