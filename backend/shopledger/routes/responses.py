# Overview: Shared JSON envelope helpers for the API blueprints.

from flask import current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..time_utils import parse_date_range
from ..validation import parse_int


def success(data=None, status: int = 200, **extra):
    body = {"status": "success"}
    body.update({k: v for k, v in extra.items() if v is not None})
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def ledger_error(exc: LedgerError):
    """Map a tagged ledger error to its HTTP status by kind."""
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"status": "error", "message": "Internal server error"}), 500


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def query_int(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    return parse_int(value, name)


def query_date_range():
    """
    ?startDate=&endDate= (or the short ?start=&end=) as UTC-naive datetimes.
    A bare end date covers that whole day.
    """
    start = request.args.get("startDate") or request.args.get("start")
    end = request.args.get("endDate") or request.args.get("end")
    try:
        return parse_date_range(start, end)
    except ValueError:
        raise ValidationError("startDate/endDate must be ISO-8601 dates")
