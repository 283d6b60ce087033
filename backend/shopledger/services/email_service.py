# Overview: Outbound email senders selected by MAIL_BACKEND.

"""
MAIL_BACKEND:
    log       write the message to the app logger (default; dev and tests)
    smtp      deliver through Flask-Mail (MAIL_SERVER, MAIL_PORT, ...)
    disabled  refuse to send; callers record the failure

Senders raise EmailDeliveryError on failure. Nothing here touches the
database.
"""

from __future__ import annotations

from flask import current_app
from flask_mail import Message

from ..extensions import mail


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail transport."""


def _build_message(to: str, subject: str, body: str) -> Message:
    return Message(subject=subject, recipients=[to], body=body)


def _send_log(msg: Message) -> None:
    current_app.logger.info("Email to %s: %s", ", ".join(msg.recipients), msg.subject)


def _send_smtp(msg: Message) -> None:
    try:
        mail.send(msg)
    except Exception as exc:
        raise EmailDeliveryError(str(exc)) from exc


def _send_disabled(msg: Message) -> None:
    raise EmailDeliveryError("Email delivery is disabled")


_SENDERS = {
    "log": _send_log,
    "smtp": _send_smtp,
    "disabled": _send_disabled,
}


def send_email(to: str, subject: str, body: str) -> None:
    backend = current_app.config.get("MAIL_BACKEND", "log")
    sender = _SENDERS.get(backend)
    if sender is None:
        raise EmailDeliveryError(f"Unknown MAIL_BACKEND {backend!r}")
    sender(_build_message(to, subject, body))


def repair_status_email(repair: dict) -> tuple[str, str]:
    """Subject and plain-text body for a repair status update."""
    subject = f"Repair #{repair['repair_id']} status: {repair['new_status']}"
    device = " ".join(p for p in (repair.get("device_type"), repair.get("device_model")) if p)
    body = (
        f"Dear {repair.get('customer_name') or 'Customer'},\n\n"
        f"The status of your repair #{repair['repair_id']} ({device}) "
        f"is now: {repair['new_status']}.\n\n"
        "Thank you for choosing our shop."
    )
    return subject, body
