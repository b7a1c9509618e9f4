# Overview: Best-effort customer notifications with a delivery log.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import NotificationLog
from ..models.communications import STATUS_FAILED, STATUS_SENT
from .notifier import NotifierSession, NotifyResult

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = (
    "Welcome {name}! Your referral code is {code}. "
    "Share it with friends and earn points every time they use it."
)
REWARD_TEMPLATE = "Hi {name}, you earned {points} points! Your balance is now {balance} points."
BILL_APPROVED_TEMPLATE = "Hi {name}, your bill was approved and {points} points were added. Balance: {balance} points."
BILL_REJECTED_TEMPLATE = "Hi {name}, your bill submission could not be verified."


def log_result(org_id: int, phone: str, message: str, kind: str, result: NotifyResult, customer_id: int | None = None) -> None:
    """Record one delivery attempt. Flushes; caller commits."""
    db.session.add(NotificationLog(
        org_id=org_id,
        customer_id=customer_id,
        phone_number=phone,
        message=message,
        kind=kind,
        status=STATUS_SENT if result.success else STATUS_FAILED,
        provider_message_id=result.message_id,
        error=result.error,
    ))


def notify(
    notifier: NotifierSession | None,
    org_id: int,
    phone: str,
    message: str,
    kind: str,
    customer_id: int | None = None,
) -> NotifyResult:
    """
    Send one message and record the outcome.

    Never raises: by the time this runs the business change is committed,
    so a delivery problem is logged and written to notification_logs only.
    """
    if notifier is None:
        return NotifyResult(success=False, error="No notifier configured")

    try:
        result = notifier.send(phone, message)
    except Exception as exc:  # provider code must not undo a committed award
        logger.warning("Notifier raised while sending to %s", phone, exc_info=True)
        result = NotifyResult(success=False, error=str(exc) or exc.__class__.__name__)

    if not result.success:
        logger.warning("Notification (%s) to %s failed: %s", kind, phone, result.error)

    try:
        log_result(org_id, phone, message, kind, result, customer_id=customer_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record notification log")

    return result

