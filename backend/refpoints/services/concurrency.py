# Overview: Service-layer helpers for row-level contention on coupons and balances.

"""
SQLite ignores SELECT ... FOR UPDATE, so the invariants on coupon usage and
point balances are held by conditional UPDATEs (coupon_ledger.redeem,
points_service.apply_points). What is left for this module is retrying the
transient failures those writers can hit.
"""

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Contention
from ..extensions import db

logger = logging.getLogger(__name__)


class RetryableConflict(Exception):
    """
    Raised inside a retried operation when a concurrent writer got there
    first (e.g. a unique insert lost the race) and a fresh attempt would
    see the winner's row. The session has already been rolled back.
    """


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked"),
    StaleDataError (optimistic version_id conflicts) and RetryableConflict.
    When the budget is spent the failure surfaces as Contention so callers can answer 503.
    """
    if attempts is None:
        attempts = current_app.config.get("CONTENTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("CONTENTION_BACKOFF_SECONDS", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, RetryableConflict) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Contention retries exhausted after %d attempts: %s", attempts, exc)
                raise Contention("The record is busy, please try again") from exc
            time.sleep(backoff_base * (2 ** attempt))
    raise Contention("The record is busy, please try again")
