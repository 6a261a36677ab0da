import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PropagationFailure
from app.models.propagation_failure import PropagationFailureLog

logger = logging.getLogger(__name__)

STORES = ("availability", "transaction", "payment", "notification")

OPEN = "open"
RESOLVED = "resolved"
STUCK = "stuck"  # gave up after PROPAGATION_MAX_ATTEMPTS; needs an admin
FAILURE_STATUSES = (OPEN, RESOLVED, STUCK)


def record_failure(db: Session, reservation_id: str, store: str, action: str, target_status: str, error: Exception | str) -> PropagationFailure:
    """Log a failed dependent write and persist it for the reconciliation worker.

    If the failure row itself cannot be written the warning log is all that remains;
    the periodic reconcile pass still finds the inconsistency.
    """
    if store not in STORES:
        raise ValueError(f"unknown store '{store}'")
    failure = PropagationFailure(store, reservation_id, str(error))
    logger.warning("%s (action=%s target=%s)", failure, action, target_status)
    try:
        db.add(PropagationFailureLog(
            id=str(uuid.uuid4()),
            reservation_id=reservation_id,
            store=store,
            action=action,
            target_status=target_status,
            error=str(error)[:2000],
        ))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("could not persist propagation failure for reservation %s", reservation_id)
    return failure


def open_failures(db: Session, limit: int = 50) -> list[PropagationFailureLog]:
    """Least-tried first, so rows that keep failing cannot starve newer ones."""
    return (
        db.query(PropagationFailureLog)
        .filter(PropagationFailureLog.status == OPEN)
        .order_by(PropagationFailureLog.attempts.asc(), PropagationFailureLog.created_at.asc())
        .limit(limit)
        .all()
    )


def record_attempt(failure: PropagationFailureLog, ok: bool) -> None:
    failure.attempts = (failure.attempts or 0) + 1
    if ok:
        failure.status = RESOLVED
        failure.resolved_at = datetime.now(timezone.utc)
    elif failure.attempts >= settings.PROPAGATION_MAX_ATTEMPTS:
        failure.status = STUCK
        logger.error("giving up on %s propagation for reservation %s after %d attempts",
                     failure.store, failure.reservation_id, failure.attempts)
