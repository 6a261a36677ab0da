"""Replays a reservation's current status onto its dependent stores.

Everything here is idempotent, so the worker can run it as often as it likes.
"""
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFound, UnitUnavailable
from app.models.motorcycle import Motorcycle, RESERVED
from app.models.propagation_failure import PropagationFailureLog
from app.models.reservation import Reservation, CONFIRMED, COMPLETED
from app.services import availability_service, ledger_service
from app.services.propagation_service import STUCK, open_failures, record_attempt
from app.services.reservation_service import get_reservation, notify

logger = logging.getLogger(__name__)

# reservation status -> action whose notification describes it
_NOTICE_ACTION = {
    CONFIRMED: "approve",
    COMPLETED: "complete",
}


def _reconcile_availability(db: Session, r: Reservation) -> bool:
    try:
        if r.status == CONFIRMED:
            availability_service.lock(db, r.motorcycle_id, r.id)
        else:
            availability_service.release(db, r.motorcycle_id, r.id)
        return True
    except UnitUnavailable as e:
        # another confirmed reservation (or maintenance) holds the unit; needs an admin
        logger.error("reservation %s is confirmed but cannot hold motorcycle: %s", r.id, e)
        return False
    except NotFound:
        logger.error("reservation %s points at missing motorcycle %s", r.id, r.motorcycle_id)
        return False
    except Exception:
        db.rollback()
        logger.exception("availability reconcile failed for reservation %s", r.id)
        return False


def reconcile(db: Session, reservation_id: str) -> dict:
    """Bring availability, ledger and payment record in line with the reservation status."""
    r = get_reservation(db, reservation_id)
    outcome = {"availability": _reconcile_availability(db, r)}

    try:
        ledger_service.ensure_entries(db, r)
    except Exception:
        db.rollback()
        logger.exception("could not recreate ledger entries for reservation %s", r.id)
    synced = ledger_service.sync_status(db, r.id, r.status)
    outcome["transaction"] = synced["transaction"]
    outcome["payment"] = synced["payment"]
    logger.info("reconciled reservation %s (%s): %s", r.id, r.status, outcome)
    return outcome


def inconsistencies(db: Session, r: Reservation) -> list[str]:
    """Stores that disagree with the reservation status."""
    found = []
    m = db.get(Motorcycle, r.motorcycle_id)
    if m:
        holds = m.held_by_reservation_id == r.id
        if r.status == CONFIRMED and not (holds and m.availability == RESERVED):
            found.append("availability")
        elif r.status != CONFIRMED and holds:
            found.append("availability")

    tx_status, payment_status = ledger_service.STATUS_MAP[r.status]
    txs = ledger_service.payment_transactions(db, r.id)
    if not txs or any(t.status != tx_status and t.status != "completed" for t in txs):
        found.append("transaction")
    payments = ledger_service.cash_payments(db, r.id)
    settled = ("succeeded", "refunded", "partially_refunded")
    if not payments or any(p.status != payment_status and p.status not in settled for p in payments):
        found.append("payment")
    return found


def _release_orphans(db: Session, batch: int) -> tuple[int, int]:
    """Free units still held by a reservation that is gone or no longer confirmed."""
    released, failed = 0, 0
    last_id = ""
    while True:
        held = (
            db.query(Motorcycle.id, Motorcycle.held_by_reservation_id)
            .filter(Motorcycle.held_by_reservation_id.isnot(None), Motorcycle.id > last_id)
            .order_by(Motorcycle.id)
            .limit(batch)
            .all()
        )
        if not held:
            return released, failed
        last_id = held[-1][0]
        for unit_id, holder_id in held:
            holder = db.get(Reservation, holder_id)
            if holder is not None and holder.status == CONFIRMED:
                continue
            try:
                availability_service.release(db, unit_id, holder_id)
                released += 1
            except Exception:
                db.rollback()
                logger.exception("could not release motorcycle %s held by %s", unit_id, holder_id)
                failed += 1


def reconcile_all(db: Session, limit: int | None = None) -> dict:
    """Walk every reservation in id-ordered pages and repair the inconsistent ones."""
    batch = limit or settings.RECONCILE_BATCH_SIZE
    checked, repaired, failed = 0, 0, 0
    last_id = ""
    while True:
        page = (
            db.query(Reservation)
            .filter(Reservation.id > last_id)
            .order_by(Reservation.id)
            .limit(batch)
            .all()
        )
        if not page:
            break
        last_id = page[-1].id
        # reconcile() may roll back and expire the page
        broken = [r.id for r in page if inconsistencies(db, r)]
        checked += len(page)
        for reservation_id in broken:
            try:
                outcome = reconcile(db, reservation_id)
            except Exception:
                db.rollback()
                logger.exception("reconcile failed for reservation %s", reservation_id)
                failed += 1
                continue
            if all(outcome.values()):
                repaired += 1
            else:
                failed += 1

    released, release_failed = _release_orphans(db, batch)
    return {"checked": checked, "repaired": repaired + released, "failed": failed + release_failed}


def _retry(db: Session, f: PropagationFailureLog) -> bool:
    r = get_reservation(db, f.reservation_id)
    if f.store == "notification":
        # re-send what the reservation looks like now; a duplicate is acceptable
        action = f.action if f.action in ("book", "approve", "reject", "complete", "cancel") else _NOTICE_ACTION.get(r.status)
        if action:
            notify(db, r, action)
        return True
    return bool(reconcile(db, r.id).get(f.store))


def process_propagation_failures(db: Session, limit: int = 50) -> dict:
    """Retry open propagation failures. Run periodically by the worker.

    A row that still fails after PROPAGATION_MAX_ATTEMPTS is parked as "stuck"
    and left for an admin.
    """
    pending = open_failures(db, limit)
    resolved, failed, stuck = 0, 0, 0
    for f in pending:
        try:
            ok = _retry(db, f)
        except NotFound:
            logger.warning("dropping propagation failure %s: reservation %s is gone", f.id, f.reservation_id)
            ok = True
        except Exception:
            db.rollback()
            logger.exception("retry of propagation failure %s failed", f.id)
            ok = False
        record_attempt(f, ok)
        if ok:
            resolved += 1
        else:
            failed += 1
            if f.status == STUCK:
                stuck += 1
        db.commit()
    return {"processed": len(pending), "resolved": resolved, "failed": failed, "stuck": stuck}
