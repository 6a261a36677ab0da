"""Transaction ledger and payment records for a reservation.

The two tables are written independently and never in one commit, so every
write here is idempotent: re-applying a status that is already in place is a
no-op and the reservation status can always be replayed against them.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidTransition, NotFound, ValidationError
from app.models.motorcycle import Motorcycle
from app.models.payment import Payment
from app.models.reservation import Reservation, PENDING, CONFIRMED, CANCELLED, COMPLETED
from app.models.transaction import Transaction
from app.services.audit_service import log_audit
from app.services.pricing_service import rental_days
from app.services.propagation_service import record_failure

logger = logging.getLogger(__name__)

PAID = "paid"

# reservation event -> (Transaction.status, Payment.status)
STATUS_MAP = {
    PENDING: ("pending", "pending"),
    CONFIRMED: ("pending", "pending"),
    COMPLETED: ("completed", "succeeded"),
    CANCELLED: ("cancelled", "cancelled"),
    PAID: ("completed", "succeeded"),
}


def payment_transactions(db: Session, reservation_id: str) -> list[Transaction]:
    return db.query(Transaction).filter(Transaction.reservation_id == reservation_id, Transaction.type == "payment").all()


def cash_payments(db: Session, reservation_id: str) -> list[Payment]:
    return db.query(Payment).filter(Payment.reservation_id == reservation_id, Payment.payment_method == "cash").all()


def _description(r: Reservation, unit_name: str, q: dict) -> str:
    return (
        f"Payment for {unit_name} rental ({r.start_date.isoformat()} - {r.end_date.isoformat()}) | "
        f"Subtotal: {q['subtotal']} | Security Deposit: {q['deposit']} | Total: {r.total_price}"
    )


def breakdown(r: Reservation) -> dict:
    """Split a stored total back into subtotal and deposit."""
    pct = 100 + settings.SECURITY_DEPOSIT_PERCENT
    subtotal = (r.total_price * 100 + pct // 2) // pct
    days = rental_days(r.start_date, r.end_date, r.pickup_time, r.return_time)
    return {"days": days, "subtotal": subtotal, "deposit": r.total_price - subtotal, "total": r.total_price}


def ensure_entries(db: Session, r: Reservation, q: dict | None = None) -> dict:
    """Create whichever of the payment Transaction / cash Payment rows is missing. Commits."""
    created = {"transaction": False, "payment": False, "refund": False}
    m = db.get(Motorcycle, r.motorcycle_id)
    unit_name = m.name if m else "motorcycle"
    q = q or breakdown(r)

    if not payment_transactions(db, r.id):
        db.add(Transaction(
            id=str(uuid.uuid4()),
            user_id=r.user_id,
            reservation_id=r.id,
            type="payment",
            amount=r.total_price,
            status="pending",
            description=_description(r, unit_name, q),
        ))
        created["transaction"] = True

    payments = cash_payments(db, r.id)
    if not payments:
        db.add(Payment(
            id=str(uuid.uuid4()),
            reservation_id=r.id,
            user_id=r.user_id,
            amount=r.total_price,
            currency=settings.CURRENCY,
            status="pending",
            payment_method="cash",
            metadata_json={
                "motorcycle_id": r.motorcycle_id,
                "motorcycle_name": unit_name,
                "pickup_date": r.start_date.isoformat(),
                "return_date": r.end_date.isoformat(),
                "rental_days": q["days"],
                "customer_name": r.customer_name,
                "customer_email": r.customer_email,
                "customer_phone": r.customer_phone,
                "subtotal": q["subtotal"],
                "security_deposit": q["deposit"],
                "breakdown": f"Rental: {q['subtotal']} + Security Deposit: {q['deposit']}",
                "note": "Cash payment to be collected on pickup",
            },
        ))
        created["payment"] = True

    for p in payments:
        if p.refund_amount and not _refund_transaction(db, p):
            db.add(_refund_entry(p))
            created["refund"] = True

    if any(created.values()):
        db.commit()
        logger.info("ledger entries created for reservation %s: %s", r.id, created)
    return created


def _set_transactions(db: Session, reservation_id: str, status: str) -> int:
    changed = 0
    for tx in payment_transactions(db, reservation_id):
        if tx.status == status:
            continue
        if tx.status == "completed":
            # money already moved; the lifecycle never rewrites it
            logger.warning("transaction %s already completed; not moving to %s", tx.id, status)
            continue
        tx.status = status
        changed += 1
    if changed:
        db.commit()
    return changed


def _set_payments(db: Session, reservation_id: str, status: str) -> int:
    changed = 0
    now = datetime.now(timezone.utc)
    for p in cash_payments(db, reservation_id):
        if p.status == status or p.status in ("refunded", "partially_refunded"):
            continue
        if p.status == "succeeded":
            logger.warning("payment %s already succeeded; not moving to %s", p.id, status)
            continue
        p.status = status
        if status == "succeeded" and not p.paid_at:
            p.paid_at = now
        changed += 1
    if changed:
        db.commit()
    return changed


def sync_status(db: Session, reservation_id: str, target: str) -> dict:
    """Apply STATUS_MAP[target] to the payment transactions and the cash payment records.

    Both sides are attempted even when the other fails. The result says which
    side succeeded so a caller can retry only the failed one.
    """
    if target not in STATUS_MAP:
        raise ValueError(f"unknown sync target '{target}'")
    tx_status, payment_status = STATUS_MAP[target]
    result = {"transaction": False, "payment": False, "transactionsUpdated": 0, "paymentsUpdated": 0}

    try:
        result["transactionsUpdated"] = _set_transactions(db, reservation_id, tx_status)
        result["transaction"] = True
    except Exception:
        db.rollback()
        logger.exception("transaction sync to %s failed for reservation %s", tx_status, reservation_id)

    try:
        result["paymentsUpdated"] = _set_payments(db, reservation_id, payment_status)
        result["payment"] = True
    except Exception:
        db.rollback()
        logger.exception("payment sync to %s failed for reservation %s", payment_status, reservation_id)

    return result


def mark_paid(db: Session, reservation_id: str, actor_id: str) -> dict:
    """Admin confirms cash was received. Independent of the reservation lifecycle."""
    r = db.get(Reservation, reservation_id)
    if not r:
        raise NotFound("reservation", reservation_id)
    if r.status not in (PENDING, CONFIRMED):
        raise InvalidTransition(r.id, r.status, "mark paid")
    ensure_entries(db, r)
    result = sync_status(db, r.id, PAID)
    log_audit(db, actor_id, "reservation.mark_paid", "reservation", r.id, result)
    db.commit()
    return result


def _refund_transaction(db: Session, p: Payment) -> Transaction | None:
    return db.query(Transaction).filter(
        Transaction.reservation_id == p.reservation_id,
        Transaction.type == "refund",
        Transaction.amount == p.refund_amount,
    ).first()


def _refund_entry(p: Payment) -> Transaction:
    return Transaction(
        id=str(uuid.uuid4()),
        user_id=p.user_id,
        reservation_id=p.reservation_id,
        type="refund",
        amount=p.refund_amount,
        status="completed",
        description=f"Refund of payment {p.id}: {p.refund_reason or ''}".strip(),
    )


def refund(db: Session, payment_id: str, amount: int | None = None, reason: str | None = None, actor_id: str = "system") -> Payment:
    """Refund a succeeded cash payment, fully or partially.

    The payment record is authoritative for refunds; a ``refund`` ledger row is
    appended afterwards on a best-effort basis (reconciliation recreates it).
    """
    p = db.get(Payment, payment_id)
    if not p:
        raise NotFound("payment", payment_id)
    if p.status != "succeeded":
        raise ValidationError(f"can only refund succeeded payments (payment is '{p.status}')")
    refund_amount = p.amount if amount is None else int(amount)
    if refund_amount <= 0:
        raise ValidationError("refund amount must be positive")
    if refund_amount > p.amount:
        raise ValidationError(f"refund amount {refund_amount} exceeds original amount {p.amount}")

    p.status = "refunded" if refund_amount == p.amount else "partially_refunded"
    p.refund_amount = refund_amount
    p.refund_reason = reason or "Requested by customer"
    p.refunded_at = datetime.now(timezone.utc)
    log_audit(db, actor_id, "payment.refund", "payment", p.id, {"amount": refund_amount, "reason": p.refund_reason})
    db.commit()

    try:
        if not _refund_transaction(db, p):
            db.add(_refund_entry(p))
            db.commit()
    except Exception as e:
        db.rollback()
        record_failure(db, p.reservation_id, "transaction", "refund", p.status, e)

    db.refresh(p)
    return p
