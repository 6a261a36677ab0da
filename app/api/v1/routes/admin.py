from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import ADMIN_ROLES, require_roles, http_error
from app.core.exceptions import LifecycleError
from app.models.user import User
from app.models.payment import Payment
from app.models.transaction import Transaction
from app.models.propagation_failure import PropagationFailureLog
from app.services.propagation_service import FAILURE_STATUSES
from app.schemas.reservation import ReasonIn
from app.schemas.payments import RefundIn
from app.services import availability_service, ledger_service, reconciliation_service, reservation_service
from app.services import audit_service

router = APIRouter(tags=["admin"])

ADMIN = require_roles(*ADMIN_ROLES)


def _payment_out(p: Payment) -> dict:
    return {
        "id": p.id,
        "reservationId": p.reservation_id,
        "userId": p.user_id,
        "amount": p.amount,
        "currency": p.currency,
        "status": p.status,
        "paymentMethod": p.payment_method,
        "refundAmount": p.refund_amount,
        "refundReason": p.refund_reason,
        "metadata": p.metadata_json or {},
        "paidAt": p.paid_at.isoformat() if p.paid_at else None,
        "refundedAt": p.refunded_at.isoformat() if p.refunded_at else None,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
    }


def _transaction_out(t: Transaction) -> dict:
    return {
        "id": t.id,
        "userId": t.user_id,
        "reservationId": t.reservation_id,
        "type": t.type,
        "amount": t.amount,
        "status": t.status,
        "description": t.description,
        "date": t.date.isoformat() if t.date else None,
    }


# -------------------------
# RESERVATION LIFECYCLE
# -------------------------
@router.get("/admin/reservations")
def list_reservations(status: str | None = None, limit: int = 100, offset: int = 0,
                      db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    return [reservation_service.serialize(r) for r in reservation_service.list_all(db, status, limit, offset)]


@router.post("/admin/reservations/{reservation_id}/approve")
def approve_reservation(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        return reservation_service.serialize_result(reservation_service.approve(db, reservation_id, me))
    except LifecycleError as e:
        raise http_error(e)


@router.post("/admin/reservations/{reservation_id}/reject")
def reject_reservation(reservation_id: str, body: ReasonIn, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        return reservation_service.serialize_result(reservation_service.reject(db, reservation_id, me, reason=body.reason))
    except LifecycleError as e:
        raise http_error(e)


@router.post("/admin/reservations/{reservation_id}/complete")
def complete_reservation(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        return reservation_service.serialize_result(reservation_service.complete(db, reservation_id, me))
    except LifecycleError as e:
        raise http_error(e)


@router.post("/admin/reservations/{reservation_id}/cancel")
def cancel_reservation(reservation_id: str, body: ReasonIn | None = None,
                       db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        return reservation_service.serialize_result(reservation_service.cancel(db, reservation_id, me, reason=body.reason if body else ""))
    except LifecycleError as e:
        raise http_error(e)


@router.post("/admin/reservations/{reservation_id}/reconcile")
def reconcile_reservation(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        outcome = reconciliation_service.reconcile(db, reservation_id)
    except LifecycleError as e:
        raise http_error(e)
    return {"ok": all(outcome.values()), **outcome}


@router.get("/admin/reservations/{reservation_id}/audit")
def reservation_audit(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        r = reservation_service.get_reservation(db, reservation_id)
    except LifecycleError as e:
        raise http_error(e)
    return [audit_service.serialize(a) for a in audit_service.history(db, "reservation", r.id)]


# -------------------------
# PAYMENTS / LEDGER
# -------------------------
@router.post("/admin/reservations/{reservation_id}/mark-paid")
def mark_paid(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        result = ledger_service.mark_paid(db, reservation_id, me.id)
    except LifecycleError as e:
        raise http_error(e)
    return {"ok": result["transaction"] and result["payment"], **result}


@router.post("/admin/payments/{payment_id}/refund")
def refund_payment(payment_id: str, body: RefundIn, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        p = ledger_service.refund(db, payment_id, amount=body.amount, reason=body.reason, actor_id=me.id)
    except LifecycleError as e:
        raise http_error(e)
    return _payment_out(p)


@router.get("/admin/payments")
def list_payments(status: str | None = None, reservationId: str | None = None,
                  db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    q = db.query(Payment)
    if status:
        q = q.filter(Payment.status == status)
    if reservationId:
        q = q.filter(Payment.reservation_id == reservationId)
    return [_payment_out(p) for p in q.order_by(Payment.created_at.desc()).limit(500).all()]


@router.get("/admin/transactions")
def list_transactions(type: str | None = None, reservationId: str | None = None,
                      db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    q = db.query(Transaction)
    if type:
        q = q.filter(Transaction.type == type)
    if reservationId:
        q = q.filter(Transaction.reservation_id == reservationId)
    return [_transaction_out(t) for t in q.order_by(Transaction.created_at.desc()).limit(500).all()]


# -------------------------
# MOTORCYCLE AVAILABILITY OVERRIDES
# -------------------------
@router.post("/admin/motorcycles/{motorcycle_id}/maintenance")
def start_maintenance(motorcycle_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        m = availability_service.set_maintenance(db, motorcycle_id)
    except LifecycleError as e:
        raise http_error(e)
    audit_service.log_audit(db, me.id, "motorcycle.maintenance_on", "motorcycle", m.id)
    db.commit()
    return {"ok": True, "id": m.id, "availability": m.availability}


@router.delete("/admin/motorcycles/{motorcycle_id}/maintenance")
def end_maintenance(motorcycle_id: str, db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    try:
        m = availability_service.clear_maintenance(db, motorcycle_id)
    except LifecycleError as e:
        raise http_error(e)
    audit_service.log_audit(db, me.id, "motorcycle.maintenance_off", "motorcycle", m.id)
    db.commit()
    return {"ok": True, "id": m.id, "availability": m.availability}


@router.get("/admin/propagation-failures")
def list_propagation_failures(status: str = "open", db: Session = Depends(get_db), me: User = Depends(ADMIN)):
    if status not in FAILURE_STATUSES:
        raise HTTPException(status_code=400, detail="status must be open, resolved or stuck")
    items = (
        db.query(PropagationFailureLog)
        .filter(PropagationFailureLog.status == status)
        .order_by(PropagationFailureLog.created_at.desc())
        .limit(500)
        .all()
    )
    return [{
        "id": f.id,
        "reservationId": f.reservation_id,
        "store": f.store,
        "action": f.action,
        "targetStatus": f.target_status,
        "error": f.error,
        "attempts": f.attempts,
        "createdAt": f.created_at.isoformat() if f.created_at else None,
    } for f in items]
