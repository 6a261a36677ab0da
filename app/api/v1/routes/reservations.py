from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user, http_error, is_admin
from app.core.exceptions import LifecycleError, NotFound
from app.models.user import User
from app.schemas.reservation import ReservationCreate, ReasonIn
from app.services import reservation_service

router = APIRouter(tags=["reservations"])


@router.post("/reservations")
def create_reservation(body: ReservationCreate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    try:
        result = reservation_service.book(
            db, me, body.motorcycleId, body.startDate, body.endDate,
            pickup_time=body.pickupTime, return_time=body.returnTime,
            payment_method=body.paymentMethod, notes=body.notes,
            customer_name=body.customerName, customer_email=body.customerEmail, customer_phone=body.customerPhone,
        )
    except LifecycleError as e:
        raise http_error(e)
    return reservation_service.serialize_result(result)


@router.get("/reservations")
def my_reservations(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return [reservation_service.serialize(r) for r in reservation_service.list_for_user(db, me.id)]


@router.get("/reservations/{reservation_id}")
def get_reservation(reservation_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    try:
        r = reservation_service.get_reservation(db, reservation_id)
        if r.user_id != me.id and not is_admin(me):
            raise NotFound("reservation", reservation_id)
    except LifecycleError as e:
        raise http_error(e)
    return reservation_service.serialize(r)


@router.post("/reservations/{reservation_id}/cancel")
def cancel_my_reservation(reservation_id: str, body: ReasonIn | None = None,
                          db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    try:
        result = reservation_service.cancel(db, reservation_id, me, reason=body.reason if body else "")
    except LifecycleError as e:
        raise http_error(e)
    return reservation_service.serialize_result(result)
