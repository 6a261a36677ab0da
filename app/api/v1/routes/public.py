from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import http_error
from app.core.exceptions import LifecycleError
from app.models.motorcycle import Motorcycle
from app.schemas.reservation import QuoteIn, QuoteOut
from app.services.pricing_service import quote

router = APIRouter(tags=["public"])


def _motorcycle_out(m: Motorcycle) -> dict:
    return {"id": m.id, "name": m.name, "dailyRate": m.daily_rate, "availability": m.availability}


@router.get("/public/motorcycles")
def list_motorcycles(availability: str | None = None, db: Session = Depends(get_db)):
    q = db.query(Motorcycle)
    if availability:
        q = q.filter(Motorcycle.availability == availability)
    return [_motorcycle_out(m) for m in q.order_by(Motorcycle.name.asc()).all()]


@router.get("/public/motorcycles/{motorcycle_id}")
def get_motorcycle(motorcycle_id: str, db: Session = Depends(get_db)):
    m = db.get(Motorcycle, motorcycle_id)
    if not m:
        raise HTTPException(status_code=404, detail="Not found")
    return _motorcycle_out(m)


@router.post("/public/quote", response_model=QuoteOut)
def get_quote(body: QuoteIn, db: Session = Depends(get_db)):
    m = db.get(Motorcycle, body.motorcycleId)
    if not m:
        raise HTTPException(status_code=404, detail="Not found")
    try:
        return QuoteOut(**quote(m.daily_rate, body.startDate, body.endDate, body.pickupTime, body.returnTime))
    except LifecycleError as e:
        raise http_error(e)
