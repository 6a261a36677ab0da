from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.core.exceptions import NotFound
from app.services import reconciliation_service


def process_propagation_failures(limit: int = 50) -> dict:
    """Retry dependent-store writes that failed after a reservation status change."""
    db: Session = SessionLocal()
    try:
        try:
            return reconciliation_service.process_propagation_failures(db, limit=limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def reconcile_reservations(limit: int | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        try:
            return reconciliation_service.reconcile_all(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def reconcile_reservation(reservation_id: str) -> dict:
    db: Session = SessionLocal()
    try:
        return reconciliation_service.reconcile(db, reservation_id)
    except NotFound:
        return {"skipped": True, "reason": "not_found"}
    finally:
        db.close()
