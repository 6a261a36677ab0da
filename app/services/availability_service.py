"""Availability flag of each motorcycle.

``lock`` is a compare-and-set done in a single UPDATE so two concurrent
callers for the same unit cannot both win, whatever the isolation level.
"""
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, UnitUnavailable
from app.models.motorcycle import Motorcycle, AVAILABLE, RESERVED, IN_MAINTENANCE

logger = logging.getLogger(__name__)


def _get_unit(db: Session, unit_id: str) -> Motorcycle:
    m = db.get(Motorcycle, unit_id)
    if not m:
        raise NotFound("motorcycle", unit_id)
    return m


def lock(db: Session, unit_id: str, reservation_id: str | None = None, commit: bool = True) -> Motorcycle:
    """Available -> Reserved. Raises UnitUnavailable if the unit is taken or in maintenance.

    Re-locking a unit already held by the same reservation is a no-op. With
    ``commit=False`` the update stays in the caller's transaction, so it
    commits or rolls back together with the caller's own write.
    """
    res = db.execute(
        update(Motorcycle)
        .where(Motorcycle.id == unit_id, Motorcycle.availability == AVAILABLE)
        .values(availability=RESERVED, held_by_reservation_id=reservation_id)
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    m = _get_unit(db, unit_id)
    db.refresh(m)
    if res.rowcount == 1:
        logger.info("motorcycle %s locked by reservation %s", unit_id, reservation_id)
        return m
    if reservation_id and m.availability == RESERVED and m.held_by_reservation_id == reservation_id:
        return m
    raise UnitUnavailable(unit_id, m.availability)


def release(db: Session, unit_id: str, reservation_id: str | None = None) -> Motorcycle:
    """Set Available. Idempotent. Commits.

    With ``reservation_id`` the release only applies when that reservation holds
    the unit, so releasing never frees a unit held by someone else or clears maintenance.
    """
    m = _get_unit(db, unit_id)
    if reservation_id is not None and m.held_by_reservation_id != reservation_id:
        logger.debug("motorcycle %s not held by %s (holder=%s, %s); release skipped",
                     unit_id, reservation_id, m.held_by_reservation_id, m.availability)
        return m
    if m.availability == AVAILABLE and m.held_by_reservation_id is None:
        return m
    if reservation_id is not None and m.availability == IN_MAINTENANCE:
        # drop the hold, stay in maintenance until an admin clears it
        m.held_by_reservation_id = None
        db.commit()
        return m
    m.availability = AVAILABLE
    m.held_by_reservation_id = None
    db.commit()
    logger.info("motorcycle %s released", unit_id)
    return m


def set_maintenance(db: Session, unit_id: str) -> Motorcycle:
    """Admin override. A held unit keeps its holder id so the hold can be audited."""
    m = _get_unit(db, unit_id)
    if m.availability != IN_MAINTENANCE:
        if m.held_by_reservation_id:
            logger.warning("motorcycle %s put in maintenance while held by reservation %s", unit_id, m.held_by_reservation_id)
        m.availability = IN_MAINTENANCE
        db.commit()
    return m


def clear_maintenance(db: Session, unit_id: str) -> Motorcycle:
    m = _get_unit(db, unit_id)
    if m.availability == IN_MAINTENANCE:
        m.availability = RESERVED if m.held_by_reservation_id else AVAILABLE
        db.commit()
    return m
