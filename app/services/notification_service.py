import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound
from app.models.notification import Notification
from app.services.notification_transport import get_transport

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("info", "success", "warning", "error", "confirmed", "rejected")


def serialize(n: Notification) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "read": n.read,
        "referenceId": n.reference_id,
        "referenceType": n.reference_type,
        "timestamp": n.timestamp.isoformat() if n.timestamp else None,
    }


def dispatch(db: Session, recipient_id: str, title: str, message: str, type: str = "info",
             reference_id: str | None = None, reference_type: str | None = "reservation",
             transport=None) -> Notification:
    """Store the notification, then push it live.

    The insert is committed before the push; a failed push is only logged.
    Errors from the insert propagate so the caller can record them.
    """
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type '{type}'")
    n = Notification(
        id=str(uuid.uuid4()),
        user_id=recipient_id,
        title=title,
        message=message,
        type=type,
        read=False,
        reference_id=reference_id,
        reference_type=reference_type if reference_id else None,
        timestamp=datetime.now(timezone.utc),
    )
    db.add(n)
    db.commit()

    try:
        (transport or get_transport()).publish(recipient_id, serialize(n))
    except Exception:
        logger.warning("live push of notification %s to %s failed", n.id, recipient_id, exc_info=True)
    return n


def list_for_user(db: Session, user_id: str, unread_only: bool = False, limit: int = 50, offset: int = 0) -> list[Notification]:
    q = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.read == False)  # noqa: E712
    return (
        q.order_by(Notification.timestamp.desc(), Notification.id.desc())
        .limit(min(limit, 200)).offset(max(offset, 0))
        .all()
    )


def unread_count(db: Session, user_id: str) -> int:
    return db.query(Notification).filter(Notification.user_id == user_id, Notification.read == False).count()  # noqa: E712


def _owned(db: Session, user_id: str, notification_id: str) -> Notification:
    n = db.get(Notification, notification_id)
    if not n or n.user_id != user_id:
        raise NotFound("notification", notification_id)
    return n


def mark_read(db: Session, user_id: str, notification_id: str) -> Notification:
    n = _owned(db, user_id, notification_id)
    if not n.read:
        n.read = True
        db.commit()
    return n


def mark_all_read(db: Session, user_id: str) -> int:
    res = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return res.rowcount


def delete_one(db: Session, user_id: str, notification_id: str) -> None:
    n = _owned(db, user_id, notification_id)
    db.delete(n)
    db.commit()


def delete_all(db: Session, user_id: str) -> int:
    res = db.execute(delete(Notification).where(Notification.user_id == user_id).execution_options(synchronize_session=False))
    db.commit()
    return res.rowcount
