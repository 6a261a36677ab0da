from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user, http_error
from app.core.exceptions import LifecycleError
from app.models.user import User
from app.services import notification_service

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
def list_notifications(unread: bool = False, limit: int = 50, offset: int = 0,
                       db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    items = notification_service.list_for_user(db, me.id, unread_only=unread, limit=limit, offset=offset)
    return [notification_service.serialize(n) for n in items]


@router.get("/notifications/unread-count")
def unread_count(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return {"unread": notification_service.unread_count(db, me.id)}


@router.post("/notifications/read-all")
def mark_all_read(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return {"ok": True, "updated": notification_service.mark_all_read(db, me.id)}


@router.post("/notifications/{notification_id}/read")
def mark_read(notification_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    try:
        n = notification_service.mark_read(db, me.id, notification_id)
    except LifecycleError as e:
        raise http_error(e)
    return notification_service.serialize(n)


@router.delete("/notifications/{notification_id}")
def delete_notification(notification_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    try:
        notification_service.delete_one(db, me.id, notification_id)
    except LifecycleError as e:
        raise http_error(e)
    return {"ok": True}


@router.delete("/notifications")
def delete_all_notifications(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return {"ok": True, "deleted": notification_service.delete_all(db, me.id)}
