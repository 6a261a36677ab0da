from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.security import token_subject
from app.core.exceptions import LifecycleError, NotFound, ValidationError, InvalidTransition, UnitUnavailable
from app.models.user import User
from app.services.reservation_service import ADMIN_ROLES

# most specific first
ERROR_STATUS = (
    (NotFound, 404),
    (InvalidTransition, 409),
    (UnitUnavailable, 409),
    (ValidationError, 400),
)

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = token_subject(creds.credentials)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


def is_admin(user: User) -> bool:
    return user.role in ADMIN_ROLES


def http_error(e: LifecycleError) -> HTTPException:
    for exc_type, status in ERROR_STATUS:
        if isinstance(e, exc_type):
            return HTTPException(status_code=status, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
