from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.core.config import settings

ALGO = "HS256"


def create_access_token(subject: str, expires_minutes: int = 30) -> str:
    """Mint a token the way the auth provider does. Used by seed scripts and tests."""
    exp = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode({"sub": subject, "type": "access", "exp": exp}, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])


def token_subject(token: str) -> str | None:
    """User id carried by a valid access token, None for anything else."""
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    if payload.get("type", "access") != "access":
        return None
    return payload.get("sub")
