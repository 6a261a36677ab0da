from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.core.config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(url: str) -> dict:
    # Every store call carries a bounded timeout; a timed-out write counts as not applied.
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000}
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={int(settings.DB_STATEMENT_TIMEOUT_MS)}"}
    return {}


def make_engine(url: str, **kwargs):
    return create_engine(url, pool_pre_ping=True, connect_args=_connect_args(url), **kwargs)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
