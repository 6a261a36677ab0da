"""
Pytest configuration and fixtures.
Every test runs against its own in-memory SQLite database; live push is off.
"""

import os
import uuid

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFY_PUSH_ENABLED"] = "false"

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.session import Base, make_engine
from app.models.user import User
from app.models.motorcycle import Motorcycle, AVAILABLE
from app.models.reservation import Reservation  # noqa: F401
from app.models.transaction import Transaction  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.propagation_failure import PropagationFailureLog  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401
from app.services import notification_transport


class RecordingTransport:
    """Collects published payloads instead of talking to Redis."""

    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, recipient_id, payload):
        if self.fail:
            raise ConnectionError("push channel down")
        self.published.append((recipient_id, payload))
        return 1


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def transport():
    t = RecordingTransport()
    notification_transport.set_transport(t)
    yield t
    notification_transport.set_transport(None)


def _user(db, role="customer", email=None, license_url="https://files.example/license.jpg"):
    u = User(
        id=str(uuid.uuid4()),
        email=email or f"{uuid.uuid4().hex[:8]}@example.com",
        full_name="Juan Dela Cruz" if role == "customer" else "Admin",
        phone="+639171234567",
        role=role,
        driver_license_url=license_url,
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def renter(db):
    return _user(db)


@pytest.fixture
def other_renter(db):
    return _user(db)


@pytest.fixture
def admin(db):
    return _user(db, role="admin", license_url=None)


@pytest.fixture
def make_user(db):
    def _make(**kwargs):
        return _user(db, **kwargs)
    return _make


@pytest.fixture
def motorcycle(db):
    m = Motorcycle(id=str(uuid.uuid4()), name="Yamaha NMAX 155", daily_rate=800, availability=AVAILABLE)
    db.add(m)
    db.commit()
    return m
