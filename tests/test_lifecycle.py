"""
Tests for the reservation lifecycle: booking, transitions and best-effort propagation.
"""

import uuid
from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import InvalidTransition, NotFound, UnitUnavailable, ValidationError
from app.db.session import Base, make_engine
from app.models.audit_log import AuditLog
from app.models.motorcycle import Motorcycle, AVAILABLE, RESERVED
from app.models.notification import Notification
from app.models.propagation_failure import PropagationFailureLog
from app.models.reservation import Reservation, PENDING, CONFIRMED, CANCELLED, COMPLETED
from app.models.user import User
from app.services import availability_service, ledger_service, notification_service, reservation_service

TODAY = date(2025, 5, 1)


def book(db, renter, motorcycle, start=date(2025, 6, 1), end=date(2025, 6, 3), **kwargs):
    return reservation_service.book(db, renter, motorcycle.id, start, end, today=TODAY, **kwargs)


def snapshot(db, r):
    """Everything a rejected transition must leave alone."""
    db.expire_all()
    m = availability_service._get_unit(db, r.motorcycle_id)
    return (
        reservation_service.get_reservation(db, r.id).status,
        m.availability,
        m.held_by_reservation_id,
        [t.status for t in ledger_service.payment_transactions(db, r.id)],
        [p.status for p in ledger_service.cash_payments(db, r.id)],
        db.query(Notification).count(),
        db.query(AuditLog).count(),
    )


class TestBook:

    def test_scenario_a_booking(self, db, renter, motorcycle, transport):
        result = book(db, renter, motorcycle)
        r = result.reservation

        assert result.consistent
        assert r.status == PENDING
        assert r.total_price == 1920
        assert r.reference.startswith("MR-")
        assert r.customer_name == renter.full_name

        [tx] = ledger_service.payment_transactions(db, r.id)
        assert (tx.type, tx.status, tx.amount) == ("payment", "pending", 1920)
        [p] = ledger_service.cash_payments(db, r.id)
        assert (p.status, p.amount, p.currency) == ("pending", 1920, "PHP")
        assert p.metadata_json["subtotal"] == 1600
        assert p.metadata_json["security_deposit"] == 320
        assert p.metadata_json["rental_days"] == 2

        # the unit is only taken on approve
        db.refresh(motorcycle)
        assert motorcycle.availability == AVAILABLE

        [n] = notification_service.list_for_user(db, renter.id)
        assert (n.type, n.title) == ("info", "Reservation Submitted")
        assert transport.published[0][0] == renter.id

    def test_overlapping_bookings_are_both_accepted(self, db, renter, other_renter, motorcycle):
        a = book(db, renter, motorcycle).reservation
        b = book(db, other_renter, motorcycle).reservation
        assert a.status == b.status == PENDING
        assert a.reference != b.reference

    def test_license_required(self, db, make_user, motorcycle):
        renter = make_user(license_url=None)
        with pytest.raises(ValidationError):
            book(db, renter, motorcycle)
        assert db.query(Notification).count() == 0

    def test_cash_only(self, db, renter, motorcycle):
        with pytest.raises(ValidationError):
            book(db, renter, motorcycle, payment_method="card")

    def test_past_start(self, db, renter, motorcycle):
        with pytest.raises(ValidationError):
            book(db, renter, motorcycle, start=date(2025, 4, 1), end=date(2025, 4, 3))

    def test_unit_in_maintenance(self, db, renter, motorcycle):
        availability_service.set_maintenance(db, motorcycle.id)
        with pytest.raises(UnitUnavailable):
            book(db, renter, motorcycle)

    def test_unknown_unit(self, db, renter):
        with pytest.raises(NotFound):
            reservation_service.book(db, renter, "missing", date(2025, 6, 1), date(2025, 6, 3), today=TODAY)

    def test_ledger_failure_does_not_undo_booking(self, db, renter, motorcycle, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("ledger offline")
        monkeypatch.setattr(ledger_service, "ensure_entries", boom)

        result = book(db, renter, motorcycle)
        assert result.reservation.status == PENDING
        assert [f.store for f in result.failures] == ["transaction"]
        assert db.query(PropagationFailureLog).filter_by(reservation_id=result.reservation.id).count() == 1


class TestTransitions:

    def test_scenario_b_approve(self, db, renter, admin, motorcycle, transport):
        r = book(db, renter, motorcycle).reservation
        result = reservation_service.approve(db, r.id, admin)

        assert result.consistent
        assert result.reservation.status == CONFIRMED
        db.refresh(motorcycle)
        assert motorcycle.availability == RESERVED
        assert motorcycle.held_by_reservation_id == r.id
        assert [t.status for t in ledger_service.payment_transactions(db, r.id)] == ["pending"]
        assert [p.status for p in ledger_service.cash_payments(db, r.id)] == ["pending"]

        latest = notification_service.list_for_user(db, renter.id)[0]
        assert latest.type == "confirmed"
        assert latest.title == "Reservation Confirmed"
        assert transport.published[-1][1]["type"] == "confirmed"

    def test_scenario_c_complete(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        reservation_service.approve(db, r.id, admin)
        result = reservation_service.complete(db, r.id, admin)

        assert result.consistent
        assert result.reservation.status == COMPLETED
        db.refresh(motorcycle)
        assert motorcycle.availability == AVAILABLE
        assert motorcycle.held_by_reservation_id is None
        assert [t.status for t in ledger_service.payment_transactions(db, r.id)] == ["completed"]
        [p] = ledger_service.cash_payments(db, r.id)
        assert p.status == "succeeded"
        assert p.paid_at is not None
        assert notification_service.list_for_user(db, renter.id)[0].type == "success"

    def test_scenario_d_reject(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        result = reservation_service.reject(db, r.id, admin, reason="incomplete documents")

        assert result.reservation.status == CANCELLED
        assert result.reservation.cancelled_by == "admin"
        assert [t.status for t in ledger_service.payment_transactions(db, r.id)] == ["cancelled"]
        assert [p.status for p in ledger_service.cash_payments(db, r.id)] == ["cancelled"]

        n = notification_service.list_for_user(db, renter.id)[0]
        assert n.type == "rejected"
        assert "incomplete documents" in n.message

    def test_reject_without_reason_uses_default(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        result = reservation_service.reject(db, r.id, admin)
        assert result.reservation.cancellation_reason == reservation_service.DEFAULT_REJECTION_REASON

    @pytest.mark.parametrize("prepare", ["approve", "reject", "complete"])
    def test_approve_only_from_pending(self, db, renter, admin, motorcycle, prepare):
        r = book(db, renter, motorcycle).reservation
        if prepare in ("approve", "complete"):
            reservation_service.approve(db, r.id, admin)
        if prepare == "complete":
            reservation_service.complete(db, r.id, admin)
        if prepare == "reject":
            reservation_service.reject(db, r.id, admin)

        before = snapshot(db, r)
        with pytest.raises(InvalidTransition):
            reservation_service.approve(db, r.id, admin)
        assert snapshot(db, r) == before

    def test_terminal_states_are_final(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        reservation_service.cancel(db, r.id, renter)
        for action in (reservation_service.reject, reservation_service.complete, reservation_service.cancel):
            with pytest.raises(InvalidTransition):
                action(db, r.id, admin)

    def test_complete_requires_confirmed(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        with pytest.raises(InvalidTransition):
            reservation_service.complete(db, r.id, admin)

    def test_first_approve_wins_the_unit(self, db, renter, other_renter, admin, motorcycle):
        first = book(db, renter, motorcycle).reservation
        second = book(db, other_renter, motorcycle).reservation

        reservation_service.approve(db, first.id, admin)
        with pytest.raises(UnitUnavailable):
            reservation_service.approve(db, second.id, admin)

        assert reservation_service.get_reservation(db, second.id).status == PENDING
        db.refresh(motorcycle)
        assert motorcycle.held_by_reservation_id == first.id
        assert notification_service.list_for_user(db, other_renter.id)[0].type == "info"

    def test_second_reservation_can_take_released_unit(self, db, renter, other_renter, admin, motorcycle):
        first = book(db, renter, motorcycle).reservation
        second = book(db, other_renter, motorcycle).reservation
        reservation_service.approve(db, first.id, admin)
        reservation_service.cancel(db, first.id, admin, reason="renter no-show")

        result = reservation_service.approve(db, second.id, admin)
        assert result.reservation.status == CONFIRMED
        db.refresh(motorcycle)
        assert motorcycle.held_by_reservation_id == second.id

    def test_cancelling_pending_leaves_other_hold_alone(self, db, renter, other_renter, admin, motorcycle):
        first = book(db, renter, motorcycle).reservation
        second = book(db, other_renter, motorcycle).reservation
        reservation_service.approve(db, first.id, admin)
        reservation_service.reject(db, second.id, admin)

        db.refresh(motorcycle)
        assert motorcycle.availability == RESERVED
        assert motorcycle.held_by_reservation_id == first.id


class TestCancel:

    def test_customer_cancels_own_reservation(self, db, renter, motorcycle):
        r = book(db, renter, motorcycle).reservation
        result = reservation_service.cancel(db, r.id, renter)

        assert result.reservation.status == CANCELLED
        assert result.reservation.cancelled_by == "customer"
        n = notification_service.list_for_user(db, renter.id)[0]
        assert (n.type, n.title) == ("info", "Reservation Cancelled")

    def test_customer_cannot_cancel_others(self, db, renter, other_renter, motorcycle):
        r = book(db, renter, motorcycle).reservation
        with pytest.raises(NotFound):
            reservation_service.cancel(db, r.id, other_renter)
        assert reservation_service.get_reservation(db, r.id).status == PENDING

    def test_admin_cancels_confirmed(self, db, renter, admin, motorcycle):
        r = book(db, renter, motorcycle).reservation
        reservation_service.approve(db, r.id, admin)
        result = reservation_service.cancel(db, r.id, admin, reason="unit damaged")

        assert result.reservation.status == CANCELLED
        db.refresh(motorcycle)
        assert motorcycle.availability == AVAILABLE
        n = notification_service.list_for_user(db, renter.id)[0]
        assert n.type == "warning"
        assert "unit damaged" in n.message


class TestPropagationFailures:

    def test_ledger_failure_keeps_completed_status(self, db, renter, admin, motorcycle, monkeypatch):
        r = book(db, renter, motorcycle).reservation
        reservation_service.approve(db, r.id, admin)

        def boom(*args, **kwargs):
            raise RuntimeError("ledger offline")
        monkeypatch.setattr(ledger_service, "sync_status", boom)

        result = reservation_service.complete(db, r.id, admin)
        assert result.reservation.status == COMPLETED
        assert not result.consistent
        assert sorted(f.store for f in result.failures) == ["payment", "transaction"]

        rows = db.query(PropagationFailureLog).filter_by(reservation_id=r.id, status="open").all()
        assert sorted(f.store for f in rows) == ["payment", "transaction"]
        assert all(f.target_status == COMPLETED for f in rows)
        # unit was released independently of the ledger
        db.refresh(motorcycle)
        assert motorcycle.availability == AVAILABLE

    def test_availability_failure_keeps_cancelled_status(self, db, renter, admin, motorcycle, monkeypatch):
        r = book(db, renter, motorcycle).reservation
        reservation_service.approve(db, r.id, admin)

        def boom(*args, **kwargs):
            raise TimeoutError("statement timeout")
        monkeypatch.setattr(availability_service, "release", boom)

        result = reservation_service.cancel(db, r.id, admin)
        assert result.reservation.status == CANCELLED
        assert [f.store for f in result.failures] == ["availability"]
        assert [p.status for p in ledger_service.cash_payments(db, r.id)] == ["cancelled"]

    def test_notification_failure_is_recorded(self, db, renter, admin, motorcycle, monkeypatch):
        r = book(db, renter, motorcycle).reservation

        def boom(*args, **kwargs):
            raise RuntimeError("notifications table locked")
        monkeypatch.setattr(notification_service, "dispatch", boom)

        result = reservation_service.approve(db, r.id, admin)
        assert result.reservation.status == CONFIRMED
        assert [f.store for f in result.failures] == ["notification"]

    def test_push_failure_is_not_a_propagation_failure(self, db, renter, admin, motorcycle, transport):
        transport.fail = True
        r = book(db, renter, motorcycle).reservation
        result = reservation_service.approve(db, r.id, admin)

        assert result.consistent
        assert transport.published == []
        assert notification_service.list_for_user(db, renter.id)[0].type == "confirmed"

    def test_failed_status_write_leaves_unit_available(self, db, renter, admin, motorcycle, monkeypatch):
        r = book(db, renter, motorcycle).reservation

        def boom(*args, **kwargs):
            raise RuntimeError("reservation store unavailable")
        monkeypatch.setattr(reservation_service, "log_audit", boom)

        with pytest.raises(RuntimeError):
            reservation_service.approve(db, r.id, admin)
        assert reservation_service.get_reservation(db, r.id).status == PENDING
        db.refresh(motorcycle)
        assert motorcycle.availability == AVAILABLE
        assert motorcycle.held_by_reservation_id is None


class TestSameReservationRace:
    """Two admin sessions acting on one reservation over a shared file database."""

    @pytest.fixture
    def Session(self, tmp_path):
        engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        engine.dispose()

    def _seed(self, Session):
        with Session() as s:
            renter = User(id=str(uuid.uuid4()), email="renter@example.com", full_name="Renter", role="customer",
                          driver_license_url="https://files.example/license.jpg", is_active=True)
            admin = User(id=str(uuid.uuid4()), email="admin@example.com", full_name="Admin", role="admin", is_active=True)
            unit = Motorcycle(id=str(uuid.uuid4()), name="Honda Click 125i", daily_rate=500, availability=AVAILABLE)
            s.add_all([renter, admin, unit])
            s.commit()
            r = reservation_service.book(s, renter, unit.id, date(2025, 6, 1), date(2025, 6, 3), today=TODAY).reservation
            return r.id, admin.id, unit.id

    def test_losing_approve_keeps_winner_hold(self, Session):
        reservation_id, admin_id, unit_id = self._seed(Session)

        with Session() as late, Session() as early:
            # the late session has already seen the reservation while it was pending
            assert late.get(Reservation, reservation_id).status == PENDING

            reservation_service.approve(early, reservation_id, early.get(User, admin_id))
            with pytest.raises(InvalidTransition):
                reservation_service.approve(late, reservation_id, late.get(User, admin_id))

        with Session() as s:
            m = s.get(Motorcycle, unit_id)
            assert s.get(Reservation, reservation_id).status == CONFIRMED
            assert (m.availability, m.held_by_reservation_id) == (RESERVED, reservation_id)

    def test_cancel_after_stale_read_releases_once(self, Session):
        reservation_id, admin_id, unit_id = self._seed(Session)

        with Session() as late, Session() as early:
            assert late.get(Reservation, reservation_id).status == PENDING
            reservation_service.approve(early, reservation_id, early.get(User, admin_id))
            result = reservation_service.cancel(late, reservation_id, late.get(User, admin_id), reason="duplicate")
            assert result.reservation.status == CANCELLED

        with Session() as s:
            m = s.get(Motorcycle, unit_id)
            assert (m.availability, m.held_by_reservation_id) == (AVAILABLE, None)
