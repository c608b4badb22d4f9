from datetime import date, datetime, timezone
import sqlite3
import threading
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    BookingTimeoutError, ConflictError, PolicyRejectedError, ValidationError
)
from app.models.appointment import Appointment, AppointmentStatus
from app.models.availability import ResourceKind
from app.models.business import CapacityMode
from app.models.resource_lock import ResourceLock
from app.schemas.appointment import ClientInfo
from app.config.settings import settings
from app.services.booking.conflict_guard import ConflictGuard, hash_token, set_lock_timeout
from app.services.resource.resource_service import ResourceService

from conftest import MONDAY, NOW


def reserve(db, business, service, start="10:00", on=MONDAY, employee=None, client=None, **kwargs):
    resource, service = ResourceService.resource_for_booking(
        db, business.id, service.id, employee.id if employee else None
    )
    client = client or ClientInfo(first_name="Mila", last_name="Petrova",
                                  email="mila@example.com", phone="+38970123456")
    return ConflictGuard.reserve(db, resource, service, on, start, client, now=kwargs.pop("now", NOW), **kwargs)


@pytest.fixture
def open_monday(make_business, make_service, add_rule):
    def _setup(**business_kwargs):
        business = make_business(**business_kwargs)
        service = make_service(business, duration=30)
        add_rule(business.id, 1, "09:00", "17:00")
        return business, service
    return _setup


def test_reserve_commits_confirmed_appointment(db, open_monday, client_info):
    business, service = open_monday()

    reservation = reserve(db, business, service, "10:00", client=client_info)
    appointment = reservation.appointment

    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.to_dict()["start_time"] == "10:00"
    assert appointment.to_dict()["end_time"] == "10:30"
    assert appointment.client_email == "mila@example.com"
    assert appointment.is_email_confirmed is True
    assert reservation.confirmation_token is None
    assert db.get(ResourceLock, business.id).version == 1


def test_email_confirmation_flow_issues_hashed_token(db, open_monday):
    business, service = open_monday(require_email_confirmation=True)

    reservation = reserve(db, business, service)

    assert reservation.appointment.status == AppointmentStatus.PENDING
    assert reservation.confirmation_token
    assert reservation.appointment.email_confirmation_token == hash_token(reservation.confirmation_token)
    assert reservation.appointment.is_email_confirmed is False


def test_without_auto_confirm_booking_stays_pending(db, open_monday):
    business, service = open_monday(auto_confirm=False)

    reservation = reserve(db, business, service)

    assert reservation.appointment.status == AppointmentStatus.PENDING
    assert reservation.confirmation_token is None


def test_second_booking_of_same_slot_conflicts(db, open_monday):
    business, service = open_monday()
    reserve(db, business, service, "10:00")

    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:00")
    with pytest.raises(ConflictError):
        reserve(db, business, service, "09:45")  # off the grid as well as overlapping

    assert db.query(Appointment).count() == 1


def test_start_must_be_on_the_slot_grid(db, open_monday):
    business, service = open_monday()

    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:15")
    with pytest.raises(ConflictError):
        reserve(db, business, service, "16:45")  # would run past closing


def test_closed_day_conflicts(db, open_monday):
    business, service = open_monday()

    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:00", on=date(2025, 12, 16))


def test_notice_window_applies_to_client_bookings_only(db, open_monday):
    business, service = open_monday(booking_settings={"minBookingNotice": 2})
    monday_morning = datetime(2025, 12, 15, 8, 0, tzinfo=timezone.utc)

    with pytest.raises(PolicyRejectedError):
        reserve(db, business, service, "09:00", now=monday_morning)

    manual = reserve(db, business, service, "09:00", now=monday_morning, source="manual", notes="Walk-in")
    assert manual.appointment.status == AppointmentStatus.CONFIRMED
    assert manual.appointment.booking_source == "manual"


def test_employee_must_be_assigned_to_service(db, open_monday, make_employee):
    business, service = open_monday()
    employee = make_employee(business)

    with pytest.raises(ValidationError):
        reserve(db, business, service, employee=employee)


def test_employee_and_business_calendars_are_independent(db, open_monday, make_employee, add_rule):
    business, service = open_monday()
    employee = make_employee(business, services=[service])
    add_rule(employee.id, 1, "09:00", "17:00", kind=ResourceKind.EMPLOYEE)

    for_employee = reserve(db, business, service, "10:00", employee=employee)
    for_business = reserve(db, business, service, "10:00")

    assert for_employee.appointment.employee_id == employee.id
    assert for_business.appointment.employee_id is None
    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:00", employee=employee)


def test_employees_are_single_capacity(db, open_monday, make_employee, add_rule):
    business, service = open_monday(capacity_mode=CapacityMode.MULTIPLE, default_capacity=4)
    employee = make_employee(business, services=[service])
    add_rule(employee.id, 1, "09:00", "17:00", kind=ResourceKind.EMPLOYEE)

    reserve(db, business, service, "10:00", employee=employee)
    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:00", employee=employee)


def test_multiple_capacity_fills_up(db, open_monday):
    business, service = open_monday(capacity_mode=CapacityMode.MULTIPLE, default_capacity=2)

    reserve(db, business, service, "10:00")
    reserve(db, business, service, "10:00")
    with pytest.raises(ConflictError):
        reserve(db, business, service, "10:00")


def test_daily_limits(db, open_monday, make_employee, add_rule):
    business, service = open_monday(booking_settings={"maxAppointmentsPerDay": 1})
    reserve(db, business, service, "10:00")

    with pytest.raises(ConflictError, match="Daily appointment limit"):
        reserve(db, business, service, "14:00")

    employee = make_employee(business, services=[service], max_daily_appointments=1)
    add_rule(employee.id, 1, "09:00", "17:00", kind=ResourceKind.EMPLOYEE)
    reserve(db, business, service, "10:00", employee=employee)
    with pytest.raises(ConflictError, match="Daily appointment limit"):
        reserve(db, business, service, "11:00", employee=employee)


def test_lock_timeout_rolls_back_everything(db, session_factory, open_monday, monkeypatch):
    business, service = open_monday()
    ConflictGuard.ensure_lock_row(db, business.id)

    def locked_commit():
        raise OperationalError("COMMIT", {}, sqlite3.OperationalError("database is locked"))

    monkeypatch.setattr(db, "commit", locked_commit)

    with pytest.raises(BookingTimeoutError) as excinfo:
        reserve(db, business, service, "10:00")

    assert excinfo.value.retryable is True
    fresh = session_factory()
    try:
        assert fresh.query(Appointment).count() == 0
    finally:
        fresh.close()


def race(session_factory, business_id, service_id, attempts, on=MONDAY, start="10:00"):
    """Fire `attempts` reservations for one slot at once, each on its own session"""
    barrier = threading.Barrier(attempts)
    outcomes = []
    guard = threading.Lock()

    def attempt(i):
        session = session_factory()
        try:
            resource, service = ResourceService.resource_for_booking(session, business_id, service_id)
            client = ClientInfo(first_name=f"Client{i}", last_name="Race",
                                email=f"client{i}@example.com", phone="+38970000000")
            barrier.wait()
            ConflictGuard.reserve(session, resource, service, on, start, client, now=NOW)
            outcome = "booked"
        except ConflictError:
            outcome = "conflict"
        except BookingTimeoutError:
            outcome = "timeout"
        finally:
            session.close()
        with guard:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_concurrent_reservations_have_one_winner(db, session_factory, open_monday):
    business, service = open_monday()

    outcomes = race(session_factory, business.id, service.id, attempts=8)

    assert outcomes.count("booked") == 1
    assert outcomes.count("conflict") == 7
    assert db.query(Appointment).filter(Appointment.status != AppointmentStatus.CANCELLED).count() == 1


def test_two_clients_racing_for_monday_ten(db, session_factory, open_monday):
    business, service = open_monday()

    outcomes = race(session_factory, business.id, service.id, attempts=2, on=date(2025, 12, 15), start="10:00")

    assert sorted(outcomes) == ["booked", "conflict"]
    winner = db.query(Appointment).one()
    assert winner.status in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


class RecordingSession:
    def __init__(self, dialect):
        self.dialect = dialect
        self.statements = []

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name=self.dialect))

    def execute(self, statement):
        self.statements.append(str(statement))


def test_lock_timeout_is_only_set_on_postgresql():
    sqlite_session = RecordingSession("sqlite")
    set_lock_timeout(sqlite_session)
    assert sqlite_session.statements == []

    pg_session = RecordingSession("postgresql")
    set_lock_timeout(pg_session)
    assert pg_session.statements == [f"SET LOCAL lock_timeout = {settings.BOOKING_LOCK_TIMEOUT_MS}"]
