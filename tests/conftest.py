"""
Shared fixtures: a file-backed SQLite database per test, factories for the
collaborator rows and a pinned clock.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./booking_engine_test.db")
os.environ.setdefault("BOOKING_LOCK_TIMEOUT_MS", "5000")

from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.config.database import build_engine
from app.models import (
    Appointment, AppointmentStatus, Base, Business, CapacityMode, Employee, EmployeeService, Service
)
from app.models.availability import AvailabilityBreak, AvailabilityRule, ResourceKind
from app.schemas.appointment import ClientInfo

# Sunday morning; the Monday after it is the usual booking date
NOW = datetime(2025, 12, 14, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2025, 12, 15)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_business(db):
    def _make(booking_settings=None, **kwargs):
        settings = {"minBookingNotice": 0, "maxAdvanceBooking": 0}
        settings.update(booking_settings or {})
        values = {
            "name": "Studio Lina",
            "timezone": "UTC",
            "capacity_mode": CapacityMode.SINGLE,
            "default_capacity": 1,
            "default_slot_interval": 30,
            "auto_confirm": True,
            "require_email_confirmation": False,
        }
        values.update(kwargs)
        business = Business(booking_settings=settings, **values)
        db.add(business)
        db.commit()
        db.refresh(business)
        return business
    return _make


@pytest.fixture
def make_service(db):
    def _make(business, duration=30, **kwargs):
        service = Service(business_id=business.id, name=kwargs.pop("name", "Haircut"), duration=duration, **kwargs)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service
    return _make


@pytest.fixture
def make_employee(db):
    def _make(business, services=(), **kwargs):
        employee = Employee(business_id=business.id, name=kwargs.pop("name", "Ana"), **kwargs)
        db.add(employee)
        db.flush()
        for service in services:
            db.add(EmployeeService(employee_id=employee.id, service_id=service.id))
        db.commit()
        db.refresh(employee)
        return employee
    return _make


@pytest.fixture
def add_rule(db):
    def _add(resource_id, day_of_week, start="09:00", end="17:00", breaks=(),
             kind=ResourceKind.BUSINESS, **kwargs):
        rule = AvailabilityRule(
            resource_kind=kind,
            resource_id=resource_id,
            day_of_week=day_of_week,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            breaks=[
                AvailabilityBreak(break_start=time.fromisoformat(s), break_end=time.fromisoformat(e))
                for s, e in breaks
            ],
            **kwargs
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    return _add


@pytest.fixture
def make_appointment(db):
    """Insert an appointment row directly, bypassing the guard (past dates, fixed statuses)"""
    def _make(business, service, on, start, end, status=AppointmentStatus.CONFIRMED, employee=None, **kwargs):
        appointment = Appointment(
            business_id=business.id,
            employee_id=employee.id if employee else None,
            service_id=service.id,
            client_first_name="Mila",
            client_last_name="Petrova",
            client_email="mila@example.com",
            client_phone="+38970123456",
            date=on,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            status=status,
            **kwargs
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment
    return _make


@pytest.fixture
def client_info():
    return ClientInfo(
        first_name="Mila",
        last_name="Petrova",
        email="Mila@Example.com",
        phone="+389 70 123 456",
    )
