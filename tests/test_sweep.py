from datetime import date, timedelta
import logging

import pytest

from app.models.appointment import Appointment, AppointmentStatus
from app.services.appointment import sweep_service
from app.services.appointment.appointment_service import AppointmentService
from app.services.appointment.sweep_service import (
    EMAIL_TIMEOUT_REASON, EXPIRED_PENDING_REASON, sweep_once
)
from app.services.availability.availability_service import AvailabilityService

from conftest import MONDAY, NOW

SATURDAY = date(2025, 12, 13)


def test_unconfirmed_booking_expires_and_frees_slot(db, make_business, make_service, add_rule, client_info):
    business = make_business(
        require_email_confirmation=True,
        booking_settings={"emailConfirmationTimeout": 15},
    )
    service = make_service(business, duration=30)
    add_rule(business.id, 1, "09:00", "17:00")
    reservation = AppointmentService.create_appointment(
        db, business.id, service.id, MONDAY, "10:00", client_info, now=NOW
    )

    early = sweep_once(db, NOW + timedelta(minutes=14))
    assert early.expired == 0

    report = sweep_once(db, NOW + timedelta(minutes=16))

    assert report.expired == 1
    assert report.cancelled == 1
    db.expire_all()
    appointment = db.get(Appointment, reservation.appointment.id)
    assert appointment.status == AppointmentStatus.CANCELLED
    assert appointment.cancellation_reason == EMAIL_TIMEOUT_REASON

    slots = AvailabilityService.get_available_slots(
        db, business.id, service.id, MONDAY, now=NOW + timedelta(minutes=16)
    )
    assert "10:00" in [s["start_time"] for s in slots["slots"]]


def test_confirmed_email_is_not_expired(db, make_business, make_service, add_rule, client_info):
    business = make_business(require_email_confirmation=True, auto_confirm=False)
    service = make_service(business)
    add_rule(business.id, 1)
    reservation = AppointmentService.create_appointment(
        db, business.id, service.id, MONDAY, "10:00", client_info, now=NOW
    )
    AppointmentService.confirm_email(db, reservation.confirmation_token, now=NOW)

    report = sweep_once(db, NOW + timedelta(hours=2))

    assert report.expired == 0
    db.expire_all()
    assert db.get(Appointment, reservation.appointment.id).status == AppointmentStatus.PENDING


def test_auto_complete_respects_grace_period(db, make_business, make_service, make_appointment):
    business = make_business(booking_settings={"autoCompleteAppointments": True, "autoCompleteGraceHours": 24})
    service = make_service(business)
    # NOW is Sunday 08:00 UTC: one ended 25h ago, the other 23h ago
    old = make_appointment(business, service, SATURDAY, "06:30", "07:00")
    recent = make_appointment(business, service, SATURDAY, "08:30", "09:00")

    report = sweep_once(db, NOW)

    assert report.completed == 1
    db.expire_all()
    old = db.get(Appointment, old.id)
    assert old.status == AppointmentStatus.COMPLETED
    assert old.completed_automatically is True
    assert db.get(Appointment, recent.id).status == AppointmentStatus.CONFIRMED


def test_expired_pending_is_cancelled(db, make_business, make_service, make_appointment):
    business = make_business(booking_settings={"autoCompleteAppointments": True})
    service = make_service(business)
    pending = make_appointment(business, service, date(2025, 12, 10), "10:00", "10:30",
                               status=AppointmentStatus.PENDING)
    no_show = make_appointment(business, service, date(2025, 12, 10), "11:00", "11:30",
                               status=AppointmentStatus.NO_SHOW)

    report = sweep_once(db, NOW)

    assert report.cancelled == 1
    assert report.transitions[0].previous_status == AppointmentStatus.PENDING
    db.expire_all()
    assert db.get(Appointment, pending.id).cancellation_reason == EXPIRED_PENDING_REASON
    assert db.get(Appointment, no_show.id).status == AppointmentStatus.NO_SHOW


def test_businesses_without_auto_complete_are_skipped(db, make_business, make_service, make_appointment):
    business = make_business()
    service = make_service(business)
    appointment = make_appointment(business, service, date(2025, 12, 1), "10:00", "10:30")

    report = sweep_once(db, NOW)

    assert report.completed == 0
    db.expire_all()
    assert db.get(Appointment, appointment.id).status == AppointmentStatus.CONFIRMED


def test_grace_period_uses_business_timezone(db, make_business, make_service, make_appointment):
    # Skopje is UTC+1 in December: NOW is 09:00 local
    business = make_business(
        timezone="Europe/Skopje",
        booking_settings={"autoCompleteAppointments": True, "autoCompleteGraceHours": 24},
    )
    service = make_service(business)
    ended_25h_ago = make_appointment(business, service, SATURDAY, "07:30", "08:00")
    ended_23h_ago = make_appointment(business, service, SATURDAY, "09:30", "10:00")

    report = sweep_once(db, NOW)

    assert report.completed == 1
    db.expire_all()
    assert db.get(Appointment, ended_25h_ago.id).status == AppointmentStatus.COMPLETED
    assert db.get(Appointment, ended_23h_ago.id).status == AppointmentStatus.CONFIRMED


def test_second_sweep_is_a_no_op(db, make_business, make_service, make_appointment):
    business = make_business(booking_settings={"autoCompleteAppointments": True})
    service = make_service(business)
    make_appointment(business, service, date(2025, 12, 10), "10:00", "10:30")
    make_appointment(business, service, date(2025, 12, 10), "11:00", "11:30", status=AppointmentStatus.PENDING)

    first = sweep_once(db, NOW)
    second = sweep_once(db, NOW)

    assert (first.completed, first.cancelled) == (1, 1)
    assert (second.completed, second.cancelled, second.expired) == (0, 0, 0)
    assert second.transitions == []


def test_row_failure_does_not_stop_the_batch(db, make_business, make_service, make_appointment, monkeypatch, caplog):
    business = make_business(booking_settings={"autoCompleteAppointments": True})
    service = make_service(business)
    first = make_appointment(business, service, date(2025, 12, 10), "10:00", "10:30")
    second = make_appointment(business, service, date(2025, 12, 10), "11:00", "11:30")

    real_commit = db.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("disk full")
        real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)

    with caplog.at_level(logging.ERROR):
        report = sweep_once(db, NOW)

    assert report.completed == 1
    assert len(report.errors) == 1
    assert report.errors[0]["appointment_id"] == str(first.id)
    assert report.to_dict()["failed"] == 1
    monkeypatch.undo()
    db.expire_all()
    assert db.get(Appointment, second.id).status == AppointmentStatus.COMPLETED


def test_confirmation_after_the_read_wins_over_expiry(
        db, session_factory, make_business, make_service, add_rule, client_info, monkeypatch):
    business = make_business(require_email_confirmation=True, auto_confirm=False)
    service = make_service(business)
    add_rule(business.id, 1)
    reservation = AppointmentService.create_appointment(
        db, business.id, service.id, MONDAY, "10:00", client_info, now=NOW
    )
    later = NOW + timedelta(minutes=16)
    real_rows = sweep_service._candidate_rows

    def rows_then_client_confirms(*args, **kwargs):
        rows = real_rows(*args, **kwargs)
        other = session_factory()
        try:
            AppointmentService.confirm_email(other, reservation.confirmation_token, now=later)
        finally:
            other.close()
        return rows

    monkeypatch.setattr(sweep_service, "_candidate_rows", rows_then_client_confirms)

    report = sweep_once(db, later)

    assert (report.expired, report.cancelled) == (0, 0)
    db.expire_all()
    appointment = db.get(Appointment, reservation.appointment.id)
    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.is_email_confirmed is True


def test_broken_business_does_not_stop_the_sweep(db, make_business, make_service, make_appointment):
    bad_settings = make_business(
        name="Bad settings",
        booking_settings={"autoCompleteAppointments": True, "bufferTime": "ten"},
    )
    bad_timezone = make_business(
        name="Bad timezone",
        timezone="Mars/Olympus",
        booking_settings={"autoCompleteAppointments": True},
    )
    healthy = make_business(booking_settings={"autoCompleteAppointments": True})
    service = make_service(healthy)
    stale = make_appointment(healthy, service, date(2025, 12, 10), "10:00", "10:30")

    report = sweep_once(db, NOW)

    assert report.completed == 1
    assert sorted(e["business_id"] for e in report.errors) == sorted([str(bad_settings.id), str(bad_timezone.id)])
    assert report.to_dict()["failed"] == 2
    db.expire_all()
    assert db.get(Appointment, stale.id).status == AppointmentStatus.COMPLETED


def test_sweep_can_be_scoped_to_one_business(db, make_business, make_service, make_appointment):
    mine = make_business(booking_settings={"autoCompleteAppointments": True})
    theirs = make_business(name="Other", booking_settings={"autoCompleteAppointments": True})
    own = make_appointment(mine, make_service(mine), date(2025, 12, 10), "10:00", "10:30")
    other = make_appointment(theirs, make_service(theirs), date(2025, 12, 10), "10:00", "10:30")

    report = sweep_once(db, NOW, business_id=mine.id)

    assert report.completed == 1
    db.expire_all()
    assert db.get(Appointment, own.id).status == AppointmentStatus.COMPLETED
    assert db.get(Appointment, other.id).status == AppointmentStatus.CONFIRMED


def test_each_sweep_write_bounds_its_lock_wait(db, make_business, make_service, make_appointment, monkeypatch):
    business = make_business(booking_settings={"autoCompleteAppointments": True})
    service = make_service(business)
    make_appointment(business, service, date(2025, 12, 10), "10:00", "10:30")
    make_appointment(business, service, date(2025, 12, 10), "11:00", "11:30")
    calls = []
    monkeypatch.setattr(sweep_service, "set_lock_timeout", lambda session: calls.append(session))

    report = sweep_once(db, NOW)

    assert report.completed == 2
    assert calls == [db, db]
