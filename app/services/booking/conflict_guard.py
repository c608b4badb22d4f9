# ============================================================================
# app/services/booking/conflict_guard.py
# ============================================================================
"""
Atomic slot reservation.

Every booking write for a resource starts by bumping that resource's
ResourceLock row. Concurrent writers for the same resource therefore queue
on the row (or on SQLite's write lock) until the holder commits or rolls
back, and the capacity re-check that follows always sees committed state.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID
import hashlib
import logging
import secrets

from sqlalchemy import text, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import (
    BookingTimeoutError, ConflictError, InvalidTransitionError, PolicyRejectedError
)
from app.models.appointment import Appointment, AppointmentStatus
from app.models.resource_lock import ResourceLock
from app.models.service import Service
from app.schemas.appointment import ClientInfo
from app.services.availability.availability_resolver import AvailabilityResolver, DayRule
from app.services.availability.availability_service import slot_interval_for
from app.services.availability.slot_generator import candidate_starts, check_booking_window, slot_is_free
from app.services.resource.resource_service import Resource
from app.utils.time_utils import as_utc, format_minutes, local_now, minutes_to_time, parse_hhmm, utcnow

logger = logging.getLogger(__name__)

# PostgreSQL lock_not_available / query_canceled
_PG_TIMEOUT_CODES = ("55P03", "57014")


@dataclass
class Reservation:
    """A committed appointment plus the raw email token, when one was issued"""
    appointment: Appointment
    confirmation_token: Optional[str] = None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def set_lock_timeout(db: Session) -> None:
    """Bound how long the current transaction waits on row locks (PostgreSQL only)"""
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(settings.BOOKING_LOCK_TIMEOUT_MS)}"))


def is_lock_timeout(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _PG_TIMEOUT_CODES:
        return True
    return "database is locked" in str(orig or exc).lower()


class ConflictGuard:

    @staticmethod
    def validate_slot(
            db: Session,
            resource: Resource,
            service: Service,
            target_date: date,
            start_min: int,
            now: datetime,
            enforce_notice: bool = True
    ) -> DayRule:
        """Policy window and grid membership, checked before taking the lock"""
        booking_settings = resource.settings
        now_local = local_now(resource.timezone, now)
        notice = booking_settings.min_booking_notice if enforce_notice else 0

        check_booking_window(target_date, now_local, notice, booking_settings.max_advance_booking)

        if enforce_notice:
            slot_dt = datetime.combine(target_date, datetime.min.time()) + timedelta(minutes=start_min)
            if slot_dt < now_local + timedelta(hours=notice):
                raise PolicyRejectedError(
                    f"Appointments must be booked at least {notice} hours in advance",
                    {"date": target_date.isoformat(), "start_time": format_minutes(start_min)}
                )

        day_rule = AvailabilityResolver.resolve(db, resource, target_date)
        if not day_rule.is_open:
            raise ConflictError(day_rule.reason or "Not available on this date", {"date": target_date.isoformat()})

        grid = candidate_starts(day_rule.intervals, service.duration, slot_interval_for(resource, service))
        if start_min not in grid:
            raise ConflictError(
                "Requested time is not a bookable slot",
                {"date": target_date.isoformat(), "start_time": format_minutes(start_min)}
            )
        return day_rule

    @staticmethod
    def ensure_lock_row(db: Session, resource_id: UUID) -> None:
        """Create the resource's lock row in its own short transaction"""
        if db.query(ResourceLock.resource_id).filter(ResourceLock.resource_id == resource_id).first():
            return
        try:
            db.add(ResourceLock(resource_id=resource_id, version=0))
            db.commit()
        except IntegrityError:
            # Another writer created it first
            db.rollback()

    @staticmethod
    def lock_resource(db: Session, resource_id: UUID) -> None:
        """First write of a booking unit; blocks other writers on this resource until commit"""
        set_lock_timeout(db)
        db.execute(
            update(ResourceLock)
            .where(ResourceLock.resource_id == resource_id)
            .values(version=ResourceLock.version + 1)
        )

    @staticmethod
    def recheck(
            db: Session,
            resource: Resource,
            target_date: date,
            start_min: int,
            end_min: int,
            capacity: int,
            exclude_appointment_id: Optional[UUID] = None
    ) -> None:
        """Capacity and daily-limit check against committed appointments; call under the lock"""
        busy = resource.busy_intervals(db, target_date, exclude_appointment_id)
        if not slot_is_free(start_min, end_min, busy, capacity, resource.settings.buffer_time):
            raise ConflictError(
                "Slot no longer available",
                {"date": target_date.isoformat(), "start_time": format_minutes(start_min)}
            )

        if resource.daily_limit:
            booked = resource.count_for_day(db, target_date, exclude_appointment_id)
            if booked >= resource.daily_limit:
                raise ConflictError(
                    "Daily appointment limit reached",
                    {"date": target_date.isoformat(), "limit": resource.daily_limit}
                )

    @staticmethod
    def run_locked(db: Session, resource: Resource, unit) -> None:
        """
        Run `unit()` between the lock bump and the commit.
        Rolls back on any failure; lock timeouts become BookingTimeoutError.
        """
        ConflictGuard.ensure_lock_row(db, resource.id)
        try:
            ConflictGuard.lock_resource(db, resource.id)
            unit()
            db.commit()
        except OperationalError as e:
            db.rollback()
            if is_lock_timeout(e):
                logger.warning(f"Lock timeout on {resource.kind.value} {resource.id}")
                raise BookingTimeoutError(
                    "Resource is busy, please retry",
                    {"resource_id": str(resource.id)}
                ) from e
            logger.error(f"Database error in booking unit for {resource.id}: {e}", exc_info=True)
            raise
        except Exception:
            db.rollback()
            raise

    @staticmethod
    def reserve(
            db: Session,
            resource: Resource,
            service: Service,
            target_date: date,
            start_time: str,
            client: ClientInfo,
            now: Optional[datetime] = None,
            source: str = "web",
            notes: Optional[str] = None
    ) -> Reservation:
        """
        Reserve one slot. Either the appointment is committed or nothing is.

        Raises PolicyRejectedError, ConflictError or BookingTimeoutError.
        Manual (staff) bookings skip the notice window and start CONFIRMED.
        """
        now = as_utc(now or utcnow())
        manual = source == "manual"
        start_min = parse_hhmm(start_time)
        end_min = start_min + service.duration

        day_rule = ConflictGuard.validate_slot(
            db, resource, service, target_date, start_min, now, enforce_notice=not manual
        )
        capacity = resource.capacity_limit(day_rule.capacity_override, service)

        token = None
        if manual:
            status = AppointmentStatus.CONFIRMED
        elif resource.requires_email_confirmation:
            status = AppointmentStatus.PENDING
            token = secrets.token_urlsafe(32)
        elif resource.auto_confirm:
            status = AppointmentStatus.CONFIRMED
        else:
            status = AppointmentStatus.PENDING

        appointment = Appointment(
            business_id=resource.business_id,
            employee_id=resource.employee_id,
            service_id=service.id,
            client_first_name=client.first_name,
            client_last_name=client.last_name,
            client_email=client.email,
            client_phone=client.phone,
            client_notes=client.notes,
            notes=notes,
            date=target_date,
            start_time=minutes_to_time(start_min),
            end_time=minutes_to_time(end_min),
            status=status,
            booking_source=source,
            is_email_confirmed=token is None,
            email_confirmation_token=hash_token(token) if token else None,
            created_at=now,
            updated_at=now,
        )

        def unit():
            ConflictGuard.recheck(db, resource, target_date, start_min, end_min, capacity)
            db.add(appointment)
            db.flush()

        try:
            ConflictGuard.run_locked(db, resource, unit)
        except ConflictError:
            logger.info(
                f"Booking conflict for {resource.kind.value} {resource.id} "
                f"on {target_date} at {format_minutes(start_min)}"
            )
            raise

        db.refresh(appointment)
        logger.info(
            f"Reserved appointment {appointment.id} for {resource.kind.value} {resource.id} "
            f"on {target_date} {format_minutes(start_min)}-{format_minutes(end_min)} ({status.value})"
        )
        return Reservation(appointment, token)

    @staticmethod
    def move(
            db: Session,
            resource: Resource,
            service: Service,
            appointment: Appointment,
            target_date: date,
            start_time: str,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Atomically move an appointment to a new slot, excluding it from the
        occupancy check. The row is only rewritten if it still holds its
        old slot and an active status.
        """
        now = as_utc(now or utcnow())
        start_min = parse_hhmm(start_time)
        end_min = start_min + service.duration

        day_rule = ConflictGuard.validate_slot(db, resource, service, target_date, start_min, now)
        capacity = resource.capacity_limit(day_rule.capacity_override, service)

        appointment_id = appointment.id
        old_date, old_start = appointment.date, appointment.start_time

        def unit():
            ConflictGuard.recheck(db, resource, target_date, start_min, end_min, capacity, appointment_id)
            updated = db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status.in_([AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]),
                Appointment.date == old_date,
                Appointment.start_time == old_start
            ).update({
                "date": target_date,
                "start_time": minutes_to_time(start_min),
                "end_time": minutes_to_time(end_min),
                "updated_at": now,
            }, synchronize_session=False)
            if updated != 1:
                raise InvalidTransitionError(
                    "Appointment changed while rescheduling",
                    {"appointment_id": str(appointment_id)}
                )

        ConflictGuard.run_locked(db, resource, unit)
        db.refresh(appointment)
        logger.info(
            f"Rescheduled appointment {appointment_id} from {old_date} {old_start.strftime('%H:%M')} "
            f"to {target_date} {format_minutes(start_min)}"
        )
        return appointment
