# ============================================================================
# app/services/appointment/appointment_service.py
# ============================================================================
"""Appointment lifecycle: confirmations, cancellations, completion, reschedule"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InvalidTransitionError, NotFoundError, PolicyRejectedError, ValidationError
)
from app.models.appointment import Appointment, AppointmentStatus
from app.schemas.appointment import ClientInfo
from app.services.booking.conflict_guard import ConflictGuard, Reservation, hash_token
from app.services.resource.resource_service import ResourceService
from app.utils.time_utils import as_utc, local_now, utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
    AppointmentStatus.CONFIRMED: (
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ),
}


@dataclass
class TransitionResult:
    """Outcome of a lifecycle move, for notification collaborators"""
    appointment: Appointment
    previous_status: Optional[AppointmentStatus]
    new_status: AppointmentStatus

    def to_dict(self) -> Dict:
        return {
            "appointment": self.appointment.to_dict(),
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value,
        }


class AppointmentService:
    """Handles appointment operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None) -> Appointment:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if business_id is not None:
            query = query.filter(Appointment.business_id == business_id)
        appointment = query.first()
        if not appointment:
            raise NotFoundError("Appointment not found", {"appointment_id": str(appointment_id)})
        return appointment

    @staticmethod
    def list_appointments(
            db: Session,
            business_id: UUID,
            status: Optional[AppointmentStatus] = None,
            on_date: Optional[date] = None,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            employee_id: Optional[UUID] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """
        Paginated appointments of one business, in calendar order.
        `on_date` takes precedence over the start/end range.
        """
        if on_date is None and start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date")

        query = db.query(Appointment).filter(Appointment.business_id == business_id)

        if status:
            query = query.filter(Appointment.status == status)
        if on_date:
            query = query.filter(Appointment.date == on_date)
        else:
            if start_date:
                query = query.filter(Appointment.date >= start_date)
            if end_date:
                query = query.filter(Appointment.date <= end_date)
        if employee_id:
            query = query.filter(Appointment.employee_id == employee_id)

        total = query.count()
        appointments = query.order_by(
            Appointment.date.asc(), Appointment.start_time.asc()
        ).offset(skip).limit(limit).all()

        return {
            "business_id": str(business_id),
            "total_appointments": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "filters": {
                "status": status.value if status else None,
                "date": on_date.isoformat() if on_date else None,
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "employee_id": str(employee_id) if employee_id else None,
            },
            "appointments": [a.to_dict() for a in appointments]
        }

    @staticmethod
    def create_appointment(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            target_date: date,
            start_time: str,
            client: ClientInfo,
            employee_id: Optional[UUID] = None,
            source: str = "web",
            notes: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Reservation:
        """Book a slot through the conflict guard"""
        resource, service = ResourceService.resource_for_booking(db, business_id, service_id, employee_id)
        return ConflictGuard.reserve(
            db, resource, service, target_date, start_time, client,
            now=now, source=source, notes=notes
        )

    @staticmethod
    def _transition(
            db: Session,
            appointment: Appointment,
            target: AppointmentStatus,
            now: datetime,
            values: Optional[Dict] = None
    ) -> TransitionResult:
        """
        Move to `target` only if the row still holds the status we read.
        Losing the race to another writer raises InvalidTransitionError.
        """
        previous = appointment.status
        if target not in ALLOWED_TRANSITIONS.get(previous, ()):
            raise InvalidTransitionError(
                f"Cannot change appointment from {previous.value} to {target.value}",
                {"appointment_id": str(appointment.id), "status": previous.value}
            )

        updates = {"status": target, "updated_at": now}
        updates.update(values or {})

        updated = db.query(Appointment).filter(
            Appointment.id == appointment.id,
            Appointment.status == previous
        ).update(updates, synchronize_session=False)

        if updated != 1:
            db.rollback()
            raise InvalidTransitionError(
                "Appointment status changed concurrently",
                {"appointment_id": str(appointment.id)}
            )

        db.commit()
        db.refresh(appointment)
        logger.info(f"Appointment {appointment.id}: {previous.value} -> {target.value}")
        return TransitionResult(appointment, previous, target)

    @staticmethod
    def confirm(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                now: Optional[datetime] = None) -> TransitionResult:
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        return AppointmentService._transition(db, appointment, AppointmentStatus.CONFIRMED, as_utc(now or utcnow()))

    @staticmethod
    def cancel(
            db: Session,
            appointment_id: UUID,
            reason: Optional[str] = None,
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> TransitionResult:
        now = as_utc(now or utcnow())
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        return AppointmentService._transition(
            db, appointment, AppointmentStatus.CANCELLED, now,
            {"cancelled_at": now, "cancellation_reason": reason}
        )

    @staticmethod
    def complete(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                 now: Optional[datetime] = None) -> TransitionResult:
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        return AppointmentService._transition(db, appointment, AppointmentStatus.COMPLETED, as_utc(now or utcnow()))

    @staticmethod
    def mark_no_show(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                     now: Optional[datetime] = None) -> TransitionResult:
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        return AppointmentService._transition(db, appointment, AppointmentStatus.NO_SHOW, as_utc(now or utcnow()))

    @staticmethod
    def confirm_email(db: Session, token: str, now: Optional[datetime] = None) -> TransitionResult:
        """
        Mark the client's email as confirmed. The appointment becomes
        CONFIRMED when the business auto-confirms, otherwise it stays
        PENDING for manual approval.
        """
        now = as_utc(now or utcnow())
        appointment = db.query(Appointment).filter(
            Appointment.email_confirmation_token == hash_token(token)
        ).first()
        if not appointment:
            raise NotFoundError("Invalid or expired confirmation token")

        if appointment.is_email_confirmed:
            raise InvalidTransitionError("Appointment already confirmed", {"appointment_id": str(appointment.id)})
        if appointment.status != AppointmentStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot confirm an appointment that is {appointment.status.value}",
                {"appointment_id": str(appointment.id)}
            )

        resource, _ = ResourceService.resource_for_appointment(db, appointment)
        target = AppointmentStatus.CONFIRMED if resource.auto_confirm else AppointmentStatus.PENDING

        updated = db.query(Appointment).filter(
            Appointment.id == appointment.id,
            Appointment.status == AppointmentStatus.PENDING,
            Appointment.is_email_confirmed == False
        ).update({
            "status": target,
            "is_email_confirmed": True,
            "email_confirmation_token": None,
            "updated_at": now,
        }, synchronize_session=False)

        if updated != 1:
            db.rollback()
            raise InvalidTransitionError(
                "Appointment changed while confirming",
                {"appointment_id": str(appointment.id)}
            )

        db.commit()
        db.refresh(appointment)
        logger.info(f"Email confirmed for appointment {appointment.id}, status {target.value}")
        return TransitionResult(appointment, AppointmentStatus.PENDING, target)

    @staticmethod
    def cancel_by_client(
            db: Session,
            appointment_id: UUID,
            email: str,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> TransitionResult:
        """Client self-cancellation, limited by the business's cancellation notice"""
        now = as_utc(now or utcnow())
        appointment = AppointmentService.get_appointment(db, appointment_id)

        if appointment.client_email.lower() != email.strip().lower():
            raise ValidationError("Email does not match appointment record")
        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError("Appointment is already cancelled")

        resource, _ = ResourceService.resource_for_appointment(db, appointment)
        now_local = local_now(resource.timezone, now)
        starts_at = datetime.combine(appointment.date, appointment.start_time)

        if starts_at < now_local:
            raise PolicyRejectedError("Cannot cancel past appointments")

        notice = resource.settings.cancellation_notice
        if notice and starts_at - now_local < timedelta(hours=notice):
            hours_left = int((starts_at - now_local).total_seconds() // 3600)
            raise PolicyRejectedError(
                f"Appointments must be cancelled at least {notice} hours in advance. "
                f"Your appointment is in {hours_left} hours."
            )

        return AppointmentService._transition(
            db, appointment, AppointmentStatus.CANCELLED, now,
            {"cancelled_at": now, "cancellation_reason": reason or "Cancelled by client"}
        )

    @staticmethod
    def reschedule(
            db: Session,
            appointment_id: UUID,
            target_date: date,
            start_time: str,
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> TransitionResult:
        """Move a PENDING or CONFIRMED appointment to a new slot; status is kept"""
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        status = appointment.status
        if status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
            raise InvalidTransitionError(
                f"Cannot reschedule an appointment that is {status.value}",
                {"appointment_id": str(appointment.id)}
            )

        resource, service = ResourceService.resource_for_appointment(db, appointment)
        ConflictGuard.move(db, resource, service, appointment, target_date, start_time, now=now)
        return TransitionResult(appointment, status, status)

    @staticmethod
    def update_notes(db: Session, appointment_id: UUID, notes: Optional[str],
                     business_id: Optional[UUID] = None) -> Appointment:
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        appointment.notes = notes or None
        db.commit()
        db.refresh(appointment)
        return appointment
