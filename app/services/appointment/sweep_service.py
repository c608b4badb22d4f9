# ============================================================================
# app/services/appointment/sweep_service.py
# ============================================================================
"""
Time-triggered lifecycle transitions.

sweep_once() takes the clock as an argument so it can be driven by Celery
beat, by an HTTP trigger, or by a test with a fixed instant. Every write is a
conditional UPDATE that re-checks status, date and end time, so a sweep
racing a manual transition or a reschedule never clobbers it.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.config.database import SessionLocal
from app.models.appointment import Appointment, AppointmentStatus
from app.models.business import Business
from app.services.appointment.appointment_service import TransitionResult
from app.services.booking.conflict_guard import set_lock_timeout
from app.services.resource.resource_service import BusinessResource
from app.utils.time_utils import as_utc, local_now, utcnow

logger = logging.getLogger(__name__)

EMAIL_TIMEOUT_REASON = "Email confirmation timed out"
EXPIRED_PENDING_REASON = "Automatically cancelled - appointment time expired while pending"


@dataclass
class SweepReport:
    """
    completed: CONFIRMED -> COMPLETED
    cancelled: every PENDING -> CANCELLED made by the sweep
    expired: the subset of `cancelled` caused by the email confirmation timeout
    errors: failed appointments and skipped businesses
    """
    completed: int = 0
    cancelled: int = 0
    expired: int = 0
    transitions: List[TransitionResult] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "completed": self.completed,
            "cancelled": self.cancelled,
            "expired": self.expired,
            "failed": len(self.errors),
        }


def _apply(db: Session, row, expected: AppointmentStatus, values: Dict,
           report: SweepReport, guards=()) -> Optional[TransitionResult]:
    """
    Conditional single-row transition; per-row failures are recorded, not raised.
    `guards` are extra filters that must still hold at write time.
    """
    try:
        set_lock_timeout(db)
        updated = db.query(Appointment).filter(
            Appointment.id == row.id,
            Appointment.status == expected,
            Appointment.date == row.date,
            Appointment.end_time == row.end_time,
            *guards
        ).update(values, synchronize_session=False)

        if updated != 1:
            # Someone else moved it first
            db.rollback()
            logger.info(f"Sweep skipped appointment {row.id}: no longer eligible")
            return None

        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Sweep failed for appointment {row.id}: {e}", exc_info=True)
        report.errors.append({"appointment_id": str(row.id), "error": str(e)})
        return None

    result = TransitionResult(db.get(Appointment, row.id), expected, values["status"])
    report.transitions.append(result)
    return result


def _candidate_rows(db: Session, business: Business, statuses, extra_filters=()):
    return db.query(
        Appointment.id,
        Appointment.status,
        Appointment.date,
        Appointment.end_time,
        Appointment.created_at,
        Appointment.is_email_confirmed,
    ).filter(
        Appointment.business_id == business.id,
        Appointment.status.in_(statuses),
        *extra_filters
    ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()


def expire_unconfirmed(db: Session, resource: BusinessResource, now: datetime, report: SweepReport) -> None:
    """Cancel PENDING bookings whose email confirmation window has elapsed"""
    timeout = timedelta(minutes=resource.settings.email_confirmation_timeout)
    rows = _candidate_rows(
        db, resource.business, [AppointmentStatus.PENDING],
        (Appointment.is_email_confirmed == False,)
    )

    for row in rows:
        if row.created_at is None or as_utc(row.created_at) + timeout > now:
            continue
        result = _apply(db, row, AppointmentStatus.PENDING, {
            "status": AppointmentStatus.CANCELLED,
            "cancelled_at": now,
            "cancellation_reason": EMAIL_TIMEOUT_REASON,
            "updated_at": now,
        }, report, guards=(Appointment.is_email_confirmed == False,))
        if result:
            report.cancelled += 1
            report.expired += 1


def auto_complete(db: Session, resource: BusinessResource, now: datetime, report: SweepReport) -> None:
    """Complete confirmed and cancel pending appointments past end time + grace"""
    grace = timedelta(hours=resource.settings.auto_complete_grace_hours)
    cutoff = local_now(resource.timezone, now) - grace
    rows = _candidate_rows(
        db, resource.business,
        [AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING],
        (Appointment.date <= cutoff.date(),)
    )

    for row in rows:
        if datetime.combine(row.date, row.end_time) > cutoff:
            continue

        if row.status == AppointmentStatus.CONFIRMED:
            result = _apply(db, row, AppointmentStatus.CONFIRMED, {
                "status": AppointmentStatus.COMPLETED,
                "completed_automatically": True,
                "updated_at": now,
            }, report)
            if result:
                report.completed += 1
        else:
            result = _apply(db, row, AppointmentStatus.PENDING, {
                "status": AppointmentStatus.CANCELLED,
                "cancelled_at": now,
                "cancellation_reason": EXPIRED_PENDING_REASON,
                "updated_at": now,
            }, report)
            if result:
                report.cancelled += 1


def sweep_once(db: Session, now: datetime, business_id: Optional[UUID] = None) -> SweepReport:
    """
    One pass over every active business, or only `business_id` when given.
    Running it twice for the same `now` is a no-op. A business whose
    settings cannot be read is reported and skipped.
    """
    now = as_utc(now)
    report = SweepReport()

    query = db.query(Business.id).filter(Business.is_active == True)
    if business_id is not None:
        query = query.filter(Business.id == business_id)
    business_ids = [row.id for row in query.order_by(Business.created_at.asc()).all()]

    for current_id in business_ids:
        try:
            business = db.get(Business, current_id)
            resource = BusinessResource(business)
            if resource.requires_email_confirmation:
                expire_unconfirmed(db, resource, now, report)
            if resource.settings.auto_complete_appointments:
                auto_complete(db, resource, now, report)
        except Exception as e:
            db.rollback()
            logger.error(f"Sweep skipped business {current_id}: {e}", exc_info=True)
            report.errors.append({"business_id": str(current_id), "error": str(e)})

    logger.info(
        f"Sweep at {now.isoformat()}: {report.completed} completed, {report.cancelled} cancelled "
        f"({report.expired} unconfirmed), {len(report.errors)} failed"
    )
    return report


def run_sweep(now: Optional[datetime] = None) -> SweepReport:
    """sweep_once with a fresh session and the real clock"""
    db = SessionLocal()
    try:
        return sweep_once(db, now or utcnow())
    finally:
        db.close()
