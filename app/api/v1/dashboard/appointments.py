# ============================================================================
# app/api/v1/dashboard/appointments.py
# Staff endpoints driving the appointment lifecycle - thin HTTP layer
# ============================================================================
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_business_scope, get_clock
from app.config.database import get_db
from app.core.exceptions import ValidationError
from app.models.appointment import AppointmentStatus
from app.schemas.appointment import (
    CancelRequest, ManualBookingRequest, NotesUpdate, RescheduleRequest, SweepResponse, TransitionResponse
)
from app.services.appointment.appointment_service import AppointmentService
from app.services.appointment.sweep_service import sweep_once

router = APIRouter(prefix="/appointments", tags=["dashboard-appointments"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_manual_appointment(
        request: ManualBookingRequest,
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    """Phone or walk-in booking; created CONFIRMED, notice window not applied"""
    if request.business_id != business_id:
        raise ValidationError("Booking belongs to a different business")

    reservation = AppointmentService.create_appointment(
        db,
        business_id=business_id,
        service_id=request.service_id,
        target_date=request.date,
        start_time=request.start_time,
        client=request.client,
        employee_id=request.employee_id,
        source="manual",
        notes=request.notes,
        now=now,
    )
    return {"appointment": reservation.appointment.to_dict()}


@router.get("")
def list_appointments(
        business_id: UUID = Depends(get_business_scope),
        appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
        on_date: Optional[date] = Query(None, alias="date", description="Exact date; overrides the range"),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        employee_id: Optional[UUID] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db)
):
    """Appointments of the caller's business, filtered by status, date or range, and employee"""
    return AppointmentService.list_appointments(
        db,
        business_id,
        status=appointment_status,
        on_date=on_date,
        start_date=start_date,
        end_date=end_date,
        employee_id=employee_id,
        skip=skip,
        limit=limit,
    )


@router.post("/sweep", response_model=SweepResponse)
def trigger_sweep(
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    """Run the expiry / auto-complete sweep for the caller's business now"""
    return sweep_once(db, now, business_id=business_id).to_dict()


@router.get("/{appointment_id}")
def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db)
):
    return AppointmentService.get_appointment(db, appointment_id, business_id).to_dict()


@router.post("/{appointment_id}/confirm", response_model=TransitionResponse)
def confirm_appointment(
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.confirm(db, appointment_id, business_id, now=now).to_dict()


@router.post("/{appointment_id}/cancel", response_model=TransitionResponse)
def cancel_appointment(
        request: CancelRequest,
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.cancel(
        db, appointment_id, reason=request.reason, business_id=business_id, now=now
    ).to_dict()


@router.post("/{appointment_id}/complete", response_model=TransitionResponse)
def complete_appointment(
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.complete(db, appointment_id, business_id, now=now).to_dict()


@router.post("/{appointment_id}/no-show", response_model=TransitionResponse)
def mark_no_show(
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.mark_no_show(db, appointment_id, business_id, now=now).to_dict()


@router.post("/{appointment_id}/reschedule", response_model=TransitionResponse)
def reschedule_appointment(
        request: RescheduleRequest,
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.reschedule(
        db, appointment_id, request.date, request.start_time, business_id=business_id, now=now
    ).to_dict()


@router.patch("/{appointment_id}/notes")
def update_appointment_notes(
        request: NotesUpdate,
        appointment_id: UUID = Path(...),
        business_id: UUID = Depends(get_business_scope),
        db: Session = Depends(get_db)
):
    """Staff-only notes; does not touch status or time"""
    return AppointmentService.update_notes(db, appointment_id, request.notes, business_id).to_dict()
