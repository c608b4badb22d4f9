# ============================================================================
# app/api/v1/public/booking.py
# Client-facing availability and booking endpoints - thin HTTP layer
# ============================================================================
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_clock
from app.config.database import get_db
from app.models.availability import ResourceKind
from app.schemas.appointment import (
    BookingRequest, ClientCancelRequest, ConfirmEmailRequest, TransitionResponse
)
from app.schemas.availability import AvailabilityResponse, SlotsResponse
from app.services.appointment.appointment_service import AppointmentService
from app.services.availability.availability_service import AvailabilityService
from app.services.resource.resource_service import ResourceService

router = APIRouter(tags=["Public"])


@router.get("/availability/{resource_kind}/{resource_id}", response_model=AvailabilityResponse)
def get_availability(
        resource_kind: ResourceKind = Path(..., description="business or employee"),
        resource_id: UUID = Path(...),
        date: date = Query(..., description="YYYY-MM-DD"),
        db: Session = Depends(get_db)
):
    """Open intervals of a business or employee on one date"""
    return AvailabilityService.resolve_availability(db, resource_kind, resource_id, date)


@router.get("/slots", response_model=SlotsResponse)
def get_slots(
        business_id: UUID = Query(...),
        service_id: UUID = Query(...),
        date: date = Query(..., description="YYYY-MM-DD"),
        employee_id: Optional[UUID] = Query(None),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    """
    Bookable slots for a service on one date.
    Dates outside the booking window are rejected with 422.
    """
    return AvailabilityService.get_available_slots(
        db, business_id, service_id, date, employee_id=employee_id, now=now
    )


@router.get("/slots/range", response_model=List[SlotsResponse])
def get_slots_range(
        business_id: UUID = Query(...),
        service_id: UUID = Query(...),
        start_date: date = Query(...),
        end_date: date = Query(...),
        employee_id: Optional[UUID] = Query(None),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AvailabilityService.get_slots_for_range(
        db, business_id, service_id, start_date, end_date, employee_id=employee_id, now=now
    )


@router.get("/services/{service_id}/employees")
def list_service_employees(
        service_id: UUID,
        business_id: UUID = Query(...),
        db: Session = Depends(get_db)
):
    """Employees a client may pick for this service"""
    employees = ResourceService.list_assignable_employees(db, business_id, service_id)
    return {"employees": [e.to_dict() for e in employees]}


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(
        request: BookingRequest,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    """
    Reserve a slot. 409 when the slot was taken in the meantime,
    503 (retryable) when the resource is busy.
    """
    reservation = AppointmentService.create_appointment(
        db,
        business_id=request.business_id,
        service_id=request.service_id,
        target_date=request.date,
        start_time=request.start_time,
        client=request.client,
        employee_id=request.employee_id,
        now=now,
    )
    appointment = reservation.appointment
    return {
        "appointment": appointment.to_dict(),
        "requires_email_confirmation": reservation.confirmation_token is not None,
        # Handed to the notification collaborator, never stored in clear
        "confirmation_token": reservation.confirmation_token,
    }


@router.post("/bookings/confirm-email", response_model=TransitionResponse)
def confirm_booking_email(
        request: ConfirmEmailRequest,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.confirm_email(db, request.token, now=now).to_dict()


@router.post("/bookings/{appointment_id}/cancel", response_model=TransitionResponse)
def cancel_booking(
        request: ClientCancelRequest,
        appointment_id: UUID = Path(...),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_clock)
):
    return AppointmentService.cancel_by_client(
        db, appointment_id, request.email, reason=request.reason, now=now
    ).to_dict()
