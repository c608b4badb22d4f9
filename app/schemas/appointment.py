# app/schemas/appointment.py
"""Booking and lifecycle request schemas"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID
import datetime as dt
import re

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+?[0-9][0-9 ()\-]{5,19}$")
_HHMM = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9](:[0-5][0-9])?$")


class ClientInfo(BaseModel):
    """Client contact details attached to a booking"""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., description="Client email")
    phone: str = Field(..., description="Client phone number")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL.match(v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = v.strip()
        if not _PHONE.match(v):
            raise ValueError("Invalid phone number")
        return v


class BookingRequest(BaseModel):
    """Client-initiated booking of one slot"""
    business_id: UUID
    service_id: UUID
    employee_id: Optional[UUID] = None
    date: dt.date
    start_time: str = Field(..., description="HH:MM, local to the business")
    client: ClientInfo

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class ManualBookingRequest(BookingRequest):
    """Staff-initiated booking (phone/walk-in), created confirmed"""
    notes: Optional[str] = Field(None, max_length=1000)


class RescheduleRequest(BaseModel):
    date: dt.date
    start_time: str

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ClientCancelRequest(BaseModel):
    email: str
    reason: Optional[str] = Field(None, max_length=500)


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class ConfirmEmailRequest(BaseModel):
    token: str = Field(..., min_length=16)


class TransitionResponse(BaseModel):
    """Result of a lifecycle transition, enough for a notification collaborator"""
    appointment: dict
    previous_status: Optional[str]
    new_status: str


class SweepResponse(BaseModel):
    completed: int
    cancelled: int
    expired: int
    failed: int
