"""
Pydantic schemas for the per-business booking policy stored in
Business.booking_settings (JSON).
"""
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Any, Dict, Optional
import re

from app.core.exceptions import InvalidRuleError

_HHMM = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")


class BookingSettings(BaseModel):
    """
    Booking policy knobs for one business.

    Keys are accepted in snake_case or in the camelCase form older
    dashboards write (minBookingNotice, autoCompleteGraceHours, ...).
    Unknown keys are kept so other collaborators can share the JSON column.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    buffer_time: int = Field(0, ge=0, alias="bufferTime", description="Minutes kept free after each appointment")
    min_booking_notice: int = Field(2, ge=0, alias="minBookingNotice", description="Hours")
    max_advance_booking: int = Field(30, ge=0, alias="maxAdvanceBooking", description="Days, 0 = unlimited")
    max_appointments_per_day: int = Field(0, ge=0, alias="maxAppointmentsPerDay", description="0 = unlimited")
    cancellation_notice: int = Field(24, ge=0, alias="cancellationNotice", description="Hours")

    # Confirmation flow (fall back to the business columns when absent)
    auto_confirm: Optional[bool] = Field(None, alias="autoConfirm")
    require_email_confirmation: Optional[bool] = Field(None, alias="requireEmailConfirmation")
    email_confirmation_timeout: int = Field(15, ge=1, alias="emailConfirmationTimeout", description="Minutes")

    # Sweep
    auto_complete_appointments: bool = Field(False, alias="autoCompleteAppointments")
    auto_complete_grace_hours: int = Field(24, ge=0, alias="autoCompleteGraceHours")

    # Window used by special dates that are open but carry no hours
    full_day_start: str = Field("00:00", alias="fullDayStart")
    full_day_end: str = Field("23:59", alias="fullDayEnd")

    @field_validator("full_day_start", "full_day_end")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v

    @classmethod
    def from_json(cls, raw: Optional[Dict[str, Any]]) -> "BookingSettings":
        try:
            return cls.model_validate(raw or {})
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise InvalidRuleError("Invalid booking settings", {"fields": fields}) from e

