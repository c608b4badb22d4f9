# app/schemas/__init__.py
from .business import BookingSettings

from .availability import (
    WeeklyRuleCreate,
    WeeklyRuleUpdate,
    BreakCreate,
    SpecialDateUpsert,
    IntervalResponse,
    AvailabilityResponse,
    SlotResponse,
    SlotsResponse
)

from .appointment import (
    ClientInfo,
    BookingRequest,
    ManualBookingRequest,
    RescheduleRequest,
    CancelRequest,
    ClientCancelRequest,
    ConfirmEmailRequest,
    NotesUpdate,
    TransitionResponse,
    SweepResponse
)
