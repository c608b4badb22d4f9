# app/schemas/availability.py
"""Request/response schemas for rule store, availability and slots"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
import datetime as dt
import re

_HHMM = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9](:[0-5][0-9])?$")


def _check_time(v: Optional[str]) -> Optional[str]:
    if v is not None and not _HHMM.match(v):
        raise ValueError("Time must be in HH:MM format")
    return v


class WeeklyRuleCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    is_available: bool = True
    capacity_override: Optional[int] = Field(None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v):
        return _check_time(v)


class WeeklyRuleUpdate(BaseModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_available: Optional[bool] = None
    capacity_override: Optional[int] = Field(None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v):
        return _check_time(v)


class BreakCreate(BaseModel):
    break_start: str = Field(..., description="HH:MM")
    break_end: str = Field(..., description="HH:MM")

    @field_validator("break_start", "break_end")
    @classmethod
    def validate_times(cls, v):
        return _check_time(v)


class SpecialDateUpsert(BaseModel):
    date: dt.date
    is_available: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    capacity_override: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = Field(None, max_length=200)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v):
        return _check_time(v)


class IntervalResponse(BaseModel):
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    resource_kind: str
    resource_id: str
    date: str
    kind: str = Field(..., description="weekly_open, weekly_closed, special_override or special_closed")
    intervals: List[IntervalResponse] = Field(default_factory=list)
    capacity_override: Optional[int] = None


class SlotResponse(BaseModel):
    start_time: str
    end_time: str
    spots_left: Optional[int] = Field(None, description="Remaining capacity; None when unlimited or SINGLE")


class SlotsResponse(BaseModel):
    date: str
    available: bool
    reason: Optional[str] = None
    service_id: str
    duration: int
    capacity_mode: str
    capacity: Optional[int] = None
    slots: List[SlotResponse] = Field(default_factory=list)
