# app/services/availability/slot_generator.py
"""
Discretize open intervals into bookable slots.

Everything here is pure: callers pass the intervals, the appointments that
already occupy the resource and the resource-local clock.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from app.core.exceptions import PolicyRejectedError, ValidationError
from app.services.availability.availability_resolver import Interval
from app.utils.time_utils import format_minutes

Busy = Tuple[int, int]


@dataclass(frozen=True)
class Slot:
    start: int
    end: int
    spots_left: Optional[int] = None

    def to_dict(self):
        return {
            "start_time": format_minutes(self.start),
            "end_time": format_minutes(self.end),
            "spots_left": self.spots_left,
        }


def check_booking_window(
        target_date: date,
        now_local: datetime,
        min_notice_hours: int = 0,
        max_advance_days: int = 0
) -> None:
    """Raise PolicyRejectedError when the date is outside the bookable window"""
    today = now_local.date()
    earliest = now_local + timedelta(hours=min_notice_hours)

    if target_date < today:
        raise PolicyRejectedError("Cannot book appointments in the past", {"date": target_date.isoformat()})

    if target_date < earliest.date():
        raise PolicyRejectedError(
            f"Appointments must be booked at least {min_notice_hours} hours in advance",
            {"date": target_date.isoformat()}
        )

    if max_advance_days and target_date > today + timedelta(days=max_advance_days):
        raise PolicyRejectedError(
            f"Appointments can only be booked up to {max_advance_days} days in advance",
            {"date": target_date.isoformat()}
        )


def peak_occupancy(start: int, end: int, busy: Iterable[Busy], buffer_time: int = 0) -> int:
    """
    Highest number of occupancy windows [apptStart, apptEnd + buffer)
    active at any instant inside [start, end).
    """
    windows = [(s, e + buffer_time) for s, e in busy if s < end and e + buffer_time > start]
    if not windows:
        return 0

    # Concurrency inside the candidate only rises at its start or at a window start
    points = {start} | {s for s, _ in windows if start < s < end}
    return max(
        sum(1 for s, e in windows if s <= point < e)
        for point in points
    )


def slot_is_free(start: int, end: int, busy: Iterable[Busy], capacity: int = 1, buffer_time: int = 0) -> bool:
    """capacity 0 means unlimited"""
    if capacity == 0:
        return True
    return peak_occupancy(start, end, busy, buffer_time) < capacity


def candidate_starts(intervals: Sequence[Interval], duration: int, slot_interval: int) -> List[int]:
    """Grid of start minutes whose slot fits entirely inside an interval"""
    if duration <= 0:
        raise ValidationError("Service duration must be a positive number of minutes")
    if slot_interval <= 0:
        raise ValidationError("Slot interval must be a positive number of minutes")

    starts = []
    for interval in intervals:
        start = interval.start
        while start + duration <= interval.end:
            starts.append(start)
            start += slot_interval
    return starts


def generate_slots(
        intervals: Sequence[Interval],
        duration: int,
        slot_interval: int,
        busy: Sequence[Busy] = (),
        buffer_time: int = 0,
        capacity: int = 1,
        target_date: Optional[date] = None,
        now_local: Optional[datetime] = None,
        min_notice_hours: int = 0,
        max_advance_days: int = 0
) -> List[Slot]:
    """
    Bookable slots in ascending order.

    When now_local is given, the policy window is enforced first
    (PolicyRejectedError) and slots starting before now + notice are dropped.
    spots_left is set for multi-capacity resources with a finite limit.
    """
    earliest = None
    if now_local is not None:
        if target_date is None:
            raise ValidationError("target_date is required together with now_local")
        check_booking_window(target_date, now_local, min_notice_hours, max_advance_days)
        earliest = now_local + timedelta(hours=min_notice_hours)

    slots = []
    for start in candidate_starts(intervals, duration, slot_interval):
        end = start + duration

        if earliest is not None:
            slot_dt = datetime.combine(target_date, datetime.min.time()) + timedelta(minutes=start)
            if slot_dt < earliest:
                continue

        peak = peak_occupancy(start, end, busy, buffer_time)
        if capacity and peak >= capacity:
            continue

        spots_left = capacity - peak if capacity > 1 else None
        slots.append(Slot(start, end, spots_left))

    return sorted(slots, key=lambda s: s.start)
