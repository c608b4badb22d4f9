# app/services/availability/availability_resolver.py
"""
Resolve the bookable time ranges of a resource on one date.

Precedence: special date, then weekly rule, then closed. A special date
replaces the weekly layer entirely, breaks included.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRuleError
from app.models.availability import AvailabilityRule, SpecialDate
from app.services.availability.rule_store import RuleStore
from app.services.resource.resource_service import Resource
from app.utils.time_utils import day_of_week, format_minutes, parse_hhmm

logger = logging.getLogger(__name__)


class DayRuleKind(str, Enum):
    WEEKLY_OPEN = "weekly_open"
    WEEKLY_CLOSED = "weekly_closed"
    SPECIAL_OVERRIDE = "special_override"
    SPECIAL_CLOSED = "special_closed"


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) in minutes since midnight"""
    start: int
    end: int

    def to_dict(self):
        return {"start": format_minutes(self.start), "end": format_minutes(self.end)}


@dataclass(frozen=True)
class DayRule:
    kind: DayRuleKind
    intervals: Tuple[Interval, ...] = field(default_factory=tuple)
    capacity_override: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return bool(self.intervals)

    @property
    def reason(self) -> Optional[str]:
        if self.kind == DayRuleKind.SPECIAL_CLOSED:
            return "Closed on this date"
        if self.kind == DayRuleKind.WEEKLY_CLOSED:
            return "Closed on this day of the week"
        if not self.intervals:
            return "No working hours left after breaks"
        return None


def subtract_breaks(start: int, end: int, breaks: List[Tuple[int, int]]) -> List[Interval]:
    """Remove break windows from [start, end); zero-length remnants are dropped"""
    intervals = []
    cursor = start
    for break_start, break_end in sorted(breaks):
        if break_start > cursor:
            intervals.append(Interval(cursor, min(break_start, end)))
        cursor = max(cursor, break_end)
        if cursor >= end:
            break
    if cursor < end:
        intervals.append(Interval(cursor, end))
    return [i for i in intervals if i.start < i.end]


def _resolve_special(special: SpecialDate, resource: Resource) -> DayRule:
    if not special.is_available:
        return DayRule(DayRuleKind.SPECIAL_CLOSED, capacity_override=special.capacity_override)

    if special.start_time is None and special.end_time is None:
        start = parse_hhmm(resource.settings.full_day_start)
        end = parse_hhmm(resource.settings.full_day_end)
    elif special.start_time is None or special.end_time is None:
        raise InvalidRuleError(
            "Special date has only one of start/end time",
            {"special_date_id": str(special.id)}
        )
    else:
        start, end = parse_hhmm(special.start_time), parse_hhmm(special.end_time)

    if start >= end:
        raise InvalidRuleError(
            "Special date start time must be before end time",
            {"special_date_id": str(special.id)}
        )
    return DayRule(
        DayRuleKind.SPECIAL_OVERRIDE,
        intervals=(Interval(start, end),),
        capacity_override=special.capacity_override,
    )


def _resolve_weekly(rule: AvailabilityRule) -> DayRule:
    start, end = parse_hhmm(rule.start_time), parse_hhmm(rule.end_time)
    if start >= end:
        raise InvalidRuleError("Weekly rule start time must be before end time", {"rule_id": str(rule.id)})

    breaks = []
    for brk in RuleStore.get_breaks(rule):
        break_start, break_end = parse_hhmm(brk.break_start), parse_hhmm(brk.break_end)
        if break_start >= break_end or break_start < start or break_end > end:
            raise InvalidRuleError(
                "Break is empty or falls outside its rule",
                {"rule_id": str(rule.id), "break_id": str(brk.id)}
            )
        breaks.append((break_start, break_end))

    return DayRule(
        DayRuleKind.WEEKLY_OPEN,
        intervals=tuple(subtract_breaks(start, end, breaks)),
        capacity_override=rule.capacity_override,
    )


class AvailabilityResolver:

    @staticmethod
    def resolve(db: Session, resource: Resource, target_date: date) -> DayRule:
        """DayRule for a resource on a date; intervals are ordered and disjoint"""
        special = RuleStore.get_special_date(db, resource, target_date)
        if special is not None:
            return _resolve_special(special, resource)

        rule = RuleStore.get_weekly_rule(db, resource, day_of_week(target_date))
        if rule is None or not rule.is_available:
            return DayRule(DayRuleKind.WEEKLY_CLOSED)

        return _resolve_weekly(rule)
