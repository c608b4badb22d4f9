from datetime import date, time
import uuid

import pytest

from app.core.exceptions import InvalidRuleError, NotFoundError
from app.models.availability import AvailabilityBreak, ResourceKind, SpecialDate
from app.services.availability.availability_resolver import (
    AvailabilityResolver, DayRuleKind, Interval, subtract_breaks
)
from app.services.resource.resource_service import BusinessResource, Resource, ResourceService

from conftest import MONDAY


def test_subtract_breaks_splits_and_drops_empty_remnants():
    assert subtract_breaks(540, 1020, [(720, 780)]) == [Interval(540, 720), Interval(780, 1020)]
    # Break touching the start leaves no zero-length remnant
    assert subtract_breaks(540, 1020, [(540, 600)]) == [Interval(600, 1020)]
    # Overlapping breaks merge
    assert subtract_breaks(540, 1020, [(600, 700), (650, 720)]) == [Interval(540, 600), Interval(720, 1020)]


def test_weekly_rule_net_of_breaks(db, make_business, add_rule):
    business = make_business()
    add_rule(business.id, 1, "09:00", "17:00", breaks=[("12:00", "13:00")], capacity_override=3)

    day = AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)

    assert day.kind == DayRuleKind.WEEKLY_OPEN
    assert day.intervals == (Interval(540, 720), Interval(780, 1020))
    assert day.capacity_override == 3


def test_missing_or_unavailable_weekly_rule_is_closed(db, make_business, add_rule):
    business = make_business()
    add_rule(business.id, 2, is_available=False)
    resource = BusinessResource(business)

    assert AvailabilityResolver.resolve(db, resource, MONDAY).kind == DayRuleKind.WEEKLY_CLOSED
    tuesday = AvailabilityResolver.resolve(db, resource, date(2025, 12, 16))
    assert tuesday.kind == DayRuleKind.WEEKLY_CLOSED
    assert tuesday.intervals == ()


def test_closed_special_date_wins_over_weekly_rule(db, make_business, add_rule):
    business = make_business()
    add_rule(business.id, 1)
    db.add(SpecialDate(resource_kind=ResourceKind.BUSINESS, resource_id=business.id, date=MONDAY,
                       is_available=False, reason="Holiday"))
    db.commit()

    day = AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)

    assert day.kind == DayRuleKind.SPECIAL_CLOSED
    assert not day.is_open


def test_open_special_date_ignores_weekly_breaks(db, make_business, add_rule):
    business = make_business()
    add_rule(business.id, 1, breaks=[("12:00", "13:00")])
    db.add(SpecialDate(resource_kind=ResourceKind.BUSINESS, resource_id=business.id, date=MONDAY,
                       is_available=True, start_time=time(10, 0), end_time=time(14, 0)))
    db.commit()

    day = AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)

    assert day.kind == DayRuleKind.SPECIAL_OVERRIDE
    assert day.intervals == (Interval(600, 840),)


def test_open_special_date_without_hours_uses_full_day_window(db, make_business):
    business = make_business(booking_settings={"fullDayStart": "08:00", "fullDayEnd": "20:00"})
    db.add(SpecialDate(resource_kind=ResourceKind.BUSINESS, resource_id=business.id, date=MONDAY,
                       is_available=True))
    db.commit()

    day = AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)

    assert day.intervals == (Interval(480, 1200),)


def test_break_outside_rule_is_invalid(db, make_business, add_rule):
    business = make_business()
    rule = add_rule(business.id, 1, "09:00", "12:00")
    db.add(AvailabilityBreak(rule_id=rule.id, break_start=time(11, 30), break_end=time(12, 30)))
    db.commit()

    with pytest.raises(InvalidRuleError):
        AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)


def test_inverted_rule_is_invalid(db, make_business, add_rule):
    business = make_business()
    add_rule(business.id, 1, "17:00", "09:00")

    with pytest.raises(InvalidRuleError):
        AvailabilityResolver.resolve(db, BusinessResource(business), MONDAY)


def test_unknown_resource(db):
    with pytest.raises(NotFoundError):
        ResourceService.get_resource(db, ResourceKind.BUSINESS, uuid.uuid4())


def test_employee_rules_are_separate_from_business(db, make_business, make_service, make_employee, add_rule):
    business = make_business()
    service = make_service(business)
    employee = make_employee(business, services=[service])
    add_rule(business.id, 1, "09:00", "17:00")
    add_rule(employee.id, 1, "13:00", "15:00", kind=ResourceKind.EMPLOYEE)

    resource = ResourceService.get_resource(db, ResourceKind.EMPLOYEE, employee.id)
    day = AvailabilityResolver.resolve(db, resource, MONDAY)

    assert day.intervals == (Interval(780, 900),)


def test_resource_must_be_a_business_or_employee(make_business):
    with pytest.raises(TypeError):
        Resource(make_business())
