# app/services/availability/rule_store.py
"""
Persistence of the three rule layers for a resource: weekly rules, breaks
nested in a weekly rule, and special-date overrides.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.availability import AvailabilityBreak, AvailabilityRule, SpecialDate
from app.schemas.availability import (
    BreakCreate, SpecialDateUpsert, WeeklyRuleCreate, WeeklyRuleUpdate
)
from app.services.resource.resource_service import BusinessResource, EmployeeResource, Resource
from app.utils.time_utils import minutes_to_time, parse_hhmm

logger = logging.getLogger(__name__)


def _parse_window(start: str, end: str, label: str):
    start_min, end_min = parse_hhmm(start), parse_hhmm(end)
    if start_min >= end_min:
        raise ValidationError(f"{label} start time must be before end time", {"start": start, "end": end})
    return start_min, end_min


def _check_day_of_week(day: int):
    if day is None or not 0 <= day <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")


class RuleStore:
    """CRUD over weekly rules, breaks and special dates"""

    # ------------------------------------------------------------------
    # Weekly rules
    # ------------------------------------------------------------------

    @staticmethod
    def list_weekly_rules(db: Session, resource: Resource) -> List[AvailabilityRule]:
        return db.query(AvailabilityRule).filter(
            AvailabilityRule.resource_kind == resource.kind,
            AvailabilityRule.resource_id == resource.id
        ).order_by(AvailabilityRule.day_of_week.asc(), AvailabilityRule.start_time.asc()).all()

    @staticmethod
    def get_rule(db: Session, resource: Resource, rule_id: UUID) -> AvailabilityRule:
        rule = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.resource_kind == resource.kind,
            AvailabilityRule.resource_id == resource.id
        ).first()
        if not rule:
            raise NotFoundError("Availability rule not found", {"rule_id": str(rule_id)})
        return rule

    @staticmethod
    def create_weekly_rule(db: Session, resource: Resource, data: WeeklyRuleCreate) -> AvailabilityRule:
        _check_day_of_week(data.day_of_week)
        start_min, end_min = _parse_window(data.start_time, data.end_time, "Rule")

        rule = AvailabilityRule(
            resource_kind=resource.kind,
            resource_id=resource.id,
            day_of_week=data.day_of_week,
            start_time=minutes_to_time(start_min),
            end_time=minutes_to_time(end_min),
            is_available=data.is_available,
            capacity_override=data.capacity_override,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)

        logger.info(f"Created weekly rule {rule.id} for {resource.kind.value} {resource.id} day {rule.day_of_week}")
        return rule

    @staticmethod
    def update_weekly_rule(
            db: Session,
            resource: Resource,
            rule_id: UUID,
            data: WeeklyRuleUpdate
    ) -> AvailabilityRule:
        """Partial update; rejected when it would leave a break outside the rule"""
        rule = RuleStore.get_rule(db, resource, rule_id)
        changes = data.model_dump(exclude_unset=True)

        if "day_of_week" in changes:
            _check_day_of_week(changes["day_of_week"])

        start = changes.get("start_time") or rule.start_time.strftime("%H:%M")
        end = changes.get("end_time") or rule.end_time.strftime("%H:%M")
        start_min, end_min = _parse_window(start, end, "Rule")

        for brk in rule.breaks:
            if parse_hhmm(brk.break_start) < start_min or parse_hhmm(brk.break_end) > end_min:
                raise ValidationError(
                    "Rule update would leave a break outside the working hours",
                    {"break_id": str(brk.id)}
                )

        rule.start_time = minutes_to_time(start_min)
        rule.end_time = minutes_to_time(end_min)
        for field in ("day_of_week", "is_available", "capacity_override"):
            if field in changes:
                setattr(rule, field, changes[field])

        db.commit()
        db.refresh(rule)
        return rule

    @staticmethod
    def delete_weekly_rule(db: Session, resource: Resource, rule_id: UUID) -> None:
        rule = RuleStore.get_rule(db, resource, rule_id)
        db.delete(rule)  # breaks go with it
        db.commit()
        logger.info(f"Deleted weekly rule {rule_id}")

    # ------------------------------------------------------------------
    # Breaks
    # ------------------------------------------------------------------

    @staticmethod
    def list_breaks(db: Session, resource: Resource, rule_id: UUID) -> List[AvailabilityBreak]:
        return list(RuleStore.get_rule(db, resource, rule_id).breaks)

    @staticmethod
    def _validate_break(rule: AvailabilityRule, data: BreakCreate):
        start_min, end_min = _parse_window(data.break_start, data.break_end, "Break")
        if start_min < parse_hhmm(rule.start_time) or end_min > parse_hhmm(rule.end_time):
            raise ValidationError(
                "Break must fall within the rule's working hours",
                {
                    "rule_start": rule.start_time.strftime("%H:%M"),
                    "rule_end": rule.end_time.strftime("%H:%M"),
                }
            )
        return start_min, end_min

    @staticmethod
    def create_break(db: Session, resource: Resource, rule_id: UUID, data: BreakCreate) -> AvailabilityBreak:
        rule = RuleStore.get_rule(db, resource, rule_id)
        start_min, end_min = RuleStore._validate_break(rule, data)

        brk = AvailabilityBreak(
            rule_id=rule.id,
            break_start=minutes_to_time(start_min),
            break_end=minutes_to_time(end_min),
        )
        db.add(brk)
        db.commit()
        db.refresh(brk)
        return brk

    @staticmethod
    def _get_break(db: Session, resource: Resource, rule_id: UUID, break_id: UUID) -> AvailabilityBreak:
        rule = RuleStore.get_rule(db, resource, rule_id)
        brk = db.query(AvailabilityBreak).filter(
            AvailabilityBreak.id == break_id,
            AvailabilityBreak.rule_id == rule.id
        ).first()
        if not brk:
            raise NotFoundError("Break not found", {"break_id": str(break_id)})
        return brk

    @staticmethod
    def update_break(
            db: Session,
            resource: Resource,
            rule_id: UUID,
            break_id: UUID,
            data: BreakCreate
    ) -> AvailabilityBreak:
        brk = RuleStore._get_break(db, resource, rule_id, break_id)
        start_min, end_min = RuleStore._validate_break(brk.rule, data)
        brk.break_start = minutes_to_time(start_min)
        brk.break_end = minutes_to_time(end_min)
        db.commit()
        db.refresh(brk)
        return brk

    @staticmethod
    def delete_break(db: Session, resource: Resource, rule_id: UUID, break_id: UUID) -> None:
        brk = RuleStore._get_break(db, resource, rule_id, break_id)
        db.delete(brk)
        db.commit()

    # ------------------------------------------------------------------
    # Special dates
    # ------------------------------------------------------------------

    @staticmethod
    def list_special_dates(
            db: Session,
            resource: Resource,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None
    ) -> List[SpecialDate]:
        query = db.query(SpecialDate).filter(
            SpecialDate.resource_kind == resource.kind,
            SpecialDate.resource_id == resource.id
        )
        if start_date:
            query = query.filter(SpecialDate.date >= start_date)
        if end_date:
            query = query.filter(SpecialDate.date <= end_date)
        return query.order_by(SpecialDate.date.asc()).all()

    @staticmethod
    def upsert_special_date(db: Session, resource: Resource, data: SpecialDateUpsert) -> SpecialDate:
        """Create or replace the override for one date"""
        start_time = end_time = None
        if data.is_available and (data.start_time or data.end_time):
            if not (data.start_time and data.end_time):
                raise ValidationError("Special hours need both a start and an end time")
            start_min, end_min = _parse_window(data.start_time, data.end_time, "Special date")
            start_time, end_time = minutes_to_time(start_min), minutes_to_time(end_min)

        special = RuleStore.get_special_date(db, resource, data.date)
        if special is None:
            special = SpecialDate(
                resource_kind=resource.kind,
                resource_id=resource.id,
                date=data.date,
            )
            db.add(special)

        special.is_available = data.is_available
        special.start_time = start_time
        special.end_time = end_time
        special.capacity_override = data.capacity_override
        special.reason = data.reason

        db.commit()
        db.refresh(special)

        logger.info(
            f"Special date {special.date} for {resource.kind.value} {resource.id}: "
            f"{'open' if special.is_available else 'closed'}"
        )
        return special

    @staticmethod
    def delete_special_date(db: Session, resource: Resource, special_date_id: UUID) -> None:
        special = db.query(SpecialDate).filter(
            SpecialDate.id == special_date_id,
            SpecialDate.resource_kind == resource.kind,
            SpecialDate.resource_id == resource.id
        ).first()
        if not special:
            raise NotFoundError("Special date not found", {"special_date_id": str(special_date_id)})
        db.delete(special)
        db.commit()

    # ------------------------------------------------------------------
    # Employee defaults
    # ------------------------------------------------------------------

    @staticmethod
    def copy_business_rules_to_employee(db: Session, employee: EmployeeResource) -> List[AvailabilityRule]:
        """Replace the employee's weekly rules and breaks with copies of the business's"""
        business = BusinessResource(employee.business)
        source_rules = RuleStore.list_weekly_rules(db, business)

        try:
            for rule in RuleStore.list_weekly_rules(db, employee):
                db.delete(rule)
            db.flush()

            for source in source_rules:
                db.add(AvailabilityRule(
                    resource_kind=employee.kind,
                    resource_id=employee.id,
                    day_of_week=source.day_of_week,
                    start_time=source.start_time,
                    end_time=source.end_time,
                    is_available=source.is_available,
                    capacity_override=source.capacity_override,
                    breaks=[
                        AvailabilityBreak(break_start=b.break_start, break_end=b.break_end)
                        for b in source.breaks
                    ],
                ))
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Copied {len(source_rules)} business rules to employee {employee.id}")
        return RuleStore.list_weekly_rules(db, employee)

    # ------------------------------------------------------------------
    # Resolver reads
    # ------------------------------------------------------------------

    @staticmethod
    def get_special_date(db: Session, resource: Resource, target_date: date) -> Optional[SpecialDate]:
        return db.query(SpecialDate).filter(
            SpecialDate.resource_kind == resource.kind,
            SpecialDate.resource_id == resource.id,
            SpecialDate.date == target_date
        ).first()

    @staticmethod
    def get_weekly_rule(db: Session, resource: Resource, day: int) -> Optional[AvailabilityRule]:
        """The effective rule for a weekday; the most recently updated one wins"""
        rules = db.query(AvailabilityRule).filter(
            AvailabilityRule.resource_kind == resource.kind,
            AvailabilityRule.resource_id == resource.id,
            AvailabilityRule.day_of_week == day
        ).all()
        if not rules:
            return None

        if len(rules) > 1:
            logger.warning(
                f"{len(rules)} weekly rules for {resource.kind.value} {resource.id} on day {day}, "
                f"using the most recently updated"
            )
        return max(rules, key=lambda r: (r.updated_at, r.created_at, str(r.id)))

    @staticmethod
    def get_breaks(rule: AvailabilityRule) -> List[AvailabilityBreak]:
        return sorted(rule.breaks, key=lambda b: b.break_start)
