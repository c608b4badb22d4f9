# app/services/availability/availability_service.py
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import PolicyRejectedError, ValidationError
from app.models.availability import ResourceKind
from app.models.service import Service
from app.services.availability.availability_resolver import AvailabilityResolver, DayRule
from app.services.availability.slot_generator import check_booking_window, generate_slots
from app.services.resource.resource_service import Resource, ResourceService
from app.utils.time_utils import local_now

logger = logging.getLogger(__name__)


def slot_interval_for(resource: Resource, service: Service) -> int:
    return resource.business.default_slot_interval or service.duration


class AvailabilityService:
    """Availability and slot queries for businesses and employees"""

    @staticmethod
    def resolve_availability(db: Session, kind: ResourceKind, resource_id: UUID, target_date: date) -> Dict:
        resource = ResourceService.get_resource(db, kind, resource_id)
        day_rule = AvailabilityResolver.resolve(db, resource, target_date)
        return {
            "resource_kind": resource.kind.value,
            "resource_id": str(resource.id),
            "date": target_date.isoformat(),
            "kind": day_rule.kind.value,
            "intervals": [i.to_dict() for i in day_rule.intervals],
            "capacity_override": day_rule.capacity_override,
        }

    @staticmethod
    def slots_for_resource(
            db: Session,
            resource: Resource,
            service: Service,
            target_date: date,
            now: Optional[datetime] = None,
            day_rule: Optional[DayRule] = None
    ) -> Dict:
        """Slots for an already-resolved resource; raises PolicyRejectedError outside the window"""
        booking_settings = resource.settings
        now_local = local_now(resource.timezone, now)
        day_rule = day_rule or AvailabilityResolver.resolve(db, resource, target_date)
        capacity = resource.capacity_limit(day_rule.capacity_override, service)

        result = {
            "date": target_date.isoformat(),
            "available": False,
            "reason": day_rule.reason,
            "service_id": str(service.id),
            "duration": service.duration,
            "capacity_mode": resource.capacity_mode.value,
            "capacity": capacity,
            "slots": [],
        }

        check_booking_window(
            target_date,
            now_local,
            booking_settings.min_booking_notice,
            booking_settings.max_advance_booking,
        )
        if not day_rule.is_open:
            return result

        if resource.daily_limit and resource.count_for_day(db, target_date) >= resource.daily_limit:
            result["reason"] = "Daily appointment limit reached"
            return result

        slots = generate_slots(
            day_rule.intervals,
            service.duration,
            slot_interval_for(resource, service),
            busy=resource.busy_intervals(db, target_date),
            buffer_time=booking_settings.buffer_time,
            capacity=capacity,
            target_date=target_date,
            now_local=now_local,
            min_notice_hours=booking_settings.min_booking_notice,
            max_advance_days=booking_settings.max_advance_booking,
        )

        result["slots"] = [s.to_dict() for s in slots]
        result["available"] = bool(slots)
        result["reason"] = None if slots else "Fully booked"
        return result

    @staticmethod
    def get_available_slots(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            target_date: date,
            employee_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> Dict:
        resource, service = ResourceService.resource_for_booking(db, business_id, service_id, employee_id)
        result = AvailabilityService.slots_for_resource(db, resource, service, target_date, now)
        logger.info(
            f"Generated {len(result['slots'])} slots for {resource.kind.value} {resource.id} "
            f"on {target_date}"
        )
        return result

    @staticmethod
    def get_slots_for_range(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            start_date: date,
            end_date: date,
            employee_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Per-date slot results for an inclusive date range. Dates outside the
        booking window come back with a reason instead of failing the range.
        """
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        days = (end_date - start_date).days + 1
        if days > settings.SLOT_RANGE_MAX_DAYS:
            raise ValidationError(f"Date range cannot exceed {settings.SLOT_RANGE_MAX_DAYS} days")

        resource, service = ResourceService.resource_for_booking(db, business_id, service_id, employee_id)

        results = []
        for offset in range(days):
            target_date = start_date + timedelta(days=offset)
            try:
                results.append(AvailabilityService.slots_for_resource(db, resource, service, target_date, now))
            except PolicyRejectedError as e:
                results.append({
                    "date": target_date.isoformat(),
                    "available": False,
                    "reason": e.message,
                    "service_id": str(service.id),
                    "duration": service.duration,
                    "capacity_mode": resource.capacity_mode.value,
                    "capacity": None,
                    "slots": [],
                })
        return results
