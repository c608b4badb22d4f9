# app/services/resource/resource_service.py
"""
Bookable resources.

A business and an employee share the same rule and slot logic; they differ
in which rules they own, which appointments occupy them and how much
concurrent capacity they offer. Resource captures exactly that.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.appointment import Appointment, AppointmentStatus
from app.models.availability import ResourceKind
from app.models.business import Business, CapacityMode
from app.models.employee import Employee, EmployeeService
from app.models.service import Service
from app.schemas.business import BookingSettings
from app.utils.time_utils import parse_hhmm

logger = logging.getLogger(__name__)
settings = get_settings()


class Resource(ABC):
    """Rule lookup key, occupancy filter and capacity policy for one bookable entity"""

    kind: ResourceKind

    def __init__(self, business: Business):
        self.business = business
        self.settings = BookingSettings.from_json(business.booking_settings)

    @property
    @abstractmethod
    def id(self) -> UUID:
        ...

    @property
    def business_id(self) -> UUID:
        return self.business.id

    @property
    def employee_id(self) -> Optional[UUID]:
        return None

    @property
    def timezone(self) -> str:
        return self.business.timezone or settings.DEFAULT_TIMEZONE

    @property
    def capacity_mode(self) -> CapacityMode:
        return self.business.capacity_mode or CapacityMode.SINGLE

    @property
    def daily_limit(self) -> int:
        """Max active appointments per day on this resource, 0 = unlimited"""
        return 0

    @property
    def auto_confirm(self) -> bool:
        if self.settings.auto_confirm is not None:
            return self.settings.auto_confirm
        return bool(self.business.auto_confirm)

    @property
    def requires_email_confirmation(self) -> bool:
        if self.settings.require_email_confirmation is not None:
            return self.settings.require_email_confirmation
        return bool(self.business.require_email_confirmation)

    @abstractmethod
    def occupancy_criteria(self) -> tuple:
        """SQLAlchemy filters selecting the appointments that occupy this resource"""

    def capacity_limit(self, capacity_override: Optional[int], service: Optional[Service] = None) -> int:
        """Concurrent appointments allowed per instant; 0 means unlimited"""
        if self.capacity_mode == CapacityMode.SINGLE:
            return 1
        for candidate in (
            capacity_override,
            service.custom_capacity if service is not None else None,
            self.business.default_capacity,
        ):
            if candidate is not None:
                return candidate
        return 1

    def busy_intervals(
            self,
            db: Session,
            target_date: date,
            exclude_appointment_id: Optional[UUID] = None
    ) -> List[Tuple[int, int]]:
        """
        Committed (non-cancelled) appointments on this resource for a date,
        as (start, end) minutes. Reads columns, never cached ORM state.
        """
        query = db.query(Appointment.start_time, Appointment.end_time).filter(
            *self.occupancy_criteria(),
            Appointment.date == target_date,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return sorted(
            (parse_hhmm(start), parse_hhmm(end)) for start, end in query.all()
        )

    def count_for_day(
            self,
            db: Session,
            target_date: date,
            exclude_appointment_id: Optional[UUID] = None
    ) -> int:
        query = db.query(func.count(Appointment.id)).filter(
            *self.occupancy_criteria(),
            Appointment.date == target_date,
            Appointment.status.notin_([AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW]),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.scalar() or 0

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id})>"


class BusinessResource(Resource):
    kind = ResourceKind.BUSINESS

    @property
    def id(self) -> UUID:
        return self.business.id

    @property
    def daily_limit(self) -> int:
        return self.settings.max_appointments_per_day

    def occupancy_criteria(self) -> tuple:
        # Employee bookings occupy the employee, not the business-wide calendar
        return (
            Appointment.business_id == self.business.id,
            Appointment.employee_id.is_(None),
        )


class EmployeeResource(Resource):
    kind = ResourceKind.EMPLOYEE

    def __init__(self, business: Business, employee: Employee):
        super().__init__(business)
        self.employee = employee

    @property
    def id(self) -> UUID:
        return self.employee.id

    @property
    def employee_id(self) -> Optional[UUID]:
        return self.employee.id

    @property
    def capacity_mode(self) -> CapacityMode:
        # One person serves one client at a time
        return CapacityMode.SINGLE

    @property
    def daily_limit(self) -> int:
        return self.employee.max_daily_appointments or 0

    def occupancy_criteria(self) -> tuple:
        return (Appointment.employee_id == self.employee.id,)


class ResourceService:
    """Read-only lookups of businesses, employees and services"""

    @staticmethod
    def get_business(db: Session, business_id: UUID) -> Business:
        business = db.query(Business).filter(
            Business.id == business_id,
            Business.is_active == True
        ).first()
        if not business:
            raise NotFoundError("Business not found", {"business_id": str(business_id)})
        return business

    @staticmethod
    def get_service(db: Session, business_id: UUID, service_id: UUID, active_only: bool = True) -> Service:
        query = db.query(Service).filter(
            Service.id == service_id,
            Service.business_id == business_id
        )
        if active_only:
            query = query.filter(Service.is_active == True)
        service = query.first()
        if not service:
            raise NotFoundError("Service not found or inactive", {"service_id": str(service_id)})
        if not service.duration or service.duration <= 0:
            raise ValidationError("Service duration must be a positive number of minutes")
        return service

    @staticmethod
    def get_employee(db: Session, business_id: UUID, employee_id: UUID) -> Employee:
        employee = db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.business_id == business_id,
            Employee.is_active == True
        ).first()
        if not employee:
            raise NotFoundError("Employee not found or inactive", {"employee_id": str(employee_id)})
        return employee

    @staticmethod
    def get_resource(db: Session, kind: ResourceKind, resource_id: UUID) -> Resource:
        """Look up a resource by kind and id"""
        if kind == ResourceKind.BUSINESS:
            return BusinessResource(ResourceService.get_business(db, resource_id))

        employee = db.query(Employee).filter(
            Employee.id == resource_id,
            Employee.is_active == True
        ).first()
        if not employee:
            raise NotFoundError("Employee not found or inactive", {"employee_id": str(resource_id)})
        business = ResourceService.get_business(db, employee.business_id)
        return EmployeeResource(business, employee)

    @staticmethod
    def resource_for_booking(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            employee_id: Optional[UUID] = None
    ) -> Tuple[Resource, Service]:
        """
        Resolve the resource a booking lands on, plus its service.
        When an employee is named, they must be assigned to the service.
        """
        business = ResourceService.get_business(db, business_id)
        service = ResourceService.get_service(db, business_id, service_id)

        if employee_id is None:
            return BusinessResource(business), service

        employee = ResourceService.get_employee(db, business_id, employee_id)
        assigned = db.query(EmployeeService).filter(
            EmployeeService.employee_id == employee.id,
            EmployeeService.service_id == service.id
        ).first()
        if not assigned:
            raise ValidationError(
                "Selected employee is not assigned to this service",
                {"employee_id": str(employee_id), "service_id": str(service_id)}
            )
        return EmployeeResource(business, employee), service

    @staticmethod
    def list_assignable_employees(db: Session, business_id: UUID, service_id: UUID) -> List[Employee]:
        """Active employees that may be booked for a service"""
        ResourceService.get_service(db, business_id, service_id)
        return db.query(Employee).join(
            EmployeeService, EmployeeService.employee_id == Employee.id
        ).filter(
            Employee.business_id == business_id,
            Employee.is_active == True,
            EmployeeService.service_id == service_id
        ).order_by(Employee.name.asc()).all()

    @staticmethod
    def resource_for_appointment(db: Session, appointment: Appointment) -> Tuple[Resource, Service]:
        """The resource an existing appointment occupies, inactive services included"""
        business = db.query(Business).filter(Business.id == appointment.business_id).first()
        if not business:
            raise NotFoundError("Business not found", {"business_id": str(appointment.business_id)})
        service = ResourceService.get_service(db, business.id, appointment.service_id, active_only=False)

        if appointment.employee_id is None:
            return BusinessResource(business), service

        employee = db.query(Employee).filter(Employee.id == appointment.employee_id).first()
        if not employee:
            raise NotFoundError("Employee not found", {"employee_id": str(appointment.employee_id)})
        return EmployeeResource(business, employee), service
