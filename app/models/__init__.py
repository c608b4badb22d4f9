# app/models/__init__.py
from .base import Base
from .business import Business, CapacityMode
from .service import Service
from .employee import Employee, EmployeeService
from .availability import AvailabilityRule, AvailabilityBreak, SpecialDate, ResourceKind
from .appointment import Appointment, AppointmentStatus, TERMINAL_STATUSES
from .resource_lock import ResourceLock

__all__ = [
    "Base",
    "Business",
    "CapacityMode",
    "Service",
    "Employee",
    "EmployeeService",
    "AvailabilityRule",
    "AvailabilityBreak",
    "SpecialDate",
    "ResourceKind",
    "Appointment",
    "AppointmentStatus",
    "TERMINAL_STATUSES",
    "ResourceLock",
]
