# ===== app/models/appointment.py =====
from sqlalchemy import Column, String, Text, Boolean, Date, Time, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from .base import Base
import uuid
import enum


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_business_date", "business_id", "date"),
        Index("ix_appointments_employee_date", "employee_id", "date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)

    # Client info
    client_first_name = Column(String, nullable=False)
    client_last_name = Column(String, nullable=False)
    client_email = Column(String, nullable=False)
    client_phone = Column(String, nullable=False)
    client_notes = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Slot, local to the business time zone; end_time = start_time + service.duration
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Status tracking
    status = Column(SQLEnum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False, index=True)
    booking_source = Column(String, default="web")  # web, manual
    is_email_confirmed = Column(Boolean, default=False, nullable=False)
    email_confirmation_token = Column(String, nullable=True, index=True)  # sha256 of the emailed token
    completed_automatically = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Appointment(id={self.id}, date={self.date}, start={self.start_time}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "employee_id": str(self.employee_id) if self.employee_id else None,
            "service_id": str(self.service_id),
            "client_first_name": self.client_first_name,
            "client_last_name": self.client_last_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "client_notes": self.client_notes,
            "notes": self.notes,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "status": self.status.value,
            "booking_source": self.booking_source,
            "is_email_confirmed": self.is_email_confirmed,
            "completed_automatically": self.completed_automatically,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
