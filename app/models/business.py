# app/models/business.py
"""
Business Model - the top-level bookable resource.
Booking policy knobs live in booking_settings (see app.schemas.business.BookingSettings).
"""
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Integer, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum
from app.models.base import Base


class CapacityMode(str, enum.Enum):
    """How many concurrent appointments one resource accepts per interval."""
    SINGLE = "SINGLE"
    MULTIPLE = "MULTIPLE"


class Business(Base):
    __tablename__ = "businesses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String, nullable=True)

    # Capacity configuration
    capacity_mode = Column(SQLEnum(CapacityMode), default=CapacityMode.SINGLE, nullable=False)
    default_capacity = Column(Integer, default=1)  # 0 = unlimited in MULTIPLE mode
    default_slot_interval = Column(Integer, nullable=True)  # minutes, NULL = step by service duration

    # Confirmation flow
    auto_confirm = Column(Boolean, default=True, nullable=False)
    require_email_confirmation = Column(Boolean, default=False, nullable=False)

    # System configuration
    timezone = Column(String(50), default="Europe/Skopje", nullable=False)
    booking_settings = Column(JSON, default=dict)

    services = relationship("Service", back_populates="business")
    employees = relationship("Employee", back_populates="business")

    # Technical fields
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "name": self.name,
            "capacity_mode": self.capacity_mode.value if self.capacity_mode else None,
            "default_capacity": self.default_capacity,
            "default_slot_interval": self.default_slot_interval,
            "auto_confirm": self.auto_confirm,
            "require_email_confirmation": self.require_email_confirmation,
            "timezone": self.timezone,
            "booking_settings": self.booking_settings or {},
            "is_active": self.is_active,
        }
