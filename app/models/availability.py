# ===== app/models/availability.py =====
"""
Layered time rules for a bookable resource (business or employee):
weekly rules, break windows nested in a weekly rule, and special-date overrides.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Boolean, Time, Date, DateTime, ForeignKey,
    UniqueConstraint, Index, Enum as SQLEnum
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
import enum
from app.models.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ResourceKind(str, enum.Enum):
    BUSINESS = "business"
    EMPLOYEE = "employee"


class AvailabilityRule(Base):
    """Weekly recurring working hours for one weekday"""
    __tablename__ = "availability_rules"
    __table_args__ = (
        Index("ix_availability_rules_resource_day", "resource_kind", "resource_id", "day_of_week"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    resource_kind = Column(SQLEnum(ResourceKind), nullable=False)
    resource_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    capacity_override = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    breaks = relationship(
        "AvailabilityBreak",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="AvailabilityBreak.break_start",
    )

    def to_dict(self, include_breaks=True):
        data = {
            "id": str(self.id),
            "resource_kind": self.resource_kind.value,
            "resource_id": str(self.resource_id),
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "is_available": self.is_available,
            "capacity_override": self.capacity_override,
        }
        if include_breaks:
            data["breaks"] = [b.to_dict() for b in self.breaks]
        return data


class AvailabilityBreak(Base):
    """Break window strictly inside its parent weekly rule"""
    __tablename__ = "availability_breaks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("availability_rules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    break_start = Column(Time, nullable=False)
    break_end = Column(Time, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    rule = relationship("AvailabilityRule", back_populates="breaks")

    def to_dict(self):
        return {
            "id": str(self.id),
            "rule_id": str(self.rule_id),
            "break_start": self.break_start.strftime("%H:%M"),
            "break_end": self.break_end.strftime("%H:%M"),
        }


class SpecialDate(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "special_dates"
    __table_args__ = (
        UniqueConstraint("resource_kind", "resource_id", "date", name="uq_special_dates_resource_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    resource_kind = Column(SQLEnum(ResourceKind), nullable=False)
    resource_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    date = Column(Date, nullable=False)
    is_available = Column(Boolean, default=False, nullable=False)  # False = day off
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    capacity_override = Column(Integer, nullable=True)
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "resource_kind": self.resource_kind.value,
            "resource_id": str(self.resource_id),
            "date": self.date.isoformat(),
            "is_available": self.is_available,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "capacity_override": self.capacity_override,
            "reason": self.reason,
        }
