# app/models/resource_lock.py
"""
One row per bookable resource. Booking units of work bump `version` as their
first write, so concurrent writers on the same resource serialize on the row
(PostgreSQL row lock, SQLite database write lock).
"""
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base


class ResourceLock(Base):
    __tablename__ = "resource_locks"

    resource_id = Column(UUID(as_uuid=True), primary_key=True)
    version = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ResourceLock(resource_id={self.resource_id}, version={self.version})>"
