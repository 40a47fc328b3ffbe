"""
Equipment ORM Models.

Equipment records are shared across jobs; a job references them through
JobEquipmentLinkORM. Maintenance schedules are created per (job, equipment).
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, UniqueConstraint

from backend.app.core.database import Base


class EquipmentORM(Base):
    __tablename__ = "equipment"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    model_number = Column(String(100), nullable=True)
    serial_number = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    yacht_id = Column(String(36), nullable=True, index=True)
    next_maintenance_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class JobEquipmentLinkORM(Base):
    __tablename__ = "job_equipment_links"
    __table_args__ = (
        UniqueConstraint("job_id", "equipment_id", name="uq_job_equipment_link"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False, index=True)
    equipment_id = Column(String(36), nullable=False, index=True)
    relationship_type = Column(String(30), nullable=False, default="failure")  # failure | maintenance | warranty
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))


class MaintenanceScheduleORM(Base):
    __tablename__ = "maintenance_schedules"
    __table_args__ = (
        UniqueConstraint("job_id", "equipment_id", name="uq_maintenance_job_equipment"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False, index=True)
    equipment_id = Column(String(36), nullable=False, index=True)
    next_due_date = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))
