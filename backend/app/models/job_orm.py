"""
ORM Model for Claims & Repairs jobs.

A job is the work item other modules link their records to. It is owned by
the Claims & Repairs module; the aggregator only reads it.
SQLite-compatible: UUIDs stored as String, no FK constraints.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Float

from backend.app.core.database import Base


class ClaimRepairJobORM(Base):
    __tablename__ = "claims_repairs_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    job_type = Column(String(30), nullable=False, default="repair")  # audit | warranty_claim | repair
    status = Column(String(30), nullable=False, default="draft", index=True)
    priority = Column(String(20), nullable=False, default="medium")
    category = Column(String(100), nullable=True)

    # References into other modules (no FK constraint for SQLite compatibility)
    yacht_id = Column(String(36), nullable=True, index=True)
    equipment_id = Column(String(36), nullable=True, index=True)

    # Cost estimates
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))
