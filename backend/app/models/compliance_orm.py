"""Compliance ORM Models: regulatory requirements and per-job checks."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON, UniqueConstraint

from backend.app.core.database import Base


class ComplianceRequirementORM(Base):
    __tablename__ = "compliance_requirements"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    regulation_code = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=False)  # safety | environmental | technical | operational
    severity = Column(String(20), nullable=False)  # critical | high | medium | low
    applicable_modules = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class JobComplianceCheckORM(Base):
    __tablename__ = "job_compliance_checks"
    __table_args__ = (
        UniqueConstraint("job_id", "requirement_id", name="uq_job_compliance_check"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False, index=True)
    requirement_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | compliant | non_compliant
    due_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
