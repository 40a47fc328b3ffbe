"""Crew ORM Models."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint

from backend.app.core.database import Base


class CrewMemberORM(Base):
    __tablename__ = "crew_members"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    role = Column(String(100), nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    # [{"name": "STCW Basic Safety", "expires_at": "2027-01-01T00:00:00+00:00"}]
    certifications = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class CrewAssignmentORM(Base):
    __tablename__ = "crew_assignments"
    __table_args__ = (
        UniqueConstraint("job_id", "crew_member_id", name="uq_crew_assignment"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False, index=True)
    crew_member_id = Column(String(36), nullable=False, index=True)
    role = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))
