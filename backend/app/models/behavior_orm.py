"""
Behavior Analytics ORM Models.

user_actions is append-only. behavior_patterns is recomputed and upserted on
its natural key. proactive_suggestions are created by analysis and only move
to dismissed / acted_upon through explicit user requests.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, Integer, Float, DateTime, JSON, Index, UniqueConstraint

from backend.app.core.database import Base


class UserActionORM(Base):
    __tablename__ = "user_actions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    session_id = Column(String(100), nullable=False)
    module = Column(String(50), nullable=False, index=True)
    action_type = Column(String(100), nullable=False)
    context = Column(JSON, nullable=False, default=dict)
    page_url = Column(String(500), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)


class BehaviorPatternORM(Base):
    __tablename__ = "behavior_patterns"
    __table_args__ = (
        UniqueConstraint("user_id", "module", "pattern_type", name="uq_behavior_pattern_key"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    module = Column(String(50), nullable=False)
    pattern_type = Column(String(30), nullable=False)  # frequent_action | workflow_sequence | time_based | context_switch
    pattern_data = Column(JSON, nullable=False, default=dict)
    confidence = Column(Float, nullable=False, default=0.0)
    frequency = Column(Integer, nullable=False, default=0)
    last_occurrence = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))


class ProactiveSuggestionORM(Base):
    __tablename__ = "proactive_suggestions"
    __table_args__ = (
        Index("ix_proactive_suggestions_live", "user_id", "module", "suggestion_type", "dismissed", "acted_upon"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    module = Column(String(50), nullable=False)
    suggestion_type = Column(String(20), nullable=False)  # action | workflow | optimization | alert
    priority = Column(String(20), nullable=False, default="medium")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    suggested_action = Column(JSON, nullable=False, default=dict)
    trigger_pattern = Column(String(36), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    dismissed = Column(Boolean, nullable=False, default=False)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)
    acted_upon = Column(Boolean, nullable=False, default=False)
    acted_upon_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
