"""
Append-only log of cross-module events raised during integration sync
(overdue maintenance, low stock, approval gates, sync completion).
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON

from backend.app.core.database import Base


class IntegrationEventORM(Base):
    __tablename__ = "integration_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String(100), nullable=False, index=True)
    module = Column(String(50), nullable=False)
    source_record_id = Column(String(36), nullable=True, index=True)
    target_modules = Column(JSON, nullable=False, default=list)
    payload = Column(JSON, nullable=False, default=dict)
    severity = Column(String(20), nullable=False, default="info")  # info | warn | error | critical
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
