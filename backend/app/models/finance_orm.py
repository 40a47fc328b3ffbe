"""
Finance Transaction ORM Model.

Rows written by the integration sync carry an integration_key so a repeated
sync updates its own row. Manually created transactions leave it NULL, which
the unique constraint treats as distinct.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Float, DateTime, Text, JSON, UniqueConstraint

from backend.app.core.database import Base


class FinanceTransactionORM(Base):
    __tablename__ = "finance_transactions"
    __table_args__ = (
        UniqueConstraint("reference_id", "integration_key", name="uq_finance_integration_key"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference_id = Column(String(36), nullable=False, index=True)  # job id
    source_module = Column(String(50), nullable=False)
    transaction_type = Column(String(20), nullable=False)  # expense | invoice | payment | refund
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(Text, nullable=True)
    supplier_contractor_id = Column(String(36), nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | paid | cancelled
    integration_key = Column(String(100), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))
