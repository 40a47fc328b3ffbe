"""Inventory ORM Models: stock items and their per-job reservations."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Text, UniqueConstraint

from backend.app.core.database import Base


class InventoryItemORM(Base):
    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    part_number = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class InventoryReservationORM(Base):
    __tablename__ = "inventory_reservations"
    __table_args__ = (
        UniqueConstraint("job_id", "inventory_item_id", name="uq_reservation_job_item"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False, index=True)
    inventory_item_id = Column(String(36), nullable=False, index=True)
    quantity_reserved = Column(Integer, nullable=False, default=1)
    reservation_type = Column(String(20), nullable=False, default="hard")  # hard | soft | planned
    status = Column(String(20), nullable=False, default="active")  # active | consumed | cancelled | expired
    valid_until = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))
