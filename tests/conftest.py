"""
Pytest configuration and fixtures.
"""

import os

# Settings are read at import time; SECRET_KEY has no default
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("BEHAVIOR_REANALYSIS_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.main import app
from backend.app.core.config import get_settings
from backend.app.core.database import Base, build_engine
from backend.app.core.security import Role, create_access_token
from backend.app.api.behavior import get_behavior_analytics
from backend.app.api.integration import get_integration_aggregator
from backend.app.models import (
    ClaimRepairJobORM,
    ComplianceRequirementORM,
    CrewAssignmentORM,
    CrewMemberORM,
    EquipmentORM,
    FinanceTransactionORM,
    InventoryItemORM,
    InventoryReservationORM,
    JobComplianceCheckORM,
    JobEquipmentLinkORM,
    MaintenanceScheduleORM,
    UserActionORM,
)
from backend.app.services.behavior_analytics import BehaviorAnalyticsService
from backend.app.services.integration_aggregator import IntegrationAggregator


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """
    A fresh SQLite file database per test.

    A file (not :memory:) so the aggregator's concurrent relation lookups each
    get their own connection.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'yachtops_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Returns the session factory for testing."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def aggregator(session_factory, settings) -> IntegrationAggregator:
    return IntegrationAggregator(session_factory, settings)


@pytest.fixture
async def behavior_service(session_factory, settings) -> AsyncGenerator[BehaviorAnalyticsService, None]:
    service = BehaviorAnalyticsService(session_factory, settings)
    yield service
    await service.shutdown()


@pytest.fixture(scope="function")
async def client(aggregator, behavior_service) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with the service providers pointed at the test database.
    """
    app.dependency_overrides[get_integration_aggregator] = lambda: aggregator
    app.dependency_overrides[get_behavior_analytics] = lambda: behavior_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers for a user with the given role."""
    def _headers(role: str = Role.ADMIN, sub: str = "test-user"):
        token = create_access_token({"sub": sub, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


class Seeder:
    """Inserts module records directly, one committed session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, row):
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def job(self, **kwargs) -> ClaimRepairJobORM:
        kwargs.setdefault("name", "Port generator overhaul")
        kwargs.setdefault("job_type", "repair")
        kwargs.setdefault("status", "in_progress")
        kwargs.setdefault("priority", "high")
        return await self.add(ClaimRepairJobORM(**kwargs))

    async def equipment(self, **kwargs) -> EquipmentORM:
        kwargs.setdefault("name", "Port Generator")
        kwargs.setdefault("model_number", "MTU-12V2000")
        kwargs.setdefault("category", "propulsion")
        return await self.add(EquipmentORM(**kwargs))

    async def link_equipment(self, job, equipment, relationship_type: str = "failure") -> JobEquipmentLinkORM:
        return await self.add(JobEquipmentLinkORM(
            job_id=job.id, equipment_id=equipment.id, relationship_type=relationship_type,
        ))

    async def inventory_item(self, **kwargs) -> InventoryItemORM:
        kwargs.setdefault("name", "Fuel Filter")
        kwargs.setdefault("part_number", "FF-5421")
        kwargs.setdefault("quantity", 10)
        return await self.add(InventoryItemORM(**kwargs))

    async def reservation(self, job, item, quantity: int = 1, status: str = "active") -> InventoryReservationORM:
        return await self.add(InventoryReservationORM(
            job_id=job.id, inventory_item_id=item.id, quantity_reserved=quantity,
            reservation_type="hard", status=status,
        ))

    async def crew_member(self, **kwargs) -> CrewMemberORM:
        kwargs.setdefault("name", "Alex Morgan")
        kwargs.setdefault("role", "Chief Engineer")
        kwargs.setdefault("skills", ["diesel", "electrical"])
        kwargs.setdefault("certifications", [])
        return await self.add(CrewMemberORM(**kwargs))

    async def assign_crew(self, job, member, role: Optional[str] = None) -> CrewAssignmentORM:
        return await self.add(CrewAssignmentORM(job_id=job.id, crew_member_id=member.id, role=role or member.role))

    async def finance_transaction(self, job, amount: float = 500.0, **kwargs) -> FinanceTransactionORM:
        kwargs.setdefault("source_module", "claims_repairs")
        kwargs.setdefault("transaction_type", "expense")
        kwargs.setdefault("currency", "USD")
        kwargs.setdefault("status", "pending")
        return await self.add(FinanceTransactionORM(reference_id=job.id, amount=amount, **kwargs))

    async def requirement(self, **kwargs) -> ComplianceRequirementORM:
        kwargs.setdefault("regulation_code", "SOLAS-II-1")
        kwargs.setdefault("title", "Machinery space fire protection")
        kwargs.setdefault("category", "safety")
        kwargs.setdefault("severity", "medium")
        kwargs.setdefault("applicable_modules", ["claims_repairs", "maintenance"])
        kwargs.setdefault("is_active", True)
        return await self.add(ComplianceRequirementORM(**kwargs))

    async def compliance_check(self, job, requirement, status: str = "pending", due_date=None) -> JobComplianceCheckORM:
        return await self.add(JobComplianceCheckORM(
            job_id=job.id, requirement_id=requirement.id, status=status, due_date=due_date,
        ))

    async def maintenance_schedule(self, job, equipment, next_due_date) -> MaintenanceScheduleORM:
        return await self.add(MaintenanceScheduleORM(
            job_id=job.id, equipment_id=equipment.id, next_due_date=next_due_date,
        ))

    async def actions(
        self,
        user_id: str,
        module: str,
        action_type: str,
        count: int,
        start: Optional[datetime] = None,
        spacing: timedelta = timedelta(minutes=1),
        **kwargs,
    ):
        """Insert `count` actions `spacing` apart, ending no later than now."""
        start = start or datetime.now(timezone.utc) - spacing * count
        async with self.session_factory() as session:
            for i in range(count):
                session.add(UserActionORM(
                    user_id=user_id,
                    session_id="seed-session",
                    module=module,
                    action_type=action_type,
                    context=kwargs.get("context", {}),
                    metadata_=kwargs.get("metadata", {}),
                    created_at=start + spacing * i,
                ))
            await session.commit()

    async def count(self, model, *criteria) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)
