"""
Cross-Module Integration Aggregator.

Stitches the records other modules keep about a Claims & Repairs job
(equipment, inventory, finance, compliance, crew, maintenance) into one view,
scores how well the job is integrated, derives advisory insights, and pushes
the job back out to those modules.

Reads degrade per relation: a failing lookup yields an empty list and is
named in `degraded_relations`. The write-back sync is best effort: each step
runs in its own transaction and a failed step never rolls back earlier ones.
"""
import asyncio
import logging
import math
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import Settings, get_settings
from backend.app.core.database import as_utc, upsert, utcnow
from backend.app.core.exceptions import InvalidInputError, NotFoundError
from backend.app.core.observability import get_tracer
from backend.app.models import (
    ClaimRepairJobORM,
    ComplianceRequirementORM,
    CrewAssignmentORM,
    CrewMemberORM,
    EquipmentORM,
    FinanceTransactionORM,
    IntegrationEventORM,
    InventoryItemORM,
    InventoryReservationORM,
    JobComplianceCheckORM,
    JobEquipmentLinkORM,
    MaintenanceScheduleORM,
)
from backend.app.schemas.integration import (
    ComplianceRequirement,
    ComplianceStatus,
    CrewMember,
    CrewStatus,
    Equipment,
    EquipmentJob,
    EquipmentMaintenanceContext,
    EquipmentStatus,
    FinanceStatus,
    FinanceTransaction,
    Insight,
    InsightSeverity,
    IntegratedJobView,
    IntegrationHealth,
    IntegrationOptions,
    IntegrationResult,
    InventoryItem,
    InventoryReservation,
    InventoryStatus,
    InventoryUsage,
    InventoryUsageContext,
    JobInsights,
    JobIntegrationStatus,
    MaintenanceSchedule,
    MaintenanceStatus,
    StepResult,
    StepStatus,
    TransactionType,
    WorkItem,
)

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

SOURCE_MODULE = "claims_repairs"
ESTIMATE_INTEGRATION_KEY = "claims_repairs:estimate"

# relation name -> (view field, health penalty, issue message)
HEALTH_PENALTIES = OrderedDict([
    ("equipment", ("related_equipment", 20, "Equipment data not linked")),
    ("inventory", ("related_inventory", 15, "No inventory reservations")),
    ("crew", ("crew", 15, "No crew assigned")),
    ("finance", ("finance_transactions", 20, "Financial tracking not enabled")),
    ("compliance", ("compliance_requirements", 10, "Compliance requirements missing")),
])

_RELATIONSHIP_BY_JOB_TYPE = {
    "repair": "failure",
    "warranty_claim": "warranty",
    "audit": "maintenance",
}


def compute_integration_health(view: IntegratedJobView) -> IntegrationHealth:
    """
    Score 0-100 from which relation classes are present; contents are ignored.

    A job linked to nothing scores 0 even though the penalties alone sum to 80.
    """
    missing = [name for name, (field, _, _) in HEALTH_PENALTIES.items() if not getattr(view, field)]
    issues = [HEALTH_PENALTIES[name][2] for name in missing]

    if len(missing) == len(HEALTH_PENALTIES):
        return IntegrationHealth(score=0, missing=missing, issues=issues)

    score = 100 - sum(HEALTH_PENALTIES[name][1] for name in missing)
    return IntegrationHealth(score=max(score, 0), missing=missing, issues=issues)


def certification_expiry(certification: Dict[str, Any]) -> Optional[datetime]:
    raw = certification.get("expires_at")
    if not raw:
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    try:
        return as_utc(datetime.fromisoformat(str(raw)))
    except ValueError:
        logger.warning(f"Ignoring unparseable certification expiry: {raw!r}")
        return None


def expiring_certifications(certifications: List[Dict[str, Any]], now: datetime, warning_days: int) -> List[str]:
    """Names of certifications already expired or expiring within the warning window."""
    horizon = now + timedelta(days=warning_days)
    expiring = []
    for cert in certifications or []:
        expiry = certification_expiry(cert)
        if expiry is not None and expiry <= horizon:
            expiring.append(cert.get("name", "unnamed"))
    return expiring


def remaining_stock(reservation: InventoryReservation) -> int:
    return reservation.quantity_on_hand - reservation.quantity_reserved


class IntegrationAggregator:
    """
    Aggregates and synchronises cross-module records for Claims & Repairs jobs.

    Constructed once per application with a session factory; every public
    operation opens its own short-lived sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    @asynccontextmanager
    async def _get_session(self, session: Optional[AsyncSession] = None):
        if session:
            yield session
        else:
            async with self.session_factory() as new_session:
                try:
                    yield new_session
                    await new_session.commit()
                except Exception:
                    await new_session.rollback()
                    raise
                finally:
                    await new_session.close()

    async def ping(self) -> None:
        """Round-trip to the database; raises if it is unreachable."""
        async with self._get_session() as s:
            await s.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _get_job(self, session: AsyncSession, job_id: str) -> WorkItem:
        job = await session.get(ClaimRepairJobORM, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return WorkItem(
            id=job.id,
            name=job.name,
            description=job.description,
            job_type=job.job_type,
            status=job.status,
            priority=job.priority,
            category=job.category,
            yacht_id=job.yacht_id,
            equipment_id=job.equipment_id,
            estimated_cost=job.estimated_cost,
            actual_cost=job.actual_cost,
            currency=job.currency,
            created_at=as_utc(job.created_at),
            updated_at=as_utc(job.updated_at),
        )

    async def get_job(self, job_id: str) -> WorkItem:
        async with self._get_session() as s:
            return await self._get_job(s, job_id)

    async def _load_equipment(self, session: AsyncSession, job_id: str) -> List[Equipment]:
        result = await session.execute(
            select(EquipmentORM)
            .join(JobEquipmentLinkORM, JobEquipmentLinkORM.equipment_id == EquipmentORM.id)
            .where(JobEquipmentLinkORM.job_id == job_id)
            .order_by(JobEquipmentLinkORM.created_at)
        )
        return [
            Equipment(
                id=e.id,
                name=e.name,
                model_number=e.model_number,
                serial_number=e.serial_number,
                category=e.category,
                next_maintenance_date=as_utc(e.next_maintenance_date),
            )
            for e in result.scalars().all()
        ]

    async def _load_inventory(self, session: AsyncSession, job_id: str) -> List[InventoryReservation]:
        result = await session.execute(
            select(InventoryReservationORM, InventoryItemORM)
            .join(InventoryItemORM, InventoryItemORM.id == InventoryReservationORM.inventory_item_id)
            .where(
                InventoryReservationORM.job_id == job_id,
                InventoryReservationORM.status != "cancelled",
            )
            .order_by(InventoryReservationORM.created_at)
        )
        return [
            InventoryReservation(
                id=res.id,
                inventory_item_id=item.id,
                item_name=item.name,
                part_number=item.part_number,
                quantity_reserved=res.quantity_reserved,
                quantity_on_hand=item.quantity,
                min_stock=item.min_stock,
                reservation_type=res.reservation_type,
                status=res.status,
                valid_until=as_utc(res.valid_until),
            )
            for res, item in result.all()
        ]

    async def _load_crew(self, session: AsyncSession, job_id: str) -> List[CrewMember]:
        result = await session.execute(
            select(CrewMemberORM, CrewAssignmentORM)
            .join(CrewAssignmentORM, CrewAssignmentORM.crew_member_id == CrewMemberORM.id)
            .where(CrewAssignmentORM.job_id == job_id)
            .order_by(CrewAssignmentORM.created_at)
        )
        return [
            CrewMember(
                id=member.id,
                name=member.name,
                role=member.role,
                skills=member.skills or [],
                certifications=member.certifications or [],
                assignment_role=assignment.role,
            )
            for member, assignment in result.all()
        ]

    async def _load_finance(self, session: AsyncSession, job_id: str) -> List[FinanceTransaction]:
        result = await session.execute(
            select(FinanceTransactionORM)
            .where(FinanceTransactionORM.reference_id == job_id)
            .order_by(FinanceTransactionORM.created_at)
        )
        return [
            FinanceTransaction(
                id=t.id,
                reference_id=t.reference_id,
                source_module=t.source_module,
                transaction_type=t.transaction_type,
                amount=t.amount,
                currency=t.currency,
                description=t.description,
                status=t.status,
                created_at=as_utc(t.created_at),
            )
            for t in result.scalars().all()
        ]

    async def _load_compliance(self, session: AsyncSession, job_id: str) -> List[ComplianceRequirement]:
        result = await session.execute(
            select(JobComplianceCheckORM, ComplianceRequirementORM)
            .join(ComplianceRequirementORM, ComplianceRequirementORM.id == JobComplianceCheckORM.requirement_id)
            .where(JobComplianceCheckORM.job_id == job_id)
            .order_by(JobComplianceCheckORM.created_at)
        )
        return [
            ComplianceRequirement(
                id=check.id,
                requirement_id=req.id,
                regulation_code=req.regulation_code,
                title=req.title,
                category=req.category,
                severity=req.severity,
                status=check.status,
                due_date=as_utc(check.due_date),
            )
            for check, req in result.all()
        ]

    async def _load_maintenance(self, session: AsyncSession, job_id: str) -> List[MaintenanceSchedule]:
        result = await session.execute(
            select(MaintenanceScheduleORM)
            .where(MaintenanceScheduleORM.job_id == job_id)
            .order_by(MaintenanceScheduleORM.next_due_date)
        )
        return [
            MaintenanceSchedule(
                id=m.id,
                equipment_id=m.equipment_id,
                next_due_date=as_utc(m.next_due_date),
                description=m.description,
            )
            for m in result.scalars().all()
        ]

    async def _fetch_relation(
        self,
        name: str,
        loader: Callable[[AsyncSession, str], Awaitable[List[Any]]],
        job_id: str,
    ) -> Tuple[List[Any], bool]:
        """Run one relation lookup in its own session. Returns (records, failed)."""
        try:
            async with self._get_session() as s:
                return await loader(s, job_id), False
        except Exception as e:
            logger.warning(
                f"Integration lookup '{name}' failed for job {job_id}: {e}",
                extra={"extra_data": {"job_id": job_id, "relation": name}},
            )
            return [], True

    async def get_integrated_job_data(self, job_id: str) -> IntegratedJobView:
        """
        Build the cross-module view of one job.

        The job itself must exist (NotFoundError otherwise). Relation lookups run
        concurrently and independently; they are not snapshot-isolated.
        """
        job = await self.get_job(job_id)

        relations = OrderedDict([
            ("related_equipment", self._load_equipment),
            ("related_inventory", self._load_inventory),
            ("finance_transactions", self._load_finance),
            ("compliance_requirements", self._load_compliance),
            ("crew", self._load_crew),
            ("maintenance_schedules", self._load_maintenance),
        ])
        results = await asyncio.gather(
            *(self._fetch_relation(name, loader, job_id) for name, loader in relations.items())
        )

        fields: Dict[str, Any] = {}
        degraded: List[str] = []
        for name, (records, failed) in zip(relations, results):
            fields[name] = records
            if failed:
                degraded.append(name)

        return IntegratedJobView(job=job, degraded_relations=degraded, **fields)

    async def get_integration_health(self, job_id: str) -> IntegrationHealth:
        return compute_integration_health(await self.get_integrated_job_data(job_id))

    async def get_equipment_maintenance_context(self, equipment_id: str) -> EquipmentMaintenanceContext:
        """Maintenance schedules and the most recent jobs for one piece of equipment."""
        async with self._get_session() as s:
            equipment = await s.get(EquipmentORM, equipment_id)
            if equipment is None:
                raise NotFoundError(f"Equipment {equipment_id} not found")

            schedules = await s.execute(
                select(MaintenanceScheduleORM)
                .where(MaintenanceScheduleORM.equipment_id == equipment_id)
                .order_by(MaintenanceScheduleORM.next_due_date)
            )
            jobs = await s.execute(
                select(JobEquipmentLinkORM, ClaimRepairJobORM)
                .join(ClaimRepairJobORM, ClaimRepairJobORM.id == JobEquipmentLinkORM.job_id)
                .where(JobEquipmentLinkORM.equipment_id == equipment_id)
                .order_by(JobEquipmentLinkORM.created_at.desc())
                .limit(self.settings.context_history_limit)
            )

            next_due = as_utc(equipment.next_maintenance_date)
            return EquipmentMaintenanceContext(
                equipment=Equipment(
                    id=equipment.id,
                    name=equipment.name,
                    model_number=equipment.model_number,
                    serial_number=equipment.serial_number,
                    category=equipment.category,
                    next_maintenance_date=next_due,
                ),
                maintenance_overdue=next_due is not None and next_due < utcnow(),
                maintenance_schedules=[
                    MaintenanceSchedule(
                        id=m.id,
                        equipment_id=m.equipment_id,
                        next_due_date=as_utc(m.next_due_date),
                        description=m.description,
                    )
                    for m in schedules.scalars().all()
                ],
                recent_jobs=[
                    EquipmentJob(
                        job_id=job.id,
                        name=job.name,
                        job_type=job.job_type,
                        status=job.status,
                        relationship_type=link.relationship_type,
                        linked_at=as_utc(link.created_at),
                    )
                    for link, job in jobs.all()
                ],
            )

    async def get_inventory_usage_context(self, item_id: str) -> InventoryUsageContext:
        """Reservation history and current stock position for one inventory item."""
        async with self._get_session() as s:
            item = await s.get(InventoryItemORM, item_id)
            if item is None:
                raise NotFoundError(f"Inventory item {item_id} not found")

            history = await s.execute(
                select(InventoryReservationORM, ClaimRepairJobORM.name)
                .outerjoin(ClaimRepairJobORM, ClaimRepairJobORM.id == InventoryReservationORM.job_id)
                .where(InventoryReservationORM.inventory_item_id == item_id)
                .order_by(InventoryReservationORM.created_at.desc())
                .limit(self.settings.context_history_limit)
            )
            reserved = await s.execute(
                select(func.coalesce(func.sum(InventoryReservationORM.quantity_reserved), 0))
                .where(
                    InventoryReservationORM.inventory_item_id == item_id,
                    InventoryReservationORM.status == "active",
                )
            )
            reserved_total = int(reserved.scalar_one())

            min_stock = item.min_stock if item.min_stock is not None else self.settings.default_min_stock
            available = item.quantity - reserved_total
            return InventoryUsageContext(
                item=InventoryItem.model_validate(item),
                usage_history=[
                    InventoryUsage(
                        reservation_id=res.id,
                        job_id=res.job_id,
                        job_name=job_name,
                        quantity_reserved=res.quantity_reserved,
                        reservation_type=res.reservation_type,
                        status=res.status,
                        reserved_at=as_utc(res.created_at),
                    )
                    for res, job_name in history.all()
                ],
                current_stock=item.quantity,
                reserved=reserved_total,
                available=available,
                low_stock_alert=available < min_stock,
            )

    async def _forward_scheduled_equipment(self, equipment_ids: List[str], now: datetime) -> set:
        """Equipment ids with a maintenance schedule due now or later, from any job."""
        if not equipment_ids:
            return set()
        async with self._get_session() as s:
            result = await s.execute(
                select(MaintenanceScheduleORM.equipment_id, MaintenanceScheduleORM.next_due_date)
                .where(MaintenanceScheduleORM.equipment_id.in_(equipment_ids))
            )
            return {eid for eid, due in result.all() if as_utc(due) >= now}

    async def generate_insights(self, job_id: str, view: Optional[IntegratedJobView] = None) -> JobInsights:
        """Advisory rule checks over the job view. Never writes."""
        view = view or await self.get_integrated_job_data(job_id)
        now = utcnow()
        insights = JobInsights()

        # Cost optimization
        active_transactions = [t for t in view.finance_transactions if t.status != "cancelled"]
        if active_transactions:
            total = sum(t.amount for t in active_transactions)
            estimate = view.job.estimated_cost
            if estimate and estimate > 0:
                if total > estimate * self.settings.cost_overrun_ratio:
                    overrun = (total - estimate) / estimate * 100
                    insights.cost_optimization.append(Insight(
                        type="cost_overrun",
                        message=(
                            f"Recorded costs of {total:,.2f} {view.job.currency} exceed the estimate "
                            f"of {estimate:,.2f} by {overrun:.0f}%. Review supplier quotes and scope."
                        ),
                        severity=InsightSeverity.HIGH,
                        record_id=view.job.id,
                    ))
            elif total > self.settings.high_cost_threshold:
                insights.cost_optimization.append(Insight(
                    type="unestimated_high_cost",
                    message=(
                        f"Recorded costs of {total:,.2f} {view.job.currency} have no estimate to "
                        f"compare against. Add an estimate to track overruns."
                    ),
                    severity=InsightSeverity.MEDIUM,
                    record_id=view.job.id,
                ))

        # Preventive maintenance
        if view.related_equipment:
            try:
                scheduled = await self._forward_scheduled_equipment(
                    [e.id for e in view.related_equipment], now
                )
            except Exception as e:
                logger.warning(f"Maintenance schedule lookup failed for job {job_id}: {e}")
                scheduled = {m.equipment_id for m in view.maintenance_schedules if m.next_due_date >= now}

            for equipment in view.related_equipment:
                if equipment.id in scheduled:
                    continue
                overdue = equipment.next_maintenance_date is not None and equipment.next_maintenance_date < now
                insights.preventive_suggestions.append(Insight(
                    type="maintenance_not_scheduled",
                    message=(
                        f"{equipment.name} has no upcoming maintenance scheduled"
                        + (" and its service date has passed." if overdue else ".")
                        + " Schedule preventive maintenance to avoid repeat repairs."
                    ),
                    severity=InsightSeverity.HIGH if overdue else InsightSeverity.MEDIUM,
                    record_id=equipment.id,
                ))

        # Compliance alerts
        for req in view.compliance_requirements:
            if req.status == "compliant":
                continue
            critical = req.severity == "critical"
            overdue = req.due_date is not None and req.due_date < now
            if not (critical or overdue):
                continue
            reason = "is past its due date" if overdue else "is critical and not yet satisfied"
            insights.compliance_alerts.append(Insight(
                type="compliance_overdue" if overdue else "compliance_critical",
                message=f"{req.regulation_code} {req.title} {reason}.",
                severity=InsightSeverity.CRITICAL if critical else InsightSeverity.HIGH,
                record_id=req.id,
            ))

        # Resource recommendations
        for reservation in view.related_inventory:
            if reservation.status != "active":
                continue
            min_stock = reservation.min_stock if reservation.min_stock is not None else self.settings.default_min_stock
            remaining = remaining_stock(reservation)
            if remaining < min_stock:
                insights.resource_recommendations.append(Insight(
                    type="low_stock",
                    message=(
                        f"{reservation.item_name} will drop to {remaining} after this job "
                        f"(minimum {min_stock}). Raise a purchase order."
                    ),
                    severity=InsightSeverity.HIGH if remaining <= 0 else InsightSeverity.MEDIUM,
                    record_id=reservation.inventory_item_id,
                ))

        return insights

    async def get_job_integration_status(self, job_id: str) -> JobIntegrationStatus:
        view = await self.get_integrated_job_data(job_id)
        now = utcnow()

        low_stock = 0
        for r in view.related_inventory:
            min_stock = r.min_stock if r.min_stock is not None else self.settings.default_min_stock
            if remaining_stock(r) < min_stock:
                low_stock += 1

        certifications_ok = not any(
            expiring_certifications(c.certifications, now, self.settings.certification_warning_days)
            for c in view.crew
        )

        return JobIntegrationStatus(
            job_id=view.job.id,
            equipment=EquipmentStatus(
                linked=bool(view.related_equipment),
                count=len(view.related_equipment),
            ),
            inventory=InventoryStatus(
                reserved=sum(r.quantity_reserved for r in view.related_inventory),
                low_stock_alerts=low_stock,
            ),
            finance=FinanceStatus(
                transactions=len(view.finance_transactions),
                total_cost=sum(t.amount for t in view.finance_transactions if t.status != "cancelled"),
            ),
            crew=CrewStatus(
                assigned=bool(view.crew),
                count=len(view.crew),
                certifications_ok=certifications_ok,
            ),
            maintenance=MaintenanceStatus(
                schedules=len(view.maintenance_schedules),
                overdue_items=sum(
                    1 for e in view.related_equipment
                    if e.next_maintenance_date is not None and e.next_maintenance_date < now
                ),
            ),
            compliance=ComplianceStatus(
                requirements=len(view.compliance_requirements),
                compliant=sum(1 for c in view.compliance_requirements if c.status == "compliant"),
                pending=sum(1 for c in view.compliance_requirements if c.status == "pending"),
            ),
            integration_health=compute_integration_health(view),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _publish_event(
        self,
        session: AsyncSession,
        event_type: str,
        source_record_id: Optional[str],
        target_modules: List[str],
        payload: Dict[str, Any],
        severity: str = "info",
    ) -> None:
        session.add(IntegrationEventORM(
            event_type=event_type,
            module=SOURCE_MODULE,
            source_record_id=source_record_id,
            target_modules=target_modules,
            payload=payload,
            severity=severity,
        ))
        await session.flush()
        logger.info(
            f"Integration event {event_type} for {source_record_id}",
            extra={"extra_data": {"event_type": event_type, "targets": target_modules}},
        )

    async def _sync_equipment(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        equipment_ids = list(dict.fromkeys(options.equipment_ids))
        if not equipment_ids and job.equipment_id:
            equipment_ids = [job.equipment_id]
        if not equipment_ids:
            return StepResult(status=StepStatus.SKIPPED, detail="No equipment to link")

        result = await session.execute(select(EquipmentORM).where(EquipmentORM.id.in_(equipment_ids)))
        found = {e.id: e for e in result.scalars().all()}
        missing = [eid for eid in equipment_ids if eid not in found]
        if missing:
            raise NotFoundError(f"Equipment not found: {', '.join(missing)}")

        now = utcnow()
        relationship = _RELATIONSHIP_BY_JOB_TYPE.get(job.job_type, "maintenance")
        for eid in equipment_ids:
            await upsert(
                session,
                JobEquipmentLinkORM,
                {"job_id": job.id, "equipment_id": eid, "relationship_type": relationship, "updated_at": now},
                conflict_keys=("job_id", "equipment_id"),
            )
            due = as_utc(found[eid].next_maintenance_date)
            if due is not None and due < now:
                await self._publish_event(
                    session,
                    "equipment_overdue_maintenance",
                    source_record_id=eid,
                    target_modules=["maintenance"],
                    payload={"job_id": job.id, "equipment_name": found[eid].name, "due": due.isoformat()},
                    severity="warn",
                )

        return StepResult(status=StepStatus.SUCCESS, records_written=len(equipment_ids))

    async def _sync_inventory(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        requested: Dict[str, int] = OrderedDict()
        for r in options.inventory:
            requested[r.inventory_item_id] = requested.get(r.inventory_item_id, 0) + r.quantity
        if not requested:
            return StepResult(status=StepStatus.SKIPPED, detail="No inventory requested")

        result = await session.execute(
            select(InventoryItemORM).where(InventoryItemORM.id.in_(list(requested)))
        )
        items = {i.id: i for i in result.scalars().all()}
        missing = [iid for iid in requested if iid not in items]
        if missing:
            raise NotFoundError(f"Inventory items not found: {', '.join(missing)}")

        now = utcnow()
        valid_until = now + timedelta(days=self.settings.reservation_valid_days)
        for item_id, quantity in requested.items():
            await upsert(
                session,
                InventoryReservationORM,
                {
                    "job_id": job.id,
                    "inventory_item_id": item_id,
                    "quantity_reserved": quantity,
                    "reservation_type": "hard",
                    "status": "active",
                    "valid_until": valid_until,
                    "notes": f"Reserved for {job.name}",
                    "updated_at": now,
                },
                conflict_keys=("job_id", "inventory_item_id"),
            )
            item = items[item_id]
            min_stock = item.min_stock if item.min_stock is not None else self.settings.default_min_stock
            remaining = item.quantity - quantity
            if remaining < min_stock:
                await self._publish_event(
                    session,
                    "inventory_low_stock",
                    source_record_id=item_id,
                    target_modules=["inventory", "procurement"],
                    payload={
                        "job_id": job.id,
                        "part_number": item.part_number,
                        "remaining": remaining,
                        "min_stock": min_stock,
                    },
                    severity="warn",
                )

        return StepResult(status=StepStatus.SUCCESS, records_written=len(requested))

    async def _sync_finance(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        amount = options.estimated_cost or job.estimated_cost
        if not amount or not math.isfinite(amount) or amount <= 0:
            return StepResult(status=StepStatus.SKIPPED, detail="No cost estimate to track")
        currency = (options.currency or job.currency or "USD").upper()

        transaction = await upsert(
            session,
            FinanceTransactionORM,
            {
                "reference_id": job.id,
                "integration_key": ESTIMATE_INTEGRATION_KEY,
                "source_module": SOURCE_MODULE,
                "transaction_type": TransactionType.EXPENSE.value,
                "amount": amount,
                "currency": currency,
                "description": f"Estimated cost for {job.name}",
                "status": "pending",
                "updated_at": utcnow(),
            },
            conflict_keys=("reference_id", "integration_key"),
            update_keys=("amount", "currency", "description", "updated_at"),
        )

        if amount > self.settings.high_cost_threshold:
            await self._publish_event(
                session,
                "high_cost_approval_required",
                source_record_id=transaction.id,
                target_modules=["finance"],
                payload={"job_id": job.id, "amount": amount, "currency": currency},
                severity="warn",
            )

        return StepResult(status=StepStatus.SUCCESS, records_written=1)

    async def _assign_crew(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        crew_ids = list(dict.fromkeys(options.crew_member_ids))
        if crew_ids:
            result = await session.execute(select(CrewMemberORM).where(CrewMemberORM.id.in_(crew_ids)))
            members = {m.id: m for m in result.scalars().all()}
            missing = [cid for cid in crew_ids if cid not in members]
            if missing:
                raise NotFoundError(f"Crew members not found: {', '.join(missing)}")
            selected = [members[cid] for cid in crew_ids]
        elif options.required_skills:
            required = set(options.required_skills)
            result = await session.execute(select(CrewMemberORM).order_by(CrewMemberORM.name))
            match = next((m for m in result.scalars().all() if required <= set(m.skills or [])), None)
            if match is None:
                return StepResult(
                    status=StepStatus.SKIPPED,
                    detail=f"No crew member has the required skills: {', '.join(sorted(required))}",
                )
            selected = [match]
        else:
            return StepResult(status=StepStatus.SKIPPED, detail="No crew to assign")

        now = utcnow()
        for member in selected:
            await upsert(
                session,
                CrewAssignmentORM,
                {"job_id": job.id, "crew_member_id": member.id, "role": member.role, "updated_at": now},
                conflict_keys=("job_id", "crew_member_id"),
            )
            expiring = expiring_certifications(
                member.certifications, now, self.settings.certification_warning_days
            )
            if expiring:
                await self._publish_event(
                    session,
                    "crew_certification_expiring",
                    source_record_id=member.id,
                    target_modules=["crew", "compliance"],
                    payload={"job_id": job.id, "certifications": expiring},
                    severity="warn",
                )

        return StepResult(status=StepStatus.SUCCESS, records_written=len(selected))

    async def _schedule_maintenance(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        result = await session.execute(
            select(JobEquipmentLinkORM.equipment_id).where(JobEquipmentLinkORM.job_id == job.id)
        )
        equipment_ids = list(result.scalars().all())
        if not equipment_ids:
            return StepResult(status=StepStatus.SKIPPED, detail="No linked equipment to schedule")

        now = utcnow()
        next_due = now + timedelta(days=self.settings.maintenance_interval_days)
        for eid in equipment_ids:
            # next_due_date is fixed by the first sync
            await upsert(
                session,
                MaintenanceScheduleORM,
                {
                    "job_id": job.id,
                    "equipment_id": eid,
                    "next_due_date": next_due,
                    "description": f"Follow-up inspection after {job.name}",
                    "updated_at": now,
                },
                conflict_keys=("job_id", "equipment_id"),
                update_keys=("description", "updated_at"),
            )

        return StepResult(status=StepStatus.SUCCESS, records_written=len(equipment_ids))

    async def _ensure_compliance(self, session: AsyncSession, job: WorkItem, options: IntegrationOptions) -> StepResult:
        result = await session.execute(
            select(ComplianceRequirementORM).where(ComplianceRequirementORM.is_active.is_(True))
        )
        # applicable_modules is JSON; filtered here to stay dialect neutral
        applicable = [r for r in result.scalars().all() if SOURCE_MODULE in (r.applicable_modules or [])]
        if not applicable:
            return StepResult(status=StepStatus.SKIPPED, detail="No applicable compliance requirements")

        due = utcnow() + timedelta(days=self.settings.compliance_due_days)
        for req in applicable:
            await upsert(
                session,
                JobComplianceCheckORM,
                {"job_id": job.id, "requirement_id": req.id, "status": "pending", "due_date": due},
                conflict_keys=("job_id", "requirement_id"),
                update_keys=[],
            )

        return StepResult(status=StepStatus.SUCCESS, records_written=len(applicable))

    async def _run_step(
        self,
        name: str,
        enabled: bool,
        step: Callable[[AsyncSession, WorkItem, IntegrationOptions], Awaitable[StepResult]],
        job: WorkItem,
        options: IntegrationOptions,
    ) -> StepResult:
        if not enabled:
            return StepResult(status=StepStatus.SKIPPED, detail="Disabled by options")
        try:
            with tracer.start_as_current_span(f"integration.{name}"):
                async with self._get_session() as s:
                    return await step(s, job, options)
        except Exception as e:
            logger.error(
                f"Integration step '{name}' failed for job {job.id}: {e}",
                exc_info=True,
                extra={"extra_data": {"job_id": job.id, "step": name}},
            )
            return StepResult(status=StepStatus.FAILED, error=str(e))

    async def perform_full_integration(
        self,
        job_id: str,
        options: Optional[IntegrationOptions] = None,
    ) -> IntegrationResult:
        """
        Push the job out to every enabled module, in a fixed order.

        Each step upserts on its module's natural key, so repeating the call with
        the same options writes no duplicate rows. Step failures are reported in
        the result and do not stop later steps.
        """
        options = options or IntegrationOptions()
        job = await self.get_job(job_id)

        plan = [
            ("equipment", options.sync_equipment, self._sync_equipment),
            ("inventory", options.update_inventory, self._sync_inventory),
            ("finance", options.create_finance_records, self._sync_finance),
            ("crew", options.assign_crew, self._assign_crew),
            ("maintenance", options.schedule_maintenance, self._schedule_maintenance),
            ("compliance", options.ensure_compliance, self._ensure_compliance),
        ]
        steps: Dict[str, StepResult] = OrderedDict()
        for name, enabled, step in plan:
            steps[name] = await self._run_step(name, enabled, step, job, options)

        success = all(r.status != StepStatus.FAILED for r in steps.values())

        try:
            async with self._get_session() as s:
                await self._publish_event(
                    s,
                    "claims_repairs_full_integration_completed",
                    source_record_id=job.id,
                    target_modules=[name for name, r in steps.items() if r.status == StepStatus.SUCCESS],
                    payload={"success": success, "steps": {name: r.status.value for name, r in steps.items()}},
                    severity="info" if success else "error",
                )
        except Exception as e:
            logger.warning(f"Could not record integration completion for job {job.id}: {e}")

        logger.info(
            f"Full integration for job {job.id} finished (success={success})",
            extra={"extra_data": {"job_id": job.id, "steps": {n: r.status.value for n, r in steps.items()}}},
        )
        return IntegrationResult(job_id=job.id, success=success, steps=steps)

    async def create_finance_transaction(
        self,
        job_id: str,
        source_module: str,
        transaction_type: str,
        amount: float,
        currency: str,
        description: Optional[str] = None,
        supplier_contractor_id: Optional[str] = None,
    ) -> FinanceTransaction:
        """Insert one pending transaction tagged to the job. Input is validated before any write."""
        try:
            transaction_type = TransactionType(transaction_type).value
        except ValueError:
            raise InvalidInputError(f"Unsupported transaction type: {transaction_type}")
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise InvalidInputError("Amount must be a finite number greater than zero")
        if not currency or len(currency) != 3 or not currency.isalpha():
            raise InvalidInputError(f"Invalid currency code: {currency}")
        if not source_module:
            raise InvalidInputError("Source module is required")

        async with self._get_session() as s:
            await self._get_job(s, job_id)
            transaction = FinanceTransactionORM(
                reference_id=job_id,
                source_module=source_module,
                transaction_type=transaction_type,
                amount=amount,
                currency=currency.upper(),
                description=description,
                supplier_contractor_id=supplier_contractor_id,
                status="pending",
            )
            s.add(transaction)
            await s.flush()
            await s.refresh(transaction)

            logger.info(f"Finance transaction {transaction.id} created for job {job_id}")
            return FinanceTransaction(
                id=transaction.id,
                reference_id=transaction.reference_id,
                source_module=transaction.source_module,
                transaction_type=transaction.transaction_type,
                amount=transaction.amount,
                currency=transaction.currency,
                description=transaction.description,
                status=transaction.status,
                created_at=as_utc(transaction.created_at),
            )
