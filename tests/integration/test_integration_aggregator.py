"""
Integration tests for the cross-module aggregator against a real database.
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from backend.app.core.exceptions import InvalidInputError, NotFoundError
from backend.app.models import (
    CrewAssignmentORM,
    FinanceTransactionORM,
    IntegrationEventORM,
    InventoryReservationORM,
    JobComplianceCheckORM,
    JobEquipmentLinkORM,
    MaintenanceScheduleORM,
)
from backend.app.schemas.integration import (
    FinanceTransactionCreate,
    IntegrationOptions,
    ReservationRequest,
    StepStatus,
)


def _now():
    return datetime.now(timezone.utc)


async def _fully_linked_job(seed):
    job = await seed.job(estimated_cost=2000.0)
    equipment = await seed.equipment()
    await seed.link_equipment(job, equipment)
    await seed.reservation(job, await seed.inventory_item(quantity=10, min_stock=2), quantity=2)
    await seed.assign_crew(job, await seed.crew_member())
    await seed.finance_transaction(job, amount=1500.0)
    await seed.compliance_check(job, await seed.requirement())
    return job


# --- get_integrated_job_data -------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_job_is_not_found(aggregator):
    with pytest.raises(NotFoundError):
        await aggregator.get_integrated_job_data("does-not-exist")


@pytest.mark.asyncio
async def test_job_without_relations_has_empty_view(aggregator, seed):
    job = await seed.job()
    view = await aggregator.get_integrated_job_data(job.id)

    assert view.job.id == job.id
    assert view.related_equipment == []
    assert view.related_inventory == []
    assert view.finance_transactions == []
    assert view.compliance_requirements == []
    assert view.crew == []
    assert view.degraded_relations == []
    assert (await aggregator.get_integration_health(job.id)).score == 0


@pytest.mark.asyncio
async def test_job_with_equipment_and_finance_scores_sixty(aggregator, seed):
    """End-to-end J1: one equipment link and one finance transaction."""
    job = await seed.job(name="J1")
    await seed.link_equipment(job, await seed.equipment())
    await seed.finance_transaction(job, amount=800.0)

    view = await aggregator.get_integrated_job_data(job.id)
    assert len(view.related_equipment) == 1
    assert len(view.finance_transactions) == 1

    health = await aggregator.get_integration_health(job.id)
    assert health.score == 60
    assert set(health.missing) == {"inventory", "crew", "compliance"}


@pytest.mark.asyncio
async def test_fully_linked_job_scores_hundred(aggregator, seed):
    job = await _fully_linked_job(seed)
    view = await aggregator.get_integrated_job_data(job.id)

    assert view.related_inventory[0].item_name == "Fuel Filter"
    assert view.related_inventory[0].quantity_on_hand == 10
    assert view.crew[0].assignment_role == "Chief Engineer"
    assert view.compliance_requirements[0].regulation_code == "SOLAS-II-1"
    assert (await aggregator.get_integration_health(job.id)).score == 100


@pytest.mark.asyncio
async def test_relations_of_other_jobs_are_not_included(aggregator, seed):
    job = await seed.job()
    other = await seed.job(name="Other job")
    await seed.link_equipment(other, await seed.equipment())
    await seed.finance_transaction(other)

    view = await aggregator.get_integrated_job_data(job.id)
    assert view.related_equipment == []
    assert view.finance_transactions == []


@pytest.mark.asyncio
async def test_failed_lookup_degrades_to_empty(aggregator, seed, monkeypatch):
    """One failing relation does not abort the others."""
    job = await _fully_linked_job(seed)

    async def broken_loader(session, job_id):
        raise RuntimeError("crew module unavailable")

    monkeypatch.setattr(aggregator, "_load_crew", broken_loader)
    view = await aggregator.get_integrated_job_data(job.id)

    assert view.crew == []
    assert view.degraded_relations == ["crew"]
    assert len(view.related_equipment) == 1
    assert len(view.finance_transactions) == 1
    assert len(view.compliance_requirements) == 1


# --- generate_insights -------------------------------------------------------

@pytest.mark.asyncio
async def test_no_insights_for_healthy_job(aggregator, seed):
    job = await seed.job(estimated_cost=2000.0)
    equipment = await seed.equipment(next_maintenance_date=_now() + timedelta(days=60))
    await seed.link_equipment(job, equipment)
    await seed.maintenance_schedule(job, equipment, _now() + timedelta(days=90))
    await seed.finance_transaction(job, amount=1900.0)
    await seed.reservation(job, await seed.inventory_item(quantity=10, min_stock=2), quantity=1)
    await seed.compliance_check(job, await seed.requirement(severity="high"), due_date=_now() + timedelta(days=3))

    insights = await aggregator.generate_insights(job.id)
    assert insights.cost_optimization == []
    assert insights.preventive_suggestions == []
    assert insights.compliance_alerts == []
    assert insights.resource_recommendations == []


@pytest.mark.asyncio
async def test_cost_overrun_insight(aggregator, seed):
    job = await seed.job(estimated_cost=1000.0)
    await seed.finance_transaction(job, amount=700.0)
    await seed.finance_transaction(job, amount=500.0)
    await seed.finance_transaction(job, amount=5000.0, status="cancelled")

    insights = await aggregator.generate_insights(job.id)
    assert len(insights.cost_optimization) == 1
    assert insights.cost_optimization[0].type == "cost_overrun"
    assert "20%" in insights.cost_optimization[0].message


@pytest.mark.asyncio
async def test_cost_within_tolerance_has_no_insight(aggregator, seed):
    job = await seed.job(estimated_cost=1000.0)
    await seed.finance_transaction(job, amount=1100.0)
    assert (await aggregator.generate_insights(job.id)).cost_optimization == []


@pytest.mark.asyncio
async def test_high_cost_without_estimate(aggregator, seed):
    job = await seed.job()
    await seed.finance_transaction(job, amount=15000.0)
    insights = await aggregator.generate_insights(job.id)
    assert [i.type for i in insights.cost_optimization] == ["unestimated_high_cost"]


@pytest.mark.asyncio
async def test_preventive_suggestion_for_unscheduled_equipment(aggregator, seed):
    job = await seed.job()
    overdue = await seed.equipment(name="Watermaker", next_maintenance_date=_now() - timedelta(days=5))
    scheduled = await seed.equipment(name="Stabilizer")
    await seed.link_equipment(job, overdue)
    await seed.link_equipment(job, scheduled)
    # a forward schedule from another job still counts
    other = await seed.job(name="Stabilizer service")
    await seed.maintenance_schedule(other, scheduled, _now() + timedelta(days=30))

    insights = await aggregator.generate_insights(job.id)
    assert [i.record_id for i in insights.preventive_suggestions] == [overdue.id]
    assert insights.preventive_suggestions[0].severity == "high"


@pytest.mark.asyncio
async def test_past_schedule_does_not_count_as_preventive(aggregator, seed):
    job = await seed.job()
    equipment = await seed.equipment()
    await seed.link_equipment(job, equipment)
    await seed.maintenance_schedule(job, equipment, _now() - timedelta(days=1))

    insights = await aggregator.generate_insights(job.id)
    assert len(insights.preventive_suggestions) == 1
    assert insights.preventive_suggestions[0].severity == "medium"


@pytest.mark.asyncio
async def test_compliance_alerts(aggregator, seed):
    job = await seed.job()
    critical = await seed.requirement(regulation_code="MARPOL-I", severity="critical")
    overdue = await seed.requirement(regulation_code="ISM-10", severity="medium")
    satisfied = await seed.requirement(regulation_code="SOLAS-V", severity="critical")
    future = await seed.requirement(regulation_code="MLC-4", severity="low")
    await seed.compliance_check(job, critical)
    await seed.compliance_check(job, overdue, due_date=_now() - timedelta(days=2))
    await seed.compliance_check(job, satisfied, status="compliant")
    await seed.compliance_check(job, future, due_date=_now() + timedelta(days=10))

    alerts = (await aggregator.generate_insights(job.id)).compliance_alerts
    assert {a.type for a in alerts} == {"compliance_critical", "compliance_overdue"}
    assert len(alerts) == 2
    assert any("MARPOL-I" in a.message for a in alerts)
    assert any("ISM-10" in a.message for a in alerts)


@pytest.mark.asyncio
async def test_resource_recommendation_for_low_stock(aggregator, seed):
    job = await seed.job()
    low = await seed.inventory_item(name="Impeller", quantity=3, min_stock=2)
    plenty = await seed.inventory_item(name="Gasket", quantity=50, min_stock=5)
    no_minimum = await seed.inventory_item(name="Zinc Anode", quantity=1)
    await seed.reservation(job, low, quantity=2)
    await seed.reservation(job, plenty, quantity=5)
    await seed.reservation(job, no_minimum, quantity=1)

    recommendations = (await aggregator.generate_insights(job.id)).resource_recommendations
    assert {r.record_id for r in recommendations} == {low.id, no_minimum.id}


# --- perform_full_integration ------------------------------------------------

async def _row_counts(seed, job_id):
    return {
        "links": await seed.count(JobEquipmentLinkORM, JobEquipmentLinkORM.job_id == job_id),
        "reservations": await seed.count(InventoryReservationORM, InventoryReservationORM.job_id == job_id),
        "finance": await seed.count(FinanceTransactionORM, FinanceTransactionORM.reference_id == job_id),
        "crew": await seed.count(CrewAssignmentORM, CrewAssignmentORM.job_id == job_id),
        "maintenance": await seed.count(MaintenanceScheduleORM, MaintenanceScheduleORM.job_id == job_id),
        "compliance": await seed.count(JobComplianceCheckORM, JobComplianceCheckORM.job_id == job_id),
    }


async def _sync_fixture(seed):
    job = await seed.job(estimated_cost=4500.0)
    equipment = await seed.equipment()
    item = await seed.inventory_item(quantity=10, min_stock=2)
    member = await seed.crew_member()
    await seed.requirement()
    await seed.requirement(regulation_code="MARPOL-VI", applicable_modules=["engine_room"])
    options = IntegrationOptions(
        equipment_ids=[equipment.id],
        inventory=[ReservationRequest(inventory_item_id=item.id, quantity=3)],
        crew_member_ids=[member.id],
    )
    return job, options


@pytest.mark.asyncio
async def test_full_integration_writes_every_module(aggregator, seed):
    job, options = await _sync_fixture(seed)
    result = await aggregator.perform_full_integration(job.id, options)

    assert result.success is True
    assert list(result.steps) == ["equipment", "inventory", "finance", "crew", "maintenance", "compliance"]
    assert all(step.status == StepStatus.SUCCESS for step in result.steps.values())
    assert await _row_counts(seed, job.id) == {
        "links": 1, "reservations": 1, "finance": 1, "crew": 1, "maintenance": 1, "compliance": 1,
    }
    assert (await aggregator.get_integration_health(job.id)).score == 100


@pytest.mark.asyncio
async def test_full_integration_is_idempotent(aggregator, seed):
    job, options = await _sync_fixture(seed)
    await aggregator.perform_full_integration(job.id, options)
    first = await _row_counts(seed, job.id)

    result = await aggregator.perform_full_integration(job.id, options)
    assert result.success is True
    assert await _row_counts(seed, job.id) == first


@pytest.mark.asyncio
async def test_resync_updates_estimate_in_place(aggregator, seed):
    job, options = await _sync_fixture(seed)
    await aggregator.perform_full_integration(job.id, options)
    options.estimated_cost = 5200.0
    await aggregator.perform_full_integration(job.id, options)

    view = await aggregator.get_integrated_job_data(job.id)
    assert [t.amount for t in view.finance_transactions] == [5200.0]


@pytest.mark.asyncio
async def test_failed_step_does_not_stop_later_steps(aggregator, seed):
    job, options = await _sync_fixture(seed)
    options.equipment_ids = ["missing-equipment"]

    result = await aggregator.perform_full_integration(job.id, options)

    assert result.success is False
    assert result.steps["equipment"].status == StepStatus.FAILED
    assert "missing-equipment" in result.steps["equipment"].error
    assert result.steps["inventory"].status == StepStatus.SUCCESS
    assert result.steps["finance"].status == StepStatus.SUCCESS
    assert result.steps["crew"].status == StepStatus.SUCCESS
    # nothing linked, so nothing to schedule
    assert result.steps["maintenance"].status == StepStatus.SKIPPED
    assert await seed.count(JobEquipmentLinkORM, JobEquipmentLinkORM.job_id == job.id) == 0


@pytest.mark.asyncio
async def test_disabled_steps_are_skipped(aggregator, seed):
    job, options = await _sync_fixture(seed)
    options.sync_equipment = False
    options.create_finance_records = False

    result = await aggregator.perform_full_integration(job.id, options)
    assert result.success is True
    assert result.steps["equipment"].status == StepStatus.SKIPPED
    assert result.steps["finance"].status == StepStatus.SKIPPED
    assert await seed.count(FinanceTransactionORM, FinanceTransactionORM.reference_id == job.id) == 0


@pytest.mark.asyncio
async def test_equipment_defaults_to_job_equipment(aggregator, seed):
    equipment = await seed.equipment()
    job = await seed.job(equipment_id=equipment.id)

    result = await aggregator.perform_full_integration(job.id, IntegrationOptions())
    assert result.steps["equipment"].status == StepStatus.SUCCESS
    assert result.steps["maintenance"].records_written == 1


@pytest.mark.asyncio
async def test_crew_selected_by_skills(aggregator, seed):
    job = await seed.job()
    await seed.crew_member(name="Bea Deck", skills=["tender"])
    electrician = await seed.crew_member(name="Cal Volt", skills=["electrical", "hydraulics"])

    result = await aggregator.perform_full_integration(
        job.id, IntegrationOptions(required_skills=["hydraulics"])
    )
    assert result.steps["crew"].status == StepStatus.SUCCESS
    view = await aggregator.get_integrated_job_data(job.id)
    assert [c.id for c in view.crew] == [electrician.id]


@pytest.mark.asyncio
async def test_crew_skipped_when_no_skill_match(aggregator, seed):
    job = await seed.job()
    await seed.crew_member(skills=["tender"])
    result = await aggregator.perform_full_integration(
        job.id, IntegrationOptions(required_skills=["welding"])
    )
    assert result.steps["crew"].status == StepStatus.SKIPPED
    assert "welding" in result.steps["crew"].detail


@pytest.mark.asyncio
async def test_sync_emits_module_events(aggregator, seed):
    job = await seed.job(estimated_cost=25000.0)
    equipment = await seed.equipment(next_maintenance_date=_now() - timedelta(days=3))
    item = await seed.inventory_item(quantity=2, min_stock=2)
    member = await seed.crew_member(certifications=[
        {"name": "STCW Basic Safety", "expires_at": (_now() + timedelta(days=5)).isoformat()},
    ])

    await aggregator.perform_full_integration(job.id, IntegrationOptions(
        equipment_ids=[equipment.id],
        inventory=[{"inventory_item_id": item.id, "quantity": 1}],
        crew_member_ids=[member.id],
    ))

    for event_type in (
        "equipment_overdue_maintenance",
        "inventory_low_stock",
        "high_cost_approval_required",
        "crew_certification_expiring",
        "claims_repairs_full_integration_completed",
    ):
        assert await seed.count(IntegrationEventORM, IntegrationEventORM.event_type == event_type) == 1, event_type


@pytest.mark.asyncio
async def test_full_integration_unknown_job(aggregator):
    with pytest.raises(NotFoundError):
        await aggregator.perform_full_integration("nope", IntegrationOptions())


# --- create_finance_transaction ----------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5])
async def test_finance_transaction_rejects_non_positive_amount(aggregator, seed, amount):
    job = await seed.job()
    with pytest.raises(InvalidInputError):
        await aggregator.create_finance_transaction(job.id, "claims_repairs", "expense", amount, "USD")
    assert await seed.count(FinanceTransactionORM) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
async def test_finance_transaction_rejects_non_finite_amount(aggregator, seed, amount):
    job = await seed.job()
    with pytest.raises(InvalidInputError):
        await aggregator.create_finance_transaction(job.id, "claims_repairs", "expense", amount, "USD")
    assert await seed.count(FinanceTransactionORM) == 0


@pytest.mark.parametrize("amount", [float("nan"), float("inf")])
def test_non_finite_amounts_fail_validation(amount):
    with pytest.raises(ValidationError):
        FinanceTransactionCreate(transaction_type="expense", amount=amount)
    with pytest.raises(ValidationError):
        IntegrationOptions(estimated_cost=amount)


@pytest.mark.asyncio
async def test_finance_transaction_accepts_smallest_amount(aggregator, seed):
    job = await seed.job()
    transaction = await aggregator.create_finance_transaction(
        job.id, "claims_repairs", "invoice", 0.01, "eur", description="Shipyard deposit"
    )
    assert transaction.amount == pytest.approx(0.01)
    assert transaction.currency == "EUR"
    assert transaction.status == "pending"
    assert transaction.reference_id == job.id
    assert await seed.count(FinanceTransactionORM) == 1


@pytest.mark.asyncio
async def test_finance_transaction_never_modifies_existing_rows(aggregator, seed):
    job = await seed.job()
    await aggregator.create_finance_transaction(job.id, "claims_repairs", "expense", 100.0, "USD")
    await aggregator.create_finance_transaction(job.id, "claims_repairs", "expense", 100.0, "USD")
    assert await seed.count(FinanceTransactionORM, FinanceTransactionORM.reference_id == job.id) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("transaction_type, currency", [("refund", "USD"), ("expense", "US"), ("expense", "12$")])
async def test_finance_transaction_rejects_bad_input(aggregator, seed, transaction_type, currency):
    job = await seed.job()
    with pytest.raises(InvalidInputError):
        await aggregator.create_finance_transaction(job.id, "claims_repairs", transaction_type, 10.0, currency)


@pytest.mark.asyncio
async def test_finance_transaction_unknown_job(aggregator):
    with pytest.raises(NotFoundError):
        await aggregator.create_finance_transaction("nope", "claims_repairs", "expense", 10.0, "USD")


# --- get_job_integration_status ----------------------------------------------

@pytest.mark.asyncio
async def test_job_integration_status_counters(aggregator, seed):
    job = await seed.job()
    await seed.link_equipment(job, await seed.equipment(next_maintenance_date=_now() - timedelta(days=1)))
    await seed.reservation(job, await seed.inventory_item(quantity=3, min_stock=2), quantity=2)
    await seed.finance_transaction(job, amount=300.0)
    await seed.finance_transaction(job, amount=200.0)
    await seed.compliance_check(job, await seed.requirement(), status="compliant")
    await seed.compliance_check(job, await seed.requirement(regulation_code="ISM-7"))

    status = await aggregator.get_job_integration_status(job.id)
    assert status.equipment.linked is True
    assert status.inventory.reserved == 2
    assert status.inventory.low_stock_alerts == 1
    assert status.finance.transactions == 2
    assert status.finance.total_cost == pytest.approx(500.0)
    assert status.crew.assigned is False
    assert status.crew.certifications_ok is True
    assert status.maintenance.overdue_items == 1
    assert status.compliance.requirements == 2
    assert status.compliance.compliant == 1
    assert status.compliance.pending == 1
    assert status.integration_health.score == 85


# --- equipment and inventory context -----------------------------------------

@pytest.mark.asyncio
async def test_equipment_maintenance_context(aggregator, seed, settings):
    equipment = await seed.equipment(next_maintenance_date=_now() - timedelta(days=2))
    other = await seed.equipment(name="Bow Thruster")
    jobs = []
    for i in range(settings.context_history_limit + 1):
        job = await seed.job(name=f"Generator job {i}")
        await seed.link_equipment(job, equipment)
        jobs.append(job)
    await seed.maintenance_schedule(jobs[0], equipment, _now() + timedelta(days=60))
    await seed.maintenance_schedule(jobs[1], equipment, _now() + timedelta(days=10))
    await seed.maintenance_schedule(jobs[0], other, _now() + timedelta(days=5))

    context = await aggregator.get_equipment_maintenance_context(equipment.id)

    assert context.equipment.id == equipment.id
    assert context.maintenance_overdue is True
    assert [m.equipment_id for m in context.maintenance_schedules] == [equipment.id, equipment.id]
    assert context.maintenance_schedules[0].next_due_date < context.maintenance_schedules[1].next_due_date
    assert len(context.recent_jobs) == settings.context_history_limit
    assert context.recent_jobs[0].name == f"Generator job {settings.context_history_limit}"
    assert context.recent_jobs[0].relationship_type == "failure"


@pytest.mark.asyncio
async def test_equipment_context_without_history(aggregator, seed):
    equipment = await seed.equipment()
    context = await aggregator.get_equipment_maintenance_context(equipment.id)
    assert context.maintenance_overdue is False
    assert context.maintenance_schedules == []
    assert context.recent_jobs == []


@pytest.mark.asyncio
async def test_inventory_usage_context(aggregator, seed):
    item = await seed.inventory_item(quantity=6, min_stock=3)
    first = await seed.job(name="Impeller swap")
    second = await seed.job(name="Sea strainer clean")
    third = await seed.job(name="Cancelled haul-out")
    await seed.reservation(first, item, quantity=2)
    await seed.reservation(second, item, quantity=2)
    await seed.reservation(third, item, quantity=4, status="cancelled")

    context = await aggregator.get_inventory_usage_context(item.id)

    assert context.item.part_number == "FF-5421"
    assert context.current_stock == 6
    assert context.reserved == 4
    assert context.available == 2
    assert context.low_stock_alert is True
    assert [u.job_name for u in context.usage_history] == [
        "Cancelled haul-out", "Sea strainer clean", "Impeller swap",
    ]


@pytest.mark.asyncio
async def test_inventory_context_without_reservations(aggregator, seed):
    item = await seed.inventory_item(quantity=10, min_stock=2)
    context = await aggregator.get_inventory_usage_context(item.id)
    assert context.reserved == 0
    assert context.available == 10
    assert context.low_stock_alert is False
    assert context.usage_history == []


@pytest.mark.asyncio
async def test_context_lookups_unknown_records(aggregator):
    with pytest.raises(NotFoundError):
        await aggregator.get_equipment_maintenance_context("missing")
    with pytest.raises(NotFoundError):
        await aggregator.get_inventory_usage_context("missing")
