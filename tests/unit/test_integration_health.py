"""
Unit tests for the integration health score and related pure helpers.
"""
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.schemas.integration import (
    ComplianceRequirement,
    CrewMember,
    Equipment,
    FinanceTransaction,
    IntegratedJobView,
    InventoryReservation,
    MaintenanceSchedule,
    WorkItem,
)
from backend.app.services.integration_aggregator import (
    HEALTH_PENALTIES,
    compute_integration_health,
    expiring_certifications,
    remaining_stock,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

RELATION_RECORDS = {
    "related_equipment": Equipment(id="eq-1", name="Port Generator"),
    "related_inventory": InventoryReservation(
        id="res-1", inventory_item_id="inv-1", item_name="Fuel Filter",
        quantity_reserved=2, quantity_on_hand=10, reservation_type="hard", status="active",
    ),
    "crew": CrewMember(id="crew-1", name="Alex Morgan"),
    "finance_transactions": FinanceTransaction(
        id="fin-1", reference_id="J1", source_module="claims_repairs", transaction_type="expense",
        amount=1200.0, currency="USD", status="pending", created_at=NOW,
    ),
    "compliance_requirements": ComplianceRequirement(
        id="chk-1", requirement_id="req-1", regulation_code="SOLAS-II-1",
        title="Fire protection", category="safety", severity="high", status="pending",
    ),
}


def _view(*present):
    job = WorkItem(id="J1", name="Generator repair", job_type="repair", status="in_progress",
                   priority="high", created_at=NOW)
    return IntegratedJobView(job=job, **{field: [RELATION_RECORDS[field]] for field in present})


def test_no_relations_scores_zero():
    """A job linked to nothing scores 0 and reports all five relations missing."""
    health = compute_integration_health(_view())
    assert health.score == 0
    assert health.missing == ["equipment", "inventory", "crew", "finance", "compliance"]
    assert len(health.issues) == 5


def test_all_relations_score_full():
    health = compute_integration_health(_view(*RELATION_RECORDS))
    assert health.score == 100
    assert health.missing == []
    assert health.issues == []


def test_equipment_and_finance_only_scores_sixty():
    """Job J1: equipment and finance linked; inventory, crew and compliance missing."""
    health = compute_integration_health(_view("related_equipment", "finance_transactions"))
    assert health.score == 100 - 15 - 15 - 10 == 60
    assert set(health.missing) == {"inventory", "crew", "compliance"}
    assert "No crew assigned" in health.issues


@pytest.mark.parametrize("name", list(HEALTH_PENALTIES))
def test_single_missing_relation_costs_its_penalty(name):
    field, penalty, issue = HEALTH_PENALTIES[name]
    present = [f for f in RELATION_RECORDS if f != field]
    health = compute_integration_health(_view(*present))
    assert health.score == 100 - penalty
    assert health.issues == [issue]


def test_score_is_monotonic_in_present_relations():
    """Adding a missing relation class never lowers the score."""
    fields = list(RELATION_RECORDS)
    for size in range(len(fields) + 1):
        for present in itertools.combinations(fields, size):
            base = compute_integration_health(_view(*present)).score
            for extra in set(fields) - set(present):
                assert compute_integration_health(_view(*present, extra)).score >= base


def test_maintenance_schedules_do_not_affect_score():
    view = _view()
    view.maintenance_schedules = [MaintenanceSchedule(id="m-1", equipment_id="eq-1", next_due_date=NOW)]
    assert compute_integration_health(view).score == 0


def test_score_ignores_relation_contents():
    one = _view("crew")
    many = _view("crew")
    many.crew = [CrewMember(id=f"crew-{i}", name=f"Deckhand {i}") for i in range(5)]
    assert compute_integration_health(one).score == compute_integration_health(many).score


def test_expiring_certifications_within_window():
    certifications = [
        {"name": "STCW Basic Safety", "expires_at": (NOW + timedelta(days=10)).isoformat()},
        {"name": "ENG1 Medical", "expires_at": (NOW + timedelta(days=200)).isoformat()},
        {"name": "GMDSS", "expires_at": (NOW - timedelta(days=1)).isoformat()},
        {"name": "Powerboat Level 2"},
    ]
    assert expiring_certifications(certifications, NOW, warning_days=30) == ["STCW Basic Safety", "GMDSS"]


def test_expiring_certifications_ignores_bad_dates():
    assert expiring_certifications([{"name": "Bad", "expires_at": "next spring"}], NOW, 30) == []
    assert expiring_certifications(None, NOW, 30) == []


def test_remaining_stock():
    reservation = RELATION_RECORDS["related_inventory"]
    assert remaining_stock(reservation) == 8
