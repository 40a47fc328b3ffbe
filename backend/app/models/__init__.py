"""Models package."""

from backend.app.models.job_orm import ClaimRepairJobORM
from backend.app.models.equipment_orm import EquipmentORM, JobEquipmentLinkORM, MaintenanceScheduleORM
from backend.app.models.inventory_orm import InventoryItemORM, InventoryReservationORM
from backend.app.models.crew_orm import CrewMemberORM, CrewAssignmentORM
from backend.app.models.finance_orm import FinanceTransactionORM
from backend.app.models.compliance_orm import ComplianceRequirementORM, JobComplianceCheckORM
from backend.app.models.integration_event_orm import IntegrationEventORM
from backend.app.models.behavior_orm import UserActionORM, BehaviorPatternORM, ProactiveSuggestionORM

__all__ = [
    "ClaimRepairJobORM",
    "EquipmentORM",
    "JobEquipmentLinkORM",
    "MaintenanceScheduleORM",
    "InventoryItemORM",
    "InventoryReservationORM",
    "CrewMemberORM",
    "CrewAssignmentORM",
    "FinanceTransactionORM",
    "ComplianceRequirementORM",
    "JobComplianceCheckORM",
    "IntegrationEventORM",
    "UserActionORM",
    "BehaviorPatternORM",
    "ProactiveSuggestionORM",
]
