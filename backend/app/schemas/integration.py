"""
Cross-Module Integration Schemas.

Shared contract between the integration aggregator, its router and the
Claims & Repairs frontend views.
"""
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WorkItem(BaseModel):
    """A Claims & Repairs job."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    job_type: str
    status: str
    priority: str
    category: Optional[str] = None
    yacht_id: Optional[str] = None
    equipment_id: Optional[str] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    currency: str = "USD"
    created_at: datetime
    updated_at: Optional[datetime] = None


class Equipment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    model_number: Optional[str] = None
    serial_number: Optional[str] = None
    category: Optional[str] = None
    next_maintenance_date: Optional[datetime] = None


class InventoryReservation(BaseModel):
    """A reservation joined with the stock level of the reserved item."""
    id: str
    inventory_item_id: str
    item_name: str
    part_number: Optional[str] = None
    quantity_reserved: int
    quantity_on_hand: int
    min_stock: Optional[int] = None
    reservation_type: str
    status: str
    valid_until: Optional[datetime] = None


class CrewMember(BaseModel):
    id: str
    name: str
    role: Optional[str] = None
    skills: List[str] = []
    certifications: List[Dict[str, Any]] = []
    assignment_role: Optional[str] = None


class FinanceTransaction(BaseModel):
    id: str
    reference_id: str
    source_module: str
    transaction_type: str
    amount: float
    currency: str
    description: Optional[str] = None
    status: str
    created_at: datetime


class ComplianceRequirement(BaseModel):
    """A requirement as it applies to one job (the job's check joined with the requirement)."""
    id: str
    requirement_id: str
    regulation_code: str
    title: str
    category: str
    severity: str
    status: str
    due_date: Optional[datetime] = None


class MaintenanceSchedule(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    equipment_id: str
    next_due_date: datetime
    description: Optional[str] = None


class IntegratedJobView(BaseModel):
    """
    Computed aggregate of everything linked to one job. Never persisted.
    Every relation may be empty; degraded_relations names lookups that failed.
    """
    job: WorkItem
    related_equipment: List[Equipment] = []
    related_inventory: List[InventoryReservation] = []
    finance_transactions: List[FinanceTransaction] = []
    compliance_requirements: List[ComplianceRequirement] = []
    crew: List[CrewMember] = []
    maintenance_schedules: List[MaintenanceSchedule] = []
    degraded_relations: List[str] = []


class IntegrationHealth(BaseModel):
    score: int = Field(ge=0, le=100)
    missing: List[str] = []
    issues: List[str] = []


class IntegratedJobResponse(IntegratedJobView):
    integration_health: IntegrationHealth


class EquipmentJob(BaseModel):
    """A job the equipment was linked to, newest link first."""
    job_id: str
    name: str
    job_type: str
    status: str
    relationship_type: str
    linked_at: datetime


class EquipmentMaintenanceContext(BaseModel):
    equipment: Equipment
    maintenance_overdue: bool
    maintenance_schedules: List[MaintenanceSchedule] = []
    recent_jobs: List[EquipmentJob] = []


class InventoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    part_number: Optional[str] = None
    quantity: int
    min_stock: Optional[int] = None


class InventoryUsage(BaseModel):
    reservation_id: str
    job_id: str
    job_name: Optional[str] = None
    quantity_reserved: int
    reservation_type: str
    status: str
    reserved_at: datetime


class InventoryUsageContext(BaseModel):
    """
    Stock position of one item. `reserved` counts active reservations only;
    low_stock_alert compares what is left after them with the item's minimum.
    """
    item: InventoryItem
    usage_history: List[InventoryUsage] = []
    current_stock: int
    reserved: int
    available: int
    low_stock_alert: bool


class InsightSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Insight(BaseModel):
    type: str
    message: str
    severity: InsightSeverity
    record_id: Optional[str] = None


class JobInsights(BaseModel):
    cost_optimization: List[Insight] = []
    preventive_suggestions: List[Insight] = []
    compliance_alerts: List[Insight] = []
    resource_recommendations: List[Insight] = []


class ReservationRequest(BaseModel):
    inventory_item_id: str
    quantity: int = Field(1, gt=0)


class IntegrationOptions(BaseModel):
    """
    Write-back switches plus the inputs each step needs.
    Accepts both snake_case and the frontend's camelCase keys.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sync_equipment: bool = True
    update_inventory: bool = True
    create_finance_records: bool = True
    assign_crew: bool = True
    schedule_maintenance: bool = True
    ensure_compliance: bool = True

    equipment_ids: List[str] = []
    inventory: List[ReservationRequest] = []
    estimated_cost: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    currency: Optional[str] = Field(None, pattern=r"^[A-Za-z]{3}$")
    crew_member_ids: List[str] = []
    required_skills: List[str] = []


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class StepResult(BaseModel):
    status: StepStatus
    records_written: int = 0
    detail: Optional[str] = None
    error: Optional[str] = None


class IntegrationResult(BaseModel):
    job_id: str
    success: bool
    steps: Dict[str, StepResult]


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INVOICE = "invoice"


class FinanceTransactionCreate(BaseModel):
    source_module: str = "claims_repairs"
    transaction_type: TransactionType
    amount: float = Field(gt=0, allow_inf_nan=False)
    currency: str = Field("USD", pattern=r"^[A-Za-z]{3}$")
    description: Optional[str] = None


class EquipmentStatus(BaseModel):
    linked: bool
    count: int


class InventoryStatus(BaseModel):
    reserved: int
    low_stock_alerts: int


class FinanceStatus(BaseModel):
    transactions: int
    total_cost: float


class CrewStatus(BaseModel):
    assigned: bool
    count: int
    certifications_ok: bool


class MaintenanceStatus(BaseModel):
    schedules: int
    overdue_items: int


class ComplianceStatus(BaseModel):
    requirements: int
    compliant: int
    pending: int


class JobIntegrationStatus(BaseModel):
    job_id: str
    equipment: EquipmentStatus
    inventory: InventoryStatus
    finance: FinanceStatus
    crew: CrewStatus
    maintenance: MaintenanceStatus
    compliance: ComplianceStatus
    integration_health: IntegrationHealth
