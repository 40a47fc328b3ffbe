"""
Cross-Module Integration API Router.

Integrated job views, health scores, insights and write-back sync for
Claims & Repairs jobs. Empty relations are normal results, not errors:
only unknown jobs (404) and rejected input (422) fail.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Security

from backend.app.core.exceptions import InvalidInputError, NotFoundError
from backend.app.core.security import (
    FINANCE_WRITE,
    INTEGRATION_READ,
    INTEGRATION_WRITE,
    User,
    get_current_user,
)
from backend.app.schemas.integration import (
    EquipmentMaintenanceContext,
    FinanceTransaction,
    FinanceTransactionCreate,
    IntegratedJobResponse,
    IntegrationHealth,
    IntegrationOptions,
    IntegrationResult,
    InventoryUsageContext,
    JobInsights,
    JobIntegrationStatus,
)
from backend.app.services.integration_aggregator import (
    IntegrationAggregator,
    compute_integration_health,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def get_integration_aggregator(request: Request) -> IntegrationAggregator:
    return request.app.state.integration_aggregator


@router.get("/jobs/{job_id}/integration", response_model=IntegratedJobResponse)
async def get_integrated_job(
    job_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    """Everything linked to the job across modules, plus its integration health."""
    try:
        view = await aggregator.get_integrated_job_data(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return IntegratedJobResponse(**view.model_dump(), integration_health=compute_integration_health(view))


@router.get("/jobs/{job_id}/integration/health", response_model=IntegrationHealth)
async def get_integration_health(
    job_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    try:
        return await aggregator.get_integration_health(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/jobs/{job_id}/integration/status", response_model=JobIntegrationStatus)
async def get_integration_status(
    job_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    """Per-module counters for dashboard badges."""
    try:
        return await aggregator.get_job_integration_status(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/jobs/{job_id}/insights", response_model=JobInsights)
async def get_job_insights(
    job_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    try:
        return await aggregator.generate_insights(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/equipment/{equipment_id}/maintenance-context", response_model=EquipmentMaintenanceContext)
async def get_equipment_maintenance_context(
    equipment_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    """Maintenance schedules and recent jobs for a piece of equipment."""
    try:
        return await aggregator.get_equipment_maintenance_context(equipment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/inventory/{item_id}/usage-context", response_model=InventoryUsageContext)
async def get_inventory_usage_context(
    item_id: str,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_READ]),
):
    try:
        return await aggregator.get_inventory_usage_context(item_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/jobs/{job_id}/integration/sync", response_model=IntegrationResult)
async def sync_job_integration(
    job_id: str,
    options: Optional[IntegrationOptions] = None,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[INTEGRATION_WRITE]),
):
    """
    Push the job out to the enabled modules.

    Always 200 for an existing job; inspect `success` and the per-step map for
    partial failures.
    """
    logger.info(f"Integration sync for job {job_id} requested by {current_user.id}")
    try:
        return await aggregator.perform_full_integration(job_id, options)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/jobs/{job_id}/finance-transactions", response_model=FinanceTransaction, status_code=201)
async def create_finance_transaction(
    job_id: str,
    body: FinanceTransactionCreate,
    aggregator: IntegrationAggregator = Depends(get_integration_aggregator),
    current_user: User = Security(get_current_user, scopes=[FINANCE_WRITE]),
):
    try:
        return await aggregator.create_finance_transaction(
            job_id=job_id,
            source_module=body.source_module,
            transaction_type=body.transaction_type.value,
            amount=body.amount,
            currency=body.currency,
            description=body.description,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
