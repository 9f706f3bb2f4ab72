"""Director-facing production plan endpoints."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from sgmi.api.deps import get_plan_service, http_error
from sgmi.core.auth import RequirePlanner
from sgmi.core.exceptions import ProductionError
from sgmi.models.production_plan import PlanStatus, ProductionPlan
from sgmi.schemas.production_plan import (
    PlanStatusUpdate,
    ProductionPlanCreate,
    ProductionPlanResponse,
)
from sgmi.services.production_plan_service import ProductionPlanService

router = APIRouter(prefix="/director/production-plans", tags=["production-plans"])


@router.get("", response_model=list[ProductionPlanResponse])
async def list_production_plans(
    date_from: datetime | None = Query(None, alias="from"),
    date_to: datetime | None = Query(None, alias="to"),
    status_filter: PlanStatus | None = Query(None, alias="status"),
    service: ProductionPlanService = Depends(get_plan_service),
) -> list[ProductionPlan]:
    """List plans, newest planned date first, with optional date/status filters."""
    return await service.list_plans(date_from=date_from, date_to=date_to, status=status_filter)


@router.post(
    "",
    response_model=ProductionPlanResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RequirePlanner],
)
async def create_production_plan(
    payload: ProductionPlanCreate,
    service: ProductionPlanService = Depends(get_plan_service),
) -> ProductionPlan:
    try:
        return await service.create_plan(payload)
    except ProductionError as exc:
        raise http_error(exc) from exc


@router.patch(
    "/{plan_id}/status",
    response_model=ProductionPlanResponse,
    dependencies=[RequirePlanner],
)
async def update_production_plan_status(
    plan_id: uuid.UUID,
    payload: PlanStatusUpdate,
    service: ProductionPlanService = Depends(get_plan_service),
) -> ProductionPlan:
    try:
        return await service.update_status(plan_id, payload.status)
    except ProductionError as exc:
        raise http_error(exc) from exc
