"""ProductionPlan Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from sgmi.models.production_plan import PlanStatus, Shift


class ProductionPlanCreate(BaseModel):
    """Schema for creating a production plan."""

    product_id: uuid.UUID
    planned_quantity: Decimal = Field(..., gt=0)
    planned_date: datetime
    shift: Shift | None = None


class PlanStatusUpdate(BaseModel):
    status: PlanStatus


class ProductionPlanResponse(BaseModel):
    """Schema for production plan responses."""

    id: uuid.UUID
    product_id: uuid.UUID
    planned_quantity: Decimal
    planned_date: datetime
    shift: str | None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
