"""ProductionEntry Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from sgmi.models.production_plan import Shift


class ProductionEntryCreate(BaseModel):
    """Schema for reporting produced quantity."""

    product_id: uuid.UUID
    quantity: Decimal = Field(..., gt=0)
    shift: Shift
    batch_count: int | None = Field(default=None, gt=0)
    duration_minutes: int | None = Field(default=None, ge=0)


class ProductionEntryResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    quantity: Decimal
    shift: str
    batch_count: int | None
    duration_minutes: int | None
    created_at: datetime

    model_config = {"from_attributes": True}
