"""Batch Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class BatchCreate(BaseModel):
    """Schema for creating a batch.

    Exactly one of ``estimated_kg`` or ``batch_count`` must be given; a batch
    count is converted to kilograms from the plan product's type.
    """

    production_plan_id: uuid.UUID
    batch_number: int = Field(..., gt=0)
    estimated_kg: Decimal | None = Field(default=None, ge=0)
    batch_count: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _weight_source(self) -> "BatchCreate":
        if (self.estimated_kg is None) == (self.batch_count is None):
            raise ValueError("Provide exactly one of estimated_kg or batch_count")
        return self


class BatchActionRequest(BaseModel):
    """Schema for a lifecycle action on a batch."""

    action: str = Field(..., description="One of start, pause, resume, complete, stop")


class BatchResponse(BaseModel):
    """Schema for batch responses."""

    id: uuid.UUID
    production_plan_id: uuid.UUID
    batch_number: int
    status: str
    start_time: datetime | None
    end_time: datetime | None
    pause_duration_minutes: int
    estimated_kg: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BatchListResponse(BaseModel):
    """Batches of one plan plus a count per status."""

    plan_id: uuid.UUID
    count: int
    status_summary: dict[str, int]
    batches: list[BatchResponse]


class BatchMetrics(BaseModel):
    duration_minutes: int | None = None
    effective_duration_minutes: int | None = None


class BatchStatusResponse(BatchResponse):
    """Batch state with derived duration metrics."""

    metrics: BatchMetrics


class BatchActionResult(BaseModel):
    """Outcome of a successful lifecycle action."""

    batch_id: uuid.UUID
    action: str
    previous_status: str
    new_status: str
    pause_duration_minutes: int
    message: str


class CompletedRunCreate(BaseModel):
    """A production run reported after it finished."""

    product: str = Field(..., max_length=200, description="Product name")
    shift: str = Field(..., description="MANHÃ/TARDE/NOITE or MORNING/AFTERNOON/NIGHT")
    date: str = Field(..., pattern=r"^\d{2}-\d{2}-\d{4}$", description="DD-MM-YYYY")
    batch_count: int = Field(..., gt=0)
    duration_minutes: int = Field(..., ge=0)


class CompletedRunResponse(BaseModel):
    batch_id: uuid.UUID
    production_plan_id: uuid.UUID
