"""Pydantic v2 schemas for request/response validation."""

from sgmi.schemas.batch import (
    BatchActionRequest,
    BatchActionResult,
    BatchCreate,
    BatchListResponse,
    BatchMetrics,
    BatchResponse,
    BatchStatusResponse,
    CompletedRunCreate,
    CompletedRunResponse,
)
from sgmi.schemas.production_entry import ProductionEntryCreate, ProductionEntryResponse
from sgmi.schemas.production_plan import (
    PlanStatusUpdate,
    ProductionPlanCreate,
    ProductionPlanResponse,
)
from sgmi.schemas.realtime import BatchActionCommand, ClientMessage, ServerMessage

__all__ = [
    "BatchActionCommand",
    "BatchActionRequest",
    "BatchActionResult",
    "BatchCreate",
    "BatchListResponse",
    "BatchMetrics",
    "BatchResponse",
    "BatchStatusResponse",
    "ClientMessage",
    "CompletedRunCreate",
    "CompletedRunResponse",
    "PlanStatusUpdate",
    "ProductionEntryCreate",
    "ProductionEntryResponse",
    "ProductionPlanCreate",
    "ProductionPlanResponse",
    "ServerMessage",
]
