"""Batch lifecycle API endpoints for the production floor."""

import uuid

from fastapi import APIRouter, Depends, status

from sgmi.api.deps import get_batch_service, http_error
from sgmi.core.auth import RequireBatchOperator
from sgmi.core.exceptions import ProductionError
from sgmi.models.batch import Batch
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
from sgmi.services.batch_lifecycle import BatchAction
from sgmi.services.batch_service import BatchService
from sgmi.services.production_helpers import batch_metrics, status_summary

router = APIRouter(prefix="/production", tags=["production"])

ACTION_MESSAGES = {
    BatchAction.START: "Batch started successfully",
    BatchAction.PAUSE: "Batch paused successfully",
    BatchAction.RESUME: "Batch resumed successfully",
    BatchAction.COMPLETE: "Batch completed successfully",
    BatchAction.STOP: "Batch stopped successfully",
}


@router.post(
    "/batches",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RequireBatchOperator],
)
async def create_batch(
    payload: BatchCreate,
    service: BatchService = Depends(get_batch_service),
) -> Batch:
    """Create a PLANNED batch under a production plan."""
    try:
        return await service.create_batch(
            payload.production_plan_id,
            payload.batch_number,
            estimated_kg=payload.estimated_kg,
            batch_count=payload.batch_count,
        )
    except ProductionError as exc:
        raise http_error(exc) from exc


@router.post(
    "/batches/completed-runs",
    response_model=CompletedRunResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RequireBatchOperator],
)
async def record_completed_run(
    payload: CompletedRunCreate,
    service: BatchService = Depends(get_batch_service),
) -> CompletedRunResponse:
    """Record a run that already finished on the floor."""
    try:
        batch_id, plan_id = await service.record_completed_run(
            payload.product,
            payload.shift,
            payload.date,
            payload.batch_count,
            payload.duration_minutes,
        )
    except ProductionError as exc:
        raise http_error(exc) from exc
    return CompletedRunResponse(batch_id=batch_id, production_plan_id=plan_id)


@router.get("/plans/{plan_id}/batches", response_model=BatchListResponse)
async def list_plan_batches(
    plan_id: uuid.UUID,
    service: BatchService = Depends(get_batch_service),
) -> BatchListResponse:
    """List a plan's batches ordered by batch number, with a per-status count."""
    try:
        batches = await service.list_batches(plan_id)
    except ProductionError as exc:
        raise http_error(exc) from exc
    return BatchListResponse(
        plan_id=plan_id,
        count=len(batches),
        status_summary=status_summary(batches),
        batches=[BatchResponse.model_validate(b) for b in batches],
    )


@router.post(
    "/batches/{batch_id}/actions",
    response_model=BatchActionResult,
    dependencies=[RequireBatchOperator],
)
async def perform_batch_action(
    batch_id: uuid.UUID,
    payload: BatchActionRequest,
    service: BatchService = Depends(get_batch_service),
) -> BatchActionResult:
    """Start, pause, resume, complete or stop a batch."""
    try:
        outcome = await service.perform_action(batch_id, payload.action)
    except ProductionError as exc:
        raise http_error(exc) from exc

    transition = outcome.transition
    return BatchActionResult(
        batch_id=outcome.batch_id,
        action=transition.action.value,
        previous_status=transition.previous_status.value,
        new_status=transition.new_status.value,
        pause_duration_minutes=outcome.pause_duration_minutes,
        message=ACTION_MESSAGES[transition.action],
    )


@router.get("/batches/{batch_id}/status", response_model=BatchStatusResponse)
async def get_batch_status(
    batch_id: uuid.UUID,
    service: BatchService = Depends(get_batch_service),
) -> BatchStatusResponse:
    """Current state of a batch plus its duration metrics once finished."""
    try:
        batch = await service.get_batch(batch_id)
    except ProductionError as exc:
        raise http_error(exc) from exc

    metrics = batch_metrics(batch.start_time, batch.end_time, batch.pause_duration_minutes)
    return BatchStatusResponse(
        **BatchResponse.model_validate(batch).model_dump(),
        metrics=BatchMetrics(**metrics),
    )
