"""Batch creation, lifecycle actions and batch queries.

Every action on a batch runs under an in-process lock for that batch id
and a row lock inside its transaction, so two actions on the same batch
never both see the same starting status. Pause intervals are tracked in the
``paused_at`` column rather than in process memory.
"""

import asyncio
import logging
import uuid
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from sgmi.core.exceptions import (
    BatchNotFound,
    DuplicateBatchNumber,
    PersistenceFailure,
    PlanNotFound,
    ProductNotFound,
)
from sgmi.models.batch import Batch, BatchStatus
from sgmi.models.product import Product
from sgmi.models.production_plan import PlanStatus, ProductionPlan
from sgmi.realtime.manager import Audience, ConnectionManager
from sgmi.realtime.timers import BatchTimerSnapshot
from sgmi.services.batch_lifecycle import BatchAction, BatchTransition, apply_action, parse_action
from sgmi.services.plan_completion import PlanCompletionWatcher
from sgmi.services.production_helpers import (
    COMPLETED_RUN_KG_PER_BATCH,
    calculate_kg_from_batches,
    parse_run_date,
    parse_shift,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BatchActionOutcome:
    """What a successful lifecycle action changed."""

    batch_id: uuid.UUID
    batch_number: int
    production_plan_id: uuid.UUID
    product_name: str
    transition: BatchTransition
    pause_duration_minutes: int
    occurred_at: datetime


class BatchService:
    """Lifecycle engine for production batches."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: ConnectionManager,
        completion_watcher: PlanCompletionWatcher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._completion_watcher = completion_watcher or PlanCompletionWatcher(
            session_factory, broadcaster
        )
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, batch_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(batch_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[batch_id] = lock
        return lock

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------

    async def create_batch(
        self,
        production_plan_id: uuid.UUID,
        batch_number: int,
        estimated_kg: Decimal | None = None,
        batch_count: int | None = None,
    ) -> Batch:
        """Insert a PLANNED batch under a plan.

        The weight is either given directly or derived from ``batch_count``
        and the plan product's type.

        Raises:
            PlanNotFound: the plan does not exist.
            DuplicateBatchNumber: the plan already has this batch number.
        """
        if (estimated_kg is None) == (batch_count is None):
            raise ValueError("Provide exactly one of estimated_kg or batch_count")

        try:
            async with self._session_factory.begin() as session:
                plan = await self._get_plan(session, production_plan_id)
                if plan is None:
                    raise PlanNotFound(production_plan_id)
                if await self._batch_number_taken(session, production_plan_id, batch_number):
                    raise DuplicateBatchNumber(production_plan_id, batch_number)

                if estimated_kg is None:
                    estimated_kg = calculate_kg_from_batches(plan.product.type, batch_count)

                batch = Batch(
                    production_plan_id=production_plan_id,
                    batch_number=batch_number,
                    estimated_kg=estimated_kg,
                    status=BatchStatus.PLANNED.value,
                    pause_duration_minutes=0,
                )
                session.add(batch)
                await session.flush()
                await session.refresh(batch)
                product_name = plan.product.name
        except IntegrityError as exc:
            # Lost a race with a concurrent insert of the same number
            raise DuplicateBatchNumber(production_plan_id, batch_number) from exc
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to create batch") from exc

        logger.info("Created batch %s (#%d) for plan %s", batch.id, batch_number, production_plan_id)
        self._broadcaster.broadcast(
            "batch_created",
            {
                "batchId": batch.id,
                "production_plan_id": production_plan_id,
                "batch_number": batch_number,
                "product_name": product_name,
                "estimated_kg": batch.estimated_kg,
            },
            Audience.BATCH_OPERATORS,
        )
        return batch

    async def record_completed_run(
        self,
        product_name: str,
        shift: str,
        date: str,
        batch_count: int,
        duration_minutes: int,
    ) -> tuple[uuid.UUID, uuid.UUID]:
        """Record a run that already finished as a COMPLETED plan with one batch.

        Returns ``(batch_id, production_plan_id)``.
        """
        plan_shift = parse_shift(shift)
        planned_date = parse_run_date(date)
        now = self._clock()

        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(select(Product).where(Product.name == product_name))
                product = result.scalar_one_or_none()
                if product is None:
                    raise ProductNotFound(f'Product "{product_name}" not found')

                plan = ProductionPlan(
                    product_id=product.id,
                    planned_quantity=COMPLETED_RUN_KG_PER_BATCH * batch_count,
                    planned_date=planned_date,
                    shift=plan_shift.value,
                    status=PlanStatus.COMPLETED.value,
                )
                session.add(plan)
                await session.flush()

                batch = Batch(
                    production_plan_id=plan.id,
                    batch_number=1,
                    estimated_kg=calculate_kg_from_batches(product.type, batch_count),
                    status=BatchStatus.COMPLETED.value,
                    start_time=now - timedelta(minutes=duration_minutes),
                    end_time=now,
                    pause_duration_minutes=0,
                )
                session.add(batch)
                await session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to record completed run") from exc

        logger.info("Recorded completed run of %s as plan %s", product_name, plan.id)
        return batch.id, plan.id

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def perform_action(self, batch_id: uuid.UUID, action: str | BatchAction) -> BatchActionOutcome:
        """Apply a lifecycle action to a batch and publish the change.

        Raises:
            UnknownAction: ``action`` is not a lifecycle action.
            BatchNotFound: the batch does not exist.
            InvalidTransition: the batch's status does not accept ``action``.
            PersistenceFailure: the database failed; nothing was changed.
        """
        action = parse_action(action)

        async with self._lock_for(batch_id):
            now = self._clock()
            try:
                async with self._session_factory.begin() as session:
                    batch = await self._lock_batch(session, batch_id)
                    if batch is None:
                        raise BatchNotFound(batch_id)
                    transition = apply_action(batch, action, now)
                    outcome = BatchActionOutcome(
                        batch_id=batch.id,
                        batch_number=batch.batch_number,
                        production_plan_id=batch.production_plan_id,
                        product_name=batch.production_plan.product.name,
                        transition=transition,
                        pause_duration_minutes=batch.pause_duration_minutes,
                        occurred_at=now,
                    )
            except SQLAlchemyError as exc:
                raise PersistenceFailure("Failed to perform batch action") from exc

        logger.info(
            "Batch %s: %s -> %s (%s)",
            batch_id,
            transition.previous_status.value,
            transition.new_status.value,
            action.value,
        )
        self._broadcaster.broadcast(
            "batch_status_updated",
            {
                "batchId": outcome.batch_id,
                "batch_number": outcome.batch_number,
                "production_plan_id": outcome.production_plan_id,
                "product_name": outcome.product_name,
                "previous_status": transition.previous_status.value,
                "new_status": transition.new_status.value,
                "action": action.value,
                "pause_duration_minutes": outcome.pause_duration_minutes,
                "timestamp": now,
            },
            Audience.BATCH_OPERATORS,
        )

        if transition.new_status is BatchStatus.COMPLETED:
            await self._completion_watcher.check(outcome.production_plan_id)

        return outcome

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    async def get_batch(self, batch_id: uuid.UUID) -> Batch:
        try:
            async with self._session_factory() as session:
                batch = await session.get(Batch, batch_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to get batch status") from exc
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    async def list_batches(self, production_plan_id: uuid.UUID) -> list[Batch]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Batch)
                    .where(Batch.production_plan_id == production_plan_id)
                    .order_by(Batch.batch_number)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to fetch batches") from exc

    async def list_in_progress(self) -> list[BatchTimerSnapshot]:
        """Snapshot every IN_PROGRESS batch for the timer sweep."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Batch, Product.name)
                    .join(Batch.production_plan)
                    .join(ProductionPlan.product)
                    .where(Batch.status == BatchStatus.IN_PROGRESS.value)
                    .order_by(Batch.start_time)
                )
                rows = result.all()
        except (SQLAlchemyError, OSError) as exc:
            raise PersistenceFailure("Failed to read in-progress batches") from exc

        return [
            BatchTimerSnapshot(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                production_plan_id=batch.production_plan_id,
                product_name=product_name,
                start_time=batch.start_time,
                status=batch.status,
            )
            for batch, product_name in rows
        ]

    # -------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------

    async def _get_plan(self, session: AsyncSession, plan_id: uuid.UUID) -> ProductionPlan | None:
        result = await session.execute(
            select(ProductionPlan)
            .options(selectinload(ProductionPlan.product))
            .where(ProductionPlan.id == plan_id)
        )
        return result.scalar_one_or_none()

    async def _batch_number_taken(
        self, session: AsyncSession, plan_id: uuid.UUID, batch_number: int
    ) -> bool:
        result = await session.execute(
            select(Batch.id).where(
                Batch.production_plan_id == plan_id,
                Batch.batch_number == batch_number,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _lock_batch(self, session: AsyncSession, batch_id: uuid.UUID) -> Batch | None:
        result = await session.execute(
            select(Batch)
            .options(selectinload(Batch.production_plan).selectinload(ProductionPlan.product))
            .where(Batch.id == batch_id)
            .with_for_update(of=Batch)
        )
        return result.scalar_one_or_none()
