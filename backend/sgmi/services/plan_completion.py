"""Marks a production plan COMPLETED once every one of its batches is."""

import asyncio
import logging
import uuid
import weakref
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from sgmi.models.batch import Batch, BatchStatus
from sgmi.models.production_plan import PlanStatus, ProductionPlan
from sgmi.realtime.manager import Audience, ConnectionManager

logger = logging.getLogger(__name__)


def plan_is_complete(statuses: Iterable[str]) -> bool:
    """True when there is at least one batch and all of them are COMPLETED."""
    statuses = list(statuses)
    return bool(statuses) and all(s == BatchStatus.COMPLETED.value for s in statuses)


class PlanCompletionWatcher:
    """Re-evaluates a plan after one of its batches completes.

    The check runs in full every time. A plan that is already COMPLETED is
    left alone, so concurrent or repeated checks broadcast at most once.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: ConnectionManager,
    ) -> None:
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, plan_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(plan_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[plan_id] = lock
        return lock

    async def check(self, plan_id: uuid.UUID) -> bool:
        """Complete the plan if all its batches are done.

        Returns True only for the call that moved the plan to COMPLETED.
        Errors are logged and swallowed.
        """
        async with self._lock_for(plan_id):
            try:
                notification = await self._complete_if_done(plan_id)
            except Exception:
                logger.exception("Error checking plan completion for %s", plan_id)
                return False

        if notification is None:
            return False

        logger.info(
            "Production plan %s completed (%d batches)", plan_id, notification["total_batches"]
        )
        self._broadcaster.broadcast("production_plan_completed", notification, Audience.DIRECTORS)
        return True

    async def _complete_if_done(self, plan_id: uuid.UUID) -> dict[str, Any] | None:
        async with self._session_factory.begin() as session:
            plan = await self._lock_plan(session, plan_id)
            if plan is None:
                logger.warning("Plan %s vanished before completion check", plan_id)
                return None
            if plan.status == PlanStatus.COMPLETED.value:
                return None

            statuses = await self._batch_statuses(session, plan_id)
            if not plan_is_complete(statuses):
                return None

            plan.status = PlanStatus.COMPLETED.value
            notification = {
                "production_plan_id": plan.id,
                "product_name": plan.product.name,
                "planned_date": plan.planned_date,
                "shift": plan.shift,
                "total_batches": len(statuses),
            }
        return notification

    async def _lock_plan(self, session: AsyncSession, plan_id: uuid.UUID) -> ProductionPlan | None:
        result = await session.execute(
            select(ProductionPlan)
            .options(selectinload(ProductionPlan.product))
            .where(ProductionPlan.id == plan_id)
            .with_for_update(of=ProductionPlan)
        )
        return result.scalar_one_or_none()

    async def _batch_statuses(self, session: AsyncSession, plan_id: uuid.UUID) -> list[str]:
        result = await session.execute(
            select(Batch.status).where(Batch.production_plan_id == plan_id)
        )
        return list(result.scalars().all())
