"""Production plan creation, listing and status changes."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sgmi.core.exceptions import PlanNotFound, ProductNotFound
from sgmi.models.product import Product
from sgmi.models.production_plan import PlanStatus, ProductionPlan
from sgmi.realtime.manager import Audience, ConnectionManager
from sgmi.schemas.production_plan import ProductionPlanCreate

logger = logging.getLogger(__name__)


class ProductionPlanService:
    """Plan operations for one request session.

    Changes are committed before they are broadcast, so clients never hear
    about a plan that was rolled back.
    """

    def __init__(self, db: AsyncSession, broadcaster: ConnectionManager) -> None:
        self.db = db
        self.broadcaster = broadcaster

    async def create_plan(self, payload: ProductionPlanCreate) -> ProductionPlan:
        product = await self.db.get(Product, payload.product_id)
        if product is None:
            raise ProductNotFound(f"Product {payload.product_id} not found")

        plan = ProductionPlan(
            product_id=payload.product_id,
            planned_quantity=payload.planned_quantity,
            planned_date=payload.planned_date,
            shift=payload.shift.value if payload.shift else None,
            status=PlanStatus.PENDING.value,
        )
        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)
        await self.db.commit()

        logger.info("Created production plan %s for %s", plan.id, product.name)
        self.broadcaster.broadcast(
            "production_plan_created",
            {
                "production_plan_id": plan.id,
                "product_id": plan.product_id,
                "product_name": product.name,
                "planned_quantity": plan.planned_quantity,
                "planned_date": plan.planned_date,
                "shift": plan.shift,
                "status": plan.status,
            },
            Audience.BATCH_OPERATORS,
        )
        return plan

    async def list_plans(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        status: PlanStatus | None = None,
    ) -> list[ProductionPlan]:
        query = select(ProductionPlan)
        if date_from is not None:
            query = query.where(ProductionPlan.planned_date >= date_from)
        if date_to is not None:
            query = query.where(ProductionPlan.planned_date <= date_to)
        if status is not None:
            query = query.where(ProductionPlan.status == status.value)

        query = query.order_by(ProductionPlan.planned_date.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_status(self, plan_id: uuid.UUID, status: PlanStatus) -> ProductionPlan:
        plan = await self.db.get(ProductionPlan, plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)

        previous = plan.status
        plan.status = status.value
        await self.db.flush()
        await self.db.refresh(plan)
        await self.db.commit()

        logger.info("Plan %s status %s -> %s", plan_id, previous, plan.status)
        self.broadcaster.broadcast(
            "production_plan_status_updated",
            {
                "production_plan_id": plan.id,
                "previous_status": previous,
                "new_status": plan.status,
            },
            Audience.BATCH_OPERATORS,
        )
        return plan
