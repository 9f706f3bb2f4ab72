"""End-of-shift production entries."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from sgmi.core.exceptions import ProductNotFound
from sgmi.models.product import Product
from sgmi.models.production_entry import ProductionEntry
from sgmi.realtime.manager import Audience, ConnectionManager
from sgmi.schemas.production_entry import ProductionEntryCreate

logger = logging.getLogger(__name__)


class ProductionEntryService:
    def __init__(self, db: AsyncSession, broadcaster: ConnectionManager) -> None:
        self.db = db
        self.broadcaster = broadcaster

    async def create_entry(self, payload: ProductionEntryCreate) -> ProductionEntry:
        """Store a produced quantity and notify the director dashboards."""
        product = await self.db.get(Product, payload.product_id)
        if product is None:
            raise ProductNotFound(f"Product {payload.product_id} not found")

        entry = ProductionEntry(
            product_id=payload.product_id,
            quantity=payload.quantity,
            shift=payload.shift.value,
            batch_count=payload.batch_count,
            duration_minutes=payload.duration_minutes,
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        await self.db.commit()

        logger.info("Recorded %s of %s (%s shift)", entry.quantity, product.name, entry.shift)
        self.broadcaster.broadcast(
            "production_entry_created",
            {
                "entry_id": entry.id,
                "product_id": entry.product_id,
                "product_name": product.name,
                "quantity": entry.quantity,
                "shift": entry.shift,
                "batch_count": entry.batch_count,
                "created_at": entry.created_at,
            },
            Audience.DIRECTORS,
        )
        return entry
