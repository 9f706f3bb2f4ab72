"""SQLAlchemy ORM models."""

from sgmi.models.batch import Batch, BatchStatus
from sgmi.models.product import Product, ProductType, ProductUnit
from sgmi.models.production_entry import ProductionEntry
from sgmi.models.production_plan import PlanStatus, ProductionPlan, Shift

__all__ = [
    "Batch",
    "BatchStatus",
    "PlanStatus",
    "Product",
    "ProductionEntry",
    "ProductionPlan",
    "ProductType",
    "ProductUnit",
    "Shift",
]
