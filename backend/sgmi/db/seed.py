"""Seed script with demo data for the bakery floor.

Scenarios covered:
1. Product catalogue across the three dough families (AMANTEIGADO, DOCE, FLOCO)
2. Historical plans per shift, with their batches all COMPLETED
3. Legacy end-of-shift production entries
4. Today's PENDING plans, ready for batches to be created and started
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sgmi.models.batch import Batch, BatchStatus
from sgmi.models.product import Product, ProductType, ProductUnit
from sgmi.models.production_entry import ProductionEntry
from sgmi.models.production_plan import PlanStatus, ProductionPlan, Shift

# Fixed UUIDs for deterministic seeding
PRODUCT_IDS = {
    "AMANTEIGADO SABOR LEITE": uuid.UUID("a0000000-0000-0000-0000-000000000001"),
    "AMANTEIGADO SABOR MAÇÃ COM CANELA": uuid.UUID("a0000000-0000-0000-0000-000000000002"),
    "AMANTEIGADO SABOR BANANA COM CANELA": uuid.UUID("a0000000-0000-0000-0000-000000000003"),
    "AMANTEIGADO SABOR NATA": uuid.UUID("a0000000-0000-0000-0000-000000000004"),
    "AMANTEIGADO SABOR COCO": uuid.UUID("a0000000-0000-0000-0000-000000000005"),
    "ROSQUINHA DE CHOCOLATE": uuid.UUID("a0000000-0000-0000-0000-000000000006"),
    "COOKIE COM GOTAS DE CHOCOLATE": uuid.UUID("a0000000-0000-0000-0000-000000000007"),
    "COOKIE INTEGRAL COM GOTAS DE CHOCOLATE": uuid.UUID("a0000000-0000-0000-0000-000000000008"),
    "FLOCOS DE MILHO SEM AÇÚCAR": uuid.UUID("a0000000-0000-0000-0000-000000000009"),
}

PRODUCT_TYPES = {
    "AMANTEIGADO SABOR LEITE": ProductType.AMANTEIGADO,
    "AMANTEIGADO SABOR MAÇÃ COM CANELA": ProductType.AMANTEIGADO,
    "AMANTEIGADO SABOR BANANA COM CANELA": ProductType.AMANTEIGADO,
    "AMANTEIGADO SABOR NATA": ProductType.AMANTEIGADO,
    "AMANTEIGADO SABOR COCO": ProductType.AMANTEIGADO,
    "ROSQUINHA DE CHOCOLATE": ProductType.DOCE,
    "COOKIE COM GOTAS DE CHOCOLATE": ProductType.DOCE,
    "COOKIE INTEGRAL COM GOTAS DE CHOCOLATE": ProductType.DOCE,
    "FLOCOS DE MILHO SEM AÇÚCAR": ProductType.FLOCO,
}

LEITE = PRODUCT_IDS["AMANTEIGADO SABOR LEITE"]
COOKIE = PRODUCT_IDS["COOKIE COM GOTAS DE CHOCOLATE"]
ROSQUINHA = PRODUCT_IDS["ROSQUINHA DE CHOCOLATE"]

# (product, shift, planned quantity) produced on every historical date
SHIFT_PLAN = [
    (LEITE, Shift.MORNING, Decimal("300")),
    (COOKIE, Shift.AFTERNOON, Decimal("200")),
    (ROSQUINHA, Shift.NIGHT, Decimal("150")),
]

HISTORY_DATES = [
    "2025-08-10", "2025-08-11", "2025-08-12", "2025-08-13", "2025-08-14",
    "2025-08-28", "2025-08-29", "2025-08-30", "2025-08-31",
]

# (date, shift) -> (batch count, approximate total kg)
HISTORY_BATCHES = {
    ("2025-08-10", Shift.MORNING): (12, 240),
    ("2025-08-10", Shift.AFTERNOON): (8, 160),
    ("2025-08-11", Shift.NIGHT): (9, 180),
    ("2025-08-12", Shift.MORNING): (10, 200),
    ("2025-08-12", Shift.AFTERNOON): (7, 140),
    ("2025-08-13", Shift.NIGHT): (9, 180),
    ("2025-08-14", Shift.MORNING): (15, 300),
    ("2025-08-28", Shift.MORNING): (14, 280),
    ("2025-08-28", Shift.AFTERNOON): (9, 180),
    ("2025-08-28", Shift.NIGHT): (8, 160),
    ("2025-08-29", Shift.MORNING): (13, 260),
    ("2025-08-29", Shift.AFTERNOON): (10, 200),
    ("2025-08-29", Shift.NIGHT): (7, 140),
    ("2025-08-30", Shift.MORNING): (16, 320),
    ("2025-08-30", Shift.AFTERNOON): (11, 220),
    ("2025-08-30", Shift.NIGHT): (9, 180),
    ("2025-08-31", Shift.MORNING): (12, 240),
    ("2025-08-31", Shift.AFTERNOON): (8, 160),
    ("2025-08-31", Shift.NIGHT): (10, 200),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_day(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def _create_products() -> list[Product]:
    return [
        Product(
            id=product_id,
            name=name,
            type=PRODUCT_TYPES[name].value,
            unit=ProductUnit.KG.value,
            active=True,
        )
        for name, product_id in PRODUCT_IDS.items()
    ]


def _create_history() -> tuple[list[ProductionPlan], list[Batch]]:
    """Completed plans per date and shift, with 25-minute batches every 30 minutes."""
    plans: list[ProductionPlan] = []
    batches: list[Batch] = []

    for day in HISTORY_DATES:
        planned_date = _parse_day(day)
        for product_id, shift, quantity in SHIFT_PLAN:
            plan = ProductionPlan(
                id=uuid.uuid4(),
                product_id=product_id,
                planned_quantity=quantity,
                planned_date=planned_date,
                shift=shift.value,
                status=PlanStatus.COMPLETED.value,
            )
            plans.append(plan)

            recorded = HISTORY_BATCHES.get((day, shift))
            if recorded is None:
                continue
            count, approx_kg = recorded
            kg_per_batch = (Decimal(approx_kg) / count).quantize(Decimal("0.01"))
            first_start = planned_date + timedelta(hours=8)
            for number in range(1, count + 1):
                start = first_start + timedelta(minutes=30 * (number - 1))
                batches.append(
                    Batch(
                        production_plan_id=plan.id,
                        batch_number=number,
                        status=BatchStatus.COMPLETED.value,
                        start_time=start,
                        end_time=start + timedelta(minutes=25),
                        pause_duration_minutes=0,
                        estimated_kg=kg_per_batch,
                    )
                )

    return plans, batches


def _create_entries() -> list[ProductionEntry]:
    """Legacy end-of-shift entries, one per product."""
    quantities = ["45.5", "38.2", "52.1", "41.8", "78.5", "65.3", "58.7", "62.4", "48.9"]
    shifts = [Shift.MORNING, Shift.AFTERNOON, Shift.NIGHT]
    return [
        ProductionEntry(
            product_id=product_id,
            quantity=Decimal(quantity),
            shift=shifts[i % len(shifts)].value,
        )
        for i, (product_id, quantity) in enumerate(zip(PRODUCT_IDS.values(), quantities))
    ]


def _create_todays_plans() -> list[ProductionPlan]:
    today = _now().replace(hour=0, minute=0, second=0, microsecond=0)
    return [
        ProductionPlan(
            product_id=LEITE,
            planned_quantity=Decimal("100"),
            planned_date=today,
            shift=Shift.MORNING.value,
            status=PlanStatus.PENDING.value,
        ),
        ProductionPlan(
            product_id=PRODUCT_IDS["COOKIE INTEGRAL COM GOTAS DE CHOCOLATE"],
            planned_quantity=Decimal("75"),
            planned_date=today,
            shift=Shift.AFTERNOON.value,
            status=PlanStatus.PENDING.value,
        ),
        ProductionPlan(
            product_id=PRODUCT_IDS["FLOCOS DE MILHO SEM AÇÚCAR"],
            planned_quantity=Decimal("200"),
            planned_date=today,
            shift=Shift.NIGHT.value,
            status=PlanStatus.PENDING.value,
        ),
    ]


async def seed_demo_data(session: AsyncSession) -> dict[str, int]:
    """Seed the database with demo bakery data.

    Args:
        session: An async SQLAlchemy session.

    Returns:
        Dictionary with counts of created entities.
    """
    products = _create_products()
    session.add_all(products)
    await session.flush()

    plans, batches = _create_history()
    todays_plans = _create_todays_plans()
    session.add_all(plans)
    session.add_all(todays_plans)
    await session.flush()

    entries = _create_entries()
    session.add_all(batches)
    session.add_all(entries)
    await session.flush()

    return {
        "products": len(products),
        "production_plans": len(plans) + len(todays_plans),
        "batches": len(batches),
        "production_entries": len(entries),
    }


async def seed_if_empty(session: AsyncSession) -> dict[str, int] | None:
    """Seed demo data only if the database is empty.

    Returns:
        Seed counts if data was seeded, None if database already has data.
    """
    result = await session.execute(select(func.count()).select_from(Product))
    count = result.scalar() or 0

    if count > 0:
        return None

    return await seed_demo_data(session)
