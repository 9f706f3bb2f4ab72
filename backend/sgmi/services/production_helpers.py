"""Shared production helpers.

Provides common utilities used by the batch, plan and realtime services:
- Batch weight lookup per product type
- Whole-minute / whole-second duration arithmetic
- Batch duration metrics and per-status summaries
- Parsing of shift names and DD-MM-YYYY dates reported from the floor
"""

import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sgmi.core.exceptions import InvalidRunRecord
from sgmi.models.product import ProductType
from sgmi.models.production_plan import Shift

# Dough weight of one batch, in kg, per product type
BATCH_WEIGHTS: dict[ProductType, Decimal] = {
    ProductType.AMANTEIGADO: Decimal("110"),
    ProductType.DOCE: Decimal("120"),
    ProductType.FLOCO: Decimal("172"),
}

# Planned quantity assumed per batch when recording a finished run
COMPLETED_RUN_KG_PER_BATCH = Decimal("25")

SHIFT_ALIASES: dict[str, Shift] = {
    "MANHÃ": Shift.MORNING,
    "MANHA": Shift.MORNING,
    "TARDE": Shift.AFTERNOON,
    "NOITE": Shift.NIGHT,
    "MORNING": Shift.MORNING,
    "AFTERNOON": Shift.AFTERNOON,
    "NIGHT": Shift.NIGHT,
}


def calculate_kg_from_batches(product_type: str | ProductType, batch_count: int) -> Decimal:
    """Return the estimated weight of ``batch_count`` batches of a product type."""
    try:
        weight = BATCH_WEIGHTS[ProductType(product_type)]
    except ValueError as exc:
        raise ValueError(f"Unknown product type: {product_type!r}") from exc
    return weight * batch_count


def round_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up (90 s -> 2)."""
    seconds = (end - start).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


def elapsed_seconds(start: datetime, now: datetime | None = None) -> int:
    """Whole seconds elapsed since ``start``; never negative."""
    now = now or datetime.now(timezone.utc)
    return max(0, int((now - start).total_seconds()))


def batch_metrics(
    start_time: datetime | None,
    end_time: datetime | None,
    pause_duration_minutes: int,
) -> dict[str, int]:
    """Total and pause-adjusted duration of a finished batch, in minutes."""
    if start_time is None or end_time is None:
        return {}
    duration = round_minutes(start_time, end_time)
    return {
        "duration_minutes": duration,
        "effective_duration_minutes": max(0, duration - pause_duration_minutes),
    }


def status_summary(batches: Iterable[Any]) -> dict[str, int]:
    """Count batches per status."""
    return dict(Counter(batch.status for batch in batches))


def parse_shift(value: str) -> Shift:
    shift = SHIFT_ALIASES.get(value.strip().upper())
    if shift is None:
        raise InvalidRunRecord(f"Invalid shift: {value}")
    return shift


def parse_run_date(value: str) -> datetime:
    """Parse a DD-MM-YYYY date into midnight UTC."""
    try:
        return datetime.strptime(value, "%d-%m-%Y").replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise InvalidRunRecord(f"Invalid date: {value} (expected DD-MM-YYYY)") from exc
