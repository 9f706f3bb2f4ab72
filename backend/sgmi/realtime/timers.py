"""Periodic push of elapsed time for every running batch."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sgmi.core.exceptions import PersistenceFailure
from sgmi.realtime.manager import Audience, ConnectionManager
from sgmi.realtime.periodic import cancel_task, run_every
from sgmi.services.production_helpers import elapsed_seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchTimerSnapshot:
    """Read-only view of an IN_PROGRESS batch, taken once per sweep."""

    batch_id: uuid.UUID
    batch_number: int
    production_plan_id: uuid.UUID
    product_name: str
    start_time: datetime | None
    status: str


InProgressSource = Callable[[], Awaitable[list[BatchTimerSnapshot]]]


class BatchTimerBroadcaster:
    """Sends ``batch_timer_update`` for each running batch on a fixed interval."""

    def __init__(
        self,
        manager: ConnectionManager,
        source: InProgressSource,
        interval: float = 1.0,
    ) -> None:
        self.manager = manager
        self.source = source
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def sweep(self, now: datetime | None = None) -> int:
        """Run one cycle. Returns the number of timer events broadcast."""
        if not self.manager.has_audience(Audience.BATCH_OPERATORS):
            return 0

        try:
            snapshots = await self.source()
        except PersistenceFailure as exc:
            logger.warning("Skipping timer sweep, in-progress batches unavailable: %s", exc)
            return 0

        now = now or datetime.now(timezone.utc)
        sent = 0
        for snapshot in snapshots:
            if snapshot.start_time is None:
                continue
            self.manager.broadcast(
                "batch_timer_update",
                {
                    "batchId": snapshot.batch_id,
                    "batch_number": snapshot.batch_number,
                    "production_plan_id": snapshot.production_plan_id,
                    "product_name": snapshot.product_name,
                    "elapsed_seconds": elapsed_seconds(snapshot.start_time, now),
                    "status": snapshot.status,
                },
                Audience.BATCH_OPERATORS,
                timestamp=now,
            )
            sent += 1
        return sent

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(
                run_every(self.interval, self.sweep, "batch timer"),
                name="ws-timer-sweep",
            )

    async def stop(self) -> None:
        await cancel_task(self._task)
        self._task = None
