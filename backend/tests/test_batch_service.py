"""Tests for BatchService: creation, lifecycle actions and queries."""

import asyncio
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import scalar_result, scalars_result
from sgmi.core.exceptions import (
    BatchNotFound,
    DuplicateBatchNumber,
    InvalidRunRecord,
    InvalidTransition,
    PersistenceFailure,
    PlanNotFound,
    ProductNotFound,
    UnknownAction,
)
from sgmi.models.batch import Batch
from sgmi.models.production_plan import ProductionPlan
from sgmi.realtime.manager import Audience
from sgmi.services.batch_service import BatchService


@pytest.fixture
def watcher():
    watcher = MagicMock()
    watcher.check = AsyncMock(return_value=False)
    return watcher


@pytest.fixture
def service(session_factory, broadcaster, watcher, fixed_now):
    return BatchService(
        session_factory,
        broadcaster,
        completion_watcher=watcher,
        clock=lambda: fixed_now,
    )


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


class TestPerformAction:
    @pytest.mark.asyncio
    async def test_start_broadcasts_status_update(self, service, mock_db, broadcaster, watcher, batch_factory, fixed_now):
        batch = batch_factory.create()
        mock_db.execute = AsyncMock(return_value=scalar_result(batch))

        outcome = await service.perform_action(batch.id, "start")

        assert batch.status == "IN_PROGRESS"
        assert batch.start_time == fixed_now
        assert outcome.transition.previous_status.value == "PLANNED"

        broadcaster.broadcast.assert_called_once()
        message_type, data, audience = broadcaster.broadcast.call_args.args
        assert message_type == "batch_status_updated"
        assert audience is Audience.BATCH_OPERATORS
        assert data["batchId"] == batch.id
        assert data["production_plan_id"] == batch.production_plan_id
        assert data["product_name"] == batch.production_plan.product.name
        assert data["previous_status"] == "PLANNED"
        assert data["new_status"] == "IN_PROGRESS"
        assert data["action"] == "start"
        assert data["timestamp"] == fixed_now
        watcher.check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_triggers_completion_check(self, service, mock_db, watcher, batch_factory, fixed_now):
        batch = batch_factory.create(status="IN_PROGRESS", start_time=fixed_now - timedelta(minutes=25))
        mock_db.execute = AsyncMock(return_value=scalar_result(batch))

        await service.perform_action(batch.id, "complete")

        assert batch.status == "COMPLETED"
        watcher.check.assert_awaited_once_with(batch.production_plan_id)

    @pytest.mark.asyncio
    async def test_stop_does_not_trigger_completion_check(self, service, mock_db, watcher, batch_factory, fixed_now):
        batch = batch_factory.create(status="IN_PROGRESS", start_time=fixed_now)
        mock_db.execute = AsyncMock(return_value=scalar_result(batch))

        await service.perform_action(batch.id, "stop")
        watcher.check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pause_resume_uses_clock(self, session_factory, broadcaster, watcher, mock_db, batch_factory, fixed_now):
        ticks = iter([fixed_now, fixed_now + timedelta(seconds=90)])
        service = BatchService(session_factory, broadcaster, watcher, clock=lambda: next(ticks))
        batch = batch_factory.create(status="IN_PROGRESS", start_time=fixed_now - timedelta(minutes=5))
        mock_db.execute = AsyncMock(return_value=scalar_result(batch))

        await service.perform_action(batch.id, "pause")
        outcome = await service.perform_action(batch.id, "resume")

        assert outcome.pause_duration_minutes == 2
        assert batch.pause_duration_minutes == 2

    @pytest.mark.asyncio
    async def test_missing_batch(self, service, mock_db, broadcaster):
        mock_db.execute = AsyncMock(return_value=scalar_result(None))

        with pytest.raises(BatchNotFound):
            await service.perform_action(uuid.uuid4(), "start")
        broadcaster.broadcast.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_transition_changes_nothing(self, service, mock_db, broadcaster, watcher, batch_factory):
        batch = batch_factory.create(status="COMPLETED")
        mock_db.execute = AsyncMock(return_value=scalar_result(batch))

        with pytest.raises(InvalidTransition):
            await service.perform_action(batch.id, "start")
        assert batch.status == "COMPLETED"
        broadcaster.broadcast.assert_not_called()
        watcher.check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_action_never_opens_a_transaction(self, service, session_factory):
        with pytest.raises(UnknownAction):
            await service.perform_action(uuid.uuid4(), "bake")
        session_factory.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_database_error_becomes_persistence_failure(self, service, mock_db, broadcaster):
        mock_db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(PersistenceFailure):
            await service.perform_action(uuid.uuid4(), "start")
        broadcaster.broadcast.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_starts_on_one_batch(self, service, mock_db, batch_factory):
        batch = batch_factory.create()

        async def _slow_select(*args, **kwargs):
            await asyncio.sleep(0)
            return scalar_result(batch)

        mock_db.execute = AsyncMock(side_effect=_slow_select)

        results = await asyncio.gather(
            service.perform_action(batch.id, "start"),
            service.perform_action(batch.id, "start"),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, InvalidTransition)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateBatch:
    @pytest.mark.asyncio
    async def test_weight_from_batch_count(self, service, mock_db, broadcaster, plan_factory, product_factory):
        plan = plan_factory.create(product=product_factory.create(type="FLOCO"))
        mock_db.execute = AsyncMock(side_effect=[scalar_result(plan), scalar_result(None)])

        batch = await service.create_batch(plan.id, 1, batch_count=2)

        added = mock_db.add.call_args.args[0]
        assert isinstance(added, Batch)
        assert added is batch
        assert added.estimated_kg == Decimal("344")
        assert added.status == "PLANNED"
        mock_db.flush.assert_awaited_once()

        message_type, data, audience = broadcaster.broadcast.call_args.args
        assert message_type == "batch_created"
        assert data["production_plan_id"] == plan.id
        assert audience is Audience.BATCH_OPERATORS

    @pytest.mark.asyncio
    async def test_explicit_weight(self, service, mock_db, plan_factory):
        plan = plan_factory.create()
        mock_db.execute = AsyncMock(side_effect=[scalar_result(plan), scalar_result(None)])

        batch = await service.create_batch(plan.id, 3, estimated_kg=Decimal("95.5"))
        assert batch.estimated_kg == Decimal("95.5")
        assert batch.batch_number == 3

    @pytest.mark.asyncio
    async def test_missing_plan(self, service, mock_db, broadcaster):
        mock_db.execute = AsyncMock(return_value=scalar_result(None))

        with pytest.raises(PlanNotFound):
            await service.create_batch(uuid.uuid4(), 1, batch_count=1)
        mock_db.add.assert_not_called()
        broadcaster.broadcast.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_number_detected_before_insert(self, service, mock_db, plan_factory):
        plan = plan_factory.create()
        mock_db.execute = AsyncMock(side_effect=[scalar_result(plan), scalar_result(uuid.uuid4())])

        with pytest.raises(DuplicateBatchNumber) as exc_info:
            await service.create_batch(plan.id, 1, batch_count=1)
        assert exc_info.value.status_code == 409
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_number_from_unique_constraint(self, service, mock_db, plan_factory):
        plan = plan_factory.create()
        mock_db.execute = AsyncMock(side_effect=[scalar_result(plan), scalar_result(None)])
        mock_db.flush = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate key")))

        with pytest.raises(DuplicateBatchNumber):
            await service.create_batch(plan.id, 1, batch_count=1)

    @pytest.mark.asyncio
    async def test_requires_exactly_one_weight_source(self, service):
        with pytest.raises(ValueError):
            await service.create_batch(uuid.uuid4(), 1)
        with pytest.raises(ValueError):
            await service.create_batch(uuid.uuid4(), 1, estimated_kg=Decimal("1"), batch_count=1)


class TestRecordCompletedRun:
    @pytest.mark.asyncio
    async def test_creates_completed_plan_and_batch(self, service, mock_db, product_factory, fixed_now):
        product = product_factory.create(name="COOKIE COM GOTAS DE CHOCOLATE", type="DOCE")
        mock_db.execute = AsyncMock(return_value=scalar_result(product))

        async def _assign_ids():
            for call in mock_db.add.call_args_list:
                if call.args[0].id is None:
                    call.args[0].id = uuid.uuid4()

        mock_db.flush = AsyncMock(side_effect=_assign_ids)

        batch_id, plan_id = await service.record_completed_run(
            "COOKIE COM GOTAS DE CHOCOLATE", "TARDE", "28-08-2025", 4, 50
        )

        plan, batch = (call.args[0] for call in mock_db.add.call_args_list)
        assert isinstance(plan, ProductionPlan)
        assert plan.id == plan_id
        assert plan.status == "COMPLETED"
        assert plan.shift == "AFTERNOON"
        assert plan.planned_quantity == Decimal("100")
        assert batch.id == batch_id
        assert batch.production_plan_id == plan_id
        assert batch.batch_number == 1
        assert batch.status == "COMPLETED"
        assert batch.estimated_kg == Decimal("480")
        assert batch.end_time == fixed_now
        assert batch.end_time - batch.start_time == timedelta(minutes=50)

    @pytest.mark.asyncio
    async def test_unknown_product(self, service, mock_db):
        mock_db.execute = AsyncMock(return_value=scalar_result(None))
        with pytest.raises(ProductNotFound):
            await service.record_completed_run("PAO DE QUEIJO", "NOITE", "28-08-2025", 1, 10)

    @pytest.mark.asyncio
    async def test_bad_shift_rejected_before_querying(self, service, session_factory):
        with pytest.raises(InvalidRunRecord):
            await service.record_completed_run("X", "MADRUGADA", "28-08-2025", 1, 10)
        session_factory.begin.assert_not_called()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_batch(self, service, mock_db, batch_factory):
        batch = batch_factory.create()
        mock_db.get = AsyncMock(return_value=batch)
        assert await service.get_batch(batch.id) is batch

    @pytest.mark.asyncio
    async def test_get_missing_batch(self, service, mock_db):
        mock_db.get = AsyncMock(return_value=None)
        with pytest.raises(BatchNotFound) as exc_info:
            await service.get_batch(uuid.uuid4())
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_list_batches(self, service, mock_db, batch_factory):
        batches = [batch_factory.create(), batch_factory.create()]
        mock_db.execute = AsyncMock(return_value=scalars_result(batches))
        assert await service.list_batches(uuid.uuid4()) == batches

    @pytest.mark.asyncio
    async def test_list_in_progress_snapshots(self, service, mock_db, batch_factory, fixed_now):
        batch = batch_factory.create(status="IN_PROGRESS", start_time=fixed_now)
        result = MagicMock()
        result.all.return_value = [(batch, "ROSQUINHA DE CHOCOLATE")]
        mock_db.execute = AsyncMock(return_value=result)

        snapshots = await service.list_in_progress()

        assert len(snapshots) == 1
        snapshot = snapshots[0]
        assert snapshot.batch_id == batch.id
        assert snapshot.product_name == "ROSQUINHA DE CHOCOLATE"
        assert snapshot.start_time == fixed_now
        assert snapshot.status == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_list_in_progress_wraps_connection_errors(self, service, mock_db):
        mock_db.execute = AsyncMock(side_effect=ConnectionRefusedError("db down"))
        with pytest.raises(PersistenceFailure):
            await service.list_in_progress()
