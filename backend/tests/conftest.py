"""Pytest configuration with fixtures for async testing."""

import asyncio
import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from sgmi.core.auth import Principal, UserRole
from sgmi.realtime.manager import ConnectionManager

TEST_SECRET = "test-secret-with-enough-length-for-hs256"


# ---------------------------------------------------------------------------
# Test Data Factories (using MagicMock for SQLAlchemy 2.0 compatibility)
# ---------------------------------------------------------------------------


def _make_mock(defaults: dict[str, Any], overrides: dict[str, Any]) -> MagicMock:
    """Create a MagicMock with given attributes."""
    merged = {**defaults, **overrides}
    mock = MagicMock()
    for k, v in merged.items():
        setattr(mock, k, v)
    return mock


class ProductFactory:
    """Factory for creating Product instances for testing."""

    _counter = 0

    @classmethod
    def create(cls, **overrides: Any) -> MagicMock:
        cls._counter += 1
        defaults = {
            "id": uuid.uuid4(),
            "name": f"AMANTEIGADO TESTE {cls._counter}",
            "type": "AMANTEIGADO",
            "unit": "KG",
            "active": True,
            "created_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
        }
        return _make_mock(defaults, overrides)


class ProductionPlanFactory:
    """Factory for creating ProductionPlan instances for testing."""

    @classmethod
    def create(cls, product: MagicMock | None = None, **overrides: Any) -> MagicMock:
        product = product or ProductFactory.create()
        now = datetime.now(timezone.utc)
        defaults = {
            "id": uuid.uuid4(),
            "product_id": product.id,
            "product": product,
            "planned_quantity": Decimal("300"),
            "planned_date": now,
            "shift": "MORNING",
            "status": "PENDING",
            "created_at": now,
            "updated_at": now,
        }
        return _make_mock(defaults, overrides)


class BatchFactory:
    """Factory for creating Batch instances for testing."""

    _counter = 0

    @classmethod
    def create(cls, plan: MagicMock | None = None, **overrides: Any) -> MagicMock:
        cls._counter += 1
        plan = plan or ProductionPlanFactory.create()
        now = datetime.now(timezone.utc)
        defaults = {
            "id": uuid.uuid4(),
            "production_plan_id": plan.id,
            "production_plan": plan,
            "batch_number": cls._counter,
            "status": "PLANNED",
            "start_time": None,
            "end_time": None,
            "paused_at": None,
            "pause_duration_minutes": 0,
            "estimated_kg": Decimal("110"),
            "created_at": now,
            "updated_at": now,
        }
        return _make_mock(defaults, overrides)


# ---------------------------------------------------------------------------
# Realtime doubles
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """In-memory stand-in for ``fastapi.WebSocket``."""

    def __init__(self, incoming: list[str | bytes] | None = None, fail_sends: bool = False) -> None:
        self.incoming = list(incoming or [])
        self.fail_sends = fail_sends
        self.accepted = False
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("connection reset by peer")
        self.sent.append(data)

    async def receive(self) -> dict[str, Any]:
        # Let writer tasks flush before the next message arrives
        for _ in range(3):
            await asyncio.sleep(0)
        if not self.incoming:
            return {"type": "websocket.disconnect", "code": 1000}
        frame = self.incoming.pop(0)
        if isinstance(frame, bytes):
            return {"type": "websocket.receive", "bytes": frame}
        return {"type": "websocket.receive", "text": frame}

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.close_reason = reason

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]

    @property
    def types(self) -> list[str]:
        return [message["type"] for message in self.messages]


def make_principal(
    role: UserRole = UserRole.OPERATOR,
    subject: str | None = None,
    expires_at: datetime | None = None,
) -> Principal:
    if expires_at is None:
        expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    return Principal(subject=subject or f"user-{role.value.lower()}", role=role, expires_at=expires_at)


def make_session_factory(session: AsyncMock) -> MagicMock:
    """An ``async_sessionmaker`` double whose sessions are all ``session``."""
    factory = MagicMock()
    factory.begin.return_value.__aenter__.return_value = session
    factory.begin.return_value.__aexit__.return_value = False
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    return factory


def scalar_result(value: Any) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def scalars_result(values: list[Any]) -> MagicMock:
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def product_factory():
    """Provide ProductFactory for tests."""
    ProductFactory._counter = 0
    return ProductFactory


@pytest.fixture
def plan_factory():
    """Provide ProductionPlanFactory for tests."""
    return ProductionPlanFactory


@pytest.fixture
def batch_factory():
    """Provide BatchFactory for tests."""
    BatchFactory._counter = 0
    return BatchFactory


@pytest.fixture
def mock_db():
    """Provide a mock AsyncSession for unit tests."""
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    return session


@pytest.fixture
def session_factory(mock_db):
    """Provide a session factory yielding ``mock_db``."""
    return make_session_factory(mock_db)


@pytest.fixture
def broadcaster():
    """A ConnectionManager double recording broadcasts."""
    manager = MagicMock(spec=ConnectionManager)
    manager.broadcast.return_value = 1
    return manager


@pytest.fixture
def fixed_now():
    return datetime(2025, 8, 28, 8, 0, tzinfo=timezone.utc)
