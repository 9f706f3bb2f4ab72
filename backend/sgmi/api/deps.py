"""Shared route dependencies.

Long-lived services are built once in the application lifespan and kept on
``app.state``; routes reach them through these getters so tests can override
them with ``app.dependency_overrides``.
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sgmi.core.database import get_db
from sgmi.core.exceptions import ProductionError
from sgmi.realtime.manager import ConnectionManager
from sgmi.services.batch_service import BatchService
from sgmi.services.production_entry_service import ProductionEntryService
from sgmi.services.production_plan_service import ProductionPlanService


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


def get_batch_service(request: Request) -> BatchService:
    return request.app.state.batch_service


def get_plan_service(
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> ProductionPlanService:
    return ProductionPlanService(db, manager)


def get_entry_service(
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> ProductionEntryService:
    return ProductionEntryService(db, manager)


def http_error(exc: ProductionError) -> HTTPException:
    """Translate a domain error into the HTTP response it maps to."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
