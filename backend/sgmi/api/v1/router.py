"""API v1 router aggregating all sub-routers."""

from fastapi import APIRouter, Depends, Request

from sgmi.api.v1.batches import router as batches_router
from sgmi.api.v1.production_entries import router as production_entries_router
from sgmi.api.v1.production_plans import router as production_plans_router
from sgmi.core.auth import get_current_principal
from sgmi.core.config import settings
from sgmi.core.rate_limit import rate_limit_default

# Public router (no authentication required)
api_v1_router = APIRouter()


@api_v1_router.get("/health")
async def health_check(request: Request) -> dict[str, str | int]:
    """Health check endpoint returning 200 OK and the live websocket count."""
    manager = getattr(request.app.state, "connection_manager", None)
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "websocket_clients": len(manager) if manager is not None else 0,
    }


# Authenticated router with default rate limiting.
# Write endpoints additionally check the caller's role.
_authenticated = APIRouter(
    dependencies=[Depends(get_current_principal), Depends(rate_limit_default)]
)
_authenticated.include_router(batches_router)
_authenticated.include_router(production_entries_router)
_authenticated.include_router(production_plans_router)

api_v1_router.include_router(_authenticated)
