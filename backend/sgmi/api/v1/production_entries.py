"""Production entry API endpoints."""

from fastapi import APIRouter, Depends, status

from sgmi.api.deps import get_entry_service, http_error
from sgmi.core.exceptions import ProductionError
from sgmi.models.production_entry import ProductionEntry
from sgmi.schemas.production_entry import ProductionEntryCreate, ProductionEntryResponse
from sgmi.services.production_entry_service import ProductionEntryService

router = APIRouter(prefix="/production", tags=["production"])


@router.post("/entries", response_model=ProductionEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_production_entry(
    payload: ProductionEntryCreate,
    service: ProductionEntryService = Depends(get_entry_service),
) -> ProductionEntry:
    """Report a produced quantity for a shift."""
    try:
        return await service.create_entry(payload)
    except ProductionError as exc:
        raise http_error(exc) from exc
