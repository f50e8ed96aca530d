from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from garment_forge.api.dependencies import get_database, get_storage
from garment_forge.api.errors import to_http_exception
from garment_forge.api.schemas import (
    DeleteVariantsResponse,
    GenerateVariantsRequest,
    GenerateVariantsResponse,
    VariantSelectionRequest,
)
from garment_forge.core import variants as variant_service
from garment_forge.core.errors import GarmentForgeError
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import DesignVariant

router = APIRouter(prefix="/variants", tags=["variants"])


@router.post("/generate", response_model=GenerateVariantsResponse)
async def generate(
    body: GenerateVariantsRequest,
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> GenerateVariantsResponse:
    """Render a preview for the configuration and record it as a new variant."""
    if body.config is None:
        raise HTTPException(status_code=400, detail="A variant configuration is required.")
    try:
        created = await variant_service.generate_variants(db, storage, body.item_id, body.config)
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc
    return GenerateVariantsResponse(variants=created, message=f"Generated {len(created)} variant(s)")


@router.patch("/{variant_id}", response_model=DesignVariant)
async def update_selection(
    variant_id: str,
    body: VariantSelectionRequest,
    db: DesignDatabase = Depends(get_database),
) -> DesignVariant:
    try:
        return await variant_service.select_variant(db, variant_id, selected=body.status == "selected")
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{variant_id}", response_model=DesignVariant)
async def delete_one(
    variant_id: str,
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> DesignVariant:
    try:
        return await variant_service.delete_variant(db, storage, variant_id)
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc


@router.delete("", response_model=DeleteVariantsResponse)
async def delete_all(
    item_id: str = Query(...),
    all_: bool = Query(False, alias="all"),
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> DeleteVariantsResponse:
    """Delete every variant of an item. Requires ``all=true`` as a guard."""
    if not all_:
        raise HTTPException(status_code=400, detail="Pass all=true to delete every variant of the item.")
    deleted = await variant_service.delete_all_variants(db, storage, item_id)
    return DeleteVariantsResponse(deleted=deleted)
