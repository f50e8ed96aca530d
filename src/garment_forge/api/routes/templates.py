from fastapi import APIRouter, Depends

from garment_forge.api.dependencies import get_database, get_storage
from garment_forge.api.errors import to_http_exception
from garment_forge.core.errors import GarmentForgeError
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.core.variants import template_layers
from garment_forge.models import EditableLayer

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("/{template_id}/layers", response_model=list[EditableLayer])
async def layers(
    template_id: str,
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> list[EditableLayer]:
    """Editable layers of the template's vector source, parsed once and cached."""
    try:
        return await template_layers(db, storage, template_id)
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc
