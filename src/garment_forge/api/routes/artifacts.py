import mimetypes

from fastapi import APIRouter, Depends, HTTPException, Response

from garment_forge.api.dependencies import get_storage
from garment_forge.core.errors import ArtifactNotFoundError
from garment_forge.core.ports.storage import ArtifactStorage

router = APIRouter(prefix="/artifacts", tags=["artifacts"])

mimetypes.add_type("image/svg+xml", ".svg")
mimetypes.add_type("application/postscript", ".ai")


@router.get("/{ref:path}")
async def download(ref: str, storage: ArtifactStorage = Depends(get_storage)) -> Response:
    try:
        data = await storage.get(ref)
    except ArtifactNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    media_type = mimetypes.guess_type(ref)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
