"""Endpoints used by the bridge agent and by operators queueing production."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from garment_forge.api.dependencies import get_database, get_storage, verify_bridge_token
from garment_forge.api.errors import to_http_exception
from garment_forge.api.schemas import (
    ArtifactUploadResponse,
    ClaimJobsResponse,
    EnqueueJobsRequest,
    EnqueueJobsResponse,
    JobUpdateRequest,
)
from garment_forge.core import jobs as job_service
from garment_forge.core.errors import GarmentForgeError
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import ExportFormat, JobStatus, ProductionJob

router = APIRouter(prefix="/bridge", tags=["bridge"], dependencies=[Depends(verify_bridge_token)])


@router.post("/jobs", response_model=EnqueueJobsResponse)
async def enqueue(
    body: EnqueueJobsRequest,
    db: DesignDatabase = Depends(get_database),
) -> EnqueueJobsResponse:
    if not body.variant_ids:
        raise HTTPException(status_code=400, detail="variantIds must not be empty.")
    result = await job_service.enqueue_jobs(db, body.variant_ids, body.priority)
    return EnqueueJobsResponse(created=result.created, skipped=result.skipped, jobs=result.jobs)


@router.get("/jobs", response_model=list[ProductionJob])
async def list_jobs(
    status: JobStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: DesignDatabase = Depends(get_database),
) -> list[ProductionJob]:
    """Read-only listing, highest priority first. Use ``/jobs/claim`` to take work."""
    return await job_service.list_jobs(db, status=status, limit=limit)


@router.post("/jobs/claim", response_model=ClaimJobsResponse)
async def claim(
    limit: int = Query(job_service.DEFAULT_CLAIM_LIMIT, ge=1, le=50),
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> ClaimJobsResponse:
    tickets = await job_service.claim_pending(db, storage, limit)
    return ClaimJobsResponse(jobs=tickets)


@router.patch("/jobs/{job_id}", response_model=ProductionJob)
async def update(
    job_id: str,
    body: JobUpdateRequest,
    db: DesignDatabase = Depends(get_database),
) -> ProductionJob:
    try:
        if body.status == "processing":
            return await job_service.mark_generating(db, job_id)
        if body.status == "completed":
            return await job_service.mark_completed(db, job_id, body.final_artifact_ref)
        return await job_service.mark_failed(db, job_id, body.error_message or "Unknown error")
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc


@router.put("/jobs/{job_id}/artifacts/{fmt}", response_model=ArtifactUploadResponse)
async def upload_artifact(
    job_id: str,
    fmt: ExportFormat,
    request: Request,
    db: DesignDatabase = Depends(get_database),
    storage: ArtifactStorage = Depends(get_storage),
) -> ArtifactUploadResponse:
    """Store one exported production file. The request body is the raw file."""
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload.")
    try:
        ref = await job_service.store_job_artifact(db, storage, job_id, fmt, data)
    except GarmentForgeError as exc:
        raise to_http_exception(exc) from exc
    return ArtifactUploadResponse(ref=ref, url=storage.url_for(ref))
