"""Production job queue: enqueue selected variants and drive job status transitions.

Job and variant status move together::

    enqueue          job pending     variant selected
    mark_generating  job processing  variant generating
    mark_completed   job completed   variant generated (final artifact recorded)
    mark_failed      job failed      variant preview (error recorded)
"""

import logging
from collections.abc import Sequence

from garment_forge.core.assets import resolve_assets
from garment_forge.core.errors import JobNotFoundError, JobStateError
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import (
    EnqueueResult,
    ExportFormat,
    JobStatus,
    JobTicket,
    ProductionJob,
    VariantStatus,
    VariantUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_CLAIM_LIMIT = 5
FINAL_PREFIX = "finals"


async def enqueue_jobs(database: DesignDatabase, variant_ids: Sequence[str], priority: int = 0) -> EnqueueResult:
    """Create pending jobs for the given variants.

    A variant is skipped when it already has a pending or processing job, is
    currently generating, is unknown, or repeats an earlier id in the same call.
    """
    unique: list[str] = []
    for variant_id in variant_ids:
        if variant_id not in unique:
            unique.append(variant_id)
    jobs = await database.enqueue_jobs(unique, priority)
    result = EnqueueResult(created=len(jobs), skipped=len(variant_ids) - len(jobs), jobs=jobs)
    logger.info("enqueued %d job(s), skipped %d", result.created, result.skipped)
    return result


async def list_jobs(database: DesignDatabase, status: JobStatus | None = None, limit: int = 50) -> list[ProductionJob]:
    return await database.list_jobs(status=status, limit=limit)


async def build_ticket(database: DesignDatabase, storage: ArtifactStorage, job: ProductionJob) -> JobTicket:
    """Bundle a claimed job with everything the bridge needs to run it."""
    variant = await database.get_variant(job.variant_id)
    if variant is None:
        return JobTicket(job=job)

    master_url: str | None = None
    item = await database.get_item(variant.item_id)
    template = await database.get_template(item.template_id) if item and item.template_id else None
    if template is not None and template.master_document_ref:
        master_url = storage.url_for(template.master_document_ref)

    assets = await resolve_assets(database, storage, variant.configuration)
    instructions = {
        "variantId": variant.id,
        "variantName": variant.name,
        "configuration": variant.configuration.model_dump(mode="json", by_alias=True),
        "assets": assets.to_dict(),
    }
    return JobTicket(job=job, variant=variant, master_document_url=master_url, instructions=instructions)


async def claim_pending(
    database: DesignDatabase,
    storage: ArtifactStorage,
    limit: int = DEFAULT_CLAIM_LIMIT,
) -> list[JobTicket]:
    """Claim up to ``limit`` pending jobs, highest priority then oldest first.

    A claimed job moves to processing in the same operation, so it is never
    handed out twice.
    """
    jobs = await database.claim_jobs(limit)
    return [await build_ticket(database, storage, job) for job in jobs]


async def _transition(
    database: DesignDatabase,
    job_id: str,
    status: JobStatus,
    error_message: str | None,
    variant_update: VariantUpdate,
) -> ProductionJob:
    job = await database.transition_job(job_id, status, error_message, variant_update)
    if job is not None:
        return job
    current = await database.get_job(job_id)
    if current is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    raise JobStateError(f"Job {job_id} is already {current.status.value}")


async def mark_generating(database: DesignDatabase, job_id: str) -> ProductionJob:
    return await _transition(
        database, job_id, JobStatus.PROCESSING, None, VariantUpdate(status=VariantStatus.GENERATING)
    )


async def mark_completed(database: DesignDatabase, job_id: str, final_artifact_ref: str | None = None) -> ProductionJob:
    job = await _transition(
        database,
        job_id,
        JobStatus.COMPLETED,
        None,
        VariantUpdate(status=VariantStatus.GENERATED, final_artifact_ref=final_artifact_ref),
    )
    logger.info("job %s completed (final artifact %s)", job_id, final_artifact_ref)
    return job


async def mark_failed(database: DesignDatabase, job_id: str, error_message: str) -> ProductionJob:
    job = await _transition(
        database,
        job_id,
        JobStatus.FAILED,
        error_message,
        VariantUpdate(status=VariantStatus.PREVIEW, error_message=error_message),
    )
    logger.warning("job %s failed: %s", job_id, error_message)
    return job


async def store_job_artifact(
    database: DesignDatabase,
    storage: ArtifactStorage,
    job_id: str,
    fmt: ExportFormat,
    data: bytes,
) -> str:
    """Store an exported production file and record it on the job. Returns the artifact ref."""
    if await database.get_job(job_id) is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    ref = await storage.put(data, prefix=f"{FINAL_PREFIX}/{job_id}", suffix=f".{fmt.value}")
    job = await database.add_job_artifact(job_id, fmt.value, ref)
    if job is None:
        await storage.delete(ref)
        raise JobNotFoundError(f"Job {job_id} not found")
    return ref
