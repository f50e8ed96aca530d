import asyncio
import uuid
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from garment_forge.models import (
    ACTIVE_JOB_STATUSES,
    AssetRecord,
    DesignVariant,
    ItemRecord,
    JobStatus,
    ProductionJob,
    TemplateRecord,
    VariantDraft,
    VariantStatus,
    VariantUpdate,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDesignDatabase:
    """Process-local ``DesignDatabase`` used by tests and offline CLI runs.

    Records are copied on the way in and out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self.items: dict[str, ItemRecord] = {}
        self.templates: dict[str, TemplateRecord] = {}
        self.assets: dict[str, AssetRecord] = {}
        self.variants: dict[str, DesignVariant] = {}
        self.jobs: dict[str, ProductionJob] = {}
        self._lock = asyncio.Lock()

    async def ensure_ready(self) -> None:
        pass

    # --- catalog ---

    async def get_item(self, item_id: str) -> ItemRecord | None:
        item = self.items.get(item_id)
        return item.model_copy() if item else None

    async def get_template(self, template_id: str) -> TemplateRecord | None:
        template = self.templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def save_template_layers(self, template_id: str, layer_data: list[dict[str, Any]]) -> None:
        template = self.templates.get(template_id)
        if template is not None:
            self.templates[template_id] = template.model_copy(update={"layer_data": layer_data}, deep=True)

    async def get_assets(self, asset_ids: Collection[str]) -> dict[str, AssetRecord]:
        return {aid: self.assets[aid].model_copy() for aid in asset_ids if aid in self.assets}

    async def upsert_item(self, item: ItemRecord) -> None:
        self.items[item.id] = item.model_copy()

    async def upsert_template(self, template: TemplateRecord) -> None:
        self.templates[template.id] = template.model_copy(update={"layer_data": None}, deep=True)

    async def upsert_asset(self, asset: AssetRecord) -> None:
        self.assets[asset.id] = asset.model_copy()

    # --- variants ---

    async def create_variants(self, item_id: str, drafts: Sequence[VariantDraft], limit: int) -> list[DesignVariant]:
        async with self._lock:
            existing = sum(1 for v in self.variants.values() if v.item_id == item_id)
            room = max(0, limit - existing)
            created: list[DesignVariant] = []
            base = _now()
            for offset, draft in enumerate(drafts[:room]):
                ts = base + timedelta(microseconds=offset)
                variant = DesignVariant(
                    id=str(uuid.uuid4()),
                    item_id=item_id,
                    name=f"Variant {existing + offset + 1}",
                    configuration=draft.configuration.model_copy(deep=True),
                    preview_artifact_ref=draft.preview_artifact_ref,
                    status=VariantStatus.PREVIEW,
                    created_at=ts,
                    updated_at=ts,
                )
                self.variants[variant.id] = variant
                created.append(variant.model_copy(deep=True))
            return created

    async def get_variant(self, variant_id: str) -> DesignVariant | None:
        variant = self.variants.get(variant_id)
        return variant.model_copy(deep=True) if variant else None

    async def list_variants(
        self,
        item_id: str | None = None,
        status: VariantStatus | None = None,
        limit: int = 50,
        after: tuple[datetime, str] | None = None,
        before: tuple[datetime, str] | None = None,
    ) -> list[DesignVariant]:
        rows = sorted(self.variants.values(), key=lambda v: (v.created_at, v.id))
        if item_id is not None:
            rows = [v for v in rows if v.item_id == item_id]
        if status is not None:
            rows = [v for v in rows if v.status == status]

        if after is not None:
            rows = [v for v in rows if (v.created_at, v.id) > after]
        elif before is not None:
            rows = [v for v in rows if (v.created_at, v.id) < before]
            rows = rows[-limit:]

        return [v.model_copy(deep=True) for v in rows[:limit]]

    async def set_variant_status(
        self,
        variant_id: str,
        status: VariantStatus,
        only_from: Collection[VariantStatus],
    ) -> DesignVariant | None:
        async with self._lock:
            variant = self.variants.get(variant_id)
            if variant is None:
                return None
            if variant.status in only_from:
                variant = variant.model_copy(update={"status": status, "updated_at": _now()})
                self.variants[variant_id] = variant
            return variant.model_copy(deep=True)

    async def delete_variant(self, variant_id: str) -> DesignVariant | None:
        async with self._lock:
            variant = self.variants.pop(variant_id, None)
            return variant.model_copy(deep=True) if variant else None

    async def delete_variants_for_item(self, item_id: str) -> list[DesignVariant]:
        async with self._lock:
            doomed = [v for v in self.variants.values() if v.item_id == item_id]
            for variant in doomed:
                del self.variants[variant.id]
            return [v.model_copy(deep=True) for v in sorted(doomed, key=lambda v: (v.created_at, v.id))]

    # --- production jobs ---

    def _has_active_job(self, variant_id: str) -> bool:
        return any(j.variant_id == variant_id and j.status in ACTIVE_JOB_STATUSES for j in self.jobs.values())

    async def enqueue_jobs(self, variant_ids: Sequence[str], priority: int) -> list[ProductionJob]:
        async with self._lock:
            created: list[ProductionJob] = []
            base = _now()
            for variant_id in variant_ids:
                variant = self.variants.get(variant_id)
                if variant is None or variant.status == VariantStatus.GENERATING:
                    continue
                if self._has_active_job(variant_id):
                    continue
                job = ProductionJob(
                    id=str(uuid.uuid4()),
                    variant_id=variant_id,
                    priority=priority,
                    enqueued_at=base + timedelta(microseconds=len(created)),
                )
                self.jobs[job.id] = job
                self.variants[variant_id] = variant.model_copy(
                    update={"status": VariantStatus.SELECTED, "updated_at": base}
                )
                created.append(job.model_copy(deep=True))
            return created

    async def get_job(self, job_id: str) -> ProductionJob | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[ProductionJob]:
        rows = [j for j in self.jobs.values() if status is None or j.status == status]
        rows.sort(key=lambda j: (-j.priority, j.enqueued_at, j.id))
        return [j.model_copy(deep=True) for j in rows[:limit]]

    async def claim_jobs(self, limit: int) -> list[ProductionJob]:
        async with self._lock:
            pending = [j for j in self.jobs.values() if j.status == JobStatus.PENDING]
            pending.sort(key=lambda j: (-j.priority, j.enqueued_at, j.id))
            claimed: list[ProductionJob] = []
            now = _now()
            for job in pending[:limit]:
                job = job.model_copy(update={"status": JobStatus.PROCESSING, "claimed_at": now})
                self.jobs[job.id] = job
                claimed.append(job.model_copy(deep=True))
            return claimed

    async def transition_job(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None,
        variant_update: VariantUpdate,
    ) -> ProductionJob | None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None or job.status not in ACTIVE_JOB_STATUSES:
                return None
            now = _now()
            changes: dict[str, Any] = {"status": status, "error_message": error_message}
            if status == JobStatus.PROCESSING:
                changes["started_at"] = now
            else:
                changes["completed_at"] = now
            job = job.model_copy(update=changes)
            self.jobs[job_id] = job

            variant = self.variants.get(job.variant_id)
            if variant is not None:
                variant_changes: dict[str, Any] = {
                    "status": variant_update.status,
                    "error_message": variant_update.error_message,
                    "updated_at": now,
                }
                if variant_update.final_artifact_ref is not None:
                    variant_changes["final_artifact_ref"] = variant_update.final_artifact_ref
                self.variants[variant.id] = variant.model_copy(update=variant_changes)
            return job.model_copy(deep=True)

    async def add_job_artifact(self, job_id: str, fmt: str, ref: str) -> ProductionJob | None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                return None
            job = job.model_copy(update={"artifacts": {**job.artifacts, fmt: ref}})
            self.jobs[job_id] = job
            return job.model_copy(deep=True)

    async def ping(self) -> bool:
        return True

    async def dispose(self) -> None:
        pass
