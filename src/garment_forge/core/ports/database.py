from collections.abc import Collection, Sequence
from datetime import datetime
from typing import Any, Protocol

from garment_forge.models import (
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


class DesignDatabase(Protocol):
    async def ensure_ready(self) -> None: ...

    # --- catalog ---

    async def get_item(self, item_id: str) -> ItemRecord | None: ...

    async def get_template(self, template_id: str) -> TemplateRecord | None: ...

    async def save_template_layers(self, template_id: str, layer_data: list[dict[str, Any]]) -> None: ...

    async def get_assets(self, asset_ids: Collection[str]) -> dict[str, AssetRecord]: ...

    async def upsert_item(self, item: ItemRecord) -> None: ...

    async def upsert_template(self, template: TemplateRecord) -> None: ...

    async def upsert_asset(self, asset: AssetRecord) -> None: ...

    # --- variants ---

    async def create_variants(
        self, item_id: str, drafts: Sequence[VariantDraft], limit: int
    ) -> list[DesignVariant]: ...

    async def get_variant(self, variant_id: str) -> DesignVariant | None: ...

    async def list_variants(
        self,
        item_id: str | None = None,
        status: VariantStatus | None = None,
        limit: int = 50,
        after: tuple[datetime, str] | None = None,
        before: tuple[datetime, str] | None = None,
    ) -> list[DesignVariant]: ...

    async def set_variant_status(
        self,
        variant_id: str,
        status: VariantStatus,
        only_from: Collection[VariantStatus],
    ) -> DesignVariant | None: ...

    async def delete_variant(self, variant_id: str) -> DesignVariant | None: ...

    async def delete_variants_for_item(self, item_id: str) -> list[DesignVariant]: ...

    # --- production jobs ---

    async def enqueue_jobs(self, variant_ids: Sequence[str], priority: int) -> list[ProductionJob]: ...

    async def get_job(self, job_id: str) -> ProductionJob | None: ...

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[ProductionJob]: ...

    async def claim_jobs(self, limit: int) -> list[ProductionJob]: ...

    async def transition_job(
        self,
        job_id: str,
        status: JobStatus,
        error_message: str | None,
        variant_update: VariantUpdate,
    ) -> ProductionJob | None: ...

    async def add_job_artifact(self, job_id: str, fmt: str, ref: str) -> ProductionJob | None: ...

    async def ping(self) -> bool: ...

    async def dispose(self) -> None: ...
