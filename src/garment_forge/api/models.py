"""Lightweight model objects returned by the custom data layer.

These are NOT Pydantic schemas; they are plain dataclasses whose attributes
are read by FastAPI-JSONAPI (via ``model_validate(..., from_attributes=True)``)
to build JSON:API response envelopes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import DesignVariant


@dataclass
class VariantModel:
    id: str
    item_id: str
    name: str
    status: str
    configuration: dict[str, Any]
    preview_url: str | None
    final_url: str | None
    error_message: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_variant(cls, variant: DesignVariant, storage: ArtifactStorage) -> VariantModel:
        return cls(
            id=variant.id,
            item_id=variant.item_id,
            name=variant.name,
            status=variant.status.value,
            configuration=variant.configuration.model_dump(mode="json", by_alias=True),
            preview_url=storage.url_for(variant.preview_artifact_ref) if variant.preview_artifact_ref else None,
            final_url=storage.url_for(variant.final_artifact_ref) if variant.final_artifact_ref else None,
            error_message=variant.error_message,
            created_at=variant.created_at.isoformat(),
            updated_at=variant.updated_at.isoformat(),
        )
