from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from garment_forge.models import DesignVariant, JobTicket, ProductionJob, VariantConfiguration

# --- JSON:API resource schemas (used by FastAPI-JSONAPI ApplicationBuilder) ---


class VariantSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: str
    name: str
    status: str
    configuration: dict[str, Any]
    preview_url: str | None = None
    final_url: str | None = None
    error_message: str | None = None
    created_at: str
    updated_at: str


# --- Custom (non-JSON:API) endpoint schemas ---


class GenerateVariantsRequest(BaseModel):
    """POST /variants/generate"""

    item_id: str = Field(validation_alias=AliasChoices("item_id", "itemId"))
    config: VariantConfiguration | None = None


class GenerateVariantsResponse(BaseModel):
    variants: list[DesignVariant]
    message: str


class VariantSelectionRequest(BaseModel):
    status: Literal["preview", "selected"]


class DeleteVariantsResponse(BaseModel):
    deleted: int


class EnqueueJobsRequest(BaseModel):
    """POST /bridge/jobs"""

    variant_ids: list[str] = Field(validation_alias=AliasChoices("variant_ids", "variantIds"))
    priority: int = 0


class EnqueueJobsResponse(BaseModel):
    created: int
    skipped: int
    jobs: list[ProductionJob]


class ClaimJobsResponse(BaseModel):
    jobs: list[JobTicket]


class JobUpdateRequest(BaseModel):
    """PATCH /bridge/jobs/{id}"""

    status: Literal["processing", "completed", "failed"]
    error_message: str | None = Field(default=None, validation_alias=AliasChoices("error_message", "errorMessage"))
    final_artifact_ref: str | None = Field(
        default=None, validation_alias=AliasChoices("final_artifact_ref", "finalArtifactRef")
    )


class ArtifactUploadResponse(BaseModel):
    ref: str
    url: str


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    database: str = "up"
