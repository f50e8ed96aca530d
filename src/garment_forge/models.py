from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Layer model ---


class BoundingBox(BaseModel):
    x: float
    y: float
    width: float
    height: float

    def union(self, other: BoundingBox) -> BoundingBox:
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        right = max(self.x + self.width, other.x + other.width)
        bottom = max(self.y + self.height, other.y + other.height)
        return BoundingBox(x=left, y=top, width=right - left, height=bottom - top)

    def scaled(self, percent: int) -> BoundingBox:
        """Scale about the centre; ``percent=100`` returns an equal box."""
        factor = percent / 100
        width = self.width * factor
        height = self.height * factor
        return BoundingBox(
            x=self.x + (self.width - width) / 2,
            y=self.y + (self.height - height) / 2,
            width=width,
            height=height,
        )


class _LayerBase(BaseModel):
    id: str
    name: str
    fill: str | None = None
    stroke: str | None = None
    bbox: BoundingBox | None = None


class GroupLayer(_LayerBase):
    kind: Literal["group"] = "group"
    children: list[LayerNode] = Field(default_factory=list)


class TextLayer(_LayerBase):
    kind: Literal["text"] = "text"
    content: str = ""


class ImageLayer(_LayerBase):
    kind: Literal["image"] = "image"
    href: str | None = None


class ShapeLayer(_LayerBase):
    kind: Literal["rect", "circle", "path", "unknown"]


LayerNode = Annotated[Union[GroupLayer, TextLayer, ImageLayer, ShapeLayer], Field(discriminator="kind")]

GroupLayer.model_rebuild()  # necessary for recursive types


class LayerRole(str, Enum):
    TEXT = "text"
    GRAPHIC = "graphic"
    LOGO = "logo"


class EditableLayer(BaseModel):
    id: str
    name: str
    kind: str
    role: LayerRole
    value: str | None = None


# --- Variant configuration ---


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LayerModification(_CamelModel):
    layer_id: str
    role: LayerRole
    value: str


class ColorChoice(_CamelModel):
    layer_name: str
    color_id: str


class PatternOverlay(_CamelModel):
    pattern_asset_id: str
    target_position: str


class EmbellishmentOverlay(_CamelModel):
    embellishment_asset_id: str
    target_position: str
    size_percent: int = Field(default=100, ge=50, le=200)


class LogoSlot(_CamelModel):
    slot_name: str
    logo_id: str
    size_percent: int = Field(default=100, ge=50, le=200)


class FontChoice(_CamelModel):
    layer_name: str
    font_id: str


class VariantConfiguration(_CamelModel):
    layer_modifications: list[LayerModification] = Field(default_factory=list)
    colors: list[ColorChoice] = Field(default_factory=list)
    pattern_overlays: list[PatternOverlay] = Field(default_factory=list)
    embellishment_overlays: list[EmbellishmentOverlay] = Field(default_factory=list)
    logo_slots: list[LogoSlot] = Field(default_factory=list)
    fonts: list[FontChoice] = Field(default_factory=list)
    team_number_visible: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("team_number_visible", "teamNumberVisible", "teamNumber"),
    )

    def referenced_asset_ids(self) -> set[str]:
        ids: set[str] = {c.color_id for c in self.colors}
        ids.update(p.pattern_asset_id for p in self.pattern_overlays)
        ids.update(e.embellishment_asset_id for e in self.embellishment_overlays)
        ids.update(s.logo_id for s in self.logo_slots)
        ids.update(f.font_id for f in self.fonts)
        ids.update(m.value for m in self.layer_modifications if m.role is LayerRole.LOGO)
        return ids


# --- Records ---


class VariantStatus(str, Enum):
    PREVIEW = "preview"
    SELECTED = "selected"
    GENERATING = "generating"
    GENERATED = "generated"


class DesignVariant(BaseModel):
    id: str
    item_id: str
    name: str
    configuration: VariantConfiguration
    preview_artifact_ref: str | None = None
    final_artifact_ref: str | None = None
    status: VariantStatus = VariantStatus.PREVIEW
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class VariantDraft(BaseModel):
    """A rendered preview waiting for a variant record."""

    configuration: VariantConfiguration
    preview_artifact_ref: str


class VariantUpdate(BaseModel):
    """Variant fields written together with a job transition.

    ``error_message`` is always written (``None`` clears it); ``final_artifact_ref``
    only when set.
    """

    status: VariantStatus
    error_message: str | None = None
    final_artifact_ref: str | None = None


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class ProductionJob(BaseModel):
    id: str
    variant_id: str
    priority: int = 0
    status: JobStatus = JobStatus.PENDING
    error_message: str | None = None
    enqueued_at: datetime
    claimed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    artifacts: dict[str, str] = Field(default_factory=dict)


class ExportFormat(str, Enum):
    AI = "ai"
    SVG = "svg"
    PDF = "pdf"
    PNG = "png"


MASTER_FORMAT = ExportFormat.AI


class JobTicket(BaseModel):
    job: ProductionJob
    variant: DesignVariant | None = None
    master_document_url: str | None = None
    instructions: dict[str, Any] = Field(default_factory=dict)


class EnqueueResult(BaseModel):
    created: int
    skipped: int
    jobs: list[ProductionJob] = Field(default_factory=list)


# --- Catalog ---


class AssetKind(str, Enum):
    COLOR = "color"
    FONT = "font"
    LOGO = "logo"
    PATTERN = "pattern"
    EMBELLISHMENT = "embellishment"


class AssetRecord(BaseModel):
    id: str
    kind: AssetKind
    name: str
    value: str


class TemplateRecord(BaseModel):
    id: str
    name: str
    vector_source_ref: str | None = None
    master_document_ref: str | None = None
    layer_data: list[dict[str, Any]] | None = None


class ItemRecord(BaseModel):
    id: str
    name: str
    template_id: str | None = None
