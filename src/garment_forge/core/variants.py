import logging
from collections.abc import Callable

from garment_forge.core.assets import resolve_assets
from garment_forge.core.customize import apply_configuration
from garment_forge.core.errors import (
    ItemNotFoundError,
    MissingVectorSourceError,
    TemplateNotFoundError,
    VariantLimitError,
    VariantNotFoundError,
)
from garment_forge.core.layers import editable_layers, parse_document
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import (
    DesignVariant,
    EditableLayer,
    TemplateRecord,
    VariantConfiguration,
    VariantDraft,
    VariantStatus,
)

logger = logging.getLogger(__name__)

MAX_VARIANTS = 20
PREVIEW_PREFIX = "previews"

ConfigurationExpander = Callable[[VariantConfiguration], list[VariantConfiguration]]


def expand_configuration(configuration: VariantConfiguration) -> list[VariantConfiguration]:
    """Expand a configuration into the concrete configurations to render.

    Produces exactly one; combinatorial expansion is not supported.
    """
    return [configuration]


async def _template_for_item(database: DesignDatabase, item_id: str) -> TemplateRecord:
    item = await database.get_item(item_id)
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found")
    template = await database.get_template(item.template_id) if item.template_id else None
    if template is None or not template.vector_source_ref:
        raise MissingVectorSourceError(f"Item {item_id} has no template with a vector source")
    return template


async def _delete_artifact(storage: ArtifactStorage, ref: str | None) -> None:
    if not ref:
        return
    try:
        await storage.delete(ref)
    except Exception:
        logger.exception("failed to delete artifact %s", ref)


async def generate_variants(
    database: DesignDatabase,
    storage: ArtifactStorage,
    item_id: str,
    configuration: VariantConfiguration,
    *,
    expand: ConfigurationExpander = expand_configuration,
) -> list[DesignVariant]:
    """Render previews for a configuration and record them as variants of the item.

    Returns the created variants. Raises ``ItemNotFoundError``,
    ``MissingVectorSourceError`` or ``ParseError`` before anything is stored,
    and ``VariantLimitError`` when the item already holds ``MAX_VARIANTS``.
    """
    template = await _template_for_item(database, item_id)
    assert template.vector_source_ref is not None
    original = (await storage.get(template.vector_source_ref)).decode("utf-8")
    assets = await resolve_assets(database, storage, configuration)

    drafts: list[VariantDraft] = []
    try:
        for concrete in expand(configuration)[:MAX_VARIANTS]:
            rendered = apply_configuration(original, concrete, assets)
            ref = await storage.put(rendered.encode("utf-8"), prefix=PREVIEW_PREFIX, suffix=".svg")
            drafts.append(VariantDraft(configuration=concrete, preview_artifact_ref=ref))
        created = await database.create_variants(item_id, drafts, limit=MAX_VARIANTS)
    except Exception:
        for draft in drafts:
            await _delete_artifact(storage, draft.preview_artifact_ref)
        raise

    for draft in drafts[len(created) :]:
        await _delete_artifact(storage, draft.preview_artifact_ref)

    if drafts and not created:
        raise VariantLimitError(f"Item {item_id} already has {MAX_VARIANTS} variants")
    logger.info("generated %d variant(s) for item %s", len(created), item_id)
    return created


async def select_variant(database: DesignDatabase, variant_id: str, selected: bool) -> DesignVariant:
    """Toggle a variant between ``preview`` and ``selected``.

    Variants that are generating or generated are returned unchanged.
    """
    if selected:
        target, only_from = VariantStatus.SELECTED, (VariantStatus.PREVIEW,)
    else:
        target, only_from = VariantStatus.PREVIEW, (VariantStatus.SELECTED,)
    variant = await database.set_variant_status(variant_id, target, only_from)
    if variant is None:
        raise VariantNotFoundError(f"Variant {variant_id} not found")
    return variant


async def get_variant(database: DesignDatabase, variant_id: str) -> DesignVariant:
    variant = await database.get_variant(variant_id)
    if variant is None:
        raise VariantNotFoundError(f"Variant {variant_id} not found")
    return variant


async def list_variants(database: DesignDatabase, item_id: str, limit: int = MAX_VARIANTS) -> list[DesignVariant]:
    return await database.list_variants(item_id=item_id, limit=limit)


async def delete_variant(database: DesignDatabase, storage: ArtifactStorage, variant_id: str) -> DesignVariant:
    variant = await database.delete_variant(variant_id)
    if variant is None:
        raise VariantNotFoundError(f"Variant {variant_id} not found")
    await _delete_artifact(storage, variant.preview_artifact_ref)
    await _delete_artifact(storage, variant.final_artifact_ref)
    return variant


async def delete_all_variants(database: DesignDatabase, storage: ArtifactStorage, item_id: str) -> int:
    variants = await database.delete_variants_for_item(item_id)
    for variant in variants:
        await _delete_artifact(storage, variant.preview_artifact_ref)
        await _delete_artifact(storage, variant.final_artifact_ref)
    return len(variants)


async def template_layers(
    database: DesignDatabase,
    storage: ArtifactStorage,
    template_id: str,
) -> list[EditableLayer]:
    """Return the editable layers of a template, parsing it on first use only."""
    template = await database.get_template(template_id)
    if template is None:
        raise TemplateNotFoundError(f"Template {template_id} not found")
    if template.layer_data is not None:
        return [EditableLayer.model_validate(entry) for entry in template.layer_data]
    if not template.vector_source_ref:
        raise MissingVectorSourceError(f"Template {template_id} has no vector source")

    source = (await storage.get(template.vector_source_ref)).decode("utf-8")
    layers = editable_layers(parse_document(source))
    await database.save_template_layers(template_id, [layer.model_dump(mode="json") for layer in layers])
    logger.info("cached %d editable layer(s) for template %s", len(layers), template_id)
    return layers
