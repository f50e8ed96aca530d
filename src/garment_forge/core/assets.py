import logging

from garment_forge.core.customize import AssetBundle
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import AssetKind, VariantConfiguration

logger = logging.getLogger(__name__)


async def resolve_assets(
    database: DesignDatabase,
    storage: ArtifactStorage,
    configuration: VariantConfiguration,
) -> AssetBundle:
    """Look up every catalog asset the configuration references.

    Colors resolve to their hex value and fonts to their family name. File assets
    (logos, patterns, embellishments) resolve to a URL for their stored artifact.
    References missing from the catalog are left out and logged.
    """
    wanted = configuration.referenced_asset_ids()
    records = await database.get_assets(wanted)

    colors: dict[str, str] = {}
    fonts: dict[str, str] = {}
    urls: dict[str, str] = {}
    for asset_id, record in records.items():
        if record.kind is AssetKind.COLOR:
            colors[asset_id] = record.value
        elif record.kind is AssetKind.FONT:
            fonts[asset_id] = record.value
        else:
            urls[asset_id] = storage.url_for(record.value)

    missing = sorted(wanted - records.keys())
    if missing:
        logger.debug("assets not in catalog (treated as literals where possible): %s", ", ".join(missing))
    return AssetBundle(colors=colors, fonts=fonts, urls=urls)
