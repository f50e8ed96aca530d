"""Shared fixtures and helpers for tests."""

from pathlib import Path

import pytest

from garment_forge.db import InMemoryDesignDatabase
from garment_forge.models import AssetKind, AssetRecord, ItemRecord, TemplateRecord
from garment_forge.storage.local import LocalArtifactStorage

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

JERSEY_SVG = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" viewBox="0 0 400 500">
  <defs><style>.a{fill:#000}</style></defs>
  <title>Jersey</title>
  <g id="body" data-name="Body">
    <rect id="body-fill" x="0" y="0" width="400" height="500" fill="#ffffff"/>
    <path id="body-outline" d="M0 0 L400 0" fill="none" stroke="#000000"/>
  </g>
  <g id="sleeves">
    <rect id="sleeve-left" x="0" y="0" width="80" height="120" fill="#cccccc"/>
  </g>
  <text id="team-name" x="200" y="120" font-family="Arial"><tspan>EAGLES</tspan><tspan> FC</tspan></text>
  <text id="team_number" x="200" y="300">10</text>
  <g id="chest-logo" data-name="Chest Logo">
    <rect x="150" y="150" width="100" height="100" fill="none"/>
  </g>
  <circle id="badge" cx="50" cy="50" r="20" fill="#ff0000"/>
</svg>
"""


@pytest.fixture
def jersey_svg() -> str:
    return JERSEY_SVG


@pytest.fixture
def in_memory_db() -> InMemoryDesignDatabase:
    return InMemoryDesignDatabase()


@pytest.fixture
def storage(tmp_path: Path) -> LocalArtifactStorage:
    return LocalArtifactStorage(tmp_path / "artifacts")


async def seed_catalog(
    db: InMemoryDesignDatabase,
    storage: LocalArtifactStorage,
    svg: str = JERSEY_SVG,
    *,
    item_id: str = "item-1",
    with_master: bool = True,
) -> ItemRecord:
    """Store a jersey template, an item using it, and a few assets."""
    vector_ref = await storage.put(svg.encode("utf-8"), prefix="templates", suffix=".svg")
    master_ref = await storage.put(b"%AI master", prefix="templates", suffix=".ai") if with_master else None
    await db.upsert_template(
        TemplateRecord(id="tpl-1", name="Jersey", vector_source_ref=vector_ref, master_document_ref=master_ref)
    )
    item = ItemRecord(id=item_id, name="Home jersey", template_id="tpl-1")
    await db.upsert_item(item)
    logo_ref = await storage.put(b"\x89PNG logo", prefix="assets", suffix=".png")
    await db.upsert_asset(AssetRecord(id="red", kind=AssetKind.COLOR, name="Red", value="#ff0000"))
    await db.upsert_asset(AssetRecord(id="navy", kind=AssetKind.COLOR, name="Navy", value="#001f3f"))
    await db.upsert_asset(AssetRecord(id="block", kind=AssetKind.FONT, name="Block", value="Impact"))
    await db.upsert_asset(AssetRecord(id="eagle", kind=AssetKind.LOGO, name="Eagle", value=logo_ref))
    return item
