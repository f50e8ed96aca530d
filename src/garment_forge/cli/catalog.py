"""Seed the catalog: items, templates and assets."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from garment_forge.core.errors import ParseError
from garment_forge.core.layers import parse_document
from garment_forge.core.ports.database import DesignDatabase
from garment_forge.core.ports.storage import ArtifactStorage
from garment_forge.models import AssetKind, AssetRecord, ItemRecord, TemplateRecord

catalog_app = typer.Typer(help="Add catalog entries.")
console = Console()


def _get_database() -> DesignDatabase:
    from garment_forge.db.engine import get_engine
    from garment_forge.db.postgres import PostgresDesignDatabase

    return PostgresDesignDatabase(get_engine())


def _get_storage() -> ArtifactStorage:
    from garment_forge.storage.local import LocalArtifactStorage

    return LocalArtifactStorage.from_env()


def _run(action: Callable[[DesignDatabase, ArtifactStorage], Awaitable[None]]) -> None:
    db = _get_database()
    storage = _get_storage()

    async def _main() -> None:
        try:
            await db.ensure_ready()
            await action(db, storage)
        finally:
            await db.dispose()

    asyncio.run(_main())


@catalog_app.command("add-item")
def add_item(
    item_id: Annotated[str, typer.Argument(help="Item id.")],
    name: Annotated[str, typer.Option(help="Display name.")],
    template: Annotated[str | None, typer.Option(help="Template id.")] = None,
) -> None:
    """Create or replace an item."""

    async def _action(db: DesignDatabase, storage: ArtifactStorage) -> None:
        await db.upsert_item(ItemRecord(id=item_id, name=name, template_id=template))

    _run(_action)
    console.print(f"[green]Item {item_id} saved.[/green]")


@catalog_app.command("add-template")
def add_template(
    template_id: Annotated[str, typer.Argument(help="Template id.")],
    svg: Annotated[Path, typer.Option(help="Vector source (SVG).")],
    name: Annotated[str | None, typer.Option(help="Display name.")] = None,
    master: Annotated[Path | None, typer.Option(help="Master document for production.")] = None,
) -> None:
    """Upload a template's vector source and optional master document."""
    source = svg.read_bytes()
    try:
        parse_document(source.decode("utf-8"))
    except (ParseError, UnicodeDecodeError) as exc:
        console.print(f"[red]{svg} is not a usable SVG: {exc}[/red]")
        raise typer.Exit(1) from exc

    async def _action(db: DesignDatabase, storage: ArtifactStorage) -> None:
        vector_ref = await storage.put(source, prefix="templates", suffix=".svg")
        master_ref = None
        if master is not None:
            master_ref = await storage.put(master.read_bytes(), prefix="templates", suffix=master.suffix)
        await db.upsert_template(
            TemplateRecord(
                id=template_id,
                name=name or svg.stem,
                vector_source_ref=vector_ref,
                master_document_ref=master_ref,
            )
        )

    _run(_action)
    console.print(f"[green]Template {template_id} saved.[/green]")


@catalog_app.command("add-asset")
def add_asset(
    asset_id: Annotated[str, typer.Argument(help="Asset id.")],
    kind: Annotated[AssetKind, typer.Option(help="Asset kind.")],
    name: Annotated[str, typer.Option(help="Display name.")],
    value: Annotated[str | None, typer.Option(help="Hex color or font family.")] = None,
    file: Annotated[Path | None, typer.Option(help="Image file for logos, patterns and embellishments.")] = None,
) -> None:
    """Create or replace a color, font or file asset."""
    if (value is None) == (file is None):
        console.print("[red]Pass exactly one of --value or --file.[/red]")
        raise typer.Exit(1)

    async def _action(db: DesignDatabase, storage: ArtifactStorage) -> None:
        stored = value
        if file is not None:
            stored = await storage.put(file.read_bytes(), prefix="assets", suffix=file.suffix)
        assert stored is not None
        await db.upsert_asset(AssetRecord(id=asset_id, kind=kind, name=name, value=stored))

    _run(_action)
    console.print(f"[green]Asset {asset_id} saved.[/green]")
