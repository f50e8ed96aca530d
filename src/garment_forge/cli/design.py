"""Offline commands that run the layer parser and the customization engine on local files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from garment_forge.core.customize import apply_configuration
from garment_forge.core.errors import ParseError
from garment_forge.core.layers import editable_layers, parse_document
from garment_forge.models import VariantConfiguration

console = Console()


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(1) from exc


def layers(
    path: Annotated[Path, typer.Argument(help="SVG file to inspect.")],
) -> None:
    """List the editable layers of an SVG template."""
    try:
        found = editable_layers(parse_document(_read(path)))
    except ParseError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    table = Table(show_lines=False)
    for header in ("id", "name", "kind", "role", "value"):
        table.add_column(header)
    for layer in found:
        table.add_row(layer.id, layer.name, layer.kind, layer.role.value, layer.value or "")
    console.print(table)
    console.print(f"({len(found)} layers)")


def customize(
    path: Annotated[Path, typer.Argument(help="Original SVG template.")],
    config: Annotated[Path, typer.Argument(help="JSON variant configuration.")],
    out: Annotated[Path | None, typer.Option("--out", "-o", help="Write the result here instead of stdout.")] = None,
) -> None:
    """Apply a variant configuration to an SVG template.

    Without a catalog, colors must be hex literals (#rgb or #rrggbb) and assets must be URLs.
    """
    try:
        configuration = VariantConfiguration.model_validate(json.loads(_read(config)))
    except (json.JSONDecodeError, ValidationError) as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(1) from exc

    try:
        rendered = apply_configuration(_read(path), configuration)
    except ParseError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    if out is None:
        typer.echo(rendered)
        return
    out.write_text(rendered, encoding="utf-8")
    console.print(f"[green]Wrote {out}[/green]")
