import typer

from garment_forge.cli.bridge import bridge_app
from garment_forge.cli.catalog import catalog_app
from garment_forge.cli.db import db_app
from garment_forge.cli.design import customize, layers
from garment_forge.cli.serve import serve_app

app = typer.Typer(
    name="garment-forge",
    help="Garment Forge CLI: customize garment designs and run production.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.add_typer(db_app, name="db")
app.add_typer(serve_app, name="serve")
app.add_typer(bridge_app, name="bridge")
app.add_typer(catalog_app, name="catalog")
app.command("layers")(layers)
app.command("customize")(customize)


def main() -> None:
    app()
